"""Listing module: describes every module of the registry running it."""
from core.modules import current_registry


def list_all_modules():
    registry = current_registry()
    if registry is None:
        raise RuntimeError("listAllModules must be invoked through a registry")
    return registry.describe_all()


MODULE = {
    "id": "list",
    "name": "Listing Module",
    "capabilities": ["READ"],
    "commands": {
        "listAllModules": {
            "description": (
                "Returns all Module names with their commands and capabilities"
            ),
            "handler": list_all_modules,
        },
    },
}
