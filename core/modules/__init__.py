"""Modules package.

Runtime registry for capability-declaring modules:
 - Module / Command immutable values (validated from a MODULE mapping)
 - ModuleRegistry: list / load / describe / invoke
 - current_registry: the registry running the handler being executed
"""
from __future__ import annotations

from .manifest import Command, Module, ModuleManifest  # noqa: F401
from .registry import (  # noqa: F401
    ModuleRegistry,
    current_registry,
    normalize_parameters,
)

__all__ = [
    "Command",
    "Module",
    "ModuleManifest",
    "ModuleRegistry",
    "current_registry",
    "normalize_parameters",
]
