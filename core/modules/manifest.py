"""Module declaration schema and immutable module values.

A module source declares a plain ``MODULE`` mapping; it is validated with
``ModuleManifest`` and frozen into ``Module`` / ``Command`` values so the
rest of the runtime never holds references into the loaded source.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

Capability = Literal["READ", "READ_WRITE"]


class CommandManifest(BaseModel):
    description: str = "No description available"
    handler: Callable[..., Any]

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)


class ModuleManifest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    capabilities: List[Capability] = []
    commands: Dict[str, CommandManifest]

    model_config = ConfigDict(extra="ignore")

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: Optional[str]) -> Optional[str]:  # noqa: D401
        if v is not None and not v.strip():
            raise ValueError("id cannot be empty")
        return v


@dataclass(frozen=True)
class Command:
    name: str
    description: str
    handler: Callable[..., Any]
    takes_parameters: bool
    is_async: bool

    def describe(self) -> dict:
        return {"description": self.description}


@dataclass(frozen=True)
class Module:
    id: str
    name: str
    capabilities: frozenset[str]
    commands: Mapping[str, Command]
    source: Path

    def describe(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "capabilities": sorted(self.capabilities),
            "commands": {n: c.describe() for n, c in self.commands.items()},
        }


def _accepts_argument(fn: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):  # builtins without signature
        return True
    for p in params:
        if p.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False


def build_module(
    module_id: str, manifest: ModuleManifest, source: Path
) -> Module:
    commands = {
        name: Command(
            name=name,
            description=spec.description,
            handler=spec.handler,
            takes_parameters=_accepts_argument(spec.handler),
            is_async=inspect.iscoroutinefunction(spec.handler),
        )
        for name, spec in manifest.commands.items()
    }
    return Module(
        id=module_id,
        name=manifest.name or module_id,
        capabilities=frozenset(manifest.capabilities),
        commands=commands,
        source=source,
    )


__all__ = [
    "Capability",
    "CommandManifest",
    "ModuleManifest",
    "Command",
    "Module",
    "build_module",
]
