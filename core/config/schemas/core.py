"""Core/system schemas: server, modules, agent loop, sessions."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000
    # Built web client served under /ui when the directory exists
    frontend_dir: str = "frontend"


class ModulesConfig(BaseModel):
    path: str = "modules"
    extensions: List[str] = Field(default_factory=lambda: [".py"])

    @field_validator("extensions")
    @classmethod
    def _dotted(cls, v: List[str]) -> List[str]:  # noqa: D401
        return [e if e.startswith(".") else f".{e}" for e in v]


class AgentConfig(BaseModel):
    # Module ids that never require a human decision
    auto_approve: List[str] = Field(default_factory=lambda: ["list"])
    # Module executions allowed within one chain before failing closed
    max_chain_depth: int = 5
    approval_ttl_s: int = 600


class SessionConfig(BaseModel):
    default_id: str = "default"
    max_messages: int = 200
    ttl_s: int = 24 * 60 * 60
