"""Agent package: directive parsing, approval gating and the chain loop."""
from __future__ import annotations

from .approvals import ApprovalTable, ModuleResult, PendingApproval
from .directive import Directive, format_directive, parse_directive
from .orchestrator import LLM_TASK, Orchestrator  # noqa: F401
from .session_store import ChatMessage, SessionStore  # noqa: F401

__all__ = [
    "ApprovalTable",
    "ModuleResult",
    "PendingApproval",
    "Directive",
    "format_directive",
    "parse_directive",
    "LLM_TASK",
    "Orchestrator",
    "ChatMessage",
    "SessionStore",
]
