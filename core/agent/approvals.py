"""Pending-approval table.

Thread-safe map request_id -> PendingApproval. An id is present iff it is
unresolved: ``resolve`` is an atomic pop, so concurrent approve/deny calls
on the same id see exactly one winner. Entries older than the TTL are
purged lazily on every access.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from threading import RLock
from time import monotonic
from typing import Any, Callable, Dict, Tuple

from core.errors import UnknownApprovalRequest
from .directive import Directive

DEFAULT_TTL_SECONDS = 600


@dataclass(frozen=True)
class ModuleResult:
    module: str
    command: str
    result: Any

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "command": self.command,
            "result": self.result,
        }


@dataclass(frozen=True)
class PendingApproval:
    request_id: str
    directive: Directive
    original_prompt: str
    ai_response: str
    prior_results: Tuple[ModuleResult, ...]
    session_id: str
    created_at: float = field(default=0.0, compare=False)


class ApprovalTable:
    def __init__(
        self,
        ttl_s: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._pending: Dict[str, PendingApproval] = {}
        self._lock = RLock()

    def create(
        self,
        directive: Directive,
        original_prompt: str,
        ai_response: str,
        prior_results: Tuple[ModuleResult, ...],
        session_id: str,
    ) -> PendingApproval:
        with self._lock:
            self._purge_expired()
            request_id = uuid.uuid4().hex
            pending = PendingApproval(
                request_id=request_id,
                directive=directive,
                original_prompt=original_prompt,
                ai_response=ai_response,
                prior_results=tuple(prior_results),
                session_id=session_id,
                created_at=self._clock(),
            )
            self._pending[request_id] = pending
            return pending

    def get(self, request_id: str) -> PendingApproval | None:
        with self._lock:
            self._purge_expired()
            return self._pending.get(request_id)

    def resolve(self, request_id: str) -> PendingApproval:
        """Remove and return the pending entry (at most once per id)."""
        with self._lock:
            self._purge_expired()
            pending = self._pending.pop(request_id, None)
        if pending is None:
            raise UnknownApprovalRequest(request_id)
        return pending

    def _purge_expired(self) -> None:
        if self._ttl_s <= 0:
            return
        now = self._clock()
        expired = [
            rid
            for rid, p in self._pending.items()
            if now - p.created_at > self._ttl_s
        ]
        for rid in expired:
            self._pending.pop(rid, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            self._purge_expired()
            return request_id in self._pending


__all__ = ["ApprovalTable", "PendingApproval", "ModuleResult"]
