"""Event dataclasses + any-subscriber bridge.

Per-event subscriptions go through `core.eventbus`. This module adds typed
event payloads and `subscribe(handler)` where handler(name, payload)
receives every event (used by tests and the metrics collector).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from time import time
from typing import Any, Callable, Dict, List, Protocol

from core import metrics as _metrics
from core.eventbus import emit as _emit_bus

EventHandler = Callable[[str, Dict[str, Any]], None]

logger = logging.getLogger("arr.events")


class SupportsEvent(Protocol):  # pragma: no cover
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        ...


@dataclass(slots=True)
class BaseEvent:
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        data = asdict(self)
        data["ts"] = data.get("ts") or time()
        return data


@dataclass(slots=True)
class ModuleLoaded(BaseEvent):
    module_id: str
    name: str
    commands: int
    load_ms: int


@dataclass(slots=True)
class ModuleLoadFailed(BaseEvent):
    module_id: str
    error_type: str
    message: str | None = None


@dataclass(slots=True)
class ModuleInvoked(BaseEvent):
    """Registry-level invocation outcome.

    status: ok|error
    error_type/message only on failure.
    """
    module_id: str
    command: str
    status: str
    latency_ms: int
    error_type: str | None = None
    message: str | None = None


@dataclass(slots=True)
class BackendCallCompleted(BaseEvent):
    service: str
    model: str | None
    status: str  # ok|error
    latency_ms: int
    error_type: str | None = None


@dataclass(slots=True)
class ApprovalRequested(BaseEvent):
    request_id: str
    session_id: str
    module_id: str
    command: str
    chain_depth: int


@dataclass(slots=True)
class ApprovalResolved(BaseEvent):
    """Resolution of a pending approval.

    outcome: approved|denied|unknown (unknown = id not in table)
    """
    request_id: str
    outcome: str
    session_id: str | None = None
    module_id: str | None = None


@dataclass(slots=True)
class ChainCompleted(BaseEvent):
    session_id: str
    steps: int
    modules: list[str]


@dataclass(slots=True)
class ChainDepthHit(BaseEvent):
    session_id: str
    depth: int
    limit: int
    module_id: str


_ANY_SUBS: List[EventHandler] = []


def _metrics_collector(
    name: str, payload: Dict[str, Any]
) -> None:  # noqa: D401
    if name in {"ModuleLoaded", "ModuleLoadFailed"}:
        _metrics.inc(
            "module_loads_total",
            {
                "module": payload.get("module_id", "unknown"),
                "status": "ok" if name == "ModuleLoaded" else "error",
            },
        )
    elif name == "ModuleInvoked":
        _metrics.inc_module_invocation(
            payload.get("module_id", "unknown"),
            payload.get("status", "unknown"),
        )
        _metrics.observe(
            "module_latency_ms",
            payload.get("latency_ms", 0),
            {"module": payload.get("module_id", "unknown")},
        )
    elif name == "BackendCallCompleted":
        _metrics.inc(
            "backend_calls_total",
            {
                "service": payload.get("service", "unknown"),
                "status": payload.get("status", "unknown"),
            },
        )
        _metrics.observe(
            "backend_latency_ms",
            payload.get("latency_ms", 0),
            {"service": payload.get("service", "unknown")},
        )
    elif name == "ApprovalRequested":
        _metrics.inc(
            "approvals_requested_total",
            {"module": payload.get("module_id", "unknown")},
        )
    elif name == "ApprovalResolved":
        _metrics.inc_approval_resolved(payload.get("outcome", "unknown"))
    elif name == "ChainDepthHit":
        _metrics.inc("chain_depth_exceeded_total")


_ANY_SUBS.append(_metrics_collector)


def emit(ev: BaseEvent | SupportsEvent) -> None:
    name = ev.__class__.__name__
    payload = ev.to_event()
    _emit_bus(name, payload)
    for h in list(_ANY_SUBS):  # copy for isolation
        try:
            h(name, dict(payload))
        except Exception:  # noqa: BLE001
            _metrics.inc("handler_exceptions_total", {"event": name})
            logger.exception("event listener failed for %s", name)


def on(handler: EventHandler) -> None:
    _ANY_SUBS.append(handler)


def subscribe(handler: EventHandler):
    on(handler)

    def _unsub() -> None:  # noqa: D401
        try:
            _ANY_SUBS.remove(handler)
        except ValueError:
            pass
    return _unsub


def reset_listeners_for_tests() -> None:  # pragma: no cover
    _ANY_SUBS.clear()
    _ANY_SUBS.append(_metrics_collector)


__all__ = [
    "emit",
    "on",
    "subscribe",
    "BaseEvent",
    "ModuleLoaded",
    "ModuleLoadFailed",
    "ModuleInvoked",
    "BackendCallCompleted",
    "ApprovalRequested",
    "ApprovalResolved",
    "ChainCompleted",
    "ChainDepthHit",
    "reset_listeners_for_tests",
]
