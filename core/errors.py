"""Central error taxonomy.

Every failure the runtime can report carries a stable ``error_type`` code.
Codes are validated against ``_ALLOWED_ERROR_TYPES`` so metrics labels and
events never drift from this list.
"""
from __future__ import annotations

_ALLOWED_ERROR_TYPES = {
    # module registry
    "module-not-found",
    "command-not-found",
    "module-load-failed",
    "module-dir-unavailable",
    "handler-failed",
    # backend
    "backend-misconfigured",
    "backend-call-failed",
    "backend-timeout",
    # orchestration
    "unknown-approval-request",
    "chain-depth-exceeded",
    # config
    "config-out-of-range",
    # infra
    "event-handler-error",
    "internal",
}


def validate_error_type(code: str) -> str:
    assert (
        code in _ALLOWED_ERROR_TYPES
    ), f"Unknown error_type '{code}' (not in taxonomy)"
    return code


class ArrError(Exception):
    """Base class for runtime errors with a taxonomy code."""

    error_type = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ModuleNotFound(ArrError):
    error_type = "module-not-found"

    def __init__(self, module_id: str) -> None:
        super().__init__(f'Module "{module_id}" not found')
        self.module_id = module_id


class CommandNotFound(ArrError):
    error_type = "command-not-found"

    def __init__(self, module_id: str, command: str) -> None:
        super().__init__(
            f'Command "{command}" not found in "{module_id}"'
        )
        self.module_id = module_id
        self.command = command


class ModuleLoadError(ArrError):
    """Module source failed to import or does not match the contract."""

    error_type = "module-load-failed"


class ModuleDirectoryError(ArrError):
    """Module directory cannot be enumerated (fatal at startup)."""

    error_type = "module-dir-unavailable"


class HandlerError(ArrError):
    error_type = "handler-failed"


class BackendMisconfigured(ArrError):
    """Missing or placeholder credentials for the selected backend."""

    error_type = "backend-misconfigured"


class BackendCallFailed(ArrError):
    """Network or provider failure (reported, never auto-retried)."""

    error_type = "backend-call-failed"


class UnknownApprovalRequest(ArrError):
    error_type = "unknown-approval-request"

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Approval request '{request_id}' not found")
        self.request_id = request_id


class ChainDepthExceeded(ArrError):
    error_type = "chain-depth-exceeded"

    def __init__(self, depth: int, limit: int) -> None:
        super().__init__(
            f"Module chain stopped after {depth} steps (limit {limit})"
        )
        self.depth = depth
        self.limit = limit


def map_exception(e: Exception, phase: str) -> str:
    """Map an arbitrary exception to a taxonomy code for a given phase."""
    if isinstance(e, ArrError):
        return validate_error_type(e.error_type)
    name = e.__class__.__name__.lower()
    msg = str(e).lower()
    if phase == "module.load":
        return "module-load-failed"
    if phase == "module.invoke":
        return "handler-failed"
    if phase == "backend":
        if "timeout" in name or "timeout" in msg:
            return "backend-timeout"
        return "backend-call-failed"
    return "internal"


__all__ = [
    "validate_error_type",
    "map_exception",
    "ArrError",
    "ModuleNotFound",
    "CommandNotFound",
    "ModuleLoadError",
    "ModuleDirectoryError",
    "HandlerError",
    "BackendMisconfigured",
    "BackendCallFailed",
    "UnknownApprovalRequest",
    "ChainDepthExceeded",
]
