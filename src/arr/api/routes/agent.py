"""Agent routes: chat turns, approvals, history and module introspection.

Handlers only adapt HTTP payloads; all turn semantics live in the
orchestrator stored on ``app.state`` by ``create_app``.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from core.agent import Orchestrator, SessionStore
from core.errors import ArrError
from core.modules import ModuleRegistry

logger = logging.getLogger("arr.api")

router = APIRouter()


class MessageRequest(BaseModel):
    # Optional so an incomplete body gets the "Missing Fields" response
    userprompt: str | None = None
    typoftask: str | None = None
    sessionId: str | None = None


class ApproveRequest(BaseModel):
    requestId: str | None = None
    approved: bool = False


class ClearHistoryRequest(BaseModel):
    sessionId: str | None = None


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def _registry(request: Request) -> ModuleRegistry:
    return request.app.state.registry


def _sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def _default_session(request: Request) -> str:
    return request.app.state.default_session_id


@router.get("/")
def root(request: Request):  # noqa: D401
    try:
        count = len(_registry(request).list())
    except ArrError as e:
        logger.error("module listing failed: %s", e.message)
        count = 0
    return {"message": "ARR Backend running", "modules": count}


@router.get("/modules")
def list_modules(request: Request):  # noqa: D401
    try:
        return {"modules": _registry(request).list()}
    except ArrError as e:
        logger.error("module listing failed: %s", e.message)
        return {"modules": []}


@router.get("/modules/{module_id}")
def describe_module(module_id: str, request: Request):  # noqa: D401
    try:
        module = _registry(request).describe(module_id)
        return {"success": True, "module": module}
    except ArrError as e:
        return {"success": False, "message": e.message}


@router.get("/history/{session_id}")
def history(session_id: str, request: Request):  # noqa: D401
    return {"success": True, "history": _sessions(request).history(session_id)}


@router.post("/clear-history")
def clear_history(
    request: Request, payload: ClearHistoryRequest | None = None
):  # noqa: D401
    sid = (payload.sessionId if payload else None) or _default_session(request)
    removed = _sessions(request).clear(sid)
    logger.info("history cleared session=%s removed=%s", sid, removed)
    return {"success": True, "message": "Chat history cleared"}


@router.post("/message")
async def message(payload: MessageRequest, request: Request):  # noqa: D401
    return await _orchestrator(request).handle_message(
        payload.userprompt or "",
        payload.typoftask or "",
        payload.sessionId,
    )


@router.post("/approve-module")
async def approve_module(
    payload: ApproveRequest, request: Request
):  # noqa: D401
    return await _orchestrator(request).resolve_approval(
        payload.requestId, payload.approved
    )
