"""Approval orchestrator: the permission-gated agent loop.

Per user turn:

    PARSING_USER_INPUT -> DIRECT_EXECUTE | GENERATING
    GENERATING -> PARSING_MODEL_OUTPUT
    PARSING_MODEL_OUTPUT -> DONE | AUTO_EXECUTE -> GENERATING | SUSPENDED
    SUSPENDED -(resolve)-> DENIED | APPROVED -> EXECUTE -> GENERATING

A directive typed by the user runs immediately with no model round-trip and
no approval gate. Directives produced by the model run immediately only for
auto-approved module ids; anything else suspends into the approval table
until ``resolve_approval`` is called. Every chain is capped at
``max_chain_depth`` module executions and fails closed beyond it.

Both public entry points return response dicts; failures come back as
``{"success": False, "message": ...}``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Tuple

from core.config.schemas.core import AgentConfig
from core.errors import ArrError, ChainDepthExceeded, UnknownApprovalRequest
from core.events import (
    emit,
    ApprovalRequested,
    ApprovalResolved,
    ChainCompleted,
    ChainDepthHit,
)
from core.llm.provider import BackendAdapter
from core.modules.registry import ModuleRegistry
from .approvals import ApprovalTable, ModuleResult
from .directive import Directive, parse_directive
from .prompts import SYSTEM_PROMPT, build_continuation_prompt
from .render import render_markdown, render_module_result
from .session_store import SessionStore

logger = logging.getLogger("arr.agent")

LLM_TASK = "llm"
DEFAULT_SESSION_ID = "default"


@dataclass(frozen=True)
class _Turn:
    session_id: str
    original_prompt: str


def _failure(message: str) -> dict:
    return {"success": False, "message": message}


class Orchestrator:
    def __init__(
        self,
        registry: ModuleRegistry,
        backend: BackendAdapter,
        sessions: SessionStore,
        approvals: ApprovalTable,
        config: AgentConfig | None = None,
        system_prompt: str | None = None,
        default_session_id: str = DEFAULT_SESSION_ID,
    ) -> None:
        cfg = config or AgentConfig()
        self._registry = registry
        self._backend = backend
        self._sessions = sessions
        self._approvals = approvals
        self._auto_approve = frozenset(cfg.auto_approve)
        self._max_depth = cfg.max_chain_depth
        self._system_prompt = system_prompt or SYSTEM_PROMPT
        self._default_session_id = default_session_id

    @property
    def backend(self) -> BackendAdapter:
        return self._backend

    def is_auto_approved(self, directive: Directive) -> bool:
        return directive.module in self._auto_approve

    # --- Entry points ------------------------------------------------------
    async def handle_message(
        self, prompt: str, task: str, session_id: str | None = None
    ) -> dict:
        if not prompt or not task:
            return _failure("Missing Fields")
        sid = session_id or self._default_session_id
        logger.info("message received session=%s", sid)
        async with self._sessions.lock(sid):
            try:
                directive = parse_directive(prompt)
                if directive is not None:
                    return await self._run_direct(sid, prompt, directive)
                if task != LLM_TASK:
                    return _failure("Unknown task type")
                history = self._sessions.get(sid)
                self._sessions.add(sid, "user", prompt)
                text = await self._backend.generate(
                    prompt, self._system_prompt, None, history
                )
                return await self._advance(_Turn(sid, prompt), text, ())
            except ArrError as e:
                logger.warning("turn failed session=%s: %s", sid, e.message)
                return _failure(e.message)
            except Exception:  # noqa: BLE001
                logger.exception("message processing failed session=%s", sid)
                return _failure("Internal Server Error")

    async def resolve_approval(
        self, request_id: str | None, approved: bool
    ) -> dict:
        if not request_id:
            return _failure("Missing request ID")
        try:
            pending = self._approvals.resolve(request_id)
        except UnknownApprovalRequest:
            emit(ApprovalResolved(request_id=request_id, outcome="unknown"))
            return _failure("Request not found or expired")
        directive = pending.directive
        emit(
            ApprovalResolved(
                request_id=request_id,
                outcome="approved" if approved else "denied",
                session_id=pending.session_id,
                module_id=directive.module,
            )
        )
        if not approved:
            logger.info(
                "request %s denied (%s)", request_id, directive.target
            )
            return {
                "success": True,
                "message": "Module execution denied by user.",
                "denied": True,
            }
        turn = _Turn(pending.session_id, pending.original_prompt)
        async with self._sessions.lock(turn.session_id):
            try:
                logger.info(
                    "request %s approved, executing %s",
                    request_id,
                    directive.target,
                )
                results = await self._execute(
                    turn, directive, pending.prior_results
                )
                text = await self._continue(turn, results)
                return await self._advance(turn, text, results)
            except ArrError as e:
                logger.warning("approval %s failed: %s", request_id, e.message)
                return _failure(e.message)
            except Exception:  # noqa: BLE001
                logger.exception("approved execution failed %s", request_id)
                return _failure("Module execution failed")

    # --- Paths ---------------------------------------------------------------
    async def _run_direct(
        self, session_id: str, prompt: str, directive: Directive
    ) -> dict:
        logger.info("direct command %s", directive.target)
        result = await self._registry.invoke(
            directive.module, directive.command, directive.parameters
        )
        self._sessions.add(session_id, "user", prompt)
        self._sessions.add(
            session_id,
            "assistant",
            f"Direct command executed: {directive.target}\n"
            f"Result: {_dump(result)}",
        )
        return {
            "success": True,
            "message": render_module_result(result),
            "moduleResult": result,
            "history": self._sessions.history(session_id),
            "directCommand": True,
        }

    async def _advance(
        self, turn: _Turn, text: str, results: Tuple[ModuleResult, ...]
    ) -> dict:
        """Run the chain from a model response until done or suspended."""
        while True:
            directive = parse_directive(text)
            if directive is None:
                return self._finish(turn, text, results)
            if len(results) >= self._max_depth:
                emit(
                    ChainDepthHit(
                        session_id=turn.session_id,
                        depth=len(results),
                        limit=self._max_depth,
                        module_id=directive.module,
                    )
                )
                raise ChainDepthExceeded(len(results), self._max_depth)
            if not self.is_auto_approved(directive):
                return self._suspend(turn, directive, text, results)
            logger.info("auto-approving %s", directive.target)
            results = await self._execute(turn, directive, results)
            text = await self._continue(turn, results)

    async def _execute(
        self,
        turn: _Turn,
        directive: Directive,
        results: Iterable[ModuleResult],
    ) -> Tuple[ModuleResult, ...]:
        outcome = await self._registry.invoke(
            directive.module, directive.command, directive.parameters
        )
        if outcome.get("success"):
            self._sessions.add(
                turn.session_id,
                "assistant",
                f"Module executed: {directive.target}\n"
                f"Result: {_dump(outcome)}",
            )
        return tuple(results) + (
            ModuleResult(directive.module, directive.command, outcome),
        )

    async def _continue(
        self, turn: _Turn, results: Tuple[ModuleResult, ...]
    ) -> str:
        prompt = build_continuation_prompt(turn.original_prompt, results)
        return await self._backend.generate(
            prompt,
            self._system_prompt,
            None,
            self._sessions.get(turn.session_id),
        )

    def _suspend(
        self,
        turn: _Turn,
        directive: Directive,
        text: str,
        results: Tuple[ModuleResult, ...],
    ) -> dict:
        pending = self._approvals.create(
            directive=directive,
            original_prompt=turn.original_prompt,
            ai_response=text,
            prior_results=results,
            session_id=turn.session_id,
        )
        emit(
            ApprovalRequested(
                request_id=pending.request_id,
                session_id=turn.session_id,
                module_id=directive.module,
                command=directive.command,
                chain_depth=len(results),
            )
        )
        logger.info(
            "approval required for %s request=%s",
            directive.target,
            pending.request_id,
        )
        response = {
            "success": True,
            "requiresApproval": True,
            "requestId": pending.request_id,
            "module": directive.module,
            "command": directive.command,
        }
        if results:
            response["message"] = (
                "AI requests permission to execute another module."
            )
            response["previousResult"] = render_markdown(text)
        else:
            response["message"] = (
                "AI requests permission to execute a module. "
                "Please approve or deny."
            )
        return response

    def _finish(
        self, turn: _Turn, text: str, results: Tuple[ModuleResult, ...]
    ) -> dict:
        self._sessions.add(turn.session_id, "assistant", text)
        emit(
            ChainCompleted(
                session_id=turn.session_id,
                steps=len(results),
                modules=[r.module for r in results],
            )
        )
        response: dict[str, Any] = {
            "success": True,
            "message": render_markdown(text),
            "history": self._sessions.history(turn.session_id),
        }
        if results:
            response["moduleResult"] = results[-1].result
        return response


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


__all__ = ["Orchestrator", "LLM_TASK", "DEFAULT_SESSION_ID"]
