"""BackendAdapter interface.

Every provider exposes the same single capability to the orchestrator:

    await generate(user_prompt, system_prompt, module_result, history) -> str

The base class owns prompt assembly (system prompt first, last
``history_window`` history entries, the user prompt, then the optional
module result instruction), the call timeout, events, and the error policy:
configuration and provider failures come back as ``"Error: ..."`` text so
the caller's control flow is identical for success and failure. Subclasses
implement only ``_complete``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Iterable, List, Sequence

from core.errors import ArrError, map_exception
from core.events import emit, BackendCallCompleted
from .types import PromptMessage, as_prompt_message

logger = logging.getLogger("arr.llm")

MODULE_RESULT_INSTRUCTION = (
    "Please respond to the user with the module execution result."
)
DEFAULT_HISTORY_WINDOW = 10
DEFAULT_TIMEOUT_S = 60.0


@dataclass(frozen=True)
class BackendInfo:
    service: str
    label: str
    model: str | None


def format_module_result(module_result: Any) -> str:
    return "Module execution result: " + json.dumps(
        module_result, default=str, ensure_ascii=False
    )


class BackendAdapter(ABC):
    service = "abstract"
    label = "Backend"

    def __init__(
        self,
        model: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> None:
        self._model = model
        self._timeout_s = timeout_s
        self._history_window = max(0, history_window)

    def info(self) -> BackendInfo:
        return BackendInfo(self.service, self.label, self._model)

    # --- Prompt assembly -----------------------------------------------------
    def recent_history(self, history: Iterable[Any]) -> List[PromptMessage]:
        turns = [as_prompt_message(m) for m in history]
        if self._history_window == 0:
            return []
        return turns[-self._history_window:]

    def build_messages(
        self,
        user_prompt: str,
        system_prompt: str,
        module_result: Any = None,
        history: Iterable[Any] = (),
    ) -> List[PromptMessage]:
        messages: List[PromptMessage] = [
            {"role": "system", "content": system_prompt}
        ]
        messages.extend(self.recent_history(history))
        messages.append({"role": "user", "content": user_prompt})
        if module_result is not None:
            messages.append(
                {
                    "role": "system",
                    "content": format_module_result(module_result),
                }
            )
            messages.append(
                {"role": "user", "content": MODULE_RESULT_INSTRUCTION}
            )
        return messages

    @staticmethod
    def render_flat(messages: Sequence[PromptMessage]) -> str:
        """Render chat messages for providers that take a single text."""
        system = messages[0]["content"] if messages else ""
        # layout: [system, *history, user, (result, instruction)?]
        body = list(messages[1:])
        tail: List[PromptMessage] = []
        if (
            len(body) >= 3
            and body[-1]["content"] == MODULE_RESULT_INSTRUCTION
            and body[-2]["role"] == "system"
        ):
            tail = body[-2:]
            body = body[:-2]
        prompt = body[-1]["content"] if body else ""
        history = body[:-1]
        text = system
        if history:
            text += "\n\nChat History:\n" + "\n".join(
                f"{m['role']}: {m['content']}" for m in history
            )
        text += f"\n\nUser: {prompt}"
        if tail:
            text += f"\n\n{tail[0]['content']}\n\n{tail[1]['content']}"
        return text

    # --- Contract ------------------------------------------------------------
    def check_configured(self) -> None:
        """Raise BackendMisconfigured when credentials/settings are missing."""
        return None

    @abstractmethod
    async def _complete(self, messages: List[PromptMessage]) -> str:
        """Return the model text for fully assembled messages."""

    async def generate(
        self,
        user_prompt: str,
        system_prompt: str,
        module_result: Any = None,
        history: Iterable[Any] = (),
    ) -> str:
        if not user_prompt:
            raise ValueError("Prompt is required")
        start = perf_counter()
        error_type: str | None = None
        try:
            self.check_configured()
            messages = self.build_messages(
                user_prompt, system_prompt, module_result, history
            )
            text = await asyncio.wait_for(
                self._complete(messages), timeout=self._timeout_s
            )
        except asyncio.TimeoutError:
            error_type = "backend-timeout"
            text = (
                f"Error: {self.label} request timed out after "
                f"{self._timeout_s:g}s. Please try again."
            )
            logger.warning("%s call timed out", self.service)
        except ArrError as e:
            error_type = map_exception(e, "backend")
            text = f"Error: {e.message}"
            logger.error("%s call failed: %s", self.service, e.message)
        except Exception as e:  # noqa: BLE001
            error_type = map_exception(e, "backend")
            text = f"Error: {self.label} API call failed - {e}."
            logger.exception("%s call failed", self.service)
        emit(
            BackendCallCompleted(
                service=self.service,
                model=self._model,
                status="ok" if error_type is None else "error",
                latency_ms=int((perf_counter() - start) * 1000),
                error_type=error_type,
            )
        )
        return text or ""


__all__ = [
    "BackendAdapter",
    "BackendInfo",
    "MODULE_RESULT_INSTRUCTION",
    "format_module_result",
]
