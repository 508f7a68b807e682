"""Local llama.cpp backend.

Summary:
* Lazy, idempotent load guarded by a lock (first generate() call).
* ``llama_cpp`` is an optional dependency; when it is not installed or no
  model_path is configured the backend reports itself misconfigured
  (returned as error text like every other backend).
* Completion runs in a worker thread so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from time import perf_counter
from typing import Any, List

from core.errors import BackendCallFailed, BackendMisconfigured
from .provider import BackendAdapter
from .types import PromptMessage

logger = logging.getLogger("arr.llm.llama_cpp")


@dataclass(slots=True)
class _State:
    llama: Any | None = None
    loaded: bool = False


class LlamaCppBackend(BackendAdapter):
    service = "llama_cpp"
    label = "llama.cpp"

    def __init__(
        self,
        model_path: str | Path | None,
        context_length: int = 4096,
        max_output_tokens: int = 1024,
        temperature: float = 0.7,
        n_gpu_layers: int = 0,
        n_threads: int | None = None,
        **kwargs: Any,
    ) -> None:
        model_id = Path(model_path).stem if model_path else None
        super().__init__(model_id, **kwargs)
        self._model_path = str(model_path) if model_path else None
        self._context_length = context_length
        self._max_output_tokens = max_output_tokens
        self._temperature = temperature
        self._n_gpu_layers = n_gpu_layers
        self._n_threads = n_threads
        self._state = _State()
        self._lock = Lock()

    def check_configured(self) -> None:
        if not self._model_path:
            raise BackendMisconfigured(
                "llama.cpp model_path is not configured. Please set "
                "llm.llama_cpp.model_path."
            )
        if not Path(self._model_path).exists():
            raise BackendMisconfigured(
                f"llama.cpp model file not found: {self._model_path}"
            )

    def _build_llama_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model_path": self._model_path,
            "n_ctx": self._context_length,
            "n_gpu_layers": self._n_gpu_layers,
            "verbose": False,
        }
        if self._n_threads is not None:
            kwargs["n_threads"] = int(self._n_threads)
        return kwargs

    def load(self) -> Any:
        if self._state.loaded:
            return self._state.llama
        with self._lock:
            if self._state.loaded:
                return self._state.llama
            try:
                from llama_cpp import Llama  # type: ignore
            except ImportError as e:
                raise BackendMisconfigured(
                    "llama.cpp backend selected but llama-cpp-python is "
                    "not installed."
                ) from e
            start = perf_counter()
            try:
                self._state.llama = Llama(**self._build_llama_kwargs())
            except Exception as e:  # noqa: BLE001
                raise BackendCallFailed(
                    f"llama.cpp model failed to load - {e}."
                ) from e
            self._state.loaded = True
            logger.info(
                "loaded %s in %d ms",
                self._model_path,
                int((perf_counter() - start) * 1000),
            )
            return self._state.llama

    def unload(self) -> None:
        with self._lock:
            self._state = _State()

    def _run(self, messages: List[PromptMessage]) -> str:
        llama = self.load()
        out = llama.create_chat_completion(
            messages=list(messages),
            max_tokens=self._max_output_tokens,
            temperature=self._temperature,
        )
        return out["choices"][0]["message"]["content"] or ""

    async def _complete(self, messages: List[PromptMessage]) -> str:
        return await asyncio.to_thread(self._run, messages)


__all__ = ["LlamaCppBackend"]
