"""Backend selection by configuration (llm.service)."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from core.config.schemas.llm import LLMConfig
from core.errors import BackendMisconfigured
from .llama_cpp_provider import LlamaCppBackend
from .provider import BackendAdapter
from .remote import GeminiBackend, OllamaBackend, OpenAIBackend
from .types import PromptMessage

logger = logging.getLogger("arr.llm")


class UnavailableBackend(BackendAdapter):
    """Placeholder for an unknown service name; every call reports it."""

    service = "unknown"
    label = "Unknown"

    def __init__(self, requested: str, **kwargs: Any) -> None:
        super().__init__(None, **kwargs)
        self._requested = requested

    def check_configured(self) -> None:
        raise BackendMisconfigured(
            f'Unknown LLM service "{self._requested}". Available: '
            + ", ".join(sorted(_BUILDERS))
        )

    async def _complete(
        self, messages: List[PromptMessage]
    ) -> str:  # pragma: no cover
        return ""


def _openai(cfg: LLMConfig, common: dict) -> BackendAdapter:
    c = cfg.openai
    return OpenAIBackend(
        model=c.model,
        api_key=c.api_key,
        base_url=c.base_url,
        temperature=c.temperature,
        **common,
    )


def _gemini(cfg: LLMConfig, common: dict) -> BackendAdapter:
    c = cfg.gemini
    return GeminiBackend(
        model=c.model, api_key=c.api_key, base_url=c.base_url, **common
    )


def _ollama(cfg: LLMConfig, common: dict) -> BackendAdapter:
    c = cfg.ollama
    return OllamaBackend(model=c.model, host=c.host, **common)


def _llama_cpp(cfg: LLMConfig, common: dict) -> BackendAdapter:
    c = cfg.llama_cpp
    return LlamaCppBackend(
        model_path=c.model_path,
        context_length=c.context_length,
        max_output_tokens=c.max_output_tokens,
        temperature=c.temperature,
        n_gpu_layers=c.n_gpu_layers,
        n_threads=c.n_threads,
        **common,
    )


_BUILDERS: Dict[str, Callable[[LLMConfig, dict], BackendAdapter]] = {
    "openai": _openai,
    "gemini": _gemini,
    "ollama": _ollama,
    "llama_cpp": _llama_cpp,
}


def create_backend(
    cfg: LLMConfig, service: str | None = None
) -> BackendAdapter:
    name = (service or cfg.service).lower()
    common = {
        "timeout_s": cfg.timeout_s,
        "history_window": cfg.history_window,
    }
    builder = _BUILDERS.get(name)
    if builder is None:
        logger.error("unknown llm service %r", name)
        return UnavailableBackend(name, **common)
    backend = builder(cfg, common)
    logger.info("llm backend: %s (%s)", name, backend.info().model)
    return backend


def available_services() -> list[str]:
    return sorted(_BUILDERS)


__all__ = ["create_backend", "available_services", "UnavailableBackend"]
