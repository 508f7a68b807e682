"""HTTP backends (OpenAI, Gemini, Ollama) over httpx.

Each call opens a short-lived ``httpx.AsyncClient``; tests pass an
``httpx.MockTransport`` through ``transport``. Credentials fall back to the
conventional environment variables; placeholder values count as unset.
"""
from __future__ import annotations

import os
from typing import Any, List

import httpx

from core.errors import BackendCallFailed, BackendMisconfigured
from .provider import BackendAdapter
from .types import PromptMessage

_PLACEHOLDER_KEYS = {
    "your_openai_api_key_here",
    "your_gemini_api_key_here",
}


def resolve_api_key(explicit: str | None, env_var: str) -> str | None:
    key = explicit or os.environ.get(env_var)
    if not key or key.strip() in _PLACEHOLDER_KEYS:
        return None
    return key.strip()


class _HttpBackend(BackendAdapter):
    failure_hint = ""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout_s: float = 60.0,
        history_window: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model, timeout_s, history_window)
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout_s,
            transport=self._transport,
        )

    async def _post(
        self, url: str, payload: dict, headers: dict | None = None
    ) -> Any:
        async with self._client() as client:
            try:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise BackendCallFailed(
                    f"{self.label} API call failed - HTTP "
                    f"{e.response.status_code}. {self.failure_hint}"
                ) from e
            except httpx.HTTPError as e:
                raise BackendCallFailed(
                    f"{self.label} API call failed - {e}. {self.failure_hint}"
                ) from e
        try:
            return resp.json()
        except ValueError as e:
            raise BackendCallFailed(
                f"{self.label} API call failed - invalid JSON response."
            ) from e


class OpenAIBackend(_HttpBackend):
    """OpenAI Chat Completions backend."""

    service = "openai"
    label = "OpenAI"
    failure_hint = "Please check your API key configuration."

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        temperature: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, model, **kwargs)
        self._api_key = resolve_api_key(api_key, "OPENAI_API_KEY")
        self._temperature = temperature

    def check_configured(self) -> None:
        if not self._api_key:
            raise BackendMisconfigured(
                "OpenAI API key is not configured. Please set a valid "
                "OPENAI_API_KEY."
            )

    async def _complete(self, messages: List[PromptMessage]) -> str:
        payload: dict[str, Any] = {"model": self._model, "messages": messages}
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        data = await self._post(
            "/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise BackendCallFailed(
                "OpenAI API call failed - unexpected response shape."
            ) from e


class GeminiBackend(_HttpBackend):
    """Gemini generateContent backend (single flattened text prompt)."""

    service = "gemini"
    label = "Gemini"
    failure_hint = "Please check your API key configuration."

    def __init__(
        self,
        model: str = "gemini-2.0-flash-exp",
        api_key: str | None = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, model, **kwargs)
        self._api_key = resolve_api_key(api_key, "GEMINI_API_KEY")

    def check_configured(self) -> None:
        if not self._api_key:
            raise BackendMisconfigured(
                "Gemini API key is not configured. Please set a valid "
                "GEMINI_API_KEY."
            )

    async def _complete(self, messages: List[PromptMessage]) -> str:
        payload = {
            "contents": [{"parts": [{"text": self.render_flat(messages)}]}]
        }
        data = await self._post(
            f"/models/{self._model}:generateContent",
            payload,
            headers={"x-goog-api-key": self._api_key or ""},
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise BackendCallFailed(
                "Gemini API call failed - response has no candidates."
            ) from e
        return "".join(p.get("text", "") for p in parts)


class OllamaBackend(_HttpBackend):
    """Ollama ``/api/chat`` backend (no credentials)."""

    service = "ollama"
    label = "Ollama"
    failure_hint = (
        "Please check if Ollama is running and the model is available."
    )

    def __init__(
        self,
        model: str = "llama2",
        host: str = "http://127.0.0.1:11434",
        **kwargs: Any,
    ) -> None:
        super().__init__(host, model, **kwargs)

    async def _complete(self, messages: List[PromptMessage]) -> str:
        data = await self._post(
            "/api/chat",
            {"model": self._model, "messages": messages, "stream": False},
        )
        try:
            return data["message"]["content"] or ""
        except (KeyError, TypeError) as e:
            raise BackendCallFailed(
                "Ollama API call failed - response has no message."
            ) from e


__all__ = [
    "OpenAIBackend",
    "GeminiBackend",
    "OllamaBackend",
    "resolve_api_key",
]
