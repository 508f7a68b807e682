"""LLM backend config schema.

One block per provider; `service` selects the active one. Credentials left
empty here are resolved from the conventional environment variables by the
backend implementations (OPENAI_API_KEY, GEMINI_API_KEY).

No side effects / globals.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class OpenAIBackendConfig(BaseModel):
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    temperature: float | None = None

    @field_validator("temperature")
    @classmethod
    def _temp_range(cls, v: float | None) -> float | None:  # noqa: D401
        if v is not None and not (0 <= v <= 2):
            raise ValueError("temperature out of range 0..2")
        return v


class GeminiBackendConfig(BaseModel):
    api_key: str | None = None
    model: str = "gemini-2.0-flash-exp"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"


class OllamaBackendConfig(BaseModel):
    host: str = "http://127.0.0.1:11434"
    model: str = "llama2"


class LlamaCppBackendConfig(BaseModel):
    model_path: str | None = None
    context_length: int = 4096
    max_output_tokens: int = 1024
    temperature: float = 0.7
    n_gpu_layers: int = 0
    n_threads: int | None = None


class LLMConfig(BaseModel):
    service: str = Field(
        "openai", pattern="^(openai|gemini|ollama|llama_cpp)$"
    )
    # Hard bound for a single generate() call (provider latency is unbounded)
    timeout_s: float = 60.0
    # Most recent session messages forwarded as context
    history_window: int = 10
    openai: OpenAIBackendConfig = OpenAIBackendConfig()
    gemini: GeminiBackendConfig = GeminiBackendConfig()
    ollama: OllamaBackendConfig = OllamaBackendConfig()
    llama_cpp: LlamaCppBackendConfig = LlamaCppBackendConfig()
    # Optional override of the built-in agent system prompt
    system_prompt: str | None = None
