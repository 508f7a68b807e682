"""LLM shared prompt types."""
from __future__ import annotations

from typing import Any, Literal, TypedDict

MessageRole = Literal["system", "user", "assistant"]


class PromptMessage(TypedDict):
    role: MessageRole
    content: str


def as_prompt_message(entry: Any) -> PromptMessage:
    """Accept a ChatMessage-like object or a mapping with role/content."""
    if isinstance(entry, dict):
        return {"role": entry["role"], "content": entry["content"]}
    return {"role": entry.role, "content": entry.content}
