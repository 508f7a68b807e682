"""Backend adapter layer exports.

No built-in dummy backend. Tests implement their own scripted backend by
subclassing BackendAdapter.
"""

from .provider import BackendAdapter, BackendInfo  # noqa: F401
from .types import PromptMessage  # noqa: F401
from .remote import OpenAIBackend, GeminiBackend, OllamaBackend  # noqa: F401
from .llama_cpp_provider import LlamaCppBackend  # noqa: F401
from .factory import create_backend, available_services  # noqa: F401

__all__ = [
    "BackendAdapter",
    "BackendInfo",
    "PromptMessage",
    "OpenAIBackend",
    "GeminiBackend",
    "OllamaBackend",
    "LlamaCppBackend",
    "create_backend",
    "available_services",
]
