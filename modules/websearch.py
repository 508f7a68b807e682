"""Web search module: answers a query through the configured LLM service.

``llm.service`` picks the provider, as it does for the agent backend.
Gemini requests enable its ``google_search`` grounding tool; OpenAI
requests ask the chat model for a current answer. Keys and models come from
the ``llm.gemini`` / ``llm.openai`` config blocks (environment fallback as
for the backends).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from core.config import get_config
from core.llm.remote import resolve_api_key

logger = logging.getLogger("arr.modules.websearch")

# httpx transport used for every search request; None means the network
TRANSPORT: httpx.AsyncBaseTransport | None = None

_OPENAI_SYSTEM = (
    "You are a helpful assistant with access to real-time web search "
    "capabilities. When asked to search for information, use your browsing "
    "capabilities to find current and accurate information."
)


async def _post(
    url: str, payload: dict, headers: dict, timeout_s: float
) -> Any:
    async with httpx.AsyncClient(
        timeout=timeout_s, transport=TRANSPORT
    ) as client:
        resp = await client.post(url, json=payload, headers=headers)
        resp.raise_for_status()
        return resp.json()


async def _search_gemini(llm, query: str) -> dict:
    key = resolve_api_key(llm.gemini.api_key, "GEMINI_API_KEY")
    if not key:
        return {
            "error": "Gemini API key is not configured. "
            "Please set GEMINI_API_KEY."
        }
    base = llm.gemini.base_url.rstrip("/")
    data = await _post(
        f"{base}/models/{llm.gemini.model}:generateContent",
        {
            "contents": [{"parts": [{"text": f"Search for: {query}"}]}],
            "tools": [{"google_search": {}}],
        },
        {"x-goog-api-key": key},
        llm.timeout_s,
    )
    parts = data["candidates"][0]["content"]["parts"]
    return _found("gemini", query, "".join(p.get("text", "") for p in parts))


async def _search_openai(llm, query: str) -> dict:
    key = resolve_api_key(llm.openai.api_key, "OPENAI_API_KEY")
    if not key:
        return {
            "error": "OpenAI API key is not configured. "
            "Please set OPENAI_API_KEY."
        }
    base = llm.openai.base_url.rstrip("/")
    data = await _post(
        f"{base}/chat/completions",
        {
            "model": llm.openai.model,
            "messages": [
                {"role": "system", "content": _OPENAI_SYSTEM},
                {
                    "role": "user",
                    "content": (
                        f"Please search for information about: {query}. "
                        "Provide a comprehensive and current answer."
                    ),
                },
            ],
        },
        {"Authorization": f"Bearer {key}"},
        llm.timeout_s,
    )
    return _found("openai", query, data["choices"][0]["message"]["content"])


_PROVIDERS = {"gemini": _search_gemini, "openai": _search_openai}


def _found(service: str, query: str, text: str | None) -> dict:
    return {
        "success": True,
        "service": service,
        "query": query,
        "result": text or "",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }


async def search(query):
    if not query or not query.strip():
        return {"error": "Search query is required"}
    llm = get_config().llm
    provider = _PROVIDERS.get(llm.service)
    if provider is None:
        return {
            "error": f"Unsupported LLM service: {llm.service}. "
            "Use 'gemini' or 'openai'."
        }
    try:
        return await provider(llm, query.strip())
    except httpx.HTTPError as e:
        logger.warning("web search via %s failed: %s", llm.service, e)
        return {"error": f"Web search failed: {e}"}
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("web search via %s: bad response: %r", llm.service, e)
        return {
            "error": "Web search failed: unexpected response from "
            f"{llm.service}"
        }


MODULE = {
    "id": "websearch",
    "name": "Web Search Module",
    "capabilities": ["READ"],
    "commands": {
        "search": {
            "description": (
                "Search the web for information using available search service"
            ),
            "handler": search,
        },
    },
}
