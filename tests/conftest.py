"""Pytest configuration ensuring project root is importable.

Adds repository root (and ``src``) to sys.path explicitly to avoid
interpreter/path quirks, isolates config state between tests and provides
a scripted backend plus a temporary modules directory.
"""
from __future__ import annotations

import sys
import textwrap
from pathlib import Path
import os
import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from core.llm.provider import BackendAdapter  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_config_env():  # noqa: D401
    """Ensure global config/env side effects do not leak between tests.

    - Clear aggregated config cache between tests
    - Restore ARR_CONFIG_DIR to original value
    """
    from core.config import clear_config_cache  # local import

    prev = os.environ.get("ARR_CONFIG_DIR")
    clear_config_cache()
    try:
        yield
    finally:
        clear_config_cache()
        if prev is None:
            os.environ.pop("ARR_CONFIG_DIR", None)
        else:
            os.environ["ARR_CONFIG_DIR"] = prev


class ScriptedBackend(BackendAdapter):
    """Backend replaying canned responses; records every prompt it gets."""

    service = "scripted"
    label = "Scripted"

    def __init__(self, responses=(), **kwargs):
        super().__init__("scripted-1", **kwargs)
        self.responses = list(responses)
        self.calls = []

    async def _complete(self, messages):
        self.calls.append(messages)
        if not self.responses:
            return "done"
        return self.responses.pop(0)

    @property
    def prompts(self):
        """User prompt of each call (last user message)."""
        out = []
        for messages in self.calls:
            users = [m["content"] for m in messages if m["role"] == "user"]
            out.append(users[-1] if users else None)
        return out


@pytest.fixture
def scripted_backend():
    return ScriptedBackend


MODULE_SOURCES = {
    "list": '''
        MODULE = {
            "id": "list",
            "name": "Listing Module",
            "capabilities": ["READ"],
            "commands": {
                "listAllModules": {
                    "description": "Returns all module ids",
                    "handler": lambda: ["list", "time", "websearch", "lamp"],
                },
            },
        }
    ''',
    "time": '''
        def get_time():
            return {"time": "12:00:00"}

        MODULE = {
            "id": "time",
            "name": "Time Module",
            "capabilities": ["READ"],
            "commands": {
                "getTime": {"description": "Current time", "handler": get_time},
            },
        }
    ''',
    "websearch": '''
        async def search(query):
            if not query:
                return {"error": "Search query is required"}
            return {"query": query, "hits": 3}

        MODULE = {
            "id": "websearch",
            "name": "Web Search Module",
            "capabilities": ["READ"],
            "commands": {
                "search": {"description": "Search the web", "handler": search},
            },
        }
    ''',
    "lamp": '''
        STATE = {"on": False}

        def turn_on():
            STATE["on"] = True
            return {"on": True}

        def explode():
            raise RuntimeError("bulb burst")

        MODULE = {
            "id": "lamp",
            "name": "Lamp",
            "capabilities": ["READ_WRITE"],
            "commands": {
                "turnOn": {"description": "Switch on", "handler": turn_on},
                "explode": {"description": "Always fails", "handler": explode},
            },
        }
    ''',
}


def write_module(directory: Path, module_id: str, source: str) -> Path:
    path = directory / f"{module_id}.py"
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return path


@pytest.fixture
def modules_dir(tmp_path):
    d = tmp_path / "modules"
    d.mkdir()
    for module_id, source in MODULE_SOURCES.items():
        write_module(d, module_id, source)
    return d


@pytest.fixture
def captured_events():
    """Collect every typed event emitted during the test as (name, payload)."""
    from core.events import subscribe

    got = []
    unsub = subscribe(lambda name, payload: got.append((name, payload)))
    try:
        yield got
    finally:
        unsub()


@pytest.fixture
def module_writer():
    return write_module
