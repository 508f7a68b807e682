import asyncio

import pytest

from core.agent import ApprovalTable, Orchestrator, SessionStore
from core.config.schemas.core import AgentConfig
from core.modules import ModuleRegistry


@pytest.fixture
def make_orchestrator(modules_dir, scripted_backend):
    def build(responses=(), **agent):
        backend = scripted_backend(responses)
        orch = Orchestrator(
            registry=ModuleRegistry(modules_dir),
            backend=backend,
            sessions=SessionStore(),
            approvals=ApprovalTable(),
            config=AgentConfig(**agent),
            system_prompt="SYS",
        )
        return orch, backend

    return build


def _invoked(events):
    return [
        (p["module_id"], p["command"])
        for n, p in events
        if n == "ModuleInvoked"
    ]


def test_missing_fields(make_orchestrator):
    orch, _ = make_orchestrator()
    for prompt, task in [("", "llm"), ("hi", ""), (None, None)]:
        out = asyncio.run(orch.handle_message(prompt, task))
        assert out == {"success": False, "message": "Missing Fields"}


def test_unknown_task_type(make_orchestrator):
    orch, backend = make_orchestrator()
    out = asyncio.run(orch.handle_message("hello", "vision"))
    assert out == {"success": False, "message": "Unknown task type"}
    assert backend.calls == []


def test_direct_command_skips_model_and_gate(make_orchestrator):
    orch, backend = make_orchestrator()
    out = asyncio.run(
        orch.handle_message("/run module lamp turnOn", "anything", "s1")
    )
    assert out["success"] is True
    assert out["directCommand"] is True
    assert out["moduleResult"] == {"success": True, "result": {"on": True}}
    assert out["message"].startswith("<strong>Direct Command Result:</strong>")
    assert backend.calls == []
    hist = out["history"]
    assert [m["role"] for m in hist] == ["user", "assistant"]
    assert hist[1]["content"].startswith(
        "Direct command executed: lamp.turnOn\nResult: {"
    )


def test_direct_command_failure_is_result(make_orchestrator):
    orch, _ = make_orchestrator()
    out = asyncio.run(orch.handle_message("/run module nope go", "llm"))
    assert out["success"] is True
    assert out["moduleResult"] == {"error": 'Module "nope" not found'}


def test_plain_reply_rendered_and_recorded(make_orchestrator):
    orch, backend = make_orchestrator(["Hello **there**"])
    out = asyncio.run(orch.handle_message("hi", "llm", "s1"))
    assert out["success"] is True
    assert out["message"] == "<p>Hello <strong>there</strong></p>"
    assert "moduleResult" not in out
    assert [m["content"] for m in out["history"]] == ["hi", "Hello **there**"]
    # history snapshot excludes the message being answered
    assert backend.calls[0] == [
        {"role": "system", "content": "SYS"},
        {"role": "user", "content": "hi"},
    ]


def test_auto_approved_module_chains_without_approval(
    make_orchestrator, captured_events
):
    orch, backend = make_orchestrator(
        ["/run module list listAllModules", "You have four modules."]
    )
    out = asyncio.run(orch.handle_message("what modules?", "llm"))
    assert out["success"] is True
    assert "requiresApproval" not in out
    assert out["moduleResult"]["success"] is True
    assert _invoked(captured_events) == [("list", "listAllModules")]
    continuation = backend.prompts[1]
    assert continuation.startswith('Original user request: "what modules?".')
    assert "Module execution result for list.listAllModules:" in continuation
    assert [n for n, _ in captured_events if n == "ChainCompleted"]


def test_gated_module_suspends_then_approve(make_orchestrator, captured_events):
    orch, backend = make_orchestrator(
        ["Sure.\n/run module lamp turnOn", "The lamp is on."]
    )
    out = asyncio.run(orch.handle_message("turn on the lamp", "llm", "s1"))
    assert out["success"] is True
    assert out["requiresApproval"] is True
    assert out["module"] == "lamp" and out["command"] == "turnOn"
    assert out["message"] == (
        "AI requests permission to execute a module. Please approve or deny."
    )
    assert "previousResult" not in out
    assert _invoked(captured_events) == []

    done = asyncio.run(orch.resolve_approval(out["requestId"], True))
    assert done["success"] is True
    assert done["message"] == "<p>The lamp is on.</p>"
    assert done["moduleResult"] == {"success": True, "result": {"on": True}}
    assert _invoked(captured_events) == [("lamp", "turnOn")]
    assert "lamp.turnOn" in backend.prompts[1]
    hist = done["history"]
    assert [m["role"] for m in hist] == ["user", "assistant", "assistant"]
    assert hist[0]["content"] == "turn on the lamp"
    assert hist[1]["content"].startswith(
        "Module executed: lamp.turnOn\nResult: {"
    )
    assert hist[2]["content"] == "The lamp is on."

    again = asyncio.run(orch.resolve_approval(out["requestId"], True))
    assert again == {
        "success": False,
        "message": "Request not found or expired",
    }
    assert _invoked(captured_events) == [("lamp", "turnOn")]


def test_denial_is_idempotent(make_orchestrator, captured_events):
    orch, backend = make_orchestrator(["/run module lamp turnOn"])
    out = asyncio.run(orch.handle_message("turn on the lamp", "llm"))
    rid = out["requestId"]
    denied = asyncio.run(orch.resolve_approval(rid, False))
    assert denied == {
        "success": True,
        "message": "Module execution denied by user.",
        "denied": True,
    }
    again = asyncio.run(orch.resolve_approval(rid, False))
    assert again["success"] is False
    assert _invoked(captured_events) == []
    assert len(backend.calls) == 1
    outcomes = [p["outcome"] for n, p in captured_events if n == "ApprovalResolved"]
    assert outcomes == ["denied", "unknown"]


def test_missing_request_id(make_orchestrator):
    orch, _ = make_orchestrator()
    out = asyncio.run(orch.resolve_approval(None, True))
    assert out == {"success": False, "message": "Missing request ID"}


def test_chain_of_auto_then_gated(make_orchestrator):
    orch, backend = make_orchestrator(
        [
            "/run module list listAllModules",
            "/run module time getTime",
            "It is noon.",
        ]
    )
    out = asyncio.run(orch.handle_message("what time is it?", "llm"))
    assert out["requiresApproval"] is True
    assert out["module"] == "time"
    assert out["message"] == "AI requests permission to execute another module."
    assert out["previousResult"] == "<p>/run module time getTime</p>"

    done = asyncio.run(orch.resolve_approval(out["requestId"], True))
    assert done["message"] == "<p>It is noon.</p>"
    assert done["moduleResult"]["result"] == {"time": "12:00:00"}
    last = backend.prompts[-1]
    assert "list.listAllModules" in last and "time.getTime" in last
    assert last.index("list.listAllModules") < last.index("time.getTime")


def test_chain_depth_fails_closed(make_orchestrator, captured_events):
    orch, _ = make_orchestrator(
        ["/run module list listAllModules"] * 10, max_chain_depth=2
    )
    out = asyncio.run(orch.handle_message("loop forever", "llm"))
    assert out["success"] is False
    assert "limit 2" in out["message"]
    assert len(_invoked(captured_events)) == 2
    hits = [p for n, p in captured_events if n == "ChainDepthHit"]
    assert hits and hits[0]["limit"] == 2


def test_auto_approve_is_configurable(make_orchestrator):
    orch, _ = make_orchestrator(
        ["/run module lamp turnOn", "Done."], auto_approve=["lamp"]
    )
    out = asyncio.run(orch.handle_message("lights", "llm"))
    assert out["message"] == "<p>Done.</p>"

    orch, _ = make_orchestrator(
        ["/run module list listAllModules"], auto_approve=[]
    )
    out = asyncio.run(orch.handle_message("modules?", "llm"))
    assert out["requiresApproval"] is True


def test_sessions_do_not_share_history(make_orchestrator):
    orch, backend = make_orchestrator(["one", "two"])
    asyncio.run(orch.handle_message("first", "llm", "a"))
    out = asyncio.run(orch.handle_message("second", "llm", "b"))
    assert [m["content"] for m in out["history"]] == ["second", "two"]
    assert {"role": "user", "content": "first"} not in backend.calls[1]


def test_unexpected_failure_is_internal_error(make_orchestrator, monkeypatch):
    orch, backend = make_orchestrator()

    async def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(backend, "generate", broken)
    out = asyncio.run(orch.handle_message("hi", "llm"))
    assert out == {"success": False, "message": "Internal Server Error"}


def test_auto_executed_steps_are_recorded(make_orchestrator):
    orch, backend = make_orchestrator(
        ["/run module list listAllModules", "Four modules."]
    )
    out = asyncio.run(orch.handle_message("what modules?", "llm", "s1"))
    contents = [m["content"] for m in out["history"]]
    assert contents[0] == "what modules?"
    assert contents[1].startswith("Module executed: list.listAllModules\n")
    assert contents[2] == "Four modules."
    # the continuation call already sees the execution entry
    assert any(
        m["content"].startswith("Module executed: list.listAllModules")
        for m in backend.calls[1]
    )


def test_failed_execution_not_recorded(make_orchestrator):
    orch, _ = make_orchestrator(["/run module lamp explode", "It broke."])
    out = asyncio.run(orch.handle_message("break it", "llm", "s1"))
    done = asyncio.run(orch.resolve_approval(out["requestId"], True))
    assert done["moduleResult"] == {"error": "bulb burst"}
    assert [m["content"] for m in done["history"]] == ["break it", "It broke."]


def _yielding(scripted_backend, responses):
    class YieldingBackend(scripted_backend):
        async def _complete(self, messages):
            await asyncio.sleep(0.01)
            return await super()._complete(messages)

    return YieldingBackend(responses)


def _with_backend(modules_dir, backend):
    return Orchestrator(
        registry=ModuleRegistry(modules_dir),
        backend=backend,
        sessions=SessionStore(),
        approvals=ApprovalTable(),
        system_prompt="SYS",
    )


def test_concurrent_turns_on_one_session_are_serialized(
    modules_dir, scripted_backend
):
    backend = _yielding(scripted_backend, ["a1", "a2"])
    orch = _with_backend(modules_dir, backend)

    async def scenario():
        return await asyncio.gather(
            orch.handle_message("first", "llm", "s"),
            orch.handle_message("second", "llm", "s"),
        )

    _, second = asyncio.run(scenario())
    assert [m["content"] for m in second["history"]] == [
        "first",
        "a1",
        "second",
        "a2",
    ]
    assert {"role": "assistant", "content": "a1"} in backend.calls[1]


def test_approval_and_turn_on_one_session_are_serialized(
    modules_dir, scripted_backend
):
    backend = _yielding(
        scripted_backend, ["/run module lamp turnOn", "Lamp on.", "Next."]
    )
    orch = _with_backend(modules_dir, backend)
    out = asyncio.run(orch.handle_message("lights", "llm", "s"))

    async def scenario():
        return await asyncio.gather(
            orch.resolve_approval(out["requestId"], True),
            orch.handle_message("and now?", "llm", "s"),
        )

    _, last = asyncio.run(scenario())
    contents = [m["content"] for m in last["history"]]
    assert contents[0] == "lights"
    assert contents[1].startswith("Module executed: lamp.turnOn")
    assert contents[2:] == ["Lamp on.", "and now?", "Next."]
