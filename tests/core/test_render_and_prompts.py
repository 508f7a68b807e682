import pytest

from core.agent.approvals import ModuleResult
from core.agent.prompts import (
    CONTINUATION_INSTRUCTION,
    SYSTEM_PROMPT,
    build_continuation_prompt,
)
from core.agent.render import render_markdown, render_module_result


def test_render_markdown():
    assert render_markdown("# Title") == "<h1>Title</h1>"
    assert render_markdown("") == ""


def test_render_module_result_escapes_html():
    html = render_module_result({"success": True, "result": "<b>x</b>"})
    assert html.startswith("<strong>Direct Command Result:</strong><br><pre>")
    assert "&lt;b&gt;x&lt;/b&gt;" in html
    assert html.endswith("</pre>")


@pytest.mark.parametrize(
    "text",
    [
        '<img src=x onerror="alert(1)">',
        'See <img src=x onerror="alert(1)"> here',
        "<script>alert(1)</script>",
    ],
)
def test_render_markdown_shows_raw_html_as_text(text):
    out = render_markdown(text)
    assert "<img" not in out
    assert "<script" not in out
    assert "&lt;" in out


def test_render_markdown_drops_script_urls():
    out = render_markdown("[click](javascript:alert(1)) ![x](data:text/html,hi)")
    assert "javascript:" not in out
    assert "data:" not in out
    assert ">click</a>" in out
    safe = render_markdown("[docs](https://example.com)")
    assert safe == '<p><a href="https://example.com">docs</a></p>'


def test_render_markdown_keeps_formatting():
    out = render_markdown("**bold** and `a < b`")
    assert out == "<p><strong>bold</strong> and <code>a &lt; b</code></p>"


def test_continuation_prompt_lists_results_in_order():
    results = [
        ModuleResult("list", "listAllModules", {"success": True, "result": []}),
        ModuleResult("time", "getTime", {"error": "boom"}),
    ]
    prompt = build_continuation_prompt("what time?", results)
    lines = prompt.split("\n")
    assert lines[0] == 'Original user request: "what time?".'
    assert lines[1] == (
        "Module execution result for list.listAllModules: "
        '{"success": true, "result": []}.'
    )
    assert lines[2] == (
        'Module execution result for time.getTime: {"error": "boom"}.'
    )
    assert lines[3] == CONTINUATION_INSTRUCTION


def test_system_prompt_describes_grammar():
    assert "/run module <module_name> <command_name>" in SYSTEM_PROMPT
    assert "/run module list listAllModules" in SYSTEM_PROMPT
