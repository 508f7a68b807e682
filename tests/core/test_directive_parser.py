import pytest

from core.agent.directive import Directive, format_directive, parse_directive


@pytest.mark.parametrize(
    "text",
    [
        "/run module time getTime",
        "run module time getTime",
        "Sure, let me check.\n/run module time getTime",
        "`/run module time getTime`",
        "/run module time getTime.",
    ],
)
def test_parses_basic_forms(text):
    assert parse_directive(text) == Directive("time", "getTime", "")


def test_parameters_are_rest_of_line():
    d = parse_directive('/run module websearch search "latest news" today')
    assert d == Directive("websearch", "search", '"latest news" today')


def test_parameters_stop_at_line_end():
    d = parse_directive(
        "/run module websearch search cats\nI will summarize the results."
    )
    assert d.parameters == "cats"


def test_dotted_module_token():
    d = parse_directive("/run module websearch.search query=\"cats\"")
    assert d == Directive("websearch", "search", 'query="cats"')
    assert d.target == "websearch.search"


def test_first_complete_directive_wins():
    text = (
        "/run module time\n"
        "/run module list listAllModules\n"
        "/run module time getTime"
    )
    assert parse_directive(text) == Directive("list", "listAllModules", "")


@pytest.mark.parametrize(
    "text",
    [
        None,
        "",
        42,
        "What time is it?",
        "/run module time",
        "/RUN MODULE time getTime",
        "rerun module time getTime",
        "http://host/run module time getTime",
    ],
)
def test_no_directive(text):
    assert parse_directive(text) is None


def test_format_directive_parses_back():
    d = Directive("websearch", "search", "python asyncio")
    assert format_directive(d) == "/run module websearch search python asyncio"
    assert parse_directive(format_directive(d)) == d
    assert d.as_dict() == {
        "module": "websearch",
        "command": "search",
        "parameters": "python asyncio",
    }


@pytest.mark.parametrize(
    "text",
    [
        "/run module time\ngetTime",
        "/run module time\n  getTime\nThat should do it.",
        "/run\nmodule time getTime",
    ],
)
def test_tokens_may_be_separated_by_line_breaks(text):
    assert parse_directive(text) == Directive("time", "getTime", "")


def test_parameters_stay_on_command_line():
    d = parse_directive("/run module websearch\nsearch cats\nThanks!")
    assert d == Directive("websearch", "search", "cats")
