"""Directive parser: the text control channel between model/user and modules.

Grammar (case-sensitive, first match wins, leading slash optional):

    ["/"] "run" "module" <module> <command> [<parameters...>]

A dotted module token (``websearch.search``) is split into module and
command; whatever follows it on the line becomes the parameters. Any
whitespace separates the tokens, line breaks included, but parameters never
extend past the end of the command's line. Model output is untrusted input:
``parse_directive`` never raises and returns None when nothing matches.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

_DIRECTIVE_RE = re.compile(
    r"(?<![\w/])/?run\s+module\s+(?P<module>\w+(?:\.\w+)?)"
)
_COMMAND_RE = re.compile(r"\s+(?P<command>\w+)")
_LINE_RE = re.compile(r"[^\n]*")


@dataclass(frozen=True)
class Directive:
    module: str
    command: str
    parameters: str = ""

    def as_dict(self) -> dict:
        return {
            "module": self.module,
            "command": self.command,
            "parameters": self.parameters,
        }

    @property
    def target(self) -> str:
        return f"{self.module}.{self.command}"


def _parameters(tail: str) -> str:
    # Only whitespace-separated text counts; trailing punctuation such as
    # "getTime." or "getTime`" is not a parameter.
    if tail[:1].isspace():
        return tail.strip()
    return ""


def parse_directive(text: object) -> Directive | None:
    if not isinstance(text, str) or not text:
        return None
    for m in _DIRECTIVE_RE.finditer(text):
        token = m.group("module")
        if "." in token:
            module, command = token.split(".", 1)
            tail = _LINE_RE.match(text, m.end()).group()
            return Directive(module, command, _parameters(tail))
        # Command may follow on the next line; parameters stay on its line.
        cm = _COMMAND_RE.match(text, m.end())
        if cm is None:
            continue
        tail = _LINE_RE.match(text, cm.end()).group()
        return Directive(token, cm.group("command"), _parameters(tail))
    return None


def format_directive(directive: Directive) -> str:
    line = f"/run module {directive.module} {directive.command}"
    if directive.parameters:
        line += f" {directive.parameters}"
    return line


__all__ = ["Directive", "parse_directive", "format_directive"]
