"""HTML rendering of assistant text for the web client.

Model output is untrusted: raw HTML in it is rendered as text and links or
images pointing at script schemes lose their target.
"""
from __future__ import annotations

import html
import json
import re
from typing import Any

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")
_IGNORED_URL_CHARS = re.compile(r"[\x00-\x20]+")


class _UnsafeUrlStripper(Treeprocessor):
    def run(self, root):
        for el in root.iter():
            for attr in ("href", "src"):
                value = el.get(attr)
                if value is None:
                    continue
                url = _IGNORED_URL_CHARS.sub("", html.unescape(value)).lower()
                if url.startswith(_UNSAFE_SCHEMES):
                    del el.attrib[attr]


class _EscapeHtml(Extension):
    def extendMarkdown(self, md):  # noqa: N802
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")
        # after "inline" (20), which builds the <a>/<img> elements
        md.treeprocessors.register(_UnsafeUrlStripper(md), "unsafe_urls", 5)


def render_markdown(text: str) -> str:
    return markdown.markdown(text or "", extensions=[_EscapeHtml()])


def render_module_result(result: Any) -> str:
    body = html.escape(json.dumps(result, indent=2, default=str))
    return f"<strong>Direct Command Result:</strong><br><pre>{body}</pre>"


__all__ = ["render_markdown", "render_module_result"]
