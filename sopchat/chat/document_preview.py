"""
Live document preview.

Pulls a best-effort HTML fragment out of the still-streaming JSON arguments of
the document-writing tool so a UI can render progress before the payload is
valid JSON. The output is lossy and cosmetic; persisted documents always come
from the fully parsed arguments.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_CONTENT_KEY = re.compile(r'"content"\s*:\s*"')
_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
_STYLE_BLOCK = re.compile(r"<style\b[^>]*>.*?(</style\s*>|$)", re.IGNORECASE | re.DOTALL)
_STYLE_ATTR = re.compile(r"""\s+style\s*=\s*(?:"[^"]*"|'[^']*')""", re.IGNORECASE)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    '"': '"',
    "\\": "\\",
    "/": "/",
}


def _replace_escape(match: re.Match[str]) -> str:
    token = match.group(1)
    if token.startswith("u") and len(token) == 5:
        return chr(int(token[1:], 16))
    return _SIMPLE_ESCAPES.get(token, token)


def unescape_json_fragment(raw: str) -> str:
    """Undo JSON string escapes in a fragment that may end mid-escape."""
    # A trailing lone backslash is the first half of an escape still in flight
    trailing = len(raw) - len(raw.rstrip("\\"))
    if trailing % 2 == 1:
        raw = raw[:-1]
    return _ESCAPE.sub(_replace_escape, raw)


def _string_end(raw: str) -> int | None:
    """Index of the unescaped quote closing a JSON string, if it arrived."""
    escaped = False
    for i, char in enumerate(raw):
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return i
    return None


def strip_styles(html: str) -> str:
    html = _STYLE_BLOCK.sub("", html)
    return _STYLE_ATTR.sub("", html)


def extract_partial_html(arguments: str) -> str | None:
    """
    Best-effort HTML from partial ``{"...", "content": "<html..."`` arguments.

    Returns ``None`` when no content key or no completed tag has arrived yet.
    """
    match = _CONTENT_KEY.search(arguments)
    if not match:
        return None

    raw = arguments[match.end():]
    end = _string_end(raw)
    if end is not None:
        raw = raw[:end]

    last_tag = raw.rfind(">")
    if last_tag == -1:
        return None

    html = strip_styles(unescape_json_fragment(raw[: last_tag + 1]))
    return html if html.strip() else None


def extract_partial_field(arguments: str, field: str) -> str | None:
    """Value of a string field once its closing quote has streamed in."""
    match = re.search(rf'"{re.escape(field)}"\s*:\s*"', arguments)
    if not match:
        return None
    raw = arguments[match.end():]
    end = _string_end(raw)
    if end is None:
        return None
    return unescape_json_fragment(raw[:end])
