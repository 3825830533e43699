"""Locate structured data embedded in ``<script>`` tags."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Sequence

from bs4 import BeautifulSoup

from .utils import safe_json_loads

logger = logging.getLogger("note_parser.scripts")

JSON_LD_TYPES = frozenset(
    {"Article", "NewsArticle", "BlogPosting", "SocialMediaPosting", "CreativeWork"}
)
STATE_MARKERS: Sequence[str] = (
    "window.__INITIAL_STATE__",
    "__INITIAL_STATE__",
    "window.__INITIAL_DATA__",
    "__INITIAL_DATA__",
)
_QUOTES = ('"', "'")


def scan_balanced_json(text: str, marker: str) -> Optional[str]:
    """Return the brace-balanced object literal that follows ``marker``.

    The span runs from the first ``{`` after the marker to its matching
    ``}``. Braces inside single- or double-quoted strings are ignored and a
    backslash escapes the next character inside a string. Returns ``None``
    when the marker is missing, no brace follows it, or the object never
    closes.
    """
    marker_index = text.find(marker)
    if marker_index == -1:
        return None
    start = text.find("{", marker_index + len(marker))
    if start == -1:
        return None

    depth = 0
    quote: Optional[str] = None
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if quote is not None:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in _QUOTES:
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _script_text(script: Any) -> str:
    return script.string or script.get_text() or ""


def _has_allowed_type(node: Dict[str, Any]) -> bool:
    node_type = node.get("@type")
    if isinstance(node_type, str):
        return node_type in JSON_LD_TYPES
    if isinstance(node_type, list):
        return any(isinstance(item, str) and item in JSON_LD_TYPES for item in node_type)
    return False


def _iter_json_ld_nodes(value: Any, depth: int = 0) -> Iterator[Dict[str, Any]]:
    """Yield objects in document order, unwrapping arrays, @graph and mainEntity."""
    if depth > 8:
        return
    if isinstance(value, list):
        for item in value:
            yield from _iter_json_ld_nodes(item, depth + 1)
    elif isinstance(value, dict):
        yield value
        for key in ("@graph", "mainEntity"):
            if key in value:
                yield from _iter_json_ld_nodes(value[key], depth + 1)


def find_json_ld(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    """Return the first JSON-LD object whose ``@type`` is in the article family."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        data = safe_json_loads(_script_text(script))
        if data is None:
            logger.debug("Skipping unreadable JSON-LD block")
            continue
        for node in _iter_json_ld_nodes(data):
            if _has_allowed_type(node):
                return node
    return None


def find_inline_state(
    soup: BeautifulSoup,
    markers: Sequence[str] = STATE_MARKERS,
) -> Optional[Dict[str, Any]]:
    """Return the first hydration-state object assigned inside a ``<script>``."""
    for script in soup.find_all("script"):
        text = _script_text(script)
        if not text:
            continue
        for marker in markers:
            if marker not in text:
                continue
            snippet = scan_balanced_json(text, marker)
            if snippet is None:
                logger.debug("Unbalanced state object after %s", marker)
                continue
            data = safe_json_loads(snippet)
            if isinstance(data, dict):
                return data
            logger.debug("State object after %s is not valid JSON", marker)
    return None
