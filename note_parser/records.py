"""Locate the target note inside an arbitrary decoded JSON graph."""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Any, Deque, Dict, Optional, Set
from urllib.parse import parse_qs, unquote, urlparse

from bs4 import BeautifulSoup

logger = logging.getLogger("note_parser.records")

PATH_KEYWORDS = frozenset(
    {"explore", "discovery", "item", "note", "notes", "post", "detail"}
)
QUERY_ID_KEYS = ("noteId", "note_id", "itemId", "id")
META_ID_SELECTORS = (
    'meta[name="note-id"]',
    'meta[name="note_id"]',
    'meta[property="og:xhs:note_id"]',
)
DATA_ID_ATTRIBUTES = ("data-note-id", "data-noteid", "data-item-id")
RECORD_ID_KEYS = ("noteId", "note_id", "id")
NOTE_SHAPE_KEYS = (
    "imageList",
    "image_list",
    "noteCard",
    "note_card",
    "desc",
    "interactInfo",
)
_UNWRAP_KEYS = ("noteCard", "note_card")
_ID_PATTERN = re.compile(r"^[0-9A-Za-z_-]{4,64}$")

MAX_VISITED_NODES = 50_000


def _valid_id(value: Optional[str]) -> Optional[str]:
    if value and _ID_PATTERN.match(value):
        return value
    return None


def note_id_from_url(url: str) -> Optional[str]:
    """Extract the note identifier from a path segment or query parameter."""
    try:
        parsed = urlparse(unquote(url or ""))
    except ValueError:
        return None
    segments = [segment for segment in parsed.path.split("/") if segment]
    for index, segment in enumerate(segments[:-1]):
        if segment.lower() not in PATH_KEYWORDS:
            continue
        candidate = segments[index + 1]
        if candidate.lower() in PATH_KEYWORDS:
            continue
        found = _valid_id(candidate)
        if found:
            return found

    query = parse_qs(parsed.query)
    for key in QUERY_ID_KEYS:
        for value in query.get(key, []):
            found = _valid_id(value.strip())
            if found:
                return found
    return None


def note_id_from_document(soup: BeautifulSoup) -> Optional[str]:
    """Fall back to meta tags and ``data-`` attributes carrying the note id."""
    for selector in META_ID_SELECTORS:
        tag = soup.select_one(selector)
        if tag and tag.get("content"):
            found = _valid_id(tag["content"].strip())
            if found:
                return found
    for attribute in DATA_ID_ATTRIBUTES:
        tag = soup.find(attrs={attribute: True})
        if tag:
            found = _valid_id(str(tag.get(attribute, "")).strip())
            if found:
                return found
    return None


def resolve_note_id(url: str, soup: Optional[BeautifulSoup] = None) -> Optional[str]:
    """Try the URL first, then the document."""
    note_id = note_id_from_url(url)
    if note_id is None and soup is not None:
        note_id = note_id_from_document(soup)
    return note_id


def _carries_id(node: Dict[str, Any], note_id: str) -> bool:
    return any(str(node.get(key, "")) == note_id for key in RECORD_ID_KEYS if key in node)


def _looks_like_note(node: Dict[str, Any]) -> bool:
    return any(key in node for key in NOTE_SHAPE_KEYS)


def _unwrap(node: Dict[str, Any]) -> Dict[str, Any]:
    for key in _UNWRAP_KEYS:
        inner = node.get(key)
        if isinstance(inner, dict):
            return inner
    return node


def find_note_record(
    graph: Any,
    note_id: Optional[str] = None,
    max_nodes: int = MAX_VISITED_NODES,
) -> Optional[Dict[str, Any]]:
    """Breadth-first search for the object describing the note.

    A node whose identifier (or whose nested ``note`` object's identifier)
    equals ``note_id`` wins outright. Otherwise the first node carrying a
    note-shaped key is returned. Objects are visited at most once, keyed by
    identity, and traversal stops after ``max_nodes`` objects.
    """
    if not isinstance(graph, (dict, list)):
        return None

    queue: Deque[Any] = deque([graph])
    visited: Set[int] = {id(graph)}
    fallback: Optional[Dict[str, Any]] = None
    count = 0

    while queue and count < max_nodes:
        node = queue.popleft()
        count += 1
        if isinstance(node, dict):
            if note_id:
                if _carries_id(node, note_id):
                    return node
                nested = node.get("note")
                if isinstance(nested, dict) and _carries_id(nested, note_id):
                    return nested
            if fallback is None and _looks_like_note(node):
                fallback = _unwrap(node)
                if not note_id:
                    return fallback
            children = node.values()
        else:
            children = node
        for child in children:
            if isinstance(child, (dict, list)) and id(child) not in visited:
                visited.add(id(child))
                queue.append(child)

    if count >= max_nodes and queue:
        logger.debug("Stopped note search after %d nodes", count)
    return fallback
