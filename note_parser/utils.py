"""Utility helpers for JSON decoding and string normalization."""

from __future__ import annotations

import html
import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

# A JSON string literal, or one of the JavaScript-only tokens that break json.loads.
_JS_TOKEN_PATTERN = re.compile(
    r'("(?:[^"\\]|\\.)*")|(-?\b(?:undefined|NaN|Infinity)\b|-null\b)',
    re.DOTALL,
)
_WHITESPACE_PATTERN = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")
_ZERO_WIDTH_PATTERN = re.compile("[\u200b\u200c\u200d\ufeff]")
_COUNT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([万wWkK千]?)\+?$")
_COUNT_MULTIPLIERS = {"": 1, "k": 1_000, "千": 1_000, "w": 10_000, "万": 10_000}


def _replace_js_token(match: "re.Match[str]") -> str:
    if match.group(1) is not None:
        return match.group(1)
    return "null"


def sanitize_json_text(text: str) -> str:
    """Rewrite bare ``undefined``/``NaN``/``Infinity`` and ``-null`` to ``null``.

    String literals are left untouched.
    """
    return _JS_TOKEN_PATTERN.sub(_replace_js_token, text)


def safe_json_loads(text: Optional[str]) -> Any:
    """Decode JSON leniently, returning ``None`` instead of raising."""
    if not text or not text.strip():
        return None
    try:
        return json.loads(sanitize_json_text(text.strip()))
    except (ValueError, RecursionError):
        return None


def clean_text(value: Any) -> str:
    """Unescape entities, drop zero-width characters and tidy whitespace."""
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    text = html.unescape(value)
    text = _ZERO_WIDTH_PATTERN.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_WHITESPACE_PATTERN.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES_PATTERN.sub("\n\n", "\n".join(lines)).strip()


def parse_count(value: Any) -> Optional[int]:
    """Convert engagement counters such as ``"1.2万"``, ``"3k"`` or ``"10+"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    if not isinstance(value, str):
        return None
    text = value.strip().replace(",", "")
    if not text:
        return None
    match = _COUNT_PATTERN.match(text)
    if not match:
        return None
    number, unit = match.groups()
    return max(int(round(float(number) * _COUNT_MULTIPLIERS[unit.lower()])), 0)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings or epoch seconds/milliseconds into UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10_000_000_000 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def first_string(*values: Any) -> Optional[str]:
    """Return the first value that is a non-blank string."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None
