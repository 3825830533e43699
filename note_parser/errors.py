"""Exception hierarchy shared by the extraction, fetch and batch layers."""

from __future__ import annotations


class NoteParserError(Exception):
    """Base class for every error raised by note_parser."""


class ValidationError(NoteParserError):
    """A candidate URL is malformed, off the allow-list or points at an unsafe host."""


class NetworkError(NoteParserError):
    """Fetching or rendering a page failed (transport error, timeout, non-2xx)."""


class ParseError(NoteParserError):
    """A single extraction strategy could not read the document."""


class ContentUnavailableError(NoteParserError):
    """Caller-facing failure for one URL; never carries internal details."""

    MESSAGE = "content unavailable"

    def __init__(self, url: str) -> None:
        super().__init__(self.MESSAGE)
        self.url = url
