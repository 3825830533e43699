"""MCP server exposing note resolution tools."""

from __future__ import annotations

import logging
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from .batch import BatchResolver
from .client import NoteClient
from .config import ParserConfig
from .errors import ValidationError
from .markdown import compose_markdown, is_publishable
from .models import NoteRecord

logger = logging.getLogger("note_parser.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="note-parser")

_client: Optional[NoteClient] = None


async def _get_client() -> NoteClient:
    """One client per server process so the cache is shared between tool calls."""
    global _client  # pylint: disable=global-statement
    if _client is None:
        _client = NoteClient(ParserConfig())
        await _client.start()
    return _client


@mcp.tool()
async def resolve_note(url: str, refresh: bool = False) -> str:
    """Fetch a note page and return its text, author, counters and media as Markdown."""
    client = await _get_client()
    try:
        record = await client.resolve(url, force_refresh=refresh)
    except ValidationError as exc:
        raise ValueError(f"Unsupported note URL: {exc}") from None
    if record is None:
        raise RuntimeError("content unavailable")
    return compose_markdown(record, client.config)


@mcp.tool()
async def resolve_message(text: str) -> str:
    """Find every note link in a message and return the resolved notes as Markdown."""
    client = await _get_client()
    sections: List[str] = []
    async for url, outcome in BatchResolver(client).resolve_message(text):
        if isinstance(outcome, NoteRecord):
            if is_publishable(outcome, client.config):
                sections.append(compose_markdown(outcome, client.config))
        else:
            sections.append(f"<!-- {url}: {outcome} -->\n")
    if not sections:
        return "No note links found."
    return "\n".join(sections)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
