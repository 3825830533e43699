"""Resolve many links with a fixed concurrency cap."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable, List, Set, Tuple, Union

from .client import NoteClient
from .errors import ContentUnavailableError, NetworkError
from .links import dedupe_normalized, extract_links
from .models import NoteRecord

logger = logging.getLogger("note_parser.batch")

BatchOutcome = Tuple[str, Union[NoteRecord, ContentUnavailableError]]


def partition(urls: List[str], size: int) -> List[List[str]]:
    return [urls[index : index + size] for index in range(0, len(urls), size)]


class BatchResolver:
    """Fan a set of candidate links out to a :class:`NoteClient`.

    Candidates are normalized and de-duplicated, then resolved in batches of
    ``max_concurrency``. Batches run one after another; inside a batch the
    results are yielded in completion order.
    """

    def __init__(self, client: NoteClient, max_concurrency: int = 0) -> None:
        self.client = client
        self.max_concurrency = max_concurrency or client.config.max_concurrency
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    def accept(self, candidates: Iterable[str]) -> List[str]:
        """Normalized, valid, unique URLs in first-seen order."""
        return dedupe_normalized(candidates, self.client.config.allowed_domains)

    async def _settle(self, url: str) -> BatchOutcome:
        try:
            return url, await self.client.fetch_record(url)
        except NetworkError as exc:
            logger.error("Failed to resolve %s: %s", url, exc)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error resolving %s", url)
        return url, ContentUnavailableError(url)

    async def resolve_batch(self, candidates: Iterable[str]) -> AsyncIterator[BatchOutcome]:
        """Yield one ``(url, record | error)`` pair per accepted URL."""
        urls = self.accept(candidates)
        dispatched: Set[str] = set()
        batches = partition(urls, self.max_concurrency)
        for number, batch in enumerate(batches, start=1):
            pending = [url for url in batch if url not in dispatched]
            dispatched.update(pending)
            if not pending:
                continue
            logger.debug(
                "Processing batch %d of %d (size: %d)", number, len(batches), len(pending)
            )
            tasks = [asyncio.ensure_future(self._settle(url)) for url in pending]
            try:
                for next_done in asyncio.as_completed(tasks):
                    yield await next_done
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

    async def resolve_message(self, text: str) -> AsyncIterator[BatchOutcome]:
        """Extract links from a chat message and resolve them."""
        config = self.client.config
        links = extract_links(text, config.max_link_length, config.max_scan_chars)
        logger.debug("Detected %d candidate link(s)", len(links))
        async for outcome in self.resolve_batch(links):
            yield outcome

    async def collect(self, candidates: Iterable[str]) -> List[BatchOutcome]:
        return [outcome async for outcome in self.resolve_batch(candidates)]
