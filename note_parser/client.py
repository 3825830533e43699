"""Cache-backed note resolution with bounded retries."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Tuple

from .cache import ResultCache
from .config import ParserConfig
from .content import extract_note
from .errors import NetworkError
from .fetch import PageSource, build_page_source
from .links import normalize_note_url
from .models import NoteRecord

logger = logging.getLogger("note_parser.client")


class NoteClient:
    """Resolve note URLs to :class:`NoteRecord` objects.

    Results are cached by normalized URL. Use as an async context manager,
    or call :meth:`start`/:meth:`close`, so the cache sweep runs and stops
    with the client.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        source: Optional[PageSource] = None,
        cache: Optional[ResultCache[NoteRecord]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or ParserConfig()
        self.source = source or build_page_source(self.config)
        self.cache: ResultCache[NoteRecord] = cache or ResultCache(
            capacity=self.config.cache_capacity,
            ttl=self.config.cache_ttl,
            sweep_interval=self.config.cache_sweep_interval,
        )
        self._sleep = sleep

    async def start(self) -> None:
        if self.config.enable_cache:
            self.cache.start()

    async def close(self) -> None:
        await self.cache.stop()
        await self.source.close()
        stats = self.cache.stats
        logger.debug(
            "Cache: %d hits, %d misses, %d evictions, %d expirations, %d entries",
            stats.hits,
            stats.misses,
            stats.evictions,
            stats.expirations,
            len(self.cache),
        )

    async def __aenter__(self) -> "NoteClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _fetch_with_retries(self, url: str) -> Tuple[str, str]:
        attempts = self.config.max_retries
        for attempt in range(1, attempts + 1):
            try:
                return await self.source.fetch(url)
            except NetworkError as exc:
                logger.warning("Attempt %d/%d for %s failed: %s", attempt, attempts, url, exc)
                if attempt == attempts:
                    raise
                await self._sleep(self.config.retry_base_delay * attempt)
        raise NetworkError("no fetch attempts were made")

    async def fetch_record(self, url: str, force_refresh: bool = False) -> NoteRecord:
        """Resolve an already-normalized URL, raising :class:`NetworkError` on failure."""
        if not force_refresh and self.config.enable_cache:
            cached = self.cache.get(url)
            if cached is not None:
                logger.debug("Cache hit for %s", url)
                return cached

        start = time.perf_counter()
        html, final_url = await self._fetch_with_retries(url)
        record = extract_note(html, final_url, self.config)
        logger.debug("Extracted %s in %.2fs", url, time.perf_counter() - start)

        if self.config.enable_cache:
            self.cache.set(url, record)
        return record

    async def resolve(self, url: str, force_refresh: bool = False) -> Optional[NoteRecord]:
        """Return the note behind ``url``, or ``None`` when it cannot be fetched.

        Raises :class:`~note_parser.errors.ValidationError` for disallowed URLs
        before any network access.
        """
        normalized = normalize_note_url(url, self.config.allowed_domains)
        try:
            return await self.fetch_record(normalized, force_refresh)
        except NetworkError:
            logger.error("Giving up on %s", normalized)
            return None

    def invalidate_all(self) -> int:
        cleared = self.cache.clear()
        logger.info("Cleared %d cached notes", cleared)
        return cleared

    def size(self) -> int:
        return len(self.cache)
