"""Tests for concurrent batch resolution."""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from note_parser.batch import BatchResolver, partition
from note_parser.client import NoteClient
from note_parser.config import ParserConfig
from note_parser.errors import ContentUnavailableError, NetworkError
from note_parser.fetch import PageSource
from note_parser.models import NoteRecord


def note(note_id: str) -> str:
    return f"https://www.xiaohongshu.com/explore/{note_id}"


class SlowSource(PageSource):
    """Tracks how many fetches overlap; URLs containing ``bad`` fail."""

    def __init__(self, delay: float = 0.01) -> None:
        self.delay = delay
        self.in_flight = 0
        self.peak = 0
        self.calls: List[str] = []

    async def fetch(self, url):
        self.calls.append(url)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if "bad" in url:
                raise NetworkError("HTTP 503")
            if "boom" in url:
                raise RuntimeError("unexpected")
            return f"<html><head><title>{url[-4:]}</title></head></html>", url
        finally:
            self.in_flight -= 1


def _resolver(source: PageSource, concurrency: int = 2) -> BatchResolver:
    config = ParserConfig(max_concurrency=concurrency, max_retries=1, enable_cache=False)
    return BatchResolver(NoteClient(config, source=source))


class TestPartition:
    def test_sizes(self):
        assert partition(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]

    def test_empty(self):
        assert partition([], 3) == []


# ── Concurrency ─────────────────────────────────────────────────────────

class TestConcurrency:
    def test_never_exceeds_cap(self):
        source = SlowSource()
        resolver = _resolver(source, concurrency=2)
        urls = [note(f"n{i:03d}") for i in range(7)]
        outcomes = asyncio.run(resolver.collect(urls))
        assert len(outcomes) == 7
        assert source.peak <= 2
        assert sorted(source.calls) == sorted(urls)

    def test_batches_run_in_order(self):
        source = SlowSource()
        resolver = _resolver(source, concurrency=2)
        urls = [note(f"n{i:03d}") for i in range(5)]
        asyncio.run(resolver.collect(urls))
        assert set(source.calls[:2]) == set(urls[:2])
        assert set(source.calls[2:4]) == set(urls[2:4])
        assert source.calls[4] == urls[4]

    def test_invalid_cap(self):
        client = NoteClient(ParserConfig(), source=SlowSource())
        with pytest.raises(ValueError):
            BatchResolver(client, max_concurrency=-1)


# ── Deduplication and failure isolation ────────────────────────────────

class TestOutcomes:
    def test_duplicates_dispatched_once(self):
        source = SlowSource()
        resolver = _resolver(source)
        outcomes = asyncio.run(
            resolver.collect([note("dup1") + "?x=1", note("dup1"), note("dup1") + "#c"])
        )
        assert source.calls == [note("dup1")]
        assert [url for url, _ in outcomes] == [note("dup1")]

    def test_invalid_candidates_are_skipped(self):
        source = SlowSource()
        resolver = _resolver(source)
        outcomes = asyncio.run(resolver.collect(["http://127.0.0.1/x", note("ok01")]))
        assert [url for url, _ in outcomes] == [note("ok01")]

    def test_failure_is_isolated(self):
        source = SlowSource()
        resolver = _resolver(source, concurrency=3)
        outcomes = dict(asyncio.run(resolver.collect([note("good"), note("bad1"), note("boom")])))
        assert isinstance(outcomes[note("good")], NoteRecord)
        for url in (note("bad1"), note("boom")):
            error = outcomes[url]
            assert isinstance(error, ContentUnavailableError)
            assert str(error) == "content unavailable"
            assert error.url == url

    def test_early_exit_cancels_pending_work(self):
        source = SlowSource(delay=0.05)
        resolver = _resolver(source, concurrency=3)

        async def scenario():
            stream = resolver.resolve_batch([note("aaaa"), note("bbbb"), note("cccc")])
            async for outcome in stream:
                await stream.aclose()
                return outcome

        url, _ = asyncio.run(scenario())
        assert url in {note("aaaa"), note("bbbb"), note("cccc")}
        assert source.in_flight == 0


class TestResolveMessage:
    def test_links_in_text(self):
        source = SlowSource()
        resolver = _resolver(source)
        text = f"two notes: {note('m001')} and {note('m002')}, plus {note('m001')}"

        async def scenario():
            return [outcome async for outcome in resolver.resolve_message(text)]

        outcomes = asyncio.run(scenario())
        assert sorted(url for url, _ in outcomes) == [note("m001"), note("m002")]

    def test_no_links(self):
        resolver = _resolver(SlowSource())

        async def scenario():
            return [outcome async for outcome in resolver.resolve_message("nothing here")]

        assert asyncio.run(scenario()) == []
