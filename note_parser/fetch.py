"""Page sources: a plain HTTP fetcher and a Playwright renderer."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import requests
from playwright.async_api import (
    Error as PlaywrightError,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import MAX_REDIRECTS, ParserConfig
from .errors import NetworkError
from .links import is_safe_redirect

logger = logging.getLogger("note_parser.fetch")

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}
NOTE_SELECTOR = ".note-content"


def build_headers(config: ParserConfig) -> Dict[str, str]:
    headers = dict(BASE_HEADERS)
    headers["User-Agent"] = config.user_agent
    headers.update(config.custom_headers)
    return headers


class PageSource(ABC):
    """Something that turns a URL into ``(html, final_url)``."""

    @abstractmethod
    async def fetch(self, url: str) -> Tuple[str, str]:
        """Return the page body and the URL it was finally served from."""

    async def close(self) -> None:
        return None


class HttpFetcher(PageSource):
    """Fetch pages with requests, following only redirects to public hosts."""

    def __init__(
        self,
        config: ParserConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self._session = session or requests.Session()

    def _get(self, url: str) -> Tuple[str, str]:
        headers = build_headers(self.config)
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            try:
                resp = self._session.get(
                    current,
                    headers=headers,
                    timeout=self.config.request_timeout,
                    allow_redirects=False,
                )
            except requests.RequestException as exc:
                raise NetworkError(f"request failed ({exc.__class__.__name__})") from exc

            if resp.is_redirect:
                location = urljoin(current, resp.headers.get("Location", ""))
                resp.close()
                if not is_safe_redirect(location):
                    raise NetworkError("redirect to a disallowed host")
                logger.debug("Following redirect to %s", location)
                current = location
                continue
            if not 200 <= resp.status_code < 300:
                resp.close()
                raise NetworkError(f"unexpected status {resp.status_code}")
            return resp.text, current
        raise NetworkError("too many redirects")

    async def fetch(self, url: str) -> Tuple[str, str]:
        logger.info("Fetching %s", url)
        return await asyncio.to_thread(self._get, url)

    async def close(self) -> None:
        self._session.close()


class PlaywrightRenderer(PageSource):
    """Render pages in headless Chromium for script-heavy notes."""

    def __init__(self, config: ParserConfig, note_selector: str = NOTE_SELECTOR) -> None:
        self.config = config
        self.note_selector = note_selector

    @staticmethod
    async def _guard(route: Route) -> None:
        if is_safe_redirect(route.request.url):
            await route.continue_()
        else:
            logger.warning("Blocked browser request to %s", route.request.url)
            await route.abort()

    async def fetch(self, url: str) -> Tuple[str, str]:
        logger.info("Rendering %s", url)
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=True)
            try:
                page = await browser.new_page(
                    user_agent=self.config.user_agent,
                    extra_http_headers=dict(self.config.custom_headers),
                )
                page.set_default_navigation_timeout(self.config.render_timeout * 1000)
                await page.route("**/*", self._guard)
                await page.goto(url, wait_until="networkidle")
                try:
                    await page.wait_for_selector(self.note_selector, timeout=10_000)
                except PlaywrightTimeoutError:
                    logger.debug("Selector %s not found on %s", self.note_selector, url)
                if self.config.wait_after_load:
                    await page.wait_for_timeout(int(self.config.wait_after_load * 1000))
                html = await page.content()
                final_url = page.url
            except PlaywrightTimeoutError as exc:
                raise NetworkError("render timed out") from exc
            except PlaywrightError as exc:
                raise NetworkError("render failed") from exc
            finally:
                await browser.close()
        if not is_safe_redirect(final_url):
            raise NetworkError("render ended on a disallowed host")
        return html, final_url


def build_page_source(config: ParserConfig) -> PageSource:
    """Pick the renderer when enabled, otherwise plain HTTP."""
    if config.enable_render:
        return PlaywrightRenderer(config)
    return HttpFetcher(config)
