from __future__ import annotations
import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional
from playwright.sync_api import sync_playwright, Error as PwError
from .config import Identity

logger = logging.getLogger("pfprelay.browser")


@dataclass(frozen=True)
class RenderedPage:
    url: str
    html: str
    og_image: Optional[str] = None


class BrowserRenderer:
    """Render profile pages in a throwaway headless Chromium.

    Uses the sync Playwright API from a worker thread, so a render only
    suspends the request that asked for it.
    """

    def __init__(
        self,
        identity: Identity,
        chromium_args: Optional[List[str]] = None,
        headless: bool = True,
        nav_timeout_ms: int = 45000,
        selector_timeout_ms: int = 5000,
    ):
        self.identity = identity
        self.chromium_args = list(chromium_args or [])
        self.headless = headless
        self.nav_timeout_ms = nav_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms

    @contextmanager
    def session(self) -> Iterator:
        """Yield a fresh page; browser and driver are closed on every exit path."""
        pw = sync_playwright().start()
        browser = None
        ctx = None
        try:
            browser = pw.chromium.launch(headless=self.headless, args=self.chromium_args)
            ctx = browser.new_context(
                user_agent=self.identity.user_agent,
                locale=self.identity.locale,
                extra_http_headers={"Accept-Language": self.identity.accept_language},
            )
            try:
                ctx.add_init_script("Object.defineProperty(navigator, 'webdriver', { get: () => undefined });")
            except PwError:
                pass
            page = ctx.new_page()
            page.set_default_timeout(self.nav_timeout_ms)
            yield page
        finally:
            for closer in (ctx, browser):
                if closer is None:
                    continue
                try:
                    closer.close()
                except Exception:
                    logger.debug("close failed for %s", type(closer).__name__, exc_info=True)
            try:
                pw.stop()
            except Exception:
                logger.debug("playwright stop failed", exc_info=True)

    def render(self, url: str) -> RenderedPage:
        with self.session() as page:
            logger.info("render url=%s", url)
            page.goto(url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
            try:
                og_image = page.locator('meta[property="og:image"]').first.get_attribute(
                    "content", timeout=self.selector_timeout_ms
                )
            except PwError:
                og_image = None
            return RenderedPage(url=page.url, html=page.content(), og_image=og_image)

    async def arender(self, url: str) -> RenderedPage:
        return await asyncio.to_thread(self.render, url)
