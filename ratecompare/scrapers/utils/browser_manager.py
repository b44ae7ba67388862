"""Playwright browser lifecycle manager.

One Chromium instance is shared by every rendered-page fetch. Each fetch
gets its own short-lived context carrying the identity chosen for that
request, so cookies and headers never leak between requests.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import Browser, Page, Playwright, async_playwright

from ratecompare.config import settings
from ratecompare.core.models import Identity

logger = structlog.get_logger(__name__)


class BrowserManager:
    """Manages the Playwright browser used for rendered-page fetches."""

    def __init__(self, headless: bool = True, block_resources: bool = True):
        self._headless = headless
        self._block_resources = block_resources
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser. Safe to call more than once."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=["--disable-dev-shm-usage", "--no-sandbox"],
            )
            logger.info("browser_started", headless=self._headless)

    async def stop(self) -> None:
        """Close the browser and the Playwright driver."""
        async with self._lock:
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    @asynccontextmanager
    async def page(self, identity: Identity) -> AsyncIterator[Page]:
        """Open a page in a fresh context presenting ``identity``.

        The context (and with it the page) is closed on exit.
        """
        if not self._browser:
            await self.start()

        headers = {k: v for k, v in identity.headers.items() if k.lower() != "user-agent"}
        context = await self._browser.new_context(
            user_agent=identity.user_agent,
            extra_http_headers=headers,
            viewport={"width": 1440, "height": 900},
            locale="en-US",
        )

        # Images and fonts carry no price data.
        if self._block_resources:
            await context.route(
                "**/*.{png,jpg,jpeg,gif,svg,webp,woff,woff2,ttf,eot}",
                lambda route: route.abort(),
            )

        try:
            yield await context.new_page()
        finally:
            await context.close()


_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get the global BrowserManager singleton."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager(headless=settings.BROWSER_HEADLESS)
    return _browser_manager
