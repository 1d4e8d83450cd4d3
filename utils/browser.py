"""Process-wide cached Playwright browser."""

import asyncio
import logging
from typing import Dict, Optional

from utils.errors import PageLoadError

logger = logging.getLogger(__name__)

DESKTOP_VIEWPORT = {"width": 1920, "height": 1080}
MOBILE_VIEWPORT = {"width": 375, "height": 667}

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


class BrowserManager:
    """
    Owns one Chromium instance shared by every audit in the process.

    The browser is launched lazily behind a lock so concurrent audits never
    start two of them. It stays open between audits: callers only ever close
    their own pages. If Chromium disconnects, the cached handle is dropped and
    the next caller launches a fresh one.
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._browser = None
        self._playwright = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    def _on_disconnected(self, *_args):
        logger.warning("Browser disconnected, it will be relaunched on next use")
        self._browser = None

    async def get_browser(self):
        """Return the shared browser, launching it on first use."""
        if self._browser is not None:
            return self._browser
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._browser is not None:
                return self._browser
            try:
                from playwright.async_api import async_playwright
            except ImportError:
                raise ImportError(
                    "Playwright not installed. Run: pip install playwright && playwright install chromium"
                )
            try:
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                browser = await self._playwright.chromium.launch(
                    headless=self.headless, args=LAUNCH_ARGS
                )
            except Exception as e:
                raise PageLoadError("", "browser-init-error", str(e)) from e
            browser.on("disconnected", self._on_disconnected)
            self._browser = browser
            logger.info("Launched shared Chromium browser")
            return browser

    async def new_page(self, viewport: Optional[Dict[str, int]] = None):
        """
        Open a page in its own context.

        Closing the page also closes the context, so callers only need
        `await page.close()`.
        """
        browser = await self.get_browser()
        try:
            return await browser.new_page(
                viewport=viewport or DESKTOP_VIEWPORT,
                user_agent=USER_AGENT,
            )
        except Exception as e:
            # A dead browser surfaces here before the disconnect event
            self._browser = None
            raise PageLoadError("", "browser-init-error", str(e)) from e

    async def shutdown(self):
        """Close the browser and Playwright. Only used on process exit."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None


_shared_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Return the process-wide BrowserManager."""
    global _shared_manager
    if _shared_manager is None:
        _shared_manager = BrowserManager()
    return _shared_manager
