"""Open a URL in Playwright with escalating wait strategies."""

import asyncio
import time
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from utils.errors import PageLoadError

logger = logging.getLogger(__name__)

PageFactory = Callable[[], Awaitable[Any]]

ALWAYS_BLOCKED = {"media", "font"}
LIGHT_BLOCKED = {"image", "stylesheet"}

_DETACH_MARKERS = ("detached", "target closed", "target page, context or browser has been closed")


@dataclass
class LoadStrategy:
    name: str
    wait_until: str
    timeout_ms: int
    retry_on_detach: bool = False


STRATEGIES: List[LoadStrategy] = [
    LoadStrategy("domcontentloaded", "domcontentloaded", 45000, retry_on_detach=True),
    LoadStrategy("load", "load", 60000),
    LoadStrategy("networkidle", "networkidle", 90000),
    LoadStrategy("commit", "commit", 30000),
]


@dataclass
class LoadAttempt:
    """One navigation attempt, kept for diagnostics only."""
    strategy: str
    timeout_ms: int
    outcome: str
    error: str = ""
    duration_ms: int = 0

    def to_dict(self):
        return {
            "strategy": self.strategy,
            "timeoutMs": self.timeout_ms,
            "outcome": self.outcome,
            "error": self.error,
            "durationMs": self.duration_ms,
        }


@dataclass
class LoadResult:
    page: Any
    url: str
    strategy: str
    load_time_ms: int
    attempts: List[LoadAttempt] = field(default_factory=list)


def classify_error(error: BaseException) -> str:
    """Map a navigation exception to timeout or navigation-error."""
    if isinstance(error, (PlaywrightTimeoutError, asyncio.TimeoutError)):
        return "timeout"
    if "timeout" in str(error).lower():
        return "timeout"
    return "navigation-error"


def is_detached_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _DETACH_MARKERS)


class PageLoader:
    """
    Loads a page trying each strategy in turn until one succeeds.

    Pages come from `page_factory` so the loader works with the shared
    browser as well as with stand-in pages.
    """

    def __init__(
        self,
        page_factory: PageFactory,
        strategies: Optional[List[LoadStrategy]] = None,
        light: bool = False,
        settle_delay_ms: int = 1000,
    ):
        """
        Args:
            page_factory: Coroutine function returning a fresh page
            strategies: Override the default escalation order
            light: Also block images and stylesheets (metrics-only loads)
            settle_delay_ms: Pause after a successful load
        """
        self.page_factory = page_factory
        self.strategies = strategies or STRATEGIES
        self.blocked_types = ALWAYS_BLOCKED | (LIGHT_BLOCKED if light else set())
        self.settle_delay_ms = settle_delay_ms

    async def _block_resources(self, route):
        if route.request.resource_type in self.blocked_types:
            await route.abort()
        else:
            await route.continue_()

    async def _new_page(self):
        page = await self.page_factory()
        await page.route("**/*", self._block_resources)
        return page

    @staticmethod
    async def _discard(page):
        try:
            await page.close()
        except PlaywrightError as e:
            logger.debug("Ignoring error while closing page: %s", e)

    async def load(self, url: str) -> LoadResult:
        """
        Navigate to `url`, escalating through the load strategies.

        Args:
            url: Absolute URL

        Returns:
            LoadResult holding the open page

        Raises:
            PageLoadError: every strategy failed, or the browser would not start
        """
        page = await self._new_page()
        attempts: List[LoadAttempt] = []
        last_error = ""

        for strategy in self.strategies:
            tries = 2 if strategy.retry_on_detach else 1
            for attempt_no in range(tries):
                started = time.monotonic()
                try:
                    await page.goto(url, wait_until=strategy.wait_until, timeout=strategy.timeout_ms)
                except (PlaywrightError, asyncio.TimeoutError) as e:
                    elapsed = int((time.monotonic() - started) * 1000)
                    last_error = str(e) or e.__class__.__name__
                    attempts.append(LoadAttempt(strategy.name, strategy.timeout_ms,
                                                classify_error(e), last_error, elapsed))
                    logger.warning("Load strategy %s failed for %s: %s", strategy.name, url, last_error)
                    if is_detached_error(e):
                        await self._discard(page)
                        page = await self._new_page()
                        if attempt_no + 1 < tries:
                            logger.info("Retrying %s with a fresh page", strategy.name)
                            continue
                    break
                else:
                    elapsed = int((time.monotonic() - started) * 1000)
                    attempts.append(LoadAttempt(strategy.name, strategy.timeout_ms, "success",
                                                duration_ms=elapsed))
                    logger.info("Loaded %s with strategy %s in %d ms", url, strategy.name, elapsed)
                    if self.settle_delay_ms > 0:
                        await page.wait_for_timeout(self.settle_delay_ms)
                    return LoadResult(page=page, url=url, strategy=strategy.name,
                                      load_time_ms=elapsed, attempts=attempts)

        await self._discard(page)
        raise PageLoadError(url, "navigation-timeout",
                            last_error or "all load strategies failed", attempts)
