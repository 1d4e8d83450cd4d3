"""Screenshot capture of a loaded page using Playwright."""

import base64
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from playwright.async_api import Error as PlaywrightError

from utils.browser import DESKTOP_VIEWPORT, MOBILE_VIEWPORT
from utils.errors import CaptureError

logger = logging.getLogger(__name__)

SECTION_NAMES = ["header", "main", "footer"]
FOOTER_FALLBACK_OFFSET = 600
JPEG_QUALITY = 85
MOBILE_SETTLE_MS = 500

# Returns the scroll offsets of the header, main and footer viewports
SECTION_OFFSETS_JS = """
(args) => {
    const viewportHeight = args.viewportHeight;
    const fallback = args.footerFallback;
    const docHeight = Math.max(
        document.body ? document.body.scrollHeight : 0,
        document.documentElement ? document.documentElement.scrollHeight : 0
    );
    const header = document.querySelector('header, [role="banner"]');
    const footer = document.querySelector('footer, [role="contentinfo"]');
    let mainTop = viewportHeight;
    if (header) {
        const rect = header.getBoundingClientRect();
        if (rect.bottom > 0) { mainTop = rect.bottom + window.scrollY; }
    }
    let footerTop = Math.max(0, docHeight - fallback);
    if (footer) {
        const rect = footer.getBoundingClientRect();
        footerTop = rect.top + window.scrollY;
    }
    return {header: 0, main: Math.round(mainTop), footer: Math.round(footerTop), docHeight: docHeight};
}
"""


@dataclass
class ScreenshotSet:
    """Screenshots of one page. `full` is always present."""
    full: bytes
    mobile: Optional[bytes] = None
    sections: Dict[str, bytes] = field(default_factory=dict)
    mime_type: str = "image/jpeg"

    def data_uri(self, data: bytes) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(data).decode('utf-8')}"

    def to_dict(self) -> Dict[str, object]:
        """Base64 data URIs, for display in the report."""
        return {
            "desktop": self.data_uri(self.full),
            "mobile": self.data_uri(self.mobile) if self.mobile else None,
            "sections": {name: self.data_uri(data) for name, data in self.sections.items()},
        }


class ScreenshotCapturer:
    """
    Captures desktop, mobile and optional section screenshots.

    The page keeps the viewport it came with once capturing finishes,
    whatever happened in between.
    """

    def __init__(self, quality: int = JPEG_QUALITY):
        self.quality = quality

    async def _shot(self, page, full_page: bool = False) -> bytes:
        return await page.screenshot(type="jpeg", quality=self.quality, full_page=full_page)

    async def section_offsets(self, page, viewport_height: int) -> Dict[str, int]:
        """Scroll offsets for header, main and footer, clamped to the page."""
        raw = await page.evaluate(
            SECTION_OFFSETS_JS,
            {"viewportHeight": viewport_height, "footerFallback": FOOTER_FALLBACK_OFFSET},
        )
        max_offset = max(0, int(raw.get("docHeight", 0)) - viewport_height)
        return {name: max(0, min(int(raw.get(name, 0)), max_offset)) for name in SECTION_NAMES}

    async def capture(self, page, url: str, sections: bool = True) -> ScreenshotSet:
        """
        Take all screenshots of an already loaded page.

        Args:
            page: Loaded Playwright page
            url: URL of the page, used in errors and logs
            sections: Also capture header, main and footer viewports

        Returns:
            ScreenshotSet

        Raises:
            CaptureError: the browser failed while capturing
        """
        original_viewport = page.viewport_size or DESKTOP_VIEWPORT
        try:
            await page.set_viewport_size(DESKTOP_VIEWPORT)
            full = await self._shot(page, full_page=True)
            shots = ScreenshotSet(full=full)

            if sections:
                offsets = await self.section_offsets(page, DESKTOP_VIEWPORT["height"])
                for name in SECTION_NAMES:
                    await page.evaluate("(y) => window.scrollTo(0, y)", offsets[name])
                    shots.sections[name] = await self._shot(page)
                    logger.debug("Captured %s section at y=%d", name, offsets[name])
                await page.evaluate("() => window.scrollTo(0, 0)")

            await page.set_viewport_size(MOBILE_VIEWPORT)
            await page.wait_for_timeout(MOBILE_SETTLE_MS)
            shots.mobile = await self._shot(page, full_page=True)
            logger.info("Captured %d screenshots of %s", 2 + len(shots.sections), url)
            return shots
        except PlaywrightError as e:
            raise CaptureError(url, str(e)) from e
        finally:
            try:
                await page.set_viewport_size(original_viewport)
            except PlaywrightError as e:
                logger.debug("Could not restore viewport: %s", e)
