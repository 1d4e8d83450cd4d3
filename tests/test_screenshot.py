import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from utils.browser import DESKTOP_VIEWPORT, MOBILE_VIEWPORT
from utils.errors import CaptureError
from utils.screenshot import ScreenshotCapturer

from tests.conftest import FakePage


def test_capture_with_sections():
    page = FakePage(doc_height=4000)
    shots = asyncio.run(ScreenshotCapturer().capture(page, "https://example.com", sections=True))
    assert set(shots.sections) == {"header", "main", "footer"}
    assert shots.full and shots.mobile
    # header, main, footer (clamped to the last viewport), then back to the top
    assert page.scroll_positions == [0, 120, 4000 - 1080, 0]
    assert page.screenshot_calls[0] == {"full_page": True, "viewport": DESKTOP_VIEWPORT}
    assert page.screenshot_calls[-1] == {"full_page": True, "viewport": MOBILE_VIEWPORT}


def test_viewport_is_restored():
    page = FakePage()
    asyncio.run(ScreenshotCapturer().capture(page, "https://example.com", sections=False))
    assert page.viewport_size == {"width": 1280, "height": 720}
    assert len(page.screenshot_calls) == 2


def test_offsets_are_clamped_to_page():
    page = FakePage(doc_height=900)
    offsets = asyncio.run(ScreenshotCapturer().section_offsets(page, 1080))
    assert offsets == {"header": 0, "main": 0, "footer": 0}


def test_browser_failure_raises_capture_error_and_restores_viewport():
    page = FakePage(screenshot_error=PlaywrightError("Target closed"))
    with pytest.raises(CaptureError):
        asyncio.run(ScreenshotCapturer().capture(page, "https://example.com"))
    assert page.viewport_size == {"width": 1280, "height": 720}


def test_to_dict_uses_data_uris():
    page = FakePage()
    shots = asyncio.run(ScreenshotCapturer().capture(page, "https://example.com", sections=True))
    data = shots.to_dict()
    assert data["desktop"].startswith("data:image/jpeg;base64,")
    assert set(data["sections"]) == {"header", "main", "footer"}
