"""Shared fakes for pipeline tests: pages, providers and images."""

import io
import os
from typing import List, Optional

import pytest
from PIL import Image

from orchestrator.report_store import MemoryReportStore
from providers.base_provider import VisionProvider, ProviderResult
from utils.config import AuditSettings

PAGE_HTML = """
<html>
<head>
  <title>Acme Widgets</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
</head>
<body>
  <header><a href="/">Acme</a></header>
  <main>
    <h1>Widgets for everyone</h1>
    <button>Buy now</button>
    <a href="/signup">Sign up</a>
  </main>
  <footer>Contact us</footer>
</body>
</html>
"""


def make_jpeg(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


def make_noise_png(width: int, height: int) -> bytes:
    """Random pixels: large and hard to compress."""
    img = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeRequest:
    def __init__(self, resource_type: str):
        self.resource_type = resource_type


class FakeRoute:
    def __init__(self, resource_type: str):
        self.request = FakeRequest(resource_type)
        self.aborted = False
        self.continued = False

    async def abort(self):
        self.aborted = True

    async def continue_(self):
        self.continued = True


class FakePage:
    """
    Stand-in for a Playwright page.

    `goto_outcomes` holds one entry per goto call: None for success or an
    exception to raise. Once exhausted, goto succeeds.
    """

    def __init__(self, goto_outcomes: Optional[list] = None, html: str = PAGE_HTML,
                 font_sizes: Optional[List[float]] = None, doc_height: int = 4000,
                 screenshot_error: Optional[Exception] = None):
        self.goto_outcomes = list(goto_outcomes or [])
        self.goto_calls = []
        self.html = html
        self.font_sizes = font_sizes if font_sizes is not None else [14.0, 16.0, 32.0]
        self.doc_height = doc_height
        self.screenshot_error = screenshot_error
        self.viewport_size = {"width": 1280, "height": 720}
        self.viewport_history = []
        self.scroll_positions = []
        self.screenshot_calls = []
        self.route_handler = None
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.goto_outcomes:
            outcome = self.goto_outcomes.pop(0)
            if outcome is not None:
                raise outcome

    async def route(self, pattern, handler):
        self.route_handler = handler

    async def wait_for_timeout(self, ms):
        return None

    async def set_viewport_size(self, viewport):
        self.viewport_size = dict(viewport)
        self.viewport_history.append(dict(viewport))

    async def screenshot(self, type="jpeg", quality=None, full_page=False):
        if self.screenshot_error is not None:
            raise self.screenshot_error
        self.screenshot_calls.append({"full_page": full_page, "viewport": dict(self.viewport_size)})
        return make_jpeg(32, 24)

    async def evaluate(self, script, arg=None):
        if isinstance(arg, dict) and "viewportHeight" in arg:
            return {"header": 0, "main": 120, "footer": self.doc_height - 500, "docHeight": self.doc_height}
        if "scrollTo" in script:
            self.scroll_positions.append(arg if arg is not None else 0)
            return None
        if "fontSize" in script:
            return {"sizes": list(self.font_sizes), "responsive": True}
        return None

    async def content(self):
        return self.html

    async def close(self):
        self.closed = True


class PageFactory:
    """Hands out pre-built FakePages in order, then fresh default ones."""

    def __init__(self, *pages: FakePage):
        self.pages = list(pages)
        self.created: List[FakePage] = []

    async def __call__(self):
        page = self.pages.pop(0) if self.pages else FakePage()
        self.created.append(page)
        return page


class ScriptedProvider(VisionProvider):
    """Provider returning scripted results; the last one repeats."""

    def __init__(self, name: str, results: list, configured: bool = True,
                 credential_keys: Optional[List[str]] = None, timeout: float = 30.0):
        super().__init__("key" if configured else None, "fake-model", timeout)
        self.name = name
        self.credential_keys = credential_keys or [f"{name.upper()}_API_KEY"]
        self.results = list(results)
        self.calls = []

    async def _analyze(self, image, mime_type, prompt, section):
        self.calls.append(section)
        outcome = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


GOOD_JSON = """```json
{
  "visualDescription": "Landing page of Acme Widgets with a hero banner and a product grid.",
  "issues": [{"text": "Low contrast hero text", "priority": "high", "bbox": [10, 20, 300, 80]}],
  "suggestions": [{"title": "Increase hero contrast", "steps": ["Darken the overlay"]}],
  "overallScore": 72,
  "freeFormAnalysis": "Overview:\\nA clean landing page.\\nProblems:\\n- Low contrast hero text"
}
```"""


def ok(text: str = GOOD_JSON, free_form: str = "") -> ProviderResult:
    return ProviderResult.ok(text, free_form=free_form)


@pytest.fixture
def store():
    return MemoryReportStore()


@pytest.fixture
def settings(tmp_path):
    return AuditSettings(
        hf_token=None,
        anthropic_api_key=None,
        gemini_api_key=None,
        settle_delay_ms=0,
        block_private_hosts=False,
        database_path=str(tmp_path / "reports.db"),
    )
