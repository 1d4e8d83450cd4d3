import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from utils.errors import PageLoadError
from utils.page_loader import PageLoader, classify_error, STRATEGIES

from tests.conftest import FakePage, FakeRoute, PageFactory


def _load(loader, url="https://example.com"):
    return asyncio.run(loader.load(url))


def test_first_strategy_success():
    page = FakePage()
    loader = PageLoader(PageFactory(page), settle_delay_ms=0)
    result = _load(loader)
    assert result.page is page
    assert result.strategy == "domcontentloaded"
    assert [a.outcome for a in result.attempts] == ["success"]
    assert page.goto_calls[0][1:] == ("domcontentloaded", 45000)


def test_escalates_through_strategies_on_timeout():
    page = FakePage(goto_outcomes=[
        PlaywrightTimeoutError("Timeout 45000ms exceeded"),
        PlaywrightTimeoutError("Timeout 60000ms exceeded"),
        None,
    ])
    result = _load(PageLoader(PageFactory(page), settle_delay_ms=0))
    assert result.strategy == "networkidle"
    assert [a.strategy for a in result.attempts] == ["domcontentloaded", "load", "networkidle"]
    assert [a.outcome for a in result.attempts] == ["timeout", "timeout", "success"]
    assert [c[1] for c in page.goto_calls] == ["domcontentloaded", "load", "networkidle"]


def test_detached_frame_retries_with_fresh_page():
    first = FakePage(goto_outcomes=[PlaywrightError("Navigation failed because frame was detached")])
    second = FakePage()
    factory = PageFactory(first, second)
    result = _load(PageLoader(factory, settle_delay_ms=0))
    assert first.closed
    assert result.page is second
    assert result.strategy == "domcontentloaded"
    assert len(result.attempts) == 2
    assert result.attempts[0].outcome == "navigation-error"


def test_all_strategies_fail():
    page = FakePage(goto_outcomes=[PlaywrightTimeoutError("Timeout exceeded")] * len(STRATEGIES))
    loader = PageLoader(PageFactory(page), settle_delay_ms=0)
    with pytest.raises(PageLoadError) as excinfo:
        _load(loader)
    error = excinfo.value
    assert error.kind == "navigation-timeout"
    assert [a.strategy for a in error.attempts] == ["domcontentloaded", "load", "networkidle", "commit"]
    assert error.remediation
    assert page.closed


def test_heavy_resources_are_blocked():
    page = FakePage()
    _load(PageLoader(PageFactory(page), settle_delay_ms=0))

    async def route(resource_type):
        r = FakeRoute(resource_type)
        await page.route_handler(r)
        return r

    assert asyncio.run(route("font")).aborted
    assert asyncio.run(route("media")).aborted
    assert asyncio.run(route("document")).continued
    assert asyncio.run(route("image")).continued


def test_light_mode_also_blocks_images_and_styles():
    page = FakePage()
    _load(PageLoader(PageFactory(page), light=True, settle_delay_ms=0))
    for resource_type in ("image", "stylesheet"):
        r = FakeRoute(resource_type)
        asyncio.run(page.route_handler(r))
        assert r.aborted


def test_classify_error():
    assert classify_error(PlaywrightTimeoutError("x")) == "timeout"
    assert classify_error(asyncio.TimeoutError()) == "timeout"
    assert classify_error(PlaywrightError("net::ERR_NAME_NOT_RESOLVED")) == "navigation-error"
