import asyncio

from utils.metrics import metrics_from_html, analyze_font_sizes, collect_page_metrics, PageMetrics

from tests.conftest import FakePage, PAGE_HTML


def test_metrics_from_html():
    metrics = metrics_from_html(PAGE_HTML, 1200, [14, 16, 32], responsive=True)
    assert metrics.title == "Acme Widgets"
    assert metrics.has_title and metrics.has_viewport
    assert metrics.ctas.count == 2
    assert metrics.ctas.issues == []
    assert metrics.responsive
    assert metrics.contrast.score == 100


def test_missing_viewport_is_not_responsive():
    html = "<html><head><title></title></head><body><p>Hello</p></body></html>"
    metrics = metrics_from_html(html, 500, [], responsive=True)
    assert not metrics.has_viewport
    assert not metrics.has_title
    assert not metrics.responsive
    assert metrics.ctas.count == 0
    assert metrics.ctas.issues


def test_font_size_issues():
    fonts = analyze_font_sizes([9.5, 16, 80])
    assert fonts.min_size == 9.5
    assert len(fonts.issues) == 2
    assert analyze_font_sizes([]).min_size == 16


def test_russian_cta_is_counted():
    html = '<html><body><button>Купить сейчас</button><a href="/x">Записаться на приём</a></body></html>'
    assert metrics_from_html(html, 0, [], False).ctas.count == 2


def test_collect_from_page():
    page = FakePage(font_sizes=[11.0, 18.0])
    metrics = asyncio.run(collect_page_metrics(page, 2300))
    assert metrics.load_time == 2300
    assert metrics.font_sizes.min_size == 11.0
    assert metrics.font_sizes.issues
    restored = PageMetrics.from_dict(metrics.to_dict())
    assert restored == metrics
