"""Deterministic page metrics collected from a loaded Playwright page."""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MIN_FONT_SIZE = 12
MAX_FONT_SIZE = 72
DEFAULT_FONT_SIZE = 16

CTA_PATTERNS = [
    r'get started', r'sign up', r'start free', r'book', r'schedule',
    r'contact', r'try', r'request', r'download', r'learn more',
    r'buy', r'order', r'subscribe', r'join', r'register', r'free trial',
    r'купить', r'заказать', r'оформить', r'подписаться', r'начать', r'попробовать',
    r'скачать', r'получить', r'узнать', r'связаться', r'консультаци', r'бронировать',
    r'подобрать', r'оставить', r'отправить', r'выбрать', r'записаться', r'зарегистрироваться',
]
CTA_RE = re.compile(r"\b(?:" + "|".join(CTA_PATTERNS) + ")", re.I)

FONT_SIZES_JS = """
() => {
    const nodes = document.querySelectorAll('p, h1, h2, h3, h4, h5, h6, span, a, button, input, textarea, label, li');
    const sizes = [];
    nodes.forEach((el) => {
        if (!el.textContent || !el.textContent.trim()) { return; }
        const size = parseFloat(window.getComputedStyle(el).fontSize);
        if (!isNaN(size) && size > 0) { sizes.push(size); }
    });
    const flexGrid = document.querySelectorAll('[style*="flex"], [style*="grid"]').length > 0;
    let mediaRules = document.querySelector('style[media], link[media]') !== null;
    for (const sheet of Array.from(document.styleSheets)) {
        if (mediaRules) { break; }
        try {
            mediaRules = Array.from(sheet.cssRules || []).some((rule) => !!rule.media);
        } catch (e) {
            // cross-origin stylesheet
        }
    }
    return {sizes: sizes, responsive: mediaRules || flexGrid};
}
"""


@dataclass
class FontSizes:
    min_size: float = DEFAULT_FONT_SIZE
    max_size: float = DEFAULT_FONT_SIZE
    issues: List[str] = field(default_factory=list)


@dataclass
class Contrast:
    issues: List[str] = field(default_factory=list)
    score: int = 100


@dataclass
class Ctas:
    count: int = 0
    issues: List[str] = field(default_factory=list)


@dataclass
class PageMetrics:
    """Metrics gathered in one pass over the loaded DOM."""
    load_time: int = 0
    has_viewport: bool = False
    has_title: bool = False
    title: str = ""
    font_sizes: FontSizes = field(default_factory=FontSizes)
    contrast: Contrast = field(default_factory=Contrast)
    ctas: Ctas = field(default_factory=Ctas)
    responsive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loadTime": self.load_time,
            "hasViewport": self.has_viewport,
            "hasTitle": self.has_title,
            "title": self.title,
            "fontSizes": {
                "minSize": self.font_sizes.min_size,
                "maxSize": self.font_sizes.max_size,
                "issues": list(self.font_sizes.issues),
            },
            "contrast": {"issues": list(self.contrast.issues), "score": self.contrast.score},
            "ctas": {"count": self.ctas.count, "issues": list(self.ctas.issues)},
            "responsive": self.responsive,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageMetrics":
        fonts = data.get("fontSizes") or {}
        contrast = data.get("contrast") or {}
        ctas = data.get("ctas") or {}
        return cls(
            load_time=data.get("loadTime", 0),
            has_viewport=data.get("hasViewport", False),
            has_title=data.get("hasTitle", False),
            title=data.get("title", ""),
            font_sizes=FontSizes(fonts.get("minSize", DEFAULT_FONT_SIZE),
                                 fonts.get("maxSize", DEFAULT_FONT_SIZE),
                                 list(fonts.get("issues") or [])),
            contrast=Contrast(list(contrast.get("issues") or []), contrast.get("score", 100)),
            ctas=Ctas(ctas.get("count", 0), list(ctas.get("issues") or [])),
            responsive=data.get("responsive", False),
        )


def analyze_font_sizes(sizes: List[float]) -> FontSizes:
    if not sizes:
        return FontSizes()
    min_size, max_size = min(sizes), max(sizes)
    issues = []
    if min_size < MIN_FONT_SIZE:
        issues.append(f"Fonts smaller than {MIN_FONT_SIZE}px found (smallest: {min_size:.1f}px)")
    if max_size > MAX_FONT_SIZE:
        issues.append(f"Very large fonts found (largest: {max_size:.1f}px)")
    return FontSizes(min_size, max_size, issues)


def count_ctas(soup: BeautifulSoup) -> int:
    """Count buttons and links whose text, label or href reads like a call to action."""
    count = 0
    for el in soup.select('button, [role="button"], input[type="submit"], input[type="button"], a'):
        haystack = " ".join([
            el.get_text(" ", strip=True),
            el.get("aria-label") or "",
            el.get("value") or "",
            (el.get("href") or "") if el.name == "a" else "",
        ])
        if CTA_RE.search(haystack):
            count += 1
    return count


def analyze_ctas(count: int) -> Ctas:
    issues = []
    if count == 0:
        issues.append("No clear calls to action found")
    elif count == 1:
        issues.append("Only one call to action found, consider adding more")
    return Ctas(count, issues)


def metrics_from_html(html: str, load_time: int, font_sizes: List[float], responsive: bool) -> PageMetrics:
    """Build PageMetrics from page HTML plus browser-computed values."""
    soup = BeautifulSoup(html or "", "lxml")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    has_viewport = soup.find("meta", attrs={"name": "viewport"}) is not None
    return PageMetrics(
        load_time=int(load_time),
        has_viewport=has_viewport,
        has_title=bool(title),
        title=title,
        font_sizes=analyze_font_sizes(font_sizes),
        # Contrast is not measured, reported as clean
        contrast=Contrast(),
        ctas=analyze_ctas(count_ctas(soup)),
        responsive=has_viewport and responsive,
    )


async def collect_page_metrics(page, load_time: int) -> PageMetrics:
    """
    Collect metrics from a loaded page.

    Args:
        page: Loaded Playwright page
        load_time: Navigation time in milliseconds

    Returns:
        PageMetrics
    """
    html = await page.content()
    computed = await page.evaluate(FONT_SIZES_JS) or {}
    metrics = metrics_from_html(
        html, load_time,
        [float(s) for s in computed.get("sizes", [])],
        bool(computed.get("responsive")),
    )
    logger.info("Collected metrics: title=%r ctas=%d load=%dms",
                metrics.title, metrics.ctas.count, metrics.load_time)
    return metrics
