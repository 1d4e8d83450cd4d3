"""Analysis result types and scoring utilities for the UX audit."""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any
from enum import Enum


DEFAULT_SCORE = 75


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def clamp_score(value: Any, default: int = DEFAULT_SCORE) -> int:
    """Coerce a model-reported score to an int in [0, 100]."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return int(round(max(0.0, min(100.0, score))))


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _bbox(value: Any) -> Optional[List[float]]:
    """Coerce a bbox to [x1, y1, x2, y2]; dicts may give corners or x/y/width/height."""
    if isinstance(value, dict):
        if "x1" in value:
            value = [value.get(k) for k in ("x1", "y1", "x2", "y2")]
        else:
            try:
                x, y = float(value["x"]), float(value["y"])
                return [x, y, x + float(value["width"]), y + float(value["height"])]
            except (KeyError, TypeError, ValueError):
                return None
    if isinstance(value, (list, tuple)) and len(value) == 4:
        try:
            return [float(v) for v in value]
        except (TypeError, ValueError):
            return None
    return None


@dataclass
class Issue:
    """A single UX problem spotted on the screenshot."""
    text: str
    bbox: Optional[List[float]] = None
    priority: Optional[str] = None
    recommendation: Optional[str] = None
    impact: Optional[str] = None
    section: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "Issue":
        """Wrap a bare string or a model-produced dict into an Issue."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            return cls(text=_text(value))
        text = _text(value.get("text") or value.get("description")
                     or value.get("issue") or value.get("title"))
        return cls(
            text=text,
            bbox=_bbox(value.get("bbox")),
            priority=_text(value.get("priority")).lower() or None,
            recommendation=_text(value.get("recommendation")) or None,
            impact=_text(value.get("impact")) or None,
            section=_text(value.get("section")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"text": self.text}
        for key in ("bbox", "priority", "recommendation", "impact", "section"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class Suggestion:
    """An improvement recommendation, optionally with ordered steps."""
    title: str
    description: Optional[str] = None
    impact: Optional[str] = None
    priority: Optional[str] = None
    steps: List[str] = field(default_factory=list)
    section: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> "Suggestion":
        """Wrap a bare string or a model-produced dict into a Suggestion."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, dict):
            return cls(title=_text(value))
        steps = value.get("steps") or []
        if isinstance(steps, str):
            steps = [steps]
        title = _text(value.get("title") or value.get("text") or value.get("description"))
        description = _text(value.get("description")) or None
        if description == title:
            description = None
        return cls(
            title=title,
            description=description,
            impact=_text(value.get("impact")) or None,
            priority=_text(value.get("priority")).lower() or None,
            steps=[_text(s) for s in steps if _text(s)],
            section=_text(value.get("section")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title, "steps": list(self.steps)}
        for key in ("description", "impact", "priority", "section"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class NormalizedAnalysis:
    """
    Canonical shape of one vision-model assessment.

    Issues and suggestions are wrapped into their object form on construction
    and the score is always clamped, whatever the provider returned.
    """
    issues: List[Issue] = field(default_factory=list)
    suggestions: List[Suggestion] = field(default_factory=list)
    overall_score: int = DEFAULT_SCORE
    visual_description: str = ""
    free_form_analysis: str = ""
    provider: Optional[str] = None
    available: bool = True

    def __post_init__(self):
        self.issues = [Issue.from_value(i) for i in self.issues]
        self.suggestions = [Suggestion.from_value(s) for s in self.suggestions]
        self.overall_score = clamp_score(self.overall_score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "overallScore": self.overall_score,
            "visualDescription": self.visual_description,
            "freeFormAnalysis": self.free_form_analysis,
            "provider": self.provider,
            "available": self.available,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedAnalysis":
        return cls(
            issues=data.get("issues") or [],
            suggestions=data.get("suggestions") or [],
            overall_score=data.get("overallScore", DEFAULT_SCORE),
            visual_description=data.get("visualDescription") or "",
            free_form_analysis=data.get("freeFormAnalysis") or "",
            provider=data.get("provider"),
            available=data.get("available", True),
        )


def unavailable_analysis(reason: str) -> NormalizedAnalysis:
    """Zero-score placeholder used when no provider produced a result."""
    return NormalizedAnalysis(
        issues=[],
        suggestions=[Suggestion(
            title="AI analysis unavailable",
            description=reason,
            priority=Priority.HIGH.value,
            steps=["Configure at least one vision provider API key and run the audit again."],
        )],
        overall_score=0,
        visual_description="The visual analysis could not be completed. "
                           "Only the automated page metrics are available for this report.",
        available=False,
    )


# Metric categories, scored only from deterministic page metrics
METRIC_CATEGORIES = ["typography", "contrast", "cta", "performance", "responsive"]

AI_WEIGHT = 0.6
METRICS_WEIGHT = 0.4


def score_typography(metrics) -> int:
    return clamp_score(100 - 15 * len(metrics.font_sizes.issues))


def score_cta(metrics) -> int:
    if metrics.ctas.count == 0:
        return 40
    return clamp_score(100 - 15 * len(metrics.ctas.issues))


def score_performance(metrics) -> int:
    load_ms = metrics.load_time
    if load_ms <= 2000:
        return 100
    if load_ms <= 4000:
        return 80
    if load_ms <= 6000:
        return 60
    return 40


def score_responsive(metrics) -> int:
    score = 100
    if not metrics.has_viewport:
        score -= 50
    if not metrics.responsive:
        score -= 25
    return clamp_score(score)


def compute_category_scores(metrics, analysis: Optional[NormalizedAnalysis]) -> Dict[str, int]:
    """
    Compute per-category scores plus a combined score.

    Metric categories come from PageMetrics only. The AI score is reported
    as its own `ux` category so AI issues never lower a metric category.

    Args:
        metrics: PageMetrics or None for image targets
        analysis: merged analysis, or None when not finished

    Returns:
        Dictionary of category name to score, including `combined`
    """
    scores: Dict[str, int] = {}
    if metrics is not None:
        scores["typography"] = score_typography(metrics)
        scores["contrast"] = clamp_score(metrics.contrast.score)
        scores["cta"] = score_cta(metrics)
        scores["performance"] = score_performance(metrics)
        scores["responsive"] = score_responsive(metrics)

    metric_values = [scores[c] for c in METRIC_CATEGORIES if c in scores]
    metric_avg = sum(metric_values) / len(metric_values) if metric_values else None

    ai_score = None
    if analysis is not None and analysis.available:
        ai_score = analysis.overall_score
        scores["ux"] = ai_score

    if metric_avg is not None and ai_score is not None:
        scores["combined"] = clamp_score(METRICS_WEIGHT * metric_avg + AI_WEIGHT * ai_score)
    elif metric_avg is not None:
        scores["combined"] = clamp_score(metric_avg)
    elif ai_score is not None:
        scores["combined"] = ai_score
    else:
        scores["combined"] = 0
    return scores
