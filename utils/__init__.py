"""Utilities package for the UX audit pipeline."""

from .errors import (
    AuditError, ValidationError, PageLoadError, CaptureError, ProviderError,
    AnalysisUnavailableError, OversizedImageError
)
from .scoring import NormalizedAnalysis, Issue, Suggestion, clamp_score, compute_category_scores
from .normalizer import normalize
from .section_merger import merge_sections
from .metrics import PageMetrics

__all__ = [
    'AuditError', 'ValidationError', 'PageLoadError', 'CaptureError', 'ProviderError',
    'AnalysisUnavailableError', 'OversizedImageError',
    'NormalizedAnalysis', 'Issue', 'Suggestion', 'clamp_score', 'compute_category_scores',
    'normalize',
    'merge_sections',
    'PageMetrics',
]
