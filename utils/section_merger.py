"""Merge per-section analyses (header, main, footer) into one result."""

import re
import logging
from collections import OrderedDict
from dataclasses import replace
from typing import Dict, List, Optional

from utils.scoring import NormalizedAnalysis, Issue, Suggestion

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"

SUBSECTIONS = ["overview", "strengths", "problems", "recommendations", "final_score"]

SUBSECTION_TITLES = {
    "overview": "Overview",
    "strengths": "Strengths",
    "problems": "Problems",
    "recommendations": "Recommendations",
    "final_score": "Final score",
}

# Heading keywords in English and Russian, matched against a short heading line
HEADING_PATTERNS = OrderedDict([
    ("final_score", re.compile(r"(final|overall|total)\s+score|итогов\w*\s+оценк\w*|общ\w*\s+оценк\w*|оценка", re.I)),
    ("strengths", re.compile(r"strength|what works|positive|сильн\w*\s+сторон\w*|преимуществ\w*|плюсы", re.I)),
    ("problems", re.compile(r"problem|issue|weakness|пробл\w*|недостат\w*|слаб\w*\s+сторон\w*|минусы", re.I)),
    ("recommendations", re.compile(r"recommendation|suggestion|improvement|рекомендац\w*|предложени\w*|улучшени\w*", re.I)),
    ("overview", re.compile(r"overview|summary|general|description|обзор|общ\w*\s+впечатлени\w*|описани\w*", re.I)),
])

_HEADING_PREFIX = re.compile(r"^\s*(?:#{1,6}\s*|\*\*|[IVX]+[.)]\s*)")
_NUMBERED_PREFIX = re.compile(r"^\d+[.)]\s*")
_BULLET_PREFIX = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_MAX_HEADING_LENGTH = 60

QUICK_WIN_RE = re.compile(
    r"\(?\b(?:quick[\s-]+wins?|быстр(?:ая|ые|ой|ых)\s+побед\w*|быстр\w*\s+выигрыш\w*)\b\)?[ \t]*:?[ \t]*",
    re.I,
)


def strip_quick_wins(text: Optional[str]) -> Optional[str]:
    """Remove the quick-win label from a piece of output text."""
    if not text:
        return text
    cleaned = QUICK_WIN_RE.sub("", text)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    return cleaned.strip()


def _numbered_heading_kind(rest: str) -> Optional[str]:
    # "2. Problems:" is a heading, "1. Fix the contrast issue" is a list item
    body = rest.strip("*# ")
    if not body or not (body.endswith(":") or len(body.split()) <= 3):
        return None
    head = body.split(":", 1)[0].strip("* ")
    for kind, pattern in HEADING_PATTERNS.items():
        if pattern.match(head):
            return kind
    return None


def _heading_kind(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped or len(stripped) > _MAX_HEADING_LENGTH:
        return None
    if re.match(r"^[-•]|^\*(?!\*)", stripped):
        return None
    numbered = _NUMBERED_PREFIX.match(stripped)
    if numbered:
        return _numbered_heading_kind(stripped[numbered.end():])
    looks_like_heading = (
        _HEADING_PREFIX.match(stripped) is not None
        or stripped.endswith(":")
        or stripped.isupper()
        or len(stripped.split()) <= 3
    )
    head = stripped.split(":", 1)[0]
    if ":" in stripped and len(head.split()) <= 3:
        looks_like_heading = True
    if not looks_like_heading:
        return None
    for kind, pattern in HEADING_PATTERNS.items():
        if pattern.search(head):
            return kind
    return None


def split_subsections(text: str) -> Dict[str, List[str]]:
    """
    Split a free-form analysis into the five canonical subsections.

    Lines before the first recognised heading count as overview.

    Args:
        text: Free-form analysis of one section

    Returns:
        Mapping of subsection name to its non-empty lines
    """
    parts: Dict[str, List[str]] = {name: [] for name in SUBSECTIONS}
    current = "overview"
    for line in (text or "").splitlines():
        kind = _heading_kind(line)
        if kind:
            current = kind
            # "Final score: 72/100" carries content on the heading line
            tail = line.split(":", 1)[1].strip() if ":" in line else ""
            if tail and tail.strip("*"):
                parts[current].append(tail.strip("* "))
            continue
        if line.strip():
            parts[current].append(line.strip())
    return parts


def _dedupe_verbatim(lines: List[str]) -> List[str]:
    seen = set()
    result = []
    for line in lines:
        key = line.strip()
        if key not in seen:
            seen.add(key)
            result.append(line)
    return result


def _label(line: str) -> str:
    body = _BULLET_PREFIX.sub("", line).strip().strip("*").strip()
    if ":" in body:
        return body.split(":", 1)[0].strip().strip("*").lower()
    return body.lower()


def _keep_longest_per_label(lines: List[str]) -> List[str]:
    grouped: "OrderedDict[str, str]" = OrderedDict()
    for line in lines:
        key = _label(line)
        if key not in grouped or len(line) > len(grouped[key]):
            grouped[key] = line
    return list(grouped.values())


def merge_free_form(section_texts: Dict[str, str]) -> str:
    """Stitch per-section free-form analyses into one document."""
    combined: Dict[str, List[str]] = {name: [] for name in SUBSECTIONS}
    for section, text in section_texts.items():
        if not text:
            continue
        parts = split_subsections(text)
        for name in SUBSECTIONS:
            if name == "final_score":
                combined[name].extend(f"{section.title()}: {line}" for line in parts[name])
            else:
                combined[name].extend(parts[name])

    combined["problems"] = _dedupe_verbatim(combined["problems"])
    combined["recommendations"] = _dedupe_verbatim(combined["recommendations"])
    combined["overview"] = _keep_longest_per_label(combined["overview"])
    combined["strengths"] = _keep_longest_per_label(combined["strengths"])

    blocks = []
    for name in SUBSECTIONS:
        if combined[name]:
            blocks.append(f"## {SUBSECTION_TITLES[name]}\n" + "\n".join(combined[name]))
    return "\n\n".join(blocks)


def _strip_issue(issue: Issue, section: str) -> Issue:
    return replace(
        issue,
        text=strip_quick_wins(issue.text),
        recommendation=strip_quick_wins(issue.recommendation),
        impact=strip_quick_wins(issue.impact),
        section=section,
    )


def _strip_suggestion(suggestion: Suggestion, section: str) -> Suggestion:
    return replace(
        suggestion,
        title=strip_quick_wins(suggestion.title),
        description=strip_quick_wins(suggestion.description),
        steps=[s for s in (strip_quick_wins(step) for step in suggestion.steps) if s],
        section=section,
    )


def merge_sections(results: Dict[str, NormalizedAnalysis]) -> NormalizedAnalysis:
    """
    Merge independent section results into a single analysis.

    Sections missing from `results` are simply absent from the average,
    they never count as zero.

    Args:
        results: Section name to analysis, in capture order

    Returns:
        Merged NormalizedAnalysis
    """
    if not results:
        raise ValueError("merge_sections needs at least one section result")

    issues: List[Issue] = []
    suggestions: List[Suggestion] = []
    descriptions = []
    free_forms: Dict[str, str] = OrderedDict()
    providers = []

    for section, analysis in results.items():
        issues.extend(_strip_issue(issue, section) for issue in analysis.issues)
        suggestions.extend(_strip_suggestion(s, section) for s in analysis.suggestions)
        if analysis.visual_description:
            descriptions.append(f"[{section.title()}] {analysis.visual_description}")
        free_forms[section] = analysis.free_form_analysis
        if analysis.provider and analysis.provider not in providers:
            providers.append(analysis.provider)

    score = sum(a.overall_score for a in results.values()) / len(results)
    logger.debug("Merged %d sections, mean score %.1f", len(results), score)

    if len(results) == 1:
        free_form = next(iter(free_forms.values())) or ""
    else:
        free_form = merge_free_form(free_forms)

    return NormalizedAnalysis(
        issues=issues,
        suggestions=suggestions,
        overall_score=score,
        visual_description=strip_quick_wins(SECTION_SEPARATOR.join(descriptions)) or "",
        free_form_analysis=strip_quick_wins(free_form) or "",
        provider=", ".join(providers) or None,
        available=any(a.available for a in results.values()),
    )
