"""Turn free-form vision model output into a NormalizedAnalysis.

Providers return anything from clean JSON to fenced, truncated or purely
prose answers. The normalizer runs an ordered chain of parsers and the
first one that produces a result wins. It never raises.
"""

import re
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from utils.scoring import (
    DEFAULT_SCORE, NormalizedAnalysis, Issue, Suggestion, clamp_score
)

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 1500
MIN_DESCRIPTION_LENGTH = 10

PLACEHOLDER_ISSUE = "The model did not return a structured list of issues for this screenshot."
PLACEHOLDER_SUGGESTION = "Review the visual hierarchy, layout composition and element contrast."

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*|\s*```\s*$")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

# visualDescription salvage patterns, tried in order
_DESC_EXACT = re.compile(r'"visualDescription"\s*:\s*"((?:[^"\\]|\\.)*)"?', re.S)
_DESC_UNTERMINATED = re.compile(r'"visualDescription"\s*:\s*"([^"]{50,})')
_OBJ_FIELD = re.compile(r'"([^"]+)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_ANY_QUOTED = re.compile(r'"([^"{}]{15,})"')

_ISSUES_RE = re.compile(r'"issues"\s*:\s*\[')
_SUGGESTIONS_RE = re.compile(r'"suggestions"\s*:\s*\[')
_SCORE_RE = re.compile(r'"overallScore"\s*:\s*(\d+(?:\.\d+)?)')
_QUOTED_ITEM = re.compile(r'"((?:[^"\\]|\\.){3,})"')


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip())


def _unescape(value: str) -> str:
    return (value.replace('\\"', '"').replace('\\n', '\n')
            .replace('\\r', '').replace('\\t', ' ').strip())


def clean_description(text: str) -> str:
    """Drop control characters, collapse whitespace and cap the length."""
    cleaned = _CONTROL_RE.sub(" ", text or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:MAX_DESCRIPTION_LENGTH].strip()


def flatten_description(value: Any) -> str:
    """Flatten a visualDescription that arrived as an object or list."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        parts = []
        for key, item in value.items():
            text = flatten_description(item)
            if text:
                parts.append(f"{str(key)[:1].upper()}{str(key)[1:]}: {text}")
        return ". ".join(parts)
    if isinstance(value, (list, tuple)):
        return ", ".join(t for t in (flatten_description(v) for v in value) if t)
    return str(value)


def _from_mapping(data: Dict[str, Any], free_form: str) -> NormalizedAnalysis:
    issues = data.get("issues")
    suggestions = data.get("suggestions")
    if not isinstance(issues, list):
        issues = [issues] if issues else []
    if not isinstance(suggestions, list):
        suggestions = [suggestions] if suggestions else []
    return NormalizedAnalysis(
        issues=[i for i in issues if i],
        suggestions=[s for s in suggestions if s],
        overall_score=data.get("overallScore", data.get("score", DEFAULT_SCORE)),
        visual_description=clean_description(flatten_description(data.get("visualDescription"))),
        free_form_analysis=flatten_description(data.get("freeFormAnalysis")) or free_form,
    )


def parse_json_strict(text: str, free_form: str = "") -> Optional[NormalizedAnalysis]:
    """Step 1: the whole (fence-stripped) text is a JSON object."""
    try:
        data = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return _from_mapping(data, free_form)


def _outermost_object(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1:
        return None
    if end <= start:
        # Truncated output: take everything after the first brace
        return text[start:]
    return text[start:end + 1]


def parse_embedded_json(text: str, free_form: str = "") -> Optional[NormalizedAnalysis]:
    """Step 2: a JSON object surrounded by prose."""
    span = _outermost_object(text)
    if span is None:
        return None
    try:
        data = json.loads(span)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return _from_mapping(data, free_form)


def _matching_brace(text: str, start: int) -> int:
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return len(text)


def _description_from_object(span: str) -> str:
    key_pos = span.find('"visualDescription"')
    if key_pos == -1:
        return ""
    colon = span.find(":", key_pos)
    brace = span.find("{", key_pos)
    if brace == -1 or colon == -1 or span[colon + 1:brace].strip():
        return ""
    body = span[brace + 1:_matching_brace(span, brace)]
    fields = []
    for key, value in _OBJ_FIELD.findall(body):
        value = _unescape(value).replace("\n", " ")
        if key.strip() and len(value) > 5:
            fields.append(f"{key[:1].upper()}{key[1:]}: {value}")
    return ". ".join(fields)


def salvage_description(span: str) -> str:
    """Recover visualDescription from malformed JSON with four patterns."""
    match = _DESC_EXACT.search(span)
    if match:
        text = _unescape(match.group(1))
        if len(text) >= MIN_DESCRIPTION_LENGTH:
            return text
    match = _DESC_UNTERMINATED.search(span)
    if match:
        return match.group(1).strip()
    text = _description_from_object(span)
    if len(text) >= MIN_DESCRIPTION_LENGTH:
        return text
    seen: List[str] = []
    for candidate in _ANY_QUOTED.findall(span):
        candidate = candidate.strip()
        if candidate != "visualDescription" and candidate not in seen:
            seen.append(candidate)
    return ". ".join(seen[:5])


def _closing_index(text: str, start: int) -> int:
    """Index of the bracket closing the one at `start`, -1 when truncated."""
    pairs = {"{": "}", "[": "]"}
    stack = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in pairs:
            stack.append(pairs[ch])
        elif stack and ch == stack[-1]:
            stack.pop()
            if not stack:
                return i
    return -1


def _object_item(body: str) -> Optional[Any]:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        fields = dict(_OBJ_FIELD.findall(body))
        text = fields.get("text") or fields.get("title") or fields.get("description")
        return _unescape(text) if text else None
    return data if isinstance(data, dict) else None


def _salvage_items(pattern: re.Pattern, span: str) -> Optional[List[Any]]:
    match = pattern.search(span)
    if not match:
        return None
    open_at = match.end() - 1
    close_at = _closing_index(span, open_at)
    body = span[open_at + 1:close_at if close_at != -1 else len(span)]
    if not body.lstrip().startswith("{"):
        return [_unescape(item) for item in _QUOTED_ITEM.findall(body)]
    items = []
    pos = body.find("{")
    while pos != -1:
        end = _closing_index(body, pos)
        if end == -1:
            # Truncated last element
            break
        item = _object_item(body[pos:end + 1])
        if item:
            items.append(item)
        pos = body.find("{", end + 1)
    return items


def parse_salvaged_fields(text: str, free_form: str = "") -> Optional[NormalizedAnalysis]:
    """Step 3: field-by-field regex salvage of broken JSON."""
    start = text.find("{")
    if start == -1:
        return None
    # Broken output may close a nested object early, so scan to the end
    span = text[start:]
    if '"' not in span:
        return None
    description = salvage_description(span)
    issues = _salvage_items(_ISSUES_RE, span)
    suggestions = _salvage_items(_SUGGESTIONS_RE, span)
    score_match = _SCORE_RE.search(span)
    if not description and issues is None and suggestions is None and not score_match:
        return None
    return NormalizedAnalysis(
        issues=issues if issues else [PLACEHOLDER_ISSUE],
        suggestions=suggestions if suggestions else [PLACEHOLDER_SUGGESTION],
        overall_score=score_match.group(1) if score_match else DEFAULT_SCORE,
        visual_description=clean_description(description),
        free_form_analysis=free_form,
    )


def parse_prose(text: str, free_form: str = "") -> Optional[NormalizedAnalysis]:
    """Step 4: plain text answer becomes the description."""
    return NormalizedAnalysis(
        issues=[PLACEHOLDER_ISSUE],
        suggestions=[PLACEHOLDER_SUGGESTION],
        overall_score=DEFAULT_SCORE,
        visual_description=clean_description(text),
        free_form_analysis=free_form or text.strip(),
    )


PARSERS: List[Callable[[str, str], Optional[NormalizedAnalysis]]] = [
    parse_json_strict,
    parse_embedded_json,
    parse_salvaged_fields,
    parse_prose,
]


def normalize(raw_text: Optional[str], free_form: str = "", provider: Optional[str] = None) -> NormalizedAnalysis:
    """
    Normalize raw provider text into a NormalizedAnalysis.

    Args:
        raw_text: Text returned by the provider
        free_form: Free-form analysis from a two-stage provider, if any
        provider: Name recorded on the result

    Returns:
        NormalizedAnalysis with a clamped score
    """
    text = raw_text or ""
    result = None
    for parser in PARSERS:
        try:
            result = parser(text, free_form or "")
        except Exception:
            # A parser bug must not sink the whole chain
            logger.exception("Normalizer step %s failed", parser.__name__)
            result = None
        if result is not None:
            logger.debug("Normalized provider output with %s", parser.__name__)
            break
    result.provider = provider
    return result
