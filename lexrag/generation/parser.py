"""Turns free-form completions into structured results.

Analysis completions go through three stages, each used only when the
previous one found nothing:

1. Strict: the text between the first '{' and the last '}' parsed as JSON.
2. Heuristic: known section headers ("Risks:", "Mitigations:", ...) with
   numbered items underneath.
3. Default: a generic result holding the raw completion.

Neither parse_analysis nor parse_explanation raises.
"""
import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
import structlog

from lexrag.errors import MalformedResponseError
from lexrag.models import (
    ANALYSIS_MODELS,
    AnalysisKind,
    Explanation,
    GenericAnalysis,
)
from lexrag.rag.chunker import split_sentences

logger = structlog.get_logger()

HEURISTIC_CONFIDENCE = 80
DEFAULT_CONFIDENCE = 50
FALLBACK_EXPLANATION = "Unable to generate explanation"

# result field -> accepted JSON keys
_JSON_KEYS: Dict[AnalysisKind, Dict[str, Tuple[str, ...]]] = {
    AnalysisKind.RISK: {
        "risks": ("risks",),
        "mitigations": ("mitigations", "suggestions"),
    },
    AnalysisKind.REVIEW: {
        "strengths": ("strengths",),
        "weaknesses": ("weaknesses",),
        "recommendations": ("recommendations", "suggestions"),
    },
    AnalysisKind.AMBIGUITY: {
        "ambiguous_terms": ("ambiguousTerms", "ambiguous_terms"),
        "clarifications": ("clarifications", "suggestions"),
    },
    AnalysisKind.GENERIC: {
        "analysis": ("analysis",),
    },
}

# result field -> section headers, preferred first
_SECTION_HEADERS: Dict[AnalysisKind, Dict[str, Tuple[str, ...]]] = {
    AnalysisKind.RISK: {
        "risks": ("Risks:",),
        "mitigations": ("Mitigations:", "Suggestions:"),
    },
    AnalysisKind.REVIEW: {
        "strengths": ("Strengths:",),
        "weaknesses": ("Weaknesses:",),
        "recommendations": ("Recommendations:", "Suggestions for improvement:", "Suggestions:"),
    },
    AnalysisKind.AMBIGUITY: {
        "ambiguous_terms": ("Ambiguous Terms:",),
        "clarifications": ("Clarifications:", "Suggestions:"),
    },
    AnalysisKind.GENERIC: {
        "analysis": ("Analysis:", "Key Insights:"),
    },
}

_NUMBERED_ITEM = re.compile(
    r"(?:^|(?<=\s))\d+[.)]\s+(.+?)(?=\n\s*\d+[.)]\s|\n\s*\n|\Z)", re.DOTALL
)
_BULLET_LINE = re.compile(r"^\s*(?:[-•*]|\d+[.)])\s+(.+)$")
_BLANK_LINE = re.compile(r"\r?\n[ \t]*\r?\n")
_HEADER_PREFIX = re.compile(r"^[\s#>*_]*(?:\d+[.)]\s*)?")


# Strict stage


def extract_json_object(content: str) -> Dict[str, Any]:
    """Parse the outermost {...} span of a completion.

    Raises:
        MalformedResponseError: If there is no brace pair or the span is not
            a JSON object
    """
    start = content.find("{")
    end = content.rfind("}")
    if start < 0 or end < start:
        raise MalformedResponseError("No JSON object found in completion")

    try:
        data = json.loads(content[start : end + 1])
    except (json.JSONDecodeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid JSON in completion: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError("Completion JSON is not an object")
    return data


def _coerce_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if item is None:
                continue
            if not isinstance(item, str):
                item = json.dumps(item) if isinstance(item, (dict, list)) else str(item)
            if item.strip():
                items.append(item.strip())
        return items
    return [str(value)]


def _coerce_confidence(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return int(min(100, max(0, round(number))))


def parse_strict(content: str, kind: AnalysisKind):
    """Build a result from the JSON object embedded in a completion.

    Missing lists are empty and a missing confidence is 0.

    Raises:
        MalformedResponseError: If no usable JSON object is present
    """
    data = extract_json_object(content)
    fields = {}
    for field, keys in _JSON_KEYS[kind].items():
        value = next((data[k] for k in keys if k in data), None)
        fields[field] = _coerce_list(value)
    fields["confidence"] = _coerce_confidence(data.get("confidence"))
    return ANALYSIS_MODELS[kind](**fields)


# Heuristic stage


def extract_section(content: str, header: str, boundaries: Sequence[str] = ()) -> Optional[str]:
    """Text following a header, up to the next blank line or boundary header.

    Matching is case-insensitive. Blank lines right after the header are
    skipped.

    Returns:
        Section body, or None if the header does not occur
    """
    lower = content.lower()
    start = lower.find(header.lower())
    if start < 0:
        return None

    body_start = start + len(header)
    while body_start < len(content) and content[body_start] in " \t\r\n":
        body_start += 1

    blank_line = _BLANK_LINE.search(content, body_start)
    end = blank_line.start() if blank_line else len(content)
    for other in boundaries:
        index = lower.find(other.lower(), body_start)
        if 0 <= index < end:
            end = index

    return content[body_start:end]


def extract_numbered_items(section: str) -> List[str]:
    """Numbered list entries ("1. ...", "2) ..."), falling back to bullets."""
    items = [" ".join(m.group(1).split()) for m in _NUMBERED_ITEM.finditer(section)]
    if not items:
        for line in section.splitlines():
            match = _BULLET_LINE.match(line)
            if match:
                items.append(" ".join(match.group(1).split()))
    return [item for item in items if item]


def parse_heuristic(content: str, kind: AnalysisKind):
    """Build a result from header-delimited sections.

    Returns:
        Result with confidence 80, or None if no section yielded items
    """
    headers = _SECTION_HEADERS[kind]
    all_headers = [h for group in headers.values() for h in group]

    fields: Dict[str, List[str]] = {}
    for field, candidates in headers.items():
        fields[field] = []
        for header in candidates:
            boundaries = [h for h in all_headers if h.lower() != header.lower()]
            section = extract_section(content, header, boundaries)
            if section is not None:
                fields[field] = extract_numbered_items(section)
                break

    if not any(fields.values()):
        return None
    return ANALYSIS_MODELS[kind](**fields, confidence=HEURISTIC_CONFIDENCE)


def default_result(content: str) -> GenericAnalysis:
    return GenericAnalysis(analysis=[content], confidence=DEFAULT_CONFIDENCE)


def parse_analysis(content: Optional[str], kind: AnalysisKind):
    """Parse an analysis completion; never raises.

    Args:
        content: Raw completion text
        kind: Expected analysis kind

    Returns:
        An AnalysisResult member; confidence always in [0, 100]
    """
    content = content if isinstance(content, str) else ""

    try:
        return parse_strict(content, kind)
    except MalformedResponseError as e:
        logger.warning("strict_parse_failed", kind=kind.value, error=str(e))
    except Exception as e:
        logger.warning("strict_parse_error", kind=kind.value, error=str(e), error_type=type(e).__name__)

    try:
        result = parse_heuristic(content, kind)
        if result is not None:
            logger.info("heuristic_parse_succeeded", kind=kind.value)
            return result
    except Exception as e:
        logger.warning("heuristic_parse_error", kind=kind.value, error=str(e), error_type=type(e).__name__)

    logger.info("analysis_default_fallback", kind=kind.value, content_length=len(content))
    return default_result(content)


# Explanations

_EXPLANATION_SECTIONS = {
    "simplified explanation": "simplified",
    "a simplified explanation": "simplified",
    "simple explanation": "simplified",
    "key points": "key_points",
    "key point": "key_points",
    "practical implications": "implications",
    "what this means in practical terms": "implications",
}


def _header_of(line: str) -> Optional[Tuple[str, str]]:
    """(section, inline remainder) if the line is a known section header."""
    stripped = _HEADER_PREFIX.sub("", line).strip()
    name, _, rest = stripped.partition(":")
    section = _EXPLANATION_SECTIONS.get(name.strip("*_# ").lower())
    if section is None:
        return None
    return section, rest.strip("*_ ")


def _split_explanation(content: str) -> Dict[str, List[str]]:
    sections: Dict[str, List[str]] = {}
    current = "preamble"
    for line in content.splitlines():
        header = _header_of(line)
        if header is not None:
            current, inline = header
            sections.setdefault(current, [])
            if inline:
                sections[current].append(inline)
            continue
        sections.setdefault(current, []).append(line)
    return sections


def _bullets(lines: Sequence[str]) -> List[str]:
    points = []
    for line in lines:
        match = _BULLET_LINE.match(line)
        if match:
            point = match.group(1).strip().strip("*_ ").strip()
            if point:
                points.append(point)
    return points


def parse_explanation(content: Optional[str], original: str) -> Explanation:
    """Split an explanation completion into summary and key points; never raises.

    Args:
        content: Raw completion text
        original: The text that was explained

    Returns:
        Explanation; key points fall back to bullet lines anywhere, then to
        the first three sentences of the completion
    """
    content = content.strip() if isinstance(content, str) else ""
    if not content:
        return Explanation(original=original, simplified=FALLBACK_EXPLANATION, key_points=[])

    try:
        sections = _split_explanation(content)
        simplified = "\n".join(sections.get("simplified", [])).strip() or content

        key_points = _bullets(sections.get("key_points", []))
        if not key_points:
            key_points = [
                line.strip()
                for line in sections.get("key_points", [])
                if line.strip()
            ]
        if not key_points:
            key_points = _bullets(content.splitlines())
        if not key_points:
            key_points = split_sentences(content)[:3]

        return Explanation(original=original, simplified=simplified, key_points=key_points)
    except Exception as e:
        logger.warning("explanation_parse_error", error=str(e), error_type=type(e).__name__)
        return Explanation(original=original, simplified=content, key_points=split_sentences(content)[:3])
