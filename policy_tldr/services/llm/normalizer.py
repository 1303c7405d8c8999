"""Coerce provider replies into validated policy summary records.

Providers wrap their output in different ways and occasionally ignore the
JSON-only instruction. Replies are classified into a small set of shapes and
unwrapped until a JSON object carrying ``privacy_score`` appears; when none
does, the plain text is scanned for a score, an explanation and a summary
section. Every path ends in ``finalize_record`` so callers always receive the
same validated ``SummaryRecord``.
"""

from __future__ import annotations

import json
import logging
import math
import re
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping

from policy_tldr.services.llm.client import MalformedResponseError
from policy_tldr.services.policy.models import SummaryRecord

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 10
NEUTRAL_SCORE = 5
MAX_EXPLANATION_WORDS = 8
DETECTED_EXPLANATION = "Detected score from response"
NEUTRAL_EXPLANATION = "No explicit score provided; using neutral score"

WRAPPER_KEYS = ("content", "text")
ALTERNATE_MESSAGE_FIELDS = ("reasoning_content", "tool_content", "content_text")

FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\n?")
FENCE_CLOSE = re.compile(r"```$")
LINE_SPLIT = re.compile(r"\r?\n")
TRAILING_PERIODS = re.compile(r"[.\s]+$")

SCORE_PATTERNS = [
    re.compile(r"\bprivacy\s*(?:abuse\s*)?score\b\s*[:\-]?\s*(\d{1,2})(?:\s*/\s*10)?", re.I),
    re.compile(r"\bscore\b\s*[:\-]?\s*(\d{1,2})(?:\s*/\s*10)?", re.I),
    re.compile(r"\bpuntuaci[oó]n\s*(?:de\s*privacidad)?\b\s*[:\-]?\s*(\d{1,2})(?:\s*/\s*10)?", re.I),
    re.compile(r"\bpuntaje\s*(?:de\s*privacidad)?\b\s*[:\-]?\s*(\d{1,2})(?:\s*/\s*10)?", re.I),
    re.compile(r"\b(\d{1,2})\s*/\s*10\b"),
]
SCORE_LABEL = re.compile(r"^[^:\-]+[:\-]?\s*")
SCORE_VALUE = re.compile(r"^(\d{1,2})(?:\s*/\s*10)?\s*")
HAS_LETTER = re.compile(r"[a-zA-Z\u00C0-\u017F]")
EXPLANATION_HINT = re.compile(r"(explana|explica|porque|motivo|reason|because|justif)", re.I)
SUMMARY_HEADING = re.compile(r"^(?:#{1,6}\s*)?\**\s*(?:summary|resumen)\b\**\s*[:\-]?\s*", re.I)
SECTION_BREAKS = [
    re.compile(r"^#{1,6}\s+"),
    re.compile(r"^(score|puntuaci[oó]n|puntaje)\b", re.I),
    re.compile(r"^(rights|derechos)\b", re.I),
]


class ReplyShape(Enum):
    SCORED_OBJECT = "scored_object"
    PARTIAL_OBJECT = "partial_object"
    SEGMENTS = "segments"
    WRAPPED = "wrapped"
    TEXT = "text"
    UNSUPPORTED = "unsupported"


def classify(content: Any) -> ReplyShape:
    match content:
        case {"privacy_score": _}:
            return ReplyShape.SCORED_OBJECT
        case list() | tuple():
            return ReplyShape.SEGMENTS
        case {"content": str()} | {"text": str()}:
            return ReplyShape.WRAPPED
        case {"summary": _} | {"score_explanation": _}:
            return ReplyShape.PARTIAL_OBJECT
        case str():
            return ReplyShape.TEXT
        case _:
            return ReplyShape.UNSUPPORTED


def strip_code_fences(text: str) -> str:
    """Remove a Markdown fence only when it encloses the whole text."""
    stripped = text.strip()
    if len(stripped) >= 6 and stripped.startswith("```") and stripped.endswith("```"):
        stripped = FENCE_CLOSE.sub("", FENCE_OPEN.sub("", stripped, count=1)).strip()
    return stripped


def _segment_text(segment: Any) -> str:
    if isinstance(segment, str):
        return segment
    if isinstance(segment, Mapping):
        for key in ("text", "content"):
            value = segment.get(key)
            if isinstance(value, str):
                return value
    return ""


def join_segments(segments: List[Any] | tuple) -> str:
    return "".join(_segment_text(segment) for segment in segments)


def _unwrap(content: Mapping[str, Any]) -> str:
    for key in WRAPPER_KEYS:
        value = content.get(key)
        if isinstance(value, str):
            return value
    return ""


def _json_candidates(text: str) -> Iterator[str]:
    yield text
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        yield text[first : last + 1]


def _parse_json_text(text: str) -> Dict[str, Any] | None:
    cleaned = strip_code_fences(text)
    for candidate in _json_candidates(cleaned):
        try:
            loaded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(loaded, (Mapping, list)):
            parsed = parse_structured(loaded)
            if parsed is not None:
                return parsed
    return None


def parse_structured(content: Any) -> Dict[str, Any] | None:
    """Recover a record-like dict from a reply, or None when no JSON object is found."""
    match classify(content):
        case ReplyShape.SCORED_OBJECT | ReplyShape.PARTIAL_OBJECT:
            return dict(content)
        case ReplyShape.SEGMENTS:
            return parse_structured(join_segments(content))
        case ReplyShape.WRAPPED:
            return parse_structured(_unwrap(content))
        case ReplyShape.TEXT:
            return _parse_json_text(content)
        case ReplyShape.UNSUPPORTED:
            return None


def reply_text(content: Any) -> str:
    """Flatten a reply into the text the unstructured fallback should scan."""
    match classify(content):
        case ReplyShape.TEXT:
            return content
        case ReplyShape.SEGMENTS:
            return join_segments(content)
        case ReplyShape.WRAPPED:
            return _unwrap(content)
        case _:
            return ""


def clamp_score(value: Any) -> int:
    """Coerce a raw score (number or numeric string) to an integer in [0, 10].

    Halves round up.
    """
    if isinstance(value, bool):
        raise MalformedResponseError(f"privacy_score is not numeric: {value!r}")
    if isinstance(value, int):
        return max(MIN_SCORE, min(MAX_SCORE, value))
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except (ValueError, OverflowError) as exc:
            raise MalformedResponseError(f"privacy_score is not numeric: {value!r}") from exc
    if not isinstance(value, float) or not math.isfinite(value):
        raise MalformedResponseError(f"privacy_score is not numeric: {value!r}")
    return max(MIN_SCORE, min(MAX_SCORE, math.floor(value + 0.5)))


def tidy_explanation(text: str) -> str:
    """Trim, drop trailing periods and keep at most eight words."""
    cleaned = TRAILING_PERIODS.sub("", text.strip())
    words = cleaned.split()
    if len(words) > MAX_EXPLANATION_WORDS:
        cleaned = " ".join(words[:MAX_EXPLANATION_WORDS])
    return TRAILING_PERIODS.sub("", cleaned)


def _coerce_text(value: Any, field: str, separator: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return separator.join(value)
    raise MalformedResponseError(f"{field} must be text, got {type(value).__name__}")


def _nested_score(parsed: Mapping[str, Any]) -> Any:
    for key in ("summary", "text"):
        value = parsed.get(key)
        if isinstance(value, str):
            nested = _parse_json_text(value)
            if nested is not None and "privacy_score" in nested:
                return nested["privacy_score"]
    return None


def finalize_record(parsed: Mapping[str, Any]) -> SummaryRecord:
    raw_score = parsed.get("privacy_score")
    if raw_score is None:
        raw_score = _nested_score(parsed)
    explanation = tidy_explanation(
        _coerce_text(parsed.get("score_explanation"), "score_explanation", " ")
    )
    if raw_score is None:
        score = NEUTRAL_SCORE
        explanation = explanation or NEUTRAL_EXPLANATION
    else:
        score = clamp_score(raw_score)
    summary = _coerce_text(parsed.get("summary"), "summary", "\n")

    if not isinstance(explanation, str) or not isinstance(summary, str):
        raise MalformedResponseError("Missing required fields in response")
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise MalformedResponseError("privacy_score out of range (must be 0-10)")
    return SummaryRecord(privacy_score=score, score_explanation=explanation, summary=summary)


def _find_score(lines: List[str]) -> tuple[int | None, int]:
    for index, line in enumerate(lines):
        for pattern in SCORE_PATTERNS:
            match = pattern.search(line)
            if match:
                return clamp_score(int(match.group(1))), index
    return None, -1


def _explanation_near(lines: List[str], score_index: int) -> str:
    after_label = SCORE_LABEL.sub("", lines[score_index], count=1)
    after_number = SCORE_VALUE.sub("", after_label, count=1).strip().lstrip("-–:").strip()
    if after_number and HAS_LETTER.search(after_number):
        return after_number
    if score_index + 1 < len(lines) and EXPLANATION_HINT.search(lines[score_index + 1]):
        return lines[score_index + 1]
    return ""


def _summary_section(lines: List[str]) -> str:
    for index, line in enumerate(lines):
        heading = SUMMARY_HEADING.match(line)
        if not heading:
            continue
        section: List[str] = []
        inline = line[heading.end() :].strip()
        if inline:
            section.append(inline)
        for following in lines[index + 1 :]:
            if any(pattern.search(following) for pattern in SECTION_BREAKS):
                break
            section.append(following)
        return "\n".join(section).strip()
    return ""


def extract_unstructured(text: str) -> Dict[str, Any]:
    """Scan free-form text for a score, a short explanation and a summary section."""
    cleaned = strip_code_fences(text)
    lines = [line.strip() for line in LINE_SPLIT.split(cleaned)]
    lines = [line for line in lines if line]

    score, score_index = _find_score(lines)
    explanation = _explanation_near(lines, score_index) if score_index != -1 else ""

    summary = _summary_section(lines)
    if not summary:
        body = "\n".join(line for i, line in enumerate(lines) if i != score_index).strip()
        summary = body or cleaned

    if score is None:
        return {
            "privacy_score": NEUTRAL_SCORE,
            "score_explanation": explanation or NEUTRAL_EXPLANATION,
            "summary": summary,
        }
    return {
        "privacy_score": score,
        "score_explanation": explanation or DETECTED_EXPLANATION,
        "summary": summary,
    }


def _is_blank(content: Any) -> bool:
    if content is None:
        return True
    if isinstance(content, str):
        return not content.strip()
    if isinstance(content, (list, tuple, Mapping)):
        return len(content) == 0
    return False


def normalize(content: Any) -> SummaryRecord:
    """Turn the content of a provider reply into a validated SummaryRecord."""
    if _is_blank(content):
        raise MalformedResponseError("Provider reply is empty")
    shape = classify(content)
    if shape is ReplyShape.UNSUPPORTED:
        raise MalformedResponseError(f"Unsupported reply type: {type(content).__name__}")

    parsed = parse_structured(content)
    if parsed is None:
        text = reply_text(content)
        if not text.strip():
            raise MalformedResponseError("Provider reply contains no usable content")
        logger.info("Provider reply carried no JSON object; extracting from plain text")
        parsed = extract_unstructured(text)
    else:
        logger.debug("Recovered structured reply from %s shape", shape.value)
    return finalize_record(parsed)


def _first_message(payload: Any) -> Mapping[str, Any]:
    choices = payload.get("choices") if isinstance(payload, Mapping) else None
    if not choices or not isinstance(choices, list):
        raise MalformedResponseError("Provider reply has no choices")
    first_choice = choices[0]
    message = first_choice.get("message") if isinstance(first_choice, Mapping) else None
    if not isinstance(message, Mapping):
        raise MalformedResponseError("Provider reply has no message")
    return message


def normalize_completion(payload: Any) -> SummaryRecord:
    """Normalize a full chat-completion payload, consulting alternate message fields."""
    message = _first_message(payload)
    content = message.get("content")

    parsed = parse_structured(content)
    if parsed is None:
        for field in ALTERNATE_MESSAGE_FIELDS:
            alternate = message.get(field)
            if alternate:
                parsed = parse_structured(alternate)
                if parsed is not None:
                    logger.debug("Recovered structured reply from message.%s", field)
                    break
    if parsed is not None:
        return finalize_record(parsed)

    if reply_text(content).strip():
        return normalize(content)
    for field in ALTERNATE_MESSAGE_FIELDS:
        alternate = message.get(field)
        if reply_text(alternate).strip():
            return normalize(alternate)
    return normalize(content)
