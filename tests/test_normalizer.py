import pytest

from policy_tldr.services.llm.client import MalformedResponseError
from policy_tldr.services.llm.normalizer import (
    DETECTED_EXPLANATION,
    NEUTRAL_EXPLANATION,
    ReplyShape,
    clamp_score,
    classify,
    extract_unstructured,
    normalize,
    normalize_completion,
    strip_code_fences,
    tidy_explanation,
)
from policy_tldr.services.policy.models import SummaryRecord

from tests.conftest import completion, record_json


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (-3, 0),
        (14, 10),
        (7.6, 8),
        (2.5, 3),
        ("6", 6),
        (" 4.4 ", 4),
        (0, 0),
        (10, 10),
        (10**400, 10),
        (-(10**400), 0),
    ],
)
def test_clamp_score(raw: object, expected: int) -> None:
    assert clamp_score(raw) == expected


@pytest.mark.parametrize("raw", ["high", "nan", None, True, [5], float("inf"), "1e400"])
def test_clamp_score_rejects_non_numeric(raw: object) -> None:
    with pytest.raises(MalformedResponseError):
        clamp_score(raw)


def test_explanation_truncated_to_eight_words_without_period() -> None:
    text = "Excessive data sharing with many third party advertising partners."
    assert tidy_explanation(text) == "Excessive data sharing with many third party advertising"
    assert tidy_explanation("  Minimal tracking.  ") == "Minimal tracking"


def test_classify_shapes() -> None:
    assert classify({"privacy_score": 1}) is ReplyShape.SCORED_OBJECT
    assert classify([{"type": "text", "text": "{}"}]) is ReplyShape.SEGMENTS
    assert classify({"content": "{}"}) is ReplyShape.WRAPPED
    assert classify({"summary": "x"}) is ReplyShape.PARTIAL_OBJECT
    assert classify("text") is ReplyShape.TEXT
    assert classify(42) is ReplyShape.UNSUPPORTED
    assert classify({"other": 1}) is ReplyShape.UNSUPPORTED


def test_direct_object() -> None:
    record = normalize(
        {"privacy_score": "7", "score_explanation": "Broad sharing.", "summary": "## Data"}
    )
    assert record == SummaryRecord(7, "Broad sharing", "## Data")


def test_fenced_json() -> None:
    raw = '```json\n{"privacy_score":3,"score_explanation":"Minimal tracking","summary":"# OK"}\n```'
    assert normalize(raw) == SummaryRecord(
        privacy_score=3, score_explanation="Minimal tracking", summary="# OK"
    )


def test_strip_code_fences_only_when_fully_wrapped() -> None:
    assert strip_code_fences("```\nabc\n```") == "abc"
    assert strip_code_fences("intro ```json\n{}\n```") == "intro ```json\n{}\n```"


def test_json_embedded_in_prose() -> None:
    raw = "Here is the analysis:\n" + record_json(9, "Sells data", "- bad") + "\nHope it helps!"
    assert normalize(raw) == SummaryRecord(9, "Sells data", "- bad")


def test_segmented_content_is_joined_in_order() -> None:
    content = [
        {"type": "text", "text": '{"privacy_score": 2, '},
        {"type": "text", "text": '"score_explanation": "Strong user rights", '},
        '"summary": "Fine"}',
    ]
    assert normalize(content) == SummaryRecord(2, "Strong user rights", "Fine")


def test_wrapped_string_is_unwrapped() -> None:
    assert normalize({"content": record_json(6)}).privacy_score == 6
    assert normalize({"text": "```\n" + record_json(1) + "\n```"}).privacy_score == 1


def test_missing_score_recovered_from_nested_summary() -> None:
    record = normalize({"score_explanation": "Nested", "summary": record_json(8, "Inner", "s")})
    assert record.privacy_score == 8
    assert record.score_explanation == "Nested"


def test_partial_object_without_score_is_neutral() -> None:
    record = normalize({"summary": "Only a summary"})
    assert record == SummaryRecord(5, NEUTRAL_EXPLANATION, "Only a summary")


def test_list_summary_is_joined() -> None:
    record = normalize({"privacy_score": 4, "score_explanation": "x", "summary": ["- a", "- b"]})
    assert record.summary == "- a\n- b"


def test_unstructured_fallback() -> None:
    raw = (
        "Privacy score: 9/10\n"
        "Excessive tracking because of broad third-party sharing.\n\n"
        "Summary:\nThey collect everything."
    )
    record = normalize(raw)
    assert record.privacy_score == 9
    assert "because of broad third-party sharing" in record.score_explanation
    assert not record.score_explanation.endswith(".")
    assert record.summary == "They collect everything."


def test_unstructured_spanish_with_inline_explanation() -> None:
    raw = "Puntuación de privacidad: 12 - Recopilación excesiva de datos\n## Resumen\nRecogen todo.\nDerechos: ninguno"
    parsed = extract_unstructured(raw)
    assert parsed["privacy_score"] == 10
    assert parsed["score_explanation"] == "Recopilación excesiva de datos"
    assert parsed["summary"] == "Recogen todo."


def test_unstructured_without_heading_drops_score_line() -> None:
    parsed = extract_unstructured("Score: 3\nMostly fine policy.\nNo selling of data.")
    assert parsed["privacy_score"] == 3
    assert parsed["summary"] == "Mostly fine policy.\nNo selling of data."
    assert parsed["score_explanation"] == DETECTED_EXPLANATION


def test_text_without_score_gets_neutral_record() -> None:
    record = normalize("no usable content at all ???")
    assert record.privacy_score == 5
    assert record.score_explanation == NEUTRAL_EXPLANATION
    assert record.summary == "no usable content at all ???"


@pytest.mark.parametrize("raw", [None, "", "   \n", [], {}, 42, {"unrelated": True}])
def test_empty_or_unsupported_reply_raises(raw: object) -> None:
    with pytest.raises(MalformedResponseError):
        normalize(raw)


def test_non_numeric_score_raises() -> None:
    with pytest.raises(MalformedResponseError):
        normalize({"privacy_score": "very high", "score_explanation": "x", "summary": "y"})


def test_uncoercible_summary_raises() -> None:
    with pytest.raises(MalformedResponseError):
        normalize({"privacy_score": 3, "score_explanation": "x", "summary": {"nested": "dict"}})


def test_completion_reads_first_choice() -> None:
    record = normalize_completion(completion(record_json(2, "Good practices", "ok")))
    assert record == SummaryRecord(2, "Good practices", "ok")


def test_completion_falls_back_to_reasoning_content() -> None:
    payload = completion("I could not format this.", reasoning_content=record_json(7))
    assert normalize_completion(payload).privacy_score == 7


def test_completion_uses_text_fallback_on_primary_content() -> None:
    payload = completion("Score: 4/10\nSummary:\nAverage policy.")
    record = normalize_completion(payload)
    assert record.privacy_score == 4
    assert record.summary == "Average policy."


def test_completion_empty_content_uses_alternate_text() -> None:
    payload = completion(None, reasoning_content="Privacy score: 6\nSummary:\nMixed.")
    record = normalize_completion(payload)
    assert record.privacy_score == 6
    assert record.summary == "Mixed."


@pytest.mark.parametrize("payload", [{}, {"choices": []}, {"choices": [{"no": "message"}]}, "x"])
def test_completion_without_message_raises(payload: object) -> None:
    with pytest.raises(MalformedResponseError):
        normalize_completion(payload)


def test_completion_with_empty_content_raises() -> None:
    with pytest.raises(MalformedResponseError):
        normalize_completion(completion(""))


def test_huge_integer_score_is_clamped() -> None:
    raw = '{"privacy_score": ' + "9" * 400 + ', "score_explanation": "x", "summary": "y"}'
    assert normalize(raw) == SummaryRecord(10, "x", "y")
