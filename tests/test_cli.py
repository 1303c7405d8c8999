import json
from pathlib import Path

import pytest

from policy_tldr.cli import parse_args, run
from policy_tldr.services.policy.cache import ResultCache
from policy_tldr.services.policy.models import SummaryRecord
from policy_tldr.services.policy.summarizer import PolicySummarizer

from tests.conftest import POLICY_HTML, FakeTransport, completion, record_json

URL = "https://example.com/privacy"


def test_parse_args_requires_url() -> None:
    with pytest.raises(SystemExit):
        parse_args([])
    assert parse_args(["--clear-cache"]).clear_cache is True


@pytest.mark.asyncio
async def test_run_summarizes_file_and_prints_json(
    tmp_path: Path,
    summarizer: PolicySummarizer,
    transport: FakeTransport,
    capsys: pytest.CaptureFixture[str],
) -> None:
    page = tmp_path / "policy.html"
    page.write_text(POLICY_HTML, encoding="utf-8")
    transport.reply_with(completion(record_json(4, "Some sharing", "## Data")))

    code = await run(parse_args(["--url", URL, "--file", str(page), "--timeout", "3"]), summarizer)

    out = capsys.readouterr()
    assert code == 0
    assert json.loads(out.out) == {
        "privacy_score": 4,
        "score_explanation": "Some sharing",
        "summary": "## Data",
    }
    assert "[summarize] requesting" in out.err


@pytest.mark.asyncio
async def test_run_reports_provider_failure(
    tmp_path: Path,
    summarizer: PolicySummarizer,
    transport: FakeTransport,
    capsys: pytest.CaptureFixture[str],
) -> None:
    page = tmp_path / "policy.html"
    page.write_text(POLICY_HTML, encoding="utf-8")
    transport.reply_with("down", status=503)

    code = await run(parse_args(["--url", URL, "--file", str(page)]), summarizer)

    assert code == 1
    assert "LLM error" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_run_invalidate_and_clear(summarizer: PolicySummarizer, cache: ResultCache) -> None:
    cache.put(URL, SummaryRecord(1, "a", "b"), "h")
    assert await run(parse_args(["--url", URL, "--invalidate"]), summarizer) == 0
    assert cache.get(URL) is None

    cache.put(URL, SummaryRecord(1, "a", "b"), "h")
    assert await run(parse_args(["--clear-cache"]), summarizer) == 0
    assert cache.get(URL) is None
