"""Shared fixtures: an in-memory cache and a scripted provider transport."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping

import pytest

from policy_tldr.services.llm.client import TransportResponse
from policy_tldr.services.llm.request_builder import ProviderConfig, provider_config_for
from policy_tldr.services.policy.cache import MemoryCacheStore, ResultCache
from policy_tldr.services.policy.summarizer import PolicySummarizer

POLICY_HTML = (
    "<html><head><title>Privacy</title><style>p { color: red; }</style></head>"
    "<body><h1>Privacy Policy</h1>"
    "<p>We collect your email address, device identifiers and approximate location.</p>"
    "<p>We share usage data with advertising partners and analytics providers.</p>"
    "<p>You may request deletion of your data at any time by contacting support.</p>"
    "<script>window.tracking = true;</script></body></html>"
)


def completion(content: Any, **message_fields: Any) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content, **message_fields}}]}


def record_json(score: Any = 3, explanation: str = "Minimal tracking", summary: str = "# OK") -> str:
    return json.dumps(
        {"privacy_score": score, "score_explanation": explanation, "summary": summary}
    )


class FakeTransport:
    """Records calls and replays queued responses."""

    def __init__(self) -> None:
        self.posts: list[dict[str, Any]] = []
        self.fetches: list[str] = []
        self.replies: list[TransportResponse] = []
        self.pages: dict[str, TransportResponse] = {}
        self.delay_s = 0.0
        self.cancelled = False
        self.closed = False

    def reply_with(self, payload: Any, status: int = 200) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.replies.append(TransportResponse(status=status, text=text))

    async def post(
        self,
        url: str,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
        timeout_s: float | None = None,
    ) -> TransportResponse:
        self.posts.append({"url": url, "headers": dict(headers), "body": dict(body)})
        if self.delay_s:
            try:
                await asyncio.sleep(self.delay_s)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return self.replies.pop(0)

    async def fetch_text(self, url: str, timeout_s: float | None = None) -> TransportResponse:
        self.fetches.append(url)
        return self.pages[url]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def cache() -> ResultCache:
    return ResultCache(MemoryCacheStore())


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> ProviderConfig:
    return provider_config_for("xai", timeout_s=5.0)


@pytest.fixture
def summarizer(cache: ResultCache, transport: FakeTransport) -> PolicySummarizer:
    return PolicySummarizer(
        cache=cache,
        transport=transport,
        api_key_provider=lambda: "test-key",
        rendered_distiller=None,
        min_text_chars=0,
    )
