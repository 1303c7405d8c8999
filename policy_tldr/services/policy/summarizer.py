"""Policy summarization: distill, fingerprint, reuse or regenerate, cache."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable
from urllib.parse import urlsplit

from policy_tldr.config import Settings
from policy_tldr.services.llm.client import (
    HttpxTransport,
    MalformedResponseError,
    MissingCredentialError,
    ProviderTimeoutError,
    Transport,
    raise_for_status,
)
from policy_tldr.services.llm.normalizer import normalize_completion
from policy_tldr.services.llm.request_builder import ProviderConfig, ProviderRequest, build_request
from policy_tldr.services.policy.cache import JsonFileCacheStore, ResultCache
from policy_tldr.services.policy.distiller import MIN_DISTILLED_CHARS, distill, distill_rendered
from policy_tldr.services.policy.fingerprint import fingerprint
from policy_tldr.services.policy.models import CacheEntry, SummaryRecord

logger = logging.getLogger(__name__)

FETCHING = "fetching"
FETCHED = "fetched"
REQUESTING = "requesting"

ProgressCallback = Callable[[str], None]
RenderedDistiller = Callable[[str], Awaitable[str]]


def domain_of(url: str) -> str | None:
    try:
        return urlsplit(url).hostname or None
    except ValueError:
        return None


class PolicySummarizer:
    """Summarizes policy documents, reusing cached results while the text is unchanged.

    Instances hold no per-document state besides the cache, so one summarizer
    can serve concurrent requests for different documents.
    """

    def __init__(
        self,
        cache: ResultCache,
        transport: Transport,
        api_key_provider: Callable[[], str],
        rendered_distiller: RenderedDistiller | None = distill_rendered,
        min_text_chars: int = MIN_DISTILLED_CHARS,
    ) -> None:
        self.cache = cache
        self.transport = transport
        self._api_key_provider = api_key_provider
        self._rendered_distiller = rendered_distiller
        self.min_text_chars = min_text_chars

    async def summarize(
        self,
        document_key: str,
        source_text: str,
        language: str,
        config: ProviderConfig,
        *,
        source_domain: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SummaryRecord:
        """Return the summary for a document, calling the provider only when its text changed."""
        text = await self._distill(document_key, source_text)
        digest = fingerprint(text)

        cached = await asyncio.to_thread(self.cache.get, document_key)
        if cached is not None and self.cache.is_valid(cached, digest):
            logger.info("Cache hit for %s", document_key)
            return cached.result
        if cached is not None:
            logger.info("Policy text changed for %s; discarding cached summary", document_key)
            await asyncio.to_thread(self.cache.remove, document_key)

        api_key = (self._api_key_provider() or "").strip()
        if not api_key:
            raise MissingCredentialError("API key not set")

        self._notify(on_progress, REQUESTING)
        request = build_request(
            config,
            text,
            language,
            source_domain or domain_of(document_key),
            api_key=api_key,
        )
        payload = await self._call_provider(request, config.timeout_s)
        record = normalize_completion(payload)
        await asyncio.to_thread(self.cache.put, document_key, record, digest)
        logger.info("Stored summary for %s (score %d)", document_key, record.privacy_score)
        return record

    async def summarize_url(
        self,
        url: str,
        language: str,
        config: ProviderConfig,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> SummaryRecord:
        """Download a policy page and summarize it."""
        self._notify(on_progress, FETCHING)
        response = await self.transport.fetch_text(url)
        raise_for_status(response, f"Fetching {url}")
        self._notify(on_progress, FETCHED)
        return await self.summarize(url, response.text, language, config, on_progress=on_progress)

    def get_cached(self, document_key: str) -> CacheEntry | None:
        return self.cache.get(document_key)

    def invalidate(self, document_key: str) -> bool:
        return self.cache.remove(document_key)

    def clear_all(self) -> None:
        self.cache.clear()

    async def _distill(self, document_key: str, source_text: str) -> str:
        text = await asyncio.to_thread(distill, source_text)
        if len(text) >= self.min_text_chars or self._rendered_distiller is None:
            return text
        logger.info(
            "Distilled text for %s is %d chars; rendering page instead", document_key, len(text)
        )
        rendered = await self._rendered_distiller(document_key)
        return rendered or text

    async def _call_provider(self, request: ProviderRequest, timeout_s: float) -> Any:
        try:
            response = await asyncio.wait_for(
                self.transport.post(request.url, request.headers, request.body, timeout_s=timeout_s),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(f"Request timed out after {timeout_s:g}s") from exc
        raise_for_status(response, "Provider")
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Provider returned invalid JSON: {exc}") from exc

    @staticmethod
    def _notify(callback: ProgressCallback | None, step: str) -> None:
        if callback is None:
            return
        try:
            callback(step)
        except Exception:  # noqa: BLE001 - progress is advisory
            logger.warning("Progress observer failed on %s", step, exc_info=True)


def build_summarizer(
    settings: Settings,
    transport: Transport | None = None,
    cache: ResultCache | None = None,
) -> PolicySummarizer:
    """Wire a summarizer from settings; tests pass their own transport and cache."""
    return PolicySummarizer(
        cache=cache or ResultCache(JsonFileCacheStore(settings.summary_cache_path)),
        transport=transport
        or HttpxTransport(
            user_agent=settings.fetch_user_agent, timeout_s=settings.llm_timeout_seconds
        ),
        api_key_provider=lambda: settings.llm_api_key,
        rendered_distiller=partial(
            distill_rendered,
            load_timeout_s=settings.render_load_timeout_seconds,
            settle_delay_s=settings.render_settle_seconds,
        ),
        min_text_chars=settings.min_distilled_chars,
    )
