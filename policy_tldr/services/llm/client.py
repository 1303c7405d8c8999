"""HTTP transport for summarization providers and the error taxonomy around it."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

DEFAULT_USER_AGENT = "policy-tldr/0.1 (+summaries)"
DEFAULT_TIMEOUT = 30.0


class LLMError(Exception):
    """Raised when a policy summary cannot be produced."""


class MissingCredentialError(LLMError):
    """Raised before any provider I/O when no API key is configured."""


class ProviderError(LLMError):
    """Raised on a non-success status or a network failure."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ProviderTimeoutError(ProviderError):
    """Raised when the provider call exceeds its time budget."""


class MalformedResponseError(LLMError):
    """Raised when no usable summary can be recovered from a provider reply."""


@dataclass(frozen=True)
class TransportResponse:
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text)


class Transport(Protocol):
    async def post(
        self,
        url: str,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
        timeout_s: float | None = None,
    ) -> TransportResponse: ...

    async def fetch_text(self, url: str, timeout_s: float | None = None) -> TransportResponse: ...

    async def aclose(self) -> None: ...


def raise_for_status(response: TransportResponse, what: str) -> None:
    """Turn a non-2xx response into a ProviderError carrying the status."""
    if not response.ok:
        detail = response.text[:500]
        raise ProviderError(f"{what} returned {response.status}: {detail}", status=response.status)


class HttpxTransport:
    """Transport backed by a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_s: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout_s, follow_redirects=True)
        self.user_agent = user_agent
        self.timeout_s = timeout_s

    async def post(
        self,
        url: str,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
        timeout_s: float | None = None,
    ) -> TransportResponse:
        try:
            response = await self._client.post(
                url, json=dict(body), headers=dict(headers), timeout=timeout_s or self.timeout_s
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"Provider request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise ProviderError(f"Provider connection error: {exc}") from exc
        return TransportResponse(status=response.status_code, text=response.text)

    async def fetch_text(self, url: str, timeout_s: float | None = None) -> TransportResponse:
        try:
            response = await self._client.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=timeout_s or self.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"Timed out fetching {url}: {exc}") from exc
        except httpx.RequestError as exc:
            raise ProviderError(f"Could not fetch {url}: {exc}") from exc
        return TransportResponse(status=response.status_code, text=response.text)

    async def aclose(self) -> None:
        await self._client.aclose()
