"""Routes for policy summaries and their cache."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from policy_tldr.config import Settings
from policy_tldr.services.llm.client import (
    LLMError,
    MissingCredentialError,
    ProviderTimeoutError,
)
from policy_tldr.services.policy.models import SummaryRecord
from policy_tldr.services.policy.summarizer import PolicySummarizer

MAX_TEXT_LEN = 2_000_000

router = APIRouter(prefix="/summaries", tags=["summaries"])


class SummaryRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Policy document URL; also the cache key")
    text: str | None = Field(
        default=None, max_length=MAX_TEXT_LEN, description="Page markup; fetched from url if omitted"
    )
    language: str | None = Field(default=None, description="Summary language override")


class SummaryResponse(BaseModel):
    privacy_score: int = Field(..., ge=0, le=10)
    score_explanation: str
    summary: str

    @classmethod
    def from_record(cls, record: SummaryRecord) -> "SummaryResponse":
        return cls(**record.to_dict())


class CachedSummaryResponse(BaseModel):
    url: str
    summary: SummaryResponse
    hash: str
    date: int


def get_summarizer(request: Request) -> PolicySummarizer:
    return request.app.state.summarizer


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _http_error(exc: LLMError) -> HTTPException:
    if isinstance(exc, MissingCredentialError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="API key not configured")
    if isinstance(exc, ProviderTimeoutError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.post("", response_model=SummaryResponse, status_code=status.HTTP_200_OK)
async def summarize(
    payload: SummaryRequest,
    summarizer: Annotated[PolicySummarizer, Depends(get_summarizer)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> SummaryResponse:
    """Summarize a policy, reusing the cached result when its text is unchanged."""
    language = payload.language or settings.summary_language
    config = settings.provider_config()
    try:
        if payload.text is not None:
            record = await summarizer.summarize(payload.url, payload.text, language, config)
        else:
            record = await summarizer.summarize_url(payload.url, language, config)
    except LLMError as exc:
        raise _http_error(exc) from exc
    return SummaryResponse.from_record(record)


@router.get("", response_model=CachedSummaryResponse)
def get_cached(
    url: Annotated[str, Query(min_length=1)],
    summarizer: Annotated[PolicySummarizer, Depends(get_summarizer)],
) -> CachedSummaryResponse:
    entry = summarizer.get_cached(url)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No cached summary")
    return CachedSummaryResponse(
        url=entry.document_key,
        summary=SummaryResponse.from_record(entry.result),
        hash=entry.fingerprint,
        date=entry.created_at,
    )


@router.delete("")
def invalidate(
    url: Annotated[str, Query(min_length=1)],
    summarizer: Annotated[PolicySummarizer, Depends(get_summarizer)],
) -> dict[str, bool]:
    return {"removed": summarizer.invalidate(url)}


@router.delete("/all")
def clear_all(
    summarizer: Annotated[PolicySummarizer, Depends(get_summarizer)],
) -> dict[str, bool]:
    summarizer.clear_all()
    return {"cleared": True}
