"""Health and readiness routes."""

from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Simple liveness probe."""
    return {"status": "ok"}


@router.get("/ready")
def ready(request: Request) -> dict[str, str]:
    """
    Readiness probe.

    Summaries cannot be generated until a provider API key is configured.
    """
    settings = request.app.state.settings
    if not settings.has_api_key:
        raise HTTPException(status_code=503, detail="LLM_API_KEY is not configured")
    return {"status": "ok"}
