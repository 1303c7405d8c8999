"""FastAPI entrypoint for the policy summary service."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from policy_tldr.api.routes_health import router as health_router
from policy_tldr.api.routes_summary import router as summary_router
from policy_tldr.config import Settings, get_settings
from policy_tldr.logging_setup import setup_logging
from policy_tldr.services.policy.summarizer import PolicySummarizer, build_summarizer


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    yield
    await application.state.summarizer.transport.aclose()


def create_app(
    settings: Settings | None = None, summarizer: PolicySummarizer | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    application = FastAPI(
        title="Policy TL;DR",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.include_router(health_router)
    application.include_router(summary_router)

    # One summarizer (and cache) per application instance.
    application.state.settings = settings
    application.state.summarizer = summarizer or build_summarizer(settings)
    return application


app = create_app()
