"""Application factory for FastAPI app.

Centralizes app construction (metadata, dependencies, middleware, handlers,
routers) so the rate limit store, LLM client and services are created
explicitly and can be replaced in tests.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import create_llm_client
from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.adapters.rate_limit.factory import create_rate_limit_store
from app.api.routes import ai_router, health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.image_analysis_service import ImageAnalysisService
from app.services.rate_limit_janitor import RateLimitJanitor
from app.services.retry_client import RetryClient, RetryPolicy
from app.services.treatment_service import TreatmentSuggestionService

logger = logging.getLogger(__name__)


def build_retry_client() -> RetryClient:
    cfg = settings.retry
    return RetryClient(
        RetryPolicy(
            max_retries=cfg.max_retries,
            base_delay_ms=cfg.base_delay_ms,
            max_delay_ms=cfg.max_delay_ms,
            jitter_ratio=cfg.jitter_ratio,
        )
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the rate limit janitor and close the store on shutdown."""
    cfg = settings.rate_limit
    store: AbstractRateLimitStore = app.state.rate_limit_store
    janitor_task: asyncio.Task | None = None

    if cfg.enabled and cfg.janitor_enabled:
        janitor = RateLimitJanitor(
            store,
            stale_after_ms=cfg.stale_after_ms,
            batch_size=cfg.cleanup_batch_size,
        )
        janitor_task = asyncio.create_task(janitor.run_forever(cfg.janitor_interval_seconds))
        logger.info(
            "janitor.started",
            extra={"interval_s": cfg.janitor_interval_seconds, "backend": cfg.backend},
        )

    try:
        yield
    finally:
        if janitor_task is not None:
            janitor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await janitor_task
        await store.close()


def create_app(
    *,
    llm_client: AbstractLLMClient | None = None,
    rate_limit_store: AbstractRateLimitStore | None = None,
    retry_client: RetryClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        llm_client: LLM client to use instead of the configured provider.
        rate_limit_store: Store to use instead of the configured backend.
        retry_client: Retry client to use instead of the configured policy.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Wound Care AI Gateway",
        description=(
            "AI backend for wound-care records: treatment suggestions from a lesion "
            "assessment and assessment auto-fill from a wound photo. Requires X-API-Key, "
            "enforces per-caller sliding-window quotas and retries transient AI "
            "failures with exponential backoff."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    llm = llm_client if llm_client is not None else create_llm_client()
    retries = retry_client if retry_client is not None else build_retry_client()

    # an empty in-memory store is falsy, so compare with None
    app.state.rate_limit_store = (
        rate_limit_store if rate_limit_store is not None else create_rate_limit_store()
    )
    app.state.treatment_service = TreatmentSuggestionService(llm, retries)
    app.state.image_analysis_service = ImageAnalysisService(llm, retries)

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(ai_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
