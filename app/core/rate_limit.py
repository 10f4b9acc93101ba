"""Rate limiting dependency for FastAPI routes.

This module wires the sliding-window limiter into the HTTP layer. Each AI
endpoint has its own quota; the store lives on ``app.state`` and is shared
by every limiter.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Callable

from fastapi import Depends, Request

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.core.config import RateLimitSettings, settings
from app.services.rate_limiter import (
    RateLimitConfig,
    RateLimitResult,
    SlidingWindowRateLimiter,
)


class RateLimitedEndpoint(str, Enum):
    TREATMENT = "treatment"
    IMAGE_ANALYSIS = "image_analysis"


def endpoint_config(endpoint: RateLimitedEndpoint, cfg: RateLimitSettings) -> RateLimitConfig:
    """Return the configured quota for an endpoint."""
    if endpoint is RateLimitedEndpoint.TREATMENT:
        return RateLimitConfig(
            max_requests=cfg.treatment_max_requests,
            window_ms=cfg.treatment_window_ms,
        )
    return RateLimitConfig(
        max_requests=cfg.image_analysis_max_requests,
        window_ms=cfg.image_analysis_window_ms,
    )


def build_rate_limiter(
    endpoint: RateLimitedEndpoint,
    store: AbstractRateLimitStore,
    cfg: RateLimitSettings | None = None,
) -> SlidingWindowRateLimiter:
    """Build the limiter for an endpoint.

    With ``shared_bucket`` both endpoints count into the same record per
    caller; otherwise each endpoint keeps its own record.
    """
    cfg = cfg or settings.rate_limit
    return SlidingWindowRateLimiter(
        store,
        endpoint_config(endpoint, cfg),
        bucket=None if cfg.shared_bucket else endpoint.value,
    )


def get_rate_limit_store(request: Request) -> AbstractRateLimitStore:
    return request.app.state.rate_limit_store


class RateLimitGuard:
    """Consumes one slot of an endpoint's quota for a caller.

    Routes call ``admit`` only after the request body and any attached image
    validated, so a rejected request (422, 400) never uses up quota.
    """

    def __init__(
        self,
        endpoint: RateLimitedEndpoint,
        store: AbstractRateLimitStore,
        cfg: RateLimitSettings | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._store = store
        self._cfg = cfg or settings.rate_limit

    async def admit(self, caller_id: str) -> RateLimitResult | None:
        """Count the request against the caller's quota.

        Returns:
            RateLimitResult, or None when rate limiting is disabled.

        Raises:
            QuotaExceededError: When the quota is used up; rendered as 429 by
                the global exception handler.
        """
        if not self._cfg.enabled:
            return None
        limiter = build_rate_limiter(self.endpoint, self._store, self._cfg)
        return await limiter.check(caller_id)


def get_rate_limit_guard(
    endpoint: RateLimitedEndpoint,
) -> Callable[..., RateLimitGuard]:
    """Create a FastAPI dependency returning the endpoint's rate limit guard."""

    def dependency(
        store: Annotated[AbstractRateLimitStore, Depends(get_rate_limit_store)],
    ) -> RateLimitGuard:
        return RateLimitGuard(endpoint, store, settings.rate_limit)

    return dependency
