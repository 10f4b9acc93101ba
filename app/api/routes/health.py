from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.core.config import settings
from app.core.errors import RateLimitStoreError
from app.core.rate_limit import get_rate_limit_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring systems."""

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    store: Annotated[AbstractRateLimitStore, Depends(get_rate_limit_store)],
) -> JSONResponse:
    """Readiness check: the rate limit store must answer a read.

    The limiter fails open, so an unreachable store does not block traffic;
    it is still reported here so operators notice quotas are not enforced.
    """
    try:
        await store.get("__health__")
    except RateLimitStoreError as exc:
        logger.warning("health.store_unavailable", extra={"error_msg": exc.message})
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "rate_limit_store": "unavailable"},
        )
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "rate_limit_store": settings.rate_limit.backend},
    )
