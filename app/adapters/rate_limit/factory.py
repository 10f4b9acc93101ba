"""Factory for the configured rate limit store."""

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.adapters.rate_limit.redis_store import RedisRateLimitStore
from app.core.config import RateLimitSettings, settings
from app.core.errors import ValidationAppError


def create_rate_limit_store(
    rate_limit_settings: RateLimitSettings | None = None,
) -> AbstractRateLimitStore:
    """Instantiate the rate limit store selected by RATE_LIMIT_BACKEND.

    Args:
        rate_limit_settings: Optional settings overriding the global ones.

    Returns:
        AbstractRateLimitStore: In-memory or Redis store.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryRateLimitStore()

    if backend == "redis":
        return RedisRateLimitStore.from_url(
            cfg.redis_url,
            max_attempts=cfg.transaction_max_attempts,
        )

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: memory, redis",
    )
