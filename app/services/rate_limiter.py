"""Sliding-window rate limiter over a transactional record store.

For every check the caller's record is read, timestamps that left the window
are pruned, the remaining count is compared against the quota and, when a
slot is free, the current instant is appended and the record written back.
All of it happens inside one store transaction keyed by the bucket key, so
two concurrent requests can never both take the last free slot.

Rejected requests do not touch the record. Store failures fail open: the
request is admitted and the failure logged.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitRecord
from app.core.errors import QuotaExceededError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def epoch_ms() -> int:
    """Current UNIX time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota for one rate limited endpoint.

    Attributes:
        max_requests: Requests admitted per window.
        window_ms: Window length in milliseconds.
    """

    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of an admitted check.

    Attributes:
        limit: Max requests per window.
        remaining: Slots left in the window after this request.
        fail_open: True when the store failed and the request was let through
            without being counted.
    """

    limit: int
    remaining: int
    fail_open: bool = False


class SlidingWindowRateLimiter:
    """Per-caller sliding-window limiter.

    Attributes:
        config: Quota applied to every caller.
        bucket: Optional namespace prepended to the caller id, so endpoints
            with different quotas keep separate records.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        config: RateLimitConfig,
        *,
        bucket: str | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._store = store
        self.config = config
        self.bucket = bucket
        self._clock = clock

    def key_for(self, caller_id: str) -> str:
        """Return the store key for a caller."""
        if self.bucket:
            return f"{self.bucket}:{caller_id}"
        return caller_id

    def _quota_exceeded(self, timestamps: list[int], now: int) -> QuotaExceededError:
        # concurrent admits can append out of order
        retry_after_ms = max(0, min(timestamps) + self.config.window_ms - now)
        window_s = self.config.window_ms / 1000
        return QuotaExceededError(
            code="rate_limit_exceeded",
            message=(
                f"Limit of {self.config.max_requests} requests per {window_s:g} seconds "
                "exceeded. Please wait a moment before trying again."
            ),
            details={
                "limit": self.config.max_requests,
                "window_ms": self.config.window_ms,
                "retry_after": math.ceil(retry_after_ms / 1000),
            },
        )

    async def check(self, caller_id: str) -> RateLimitResult:
        """Admit the caller or raise when its quota is used up.

        Args:
            caller_id: Authenticated caller identity.

        Returns:
            RateLimitResult describing the admitted request.

        Raises:
            ValueError: If caller_id is empty.
            QuotaExceededError: When the caller already has max_requests
                requests inside the window. The stored record is unchanged.
        """
        if not caller_id:
            raise ValueError("caller_id must be a non-empty string")

        key = self.key_for(caller_id)
        now = self._clock()
        window_start = now - self.config.window_ms

        def admit(record: RateLimitRecord | None) -> RateLimitRecord:
            previous = record.request_timestamps if record is not None else []
            timestamps = [ts for ts in previous if ts > window_start]
            if len(timestamps) >= self.config.max_requests:
                raise self._quota_exceeded(timestamps, now)
            timestamps.append(now)
            return RateLimitRecord(
                caller_id=key,
                request_timestamps=timestamps,
                last_cleanup_at=now,
            )

        try:
            record = await self._store.run_transaction(key, admit)
        except QuotaExceededError as exc:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "caller_hash": hash_identifier(key),
                    "bucket": self.bucket,
                    "limit": self.config.max_requests,
                    "window_ms": self.config.window_ms,
                    "retry_after_s": (exc.details or {}).get("retry_after"),
                },
            )
            raise
        except Exception as exc:
            logger.error(
                "rate_limit.fail_open",
                extra={
                    "caller_hash": hash_identifier(key),
                    "bucket": self.bucket,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return RateLimitResult(
                limit=self.config.max_requests,
                remaining=self.config.max_requests,
                fail_open=True,
            )

        remaining = max(0, self.config.max_requests - len(record.request_timestamps))
        logger.info(
            "rate_limit.allowed",
            extra={
                "caller_hash": hash_identifier(key),
                "bucket": self.bucket,
                "limit": self.config.max_requests,
                "remaining": remaining,
                "window_ms": self.config.window_ms,
            },
        )
        return RateLimitResult(limit=self.config.max_requests, remaining=remaining)
