"""Periodic cleanup of rate limit records nobody has touched in a while."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.services.rate_limiter import epoch_ms

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class RateLimitJanitor:
    """Deletes records whose last write is older than ``stale_after_ms``.

    The request path never deletes records; this sweep is the only way a
    record goes away.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        stale_after_ms: int = DAY_MS,
        batch_size: int = 100,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        if stale_after_ms < 1:
            raise ValueError("stale_after_ms must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._stale_after_ms = stale_after_ms
        self._batch_size = batch_size
        self._clock = clock

    async def sweep(self) -> int:
        """Delete one batch of stale records.

        Returns:
            int: Number of records deleted.
        """
        cutoff = self._clock() - self._stale_after_ms
        stale_keys = await self._store.find_stale(cutoff, self._batch_size)
        deleted = (
            await self._store.delete_many(stale_keys, before_ms=cutoff) if stale_keys else 0
        )
        logger.info(
            "janitor.sweep",
            extra={
                "found": len(stale_keys),
                "deleted": deleted,
                "cutoff_ms": cutoff,
            },
        )
        return deleted

    async def run_forever(self, interval_seconds: float) -> None:
        """Sweep every ``interval_seconds`` until cancelled.

        A failed sweep is logged and retried on the next tick.
        """
        while True:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(
                    "janitor.sweep_failed",
                    extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                )
            await asyncio.sleep(interval_seconds)
