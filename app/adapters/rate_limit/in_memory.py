"""In-memory rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Transactions on the same key are serialised by a per-key asyncio.Lock,
  so concurrent requests from one caller cannot both claim the last slot.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Iterable

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    RateLimitRecord,
    TransactionUpdate,
)


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Rate limit store keeping records in a process-local dict.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits. Use the Redis store for shared limits.
    """

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, key: str) -> RateLimitRecord | None:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def run_transaction(self, key: str, update: TransactionUpdate) -> RateLimitRecord:
        async with self._lock_for(key):
            # get() hands update() a copy so a raising update leaves no partial write
            current = await self.get(key)
            new_record = update(current)
            self._records[key] = copy.deepcopy(new_record)
            return new_record

    async def find_stale(self, before_ms: int, limit: int) -> list[str]:
        stale = sorted(
            (record.last_cleanup_at, key)
            for key, record in self._records.items()
            if record.last_cleanup_at < before_ms
        )
        return [key for _, key in stale[:limit]]

    async def delete_many(self, keys: Iterable[str], *, before_ms: int | None = None) -> int:
        deleted = 0
        for key in keys:
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                # a transaction is in flight; the record is active, not stale
                continue
            record = self._records.get(key)
            if before_ms is not None and record is not None:
                if record.last_cleanup_at >= before_ms:
                    continue
            if self._records.pop(key, None) is not None:
                deleted += 1
            self._locks.pop(key, None)
        return deleted

    def __len__(self) -> int:
        return len(self._records)
