"""Redis-backed rate limit store shared by every API instance.

Records are stored as JSON strings under ``rate_limits:{key}``. A sorted set
``rate_limits:last_cleanup`` scores each key by its last_cleanup_at so the
janitor can range-query stale records.

Transactions use optimistic locking: WATCH the record, read it, compute the
new value, then MULTI/EXEC. A concurrent write to the same record aborts EXEC
with WatchError and the whole read-modify-write is retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    RateLimitRecord,
    TransactionUpdate,
)
from app.core.errors import RateLimitStoreError

logger = logging.getLogger(__name__)


class RedisRateLimitStore(AbstractRateLimitStore):
    """Rate limit store using Redis WATCH/MULTI/EXEC transactions."""

    RECORD_KEY_PREFIX = "rate_limits"
    INDEX_KEY = "rate_limits:last_cleanup"

    def __init__(self, redis_client: Any, *, max_attempts: int = 5) -> None:
        """Initialize the store.

        Args:
            redis_client: redis.asyncio client created with decode_responses=True.
            max_attempts: Attempts for a transaction that keeps losing the
                optimistic race before giving up.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._redis = redis_client
        self._max_attempts = max_attempts

    @classmethod
    def from_url(cls, redis_url: str, *, max_attempts: int = 5) -> RedisRateLimitStore:
        client = aioredis.from_url(redis_url, decode_responses=True)
        return cls(client, max_attempts=max_attempts)

    def _record_key(self, key: str) -> str:
        return f"{self.RECORD_KEY_PREFIX}:{key}"

    @staticmethod
    def _decode(raw: str | bytes | None) -> RateLimitRecord | None:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return RateLimitRecord.from_dict(json.loads(raw))

    async def get(self, key: str) -> RateLimitRecord | None:
        try:
            raw = await self._redis.get(self._record_key(key))
        except RedisError as exc:
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message=f"Redis read failed: {exc}",
            ) from exc
        return self._decode(raw)

    async def run_transaction(self, key: str, update: TransactionUpdate) -> RateLimitRecord:
        record_key = self._record_key(key)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, self._max_attempts + 1):
                    try:
                        await pipe.watch(record_key)
                        current = self._decode(await pipe.get(record_key))
                        new_record = update(current)
                        pipe.multi()
                        pipe.set(record_key, json.dumps(new_record.to_dict()))
                        pipe.zadd(self.INDEX_KEY, {key: new_record.last_cleanup_at})
                        await pipe.execute()
                        return new_record
                    except WatchError:
                        logger.debug(
                            "rate_limit_store.contention",
                            extra={"attempt": attempt, "max_attempts": self._max_attempts},
                        )
                        continue
        except RedisError as exc:
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message=f"Redis transaction failed: {exc}",
            ) from exc

        raise RateLimitStoreError(
            code="rate_limit_store_contention",
            message=f"Transaction aborted by concurrent writes {self._max_attempts} times",
        )

    async def find_stale(self, before_ms: int, limit: int) -> list[str]:
        try:
            keys = await self._redis.zrangebyscore(
                self.INDEX_KEY, "-inf", f"({before_ms}", start=0, num=limit
            )
        except RedisError as exc:
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message=f"Redis range query failed: {exc}",
            ) from exc
        return [k.decode("utf-8") if isinstance(k, bytes) else k for k in keys]

    async def delete_many(self, keys: Iterable[str], *, before_ms: int | None = None) -> int:
        keys = list(keys)
        if not keys:
            return 0
        if before_ms is not None:
            return await self._delete_if_stale(keys, before_ms)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(*[self._record_key(k) for k in keys])
                pipe.zrem(self.INDEX_KEY, *keys)
                deleted, _ = await pipe.execute()
        except RedisError as exc:
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message=f"Redis batch delete failed: {exc}",
            ) from exc
        return int(deleted)

    async def _delete_if_stale(self, keys: list[str], before_ms: int) -> int:
        """Delete each record only if it is still stale, one WATCHed transaction per key.

        A request admitted between the range query and this delete rewrites
        the record: either the re-read shows a fresh last_cleanup_at, or the
        write lands after WATCH and EXEC aborts. Both leave the record alone.
        """
        deleted = 0
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for key in keys:
                    record_key = self._record_key(key)
                    try:
                        await pipe.watch(record_key)
                        record = self._decode(await pipe.get(record_key))
                        if record is not None and record.last_cleanup_at >= before_ms:
                            await pipe.reset()
                            continue
                        pipe.multi()
                        pipe.delete(record_key)
                        pipe.zrem(self.INDEX_KEY, key)
                        removed, _ = await pipe.execute()
                        deleted += int(removed)
                    except WatchError:
                        logger.debug("rate_limit_store.delete_skipped_active", extra={"key": key})
        except RedisError as exc:
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message=f"Redis batch delete failed: {exc}",
            ) from exc
        return deleted

    async def close(self) -> None:
        await self._redis.aclose()
