"""Rate limit store interfaces.

The limiter depends on this abstraction (not the concrete implementation)
so the storage backend can be swapped (in-memory, Redis) without touching
the limiting logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable


@dataclass
class RateLimitRecord:
    """Stored request history for one rate limit key.

    Attributes:
        caller_id: Key the record is stored under (caller id, optionally
            prefixed by endpoint).
        request_timestamps: Admitted request instants in epoch milliseconds,
            in append order (not guaranteed sorted under concurrency).
        last_cleanup_at: Epoch milliseconds of the last write; the janitor
            deletes records whose value is older than the staleness cutoff.
    """

    caller_id: str
    request_timestamps: list[int] = field(default_factory=list)
    last_cleanup_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "caller_id": self.caller_id,
            "request_timestamps": list(self.request_timestamps),
            "last_cleanup_at": self.last_cleanup_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateLimitRecord:
        return cls(
            caller_id=str(data["caller_id"]),
            request_timestamps=[int(ts) for ts in data.get("request_timestamps") or []],
            last_cleanup_at=int(data.get("last_cleanup_at") or 0),
        )


TransactionUpdate = Callable[[RateLimitRecord | None], RateLimitRecord]


class AbstractRateLimitStore(ABC):
    """Transactional document store holding one RateLimitRecord per key."""

    @abstractmethod
    async def get(self, key: str) -> RateLimitRecord | None:
        """Return the record stored under key, or None."""
        raise NotImplementedError

    @abstractmethod
    async def run_transaction(self, key: str, update: TransactionUpdate) -> RateLimitRecord:
        """Atomically read, modify and write the record stored under key.

        ``update`` receives the current record (None when absent) and returns
        the record to persist. It may be invoked more than once when the store
        retries after contention, so it must be free of side effects. If it
        raises, nothing is written and the exception propagates unchanged.

        Args:
            key: Record key.
            update: Pure function computing the new record.

        Returns:
            RateLimitRecord: The record that was written.

        Raises:
            RateLimitStoreError: If the store itself fails or contention
                persists past the configured attempts.
        """
        raise NotImplementedError

    @abstractmethod
    async def find_stale(self, before_ms: int, limit: int) -> list[str]:
        """Return up to ``limit`` keys whose last_cleanup_at is older than before_ms."""
        raise NotImplementedError

    @abstractmethod
    async def delete_many(self, keys: Iterable[str], *, before_ms: int | None = None) -> int:
        """Delete the given keys in one batch and return how many were removed.

        With ``before_ms``, a key is only deleted if its record is still older
        than the cutoff when the delete runs; a record written since the
        range query is active again and survives.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources."""
        return None
