"""Read-through cache for progress summaries.

GET /v1/progress/summary checks the cache first; on a miss it queries the
repos and stores the serialized result with a TTL.  Anything that changes
an enrollment's summaries (a tracked event, a graded attempt, a drop, a
rebuild) deletes every key under ``progress:{enrollment_id}:``.

The TTL bounds staleness if an invalidation is ever missed; explicit
invalidation keeps the common case fresh.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from uuid import UUID

from redis.exceptions import RedisError

from app.core.metrics import CACHE_OPERATIONS
from app.db.redis import redis_pool

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Returns None on a miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a glob such as 'progress:<id>:*'."""
        ...


class InMemoryCacheService:
    """Process-local cache for dev and tests; TTL is not enforced.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def clear(self) -> None:
        self._store.clear()

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]


class RedisCacheService:
    """Redis-backed cache shared by every API instance."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN, not KEYS: KEYS blocks the server for the whole keyspace.
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{pattern}", count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


def summary_cache_key(enrollment_id: UUID, lesson_id: UUID | None) -> str:
    return f"progress:{enrollment_id}:{lesson_id or 'all'}"


# The helpers below fail open: a Redis error is logged and counted, and the
# caller carries on as if the key were absent.


async def cached_summary(key: str) -> str | None:
    try:
        value = await cache_service.get(key)
    except RedisError:
        logger.warning("Cache read failed key=%s", key, exc_info=True)
        CACHE_OPERATIONS.labels(operation="error").inc()
        return None
    CACHE_OPERATIONS.labels(operation="hit" if value is not None else "miss").inc()
    return value


async def store_summary(key: str, value: str, ttl_seconds: int) -> None:
    try:
        await cache_service.set(key, value, ttl_seconds)
    except RedisError:
        logger.warning("Cache write failed key=%s", key, exc_info=True)
        CACHE_OPERATIONS.labels(operation="error").inc()
        return
    CACHE_OPERATIONS.labels(operation="set").inc()


async def invalidate_progress(enrollment_id: UUID) -> None:
    try:
        await cache_service.delete_pattern(f"progress:{enrollment_id}:*")
    except RedisError:
        # Stale until the TTL runs out.
        logger.warning(
            "Cache invalidation failed enrollment=%s", enrollment_id, exc_info=True
        )
        CACHE_OPERATIONS.labels(operation="error").inc()
        return
    CACHE_OPERATIONS.labels(operation="invalidate").inc()
    logger.debug("Invalidated cached progress for enrollment=%s", enrollment_id)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
