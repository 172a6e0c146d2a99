"""Read-through cache for per-user progress facts.

The Unlock Resolver asks the same questions on every page render: which
contents has this user completed, which modules. Those answers are
cached per user under ``progress:{user_id}:{generation}:{facet}``.

Three rules keep unlock decisions correct:

  1. TTL (``PROGRESS_CACHE_TTL``) bounds the lifetime of any entry, so a
     missed invalidation heals on its own.
  2. Every engine write bumps the user's generation counter
     (``progress-generation:{user_id}``) right after the unit of work
     commits, then deletes the old entries. A stale "locked" answer after
     the learner finished the previous item is a bug, not an inconvenience.
  3. A reader pins the generation before it loads from the store and
     stores its result under that generation. A load that raced with a
     commit therefore lands under a retired key that nobody reads again.

Write paths never read through the cache; they read inside their own
transaction.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable
from uuid import UUID

from formation.core.metrics import CACHE_OPERATIONS
from formation.db.redis import redis_pool

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def incr(self, key: str) -> int:
        """Add one to an integer counter (created at 0) and return the new value."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a glob pattern (e.g., 'progress:user123:*')."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests, no TTL enforcement.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def incr(self, key: str) -> int:
        value = int(self._store.get(key, "0")) + 1
        self._store[key] = str(value)
        return value

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]


class RedisCacheService:
    """Redis-backed cache, shared across API instances."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def incr(self, key: str) -> int:
        # no TTL: an expired counter would restart at a generation already used
        return await self._redis.incr(f"{self._PREFIX}{key}")

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


# ---------------------------------------------------------------------------
# Progress facets
# ---------------------------------------------------------------------------

COMPLETED_CONTENTS = "completed_contents"
COMPLETED_MODULES = "completed_modules"


def progress_key(user_id: str, facet: str, generation: int) -> str:
    return f"progress:{user_id}:{generation}:{facet}"


def generation_key(user_id: str) -> str:
    return f"progress-generation:{user_id}"


async def current_generation(cache: CacheService, user_id: str) -> int:
    raw = await cache.get(generation_key(user_id))
    return int(raw) if raw is not None else 0


async def cached_id_set(
    cache: CacheService,
    user_id: str,
    facet: str,
    ttl_seconds: int,
    load: Callable[[], Awaitable[set[UUID]]],
) -> set[UUID]:
    """Return a cached set of ids, loading and storing it on a miss.

    The generation is read before ``load`` runs. If a write commits and
    invalidates while the load is in flight, the fill goes to the retired
    generation and the next read loads again.
    """
    key = progress_key(user_id, facet, await current_generation(cache, user_id))
    raw = await cache.get(key)
    if raw is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return {UUID(v) for v in json.loads(raw)}

    CACHE_OPERATIONS.labels(operation="miss").inc()
    ids = await load()
    if ttl_seconds > 0:
        await cache.set(key, json.dumps(sorted(str(i) for i in ids)), ttl_seconds)
    return ids


async def invalidate_user_progress(cache: CacheService, user_id: str) -> None:
    CACHE_OPERATIONS.labels(operation="invalidate").inc()
    generation = await cache.incr(generation_key(user_id))
    await cache.delete_pattern(f"progress:{user_id}:*")
    logger.debug(
        "Progress cache invalidated  user_id=%s generation=%d", user_id, generation
    )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
