"""Redis connection management.

Redis backs two shared concerns: the progress read cache and the
module-completed task queue. When REDIS_URL is unset, ``redis_pool`` is
None and both fall back to in-process implementations.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from formation.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis: ping on startup, close on shutdown.

    A failed ping is logged and startup continues.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, cache and queue are in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
