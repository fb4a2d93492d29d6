"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared client is created
at import time; otherwise ``redis_pool`` is None and every consumer
(keyed lock, cache, task queue, rate limiter) falls back to its in-memory
implementation.

Redis holds only coordination state here: enrollment locks, cached
progress snapshots, reconciliation tasks and rate-limit buckets.  Nothing
in Redis is the source of truth for progress or certificates.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from coursehub.core.config import SETTINGS

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
    """Verify connectivity on startup and close the pool on shutdown.

    A failed ping is logged but does not stop the app from starting.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, using in-memory locks/cache/queue")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
