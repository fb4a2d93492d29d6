"""Read-through cache for progress snapshots.

Readers ask the cache first and fall back to the enrollment repository on
a miss, then populate the entry with ``set_if_absent``.  Writers hold the
enrollment lock and overwrite the entry with the snapshot they just
stored (see store_progress).  A reader that loaded an older record
before a write therefore cannot replace the writer's snapshot; its fill
is a no-op.  Entries also carry a TTL, so a missed write heals on its own.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Protocol, runtime_checkable

from coursehub.db.redis import redis_pool
from coursehub.models.enrollment import EnrollmentRecord, ModuleProgress

PROGRESS_TTL_SECONDS = 300


def progress_cache_key(student_id: str, course_id: str) -> str:
    return f"progress:{student_id}:{course_id}"


def encode_progress(record: EnrollmentRecord) -> str:
    return json.dumps(asdict(record))


def decode_progress(raw: str) -> EnrollmentRecord:
    data = json.loads(raw)
    modules = tuple(
        ModuleProgress(**{**m, "completed_lessons": tuple(m["completed_lessons"])})
        for m in data.pop("module_progress")
    )
    return EnrollmentRecord(module_progress=modules, **data)


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool: ...


class InMemoryCacheService:
    """Process-local cache; TTLs are accepted but not enforced."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        if key in self._store:
            return False
        self._store[key] = value
        return True

    def clear(self) -> None:
        self._store.clear()


class RedisCacheService:
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        stored = await self._redis.set(
            f"{self._PREFIX}{key}", value, ex=ttl_seconds, nx=True
        )
        return bool(stored)


async def store_progress(cache: CacheService, record: EnrollmentRecord) -> None:
    """Overwrite the cached snapshot with a record the caller just wrote."""
    await cache.set(
        progress_cache_key(record.student_id, record.course_id),
        encode_progress(record),
        PROGRESS_TTL_SECONDS,
    )


if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
