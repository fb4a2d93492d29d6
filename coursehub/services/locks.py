"""Per-enrollment mutual exclusion.

Every mutation of an enrollment record, and the certificate trigger that
may follow it, runs inside ``keyed_lock.hold(enrollment_lock_key(...))``.
The optimistic version check in the repositories stays on underneath; the
lock removes the contention, the version check catches whatever slips
past it (an expired Redis lease, a second deployment without Redis).

The locks are NOT reentrant.  Code already inside hold() for a key must
not call anything that acquires the same key again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol, runtime_checkable

from redis.exceptions import LockError

from coursehub.core.config import SETTINGS
from coursehub.core.errors import ConflictError
from coursehub.db.redis import redis_pool

logger = logging.getLogger(__name__)


def enrollment_lock_key(student_id: str, course_id: str) -> str:
    return f"enrollment:{student_id}:{course_id}"


@runtime_checkable
class KeyedLock(Protocol):
    def hold(self, key: str) -> AsyncIterator[None]: ...


class InMemoryKeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self, timeout_seconds: float) -> None:
        self._timeout = timeout_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            try:
                async with asyncio.timeout(self._timeout):
                    await lock.acquire()
            except TimeoutError:
                logger.warning("Lock wait timed out: key=%s", key)
                raise ConflictError("enrollment is busy") from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def held_keys(self) -> list[str]:
        return [k for k, lock in self._locks.items() if lock.locked()]

    def clear(self) -> None:
        self._locks.clear()
        self._refs.clear()


class RedisKeyedLock:
    """Distributed lock with a lease so a crashed holder cannot wedge a key."""

    _PREFIX = "lock:"

    def __init__(
        self, redis_client, timeout_seconds: float, lease_seconds: float = 30.0
    ) -> None:
        self._redis = redis_client
        self._timeout = timeout_seconds
        self._lease = lease_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            f"{self._PREFIX}{key}",
            timeout=self._lease,
            blocking_timeout=self._timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning("Lock wait timed out: key=%s", key)
            raise ConflictError("enrollment is busy")
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease ran out while we held it; the version check covers us
                logger.warning("Lock lease expired before release: key=%s", key)


if redis_pool is not None:
    keyed_lock: KeyedLock = RedisKeyedLock(redis_pool, SETTINGS.lock_timeout_seconds)
else:
    keyed_lock = InMemoryKeyedLock(SETTINGS.lock_timeout_seconds)
