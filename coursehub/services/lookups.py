"""Timeout guard for calls into collaborators (catalog, directory, stores)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from coursehub.core.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(call: Awaitable[T], *, what: str, timeout: float) -> T:
    """Await ``call`` for at most ``timeout`` seconds.

    Timeouts and backend failures become UpstreamError; domain errors
    raised by the collaborator (NotFoundError and friends) pass through.
    """
    try:
        async with asyncio.timeout(timeout):
            return await call
    except TimeoutError:
        logger.warning("Lookup timed out: %s after %.1fs", what, timeout)
        raise UpstreamError(f"{what} timed out") from None
    except (SQLAlchemyError, RedisError, OSError) as exc:
        logger.warning("Lookup failed: %s (%s)", what, type(exc).__name__)
        raise UpstreamError(f"{what} unavailable") from exc
