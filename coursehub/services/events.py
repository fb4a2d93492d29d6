"""In-process domain event bus.

The progress service publishes; the certificate service subscribes.
Neither imports the other.

Handlers are awaited one after another in subscription order.  A handler
that raises is logged and skipped: the publisher's own write has already
succeeded and must not be reported as failed because of a side effect.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from coursehub.models.enrollment import EnrollmentRecord

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class CompletionReached:
    """An enrollment's completion percentage is at 100 and it has no certificate.

    Published while the publisher still holds the enrollment lock.
    """

    student_id: str
    course_id: str
    record: EnrollmentRecord


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: object) -> None:
        for handler in list(self._handlers.get(type(event), [])):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed: event=%s handler=%s",
                    type(event).__name__,
                    getattr(handler, "__qualname__", repr(handler)),
                )
