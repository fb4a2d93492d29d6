from __future__ import annotations

import asyncio

from coursehub.models.enrollment import EnrollmentRecord
from coursehub.services.events import CompletionReached, EventBus


def _event() -> CompletionReached:
    record = EnrollmentRecord.new(student_id="s1", course_id="c1", module_ids=(), now=0)
    return CompletionReached(student_id="s1", course_id="c1", record=record)


def test_handlers_run_in_subscription_order() -> None:
    bus = EventBus()
    seen: list[str] = []

    async def first(event) -> None:
        seen.append("first")

    async def second(event) -> None:
        seen.append("second")

    bus.subscribe(CompletionReached, first)
    bus.subscribe(CompletionReached, second)
    asyncio.run(bus.publish(_event()))
    assert seen == ["first", "second"]


def test_failing_handler_does_not_stop_the_rest(caplog) -> None:
    bus = EventBus()
    seen: list[str] = []

    async def broken(event) -> None:
        raise RuntimeError("directory down")

    async def healthy(event) -> None:
        seen.append(event.student_id)

    bus.subscribe(CompletionReached, broken)
    bus.subscribe(CompletionReached, healthy)
    asyncio.run(bus.publish(_event()))
    assert seen == ["s1"]
    assert "Event handler failed" in caplog.text


def test_unsubscribe() -> None:
    bus = EventBus()
    seen: list[str] = []

    async def handler(event) -> None:
        seen.append("called")

    bus.subscribe(CompletionReached, handler)
    bus.unsubscribe(CompletionReached, handler)
    bus.unsubscribe(CompletionReached, handler)
    asyncio.run(bus.publish(_event()))
    assert seen == []


def test_other_event_types_are_ignored() -> None:
    bus = EventBus()
    seen: list[object] = []

    async def handler(event) -> None:
        seen.append(event)

    bus.subscribe(CompletionReached, handler)
    asyncio.run(bus.publish(object()))
    assert seen == []
