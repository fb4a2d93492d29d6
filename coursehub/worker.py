"""Background worker process.

RUN:  python -m coursehub.worker

Same image as the API, different command:
  api:    uvicorn coursehub.main:app --host 0.0.0.0 --port 8000
  worker: python -m coursehub.worker

The worker drains the ``certificate_reconciliation`` queue.  Tasks land
there when automatic certificate issuance fails after a learner reaches
100%; reconciliation either links a certificate that was written but not
back-linked, or issues the missing one.

A failed task is re-enqueued with an incremented ``attempt`` until
MAX_TASK_ATTEMPTS, then dropped with an error log.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from coursehub.core.config import SETTINGS
from coursehub.core.logging import setup_logging
from coursehub.core.metrics import QUEUE_DEPTH
from coursehub.services.task_queue import RECONCILIATION_QUEUE, task_queue
from coursehub.wiring import certificate_service

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

MAX_TASK_ATTEMPTS = 5

logger = logging.getLogger("coursehub.worker")


HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(RECONCILIATION_QUEUE)
async def handle_reconciliation(payload: dict) -> None:
    student_id = payload["student_id"]
    course_id = payload["course_id"]
    cert = await certificate_service.reconcile(student_id, course_id)
    if cert is None:
        logger.info(
            "Reconciliation found nothing to do: student=%s course=%s",
            student_id,
            course_id,
        )
    else:
        logger.info(
            "Reconciled certificate=%s student=%s course=%s",
            cert.certificate_number,
            student_id,
            course_id,
            extra={"certificate_id": cert.id},
        )


async def process_one(queue_name: str, timeout: int = 1) -> bool:
    """Handle at most one task from ``queue_name``.  Returns False when idle."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    QUEUE_DEPTH.labels(queue_name=queue_name).set(
        await task_queue.queue_length(queue_name)
    )
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
    except Exception:
        attempt = int(task.payload.get("attempt", 1))
        if attempt >= MAX_TASK_ATTEMPTS:
            logger.exception(
                "Task %s on [%s] failed %d times, giving up",
                task.id,
                queue_name,
                attempt,
            )
        else:
            logger.exception(
                "Task %s on [%s] failed (attempt %d), re-enqueueing",
                task.id,
                queue_name,
                attempt,
            )
            await task_queue.enqueue(
                queue_name, {**task.payload, "attempt": attempt + 1}
            )
        return True

    logger.info("Task %s on [%s] completed", task.id, queue_name)
    return True


async def run_worker() -> None:
    queues = list(HANDLERS)
    logger.info("Worker started, listening on queues: %s", queues)
    while True:
        for queue_name in queues:
            await process_one(queue_name)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
