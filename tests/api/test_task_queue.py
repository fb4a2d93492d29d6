"""Background task queue and reconciliation worker tests.

Verifies:
1. A failed automatic issuance lands on the reconciliation queue
2. The worker issues the missing certificate once the cause is fixed
3. A failing task is re-enqueued with an incremented attempt
4. A task is dropped after MAX_TASK_ATTEMPTS
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from coursehub.services.task_queue import RECONCILIATION_QUEUE, task_queue
from coursehub.worker import MAX_TASK_ATTEMPTS, process_one
from tests.conftest import auth, seed_course, seed_user


def _complete_without_student_record(client: TestClient):
    """Reach 100% while the student is missing from the user directory."""
    course = seed_course(lessons_per_module=(1,), seed_people=False)
    seed_user("test-instructor", first_name="Ada", last_name="Lovelace", role="instructor")
    client.post(f"/v1/courses/{course.id}/enroll", headers=auth())
    resp = client.patch(
        f"/v1/progress/courses/{course.id}/modules/{course.modules[0].id}"
        "/lessons/m0-l0/complete",
        headers=auth(),
    )
    assert resp.status_code == 200
    assert resp.json()["certificate_generated"] is False
    return course


def test_failed_issuance_is_queued(client: TestClient) -> None:
    course = _complete_without_student_record(client)
    task = asyncio.run(task_queue.dequeue(RECONCILIATION_QUEUE))
    assert task is not None
    assert task.payload == {"student_id": "test-student", "course_id": course.id}


def test_worker_reconciles_after_fix(client: TestClient) -> None:
    course = _complete_without_student_record(client)
    seed_user("test-student", first_name="Grace", last_name="Hopper")

    assert asyncio.run(process_one(RECONCILIATION_QUEUE)) is True

    progress = client.get(f"/v1/progress/courses/{course.id}", headers=auth()).json()
    assert progress["certificate_generated"] is True
    certs = client.get("/v1/certificates/me", headers=auth()).json()
    assert certs["items"][0]["student_name"] == "Grace Hopper"
    assert asyncio.run(task_queue.queue_length(RECONCILIATION_QUEUE)) == 0


def test_failing_task_is_retried(client: TestClient) -> None:
    _complete_without_student_record(client)

    assert asyncio.run(process_one(RECONCILIATION_QUEUE)) is True

    task = asyncio.run(task_queue.dequeue(RECONCILIATION_QUEUE))
    assert task is not None
    assert task.payload["attempt"] == 2


def test_task_dropped_after_max_attempts(client: TestClient) -> None:
    course = _complete_without_student_record(client)
    asyncio.run(task_queue.dequeue(RECONCILIATION_QUEUE))
    asyncio.run(
        task_queue.enqueue(
            RECONCILIATION_QUEUE,
            {
                "student_id": "test-student",
                "course_id": course.id,
                "attempt": MAX_TASK_ATTEMPTS,
            },
        )
    )

    assert asyncio.run(process_one(RECONCILIATION_QUEUE)) is True
    assert asyncio.run(task_queue.queue_length(RECONCILIATION_QUEUE)) == 0


def test_idle_queue() -> None:
    assert asyncio.run(process_one(RECONCILIATION_QUEUE)) is False
