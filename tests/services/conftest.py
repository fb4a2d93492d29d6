"""A private in-memory service stack per test.

Service tests build their own repositories, lock, bus and queue instead of
using the process-wide singletons in coursehub.wiring, so they can swap in
slow or failing collaborators and a controllable clock.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import pytest

from coursehub.models.course import Course, CourseModule
from coursehub.models.user import User
from coursehub.repos.certificate_repo import InMemoryCertificateRepo
from coursehub.repos.course_catalog import InMemoryCourseCatalog
from coursehub.repos.enrollment_repo import InMemoryEnrollmentRepo
from coursehub.repos.user_directory import InMemoryUserDirectory
from coursehub.services.cache import InMemoryCacheService
from coursehub.services.certificate_service import CertificateService
from coursehub.services.events import CompletionReached, EventBus
from coursehub.services.locks import InMemoryKeyedLock
from coursehub.services.progress_service import ProgressService
from coursehub.services.task_queue import InMemoryTaskQueue

# 2026-03-15T12:00:00Z
START = 1_773_576_000


class FakeClock:
    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@dataclass
class Stack:
    enrollments: InMemoryEnrollmentRepo
    certificates: InMemoryCertificateRepo
    catalog: InMemoryCourseCatalog
    directory: InMemoryUserDirectory
    lock: InMemoryKeyedLock
    bus: EventBus
    cache: InMemoryCacheService
    queue: InMemoryTaskQueue
    clock: FakeClock
    progress: ProgressService
    certificate_service: CertificateService

    def detach_trigger(self) -> None:
        """Stop automatic issuance so tests can reach 100% without a certificate."""
        self.bus.unsubscribe(CompletionReached, self.certificate_service.handle_completion)

    async def seed(
        self,
        lessons_per_module: tuple[int, ...] = (2, 2),
        *,
        student_id: str = "s1",
        instructor_id: str = "i1",
        grading: str = "letter",
        status: str = "published",
    ) -> Course:
        if await self.directory.get(instructor_id) is None:
            await self.directory.add(
                User.new(
                    id=instructor_id,
                    email=f"{instructor_id}@example.com",
                    first_name="Ada",
                    last_name="Lovelace",
                    role="instructor",
                )
            )
        if await self.directory.get(student_id) is None:
            await self.directory.add(
                User.new(
                    id=student_id,
                    email=f"{student_id}@example.com",
                    first_name="Grace",
                    last_name="Hopper",
                )
            )
        modules = tuple(
            CourseModule.new(
                title=f"Module {i}",
                position=i,
                lesson_ids=tuple(f"m{i}-l{j}" for j in range(count)),
            )
            for i, count in enumerate(lessons_per_module)
        )
        course = Course.new(
            slug=f"course-{len(await self.catalog.list_courses())}",
            title="Compilers",
            instructor_id=instructor_id,
            modules=modules,
            duration_hours=45,
            grading=grading,
            skills=("parsing",),
        )
        if status != "published":
            course = replace(course, status=status)
        return await self.catalog.add(course)

    async def complete_all(self, student_id: str, course: Course):
        record = None
        for module in course.modules:
            for lesson_id in module.lesson_ids:
                record = await self.progress.mark_lesson_complete(
                    student_id, course.id, module.id, lesson_id
                )
        return record


def build_stack(
    *,
    enrollments: InMemoryEnrollmentRepo | None = None,
    certificates: InMemoryCertificateRepo | None = None,
    catalog: InMemoryCourseCatalog | None = None,
    directory: InMemoryUserDirectory | None = None,
    lock=None,
    default_final_score: int | None = 85,
    max_write_attempts: int = 3,
    max_identity_attempts: int = 5,
    lookup_timeout: float = 1.0,
) -> Stack:
    enrollments = enrollments or InMemoryEnrollmentRepo()
    certificates = certificates or InMemoryCertificateRepo()
    catalog = catalog or InMemoryCourseCatalog()
    directory = directory or InMemoryUserDirectory()
    lock = lock or InMemoryKeyedLock(timeout_seconds=1.0)
    bus = EventBus()
    cache = InMemoryCacheService()
    queue = InMemoryTaskQueue()
    clock = FakeClock()

    progress = ProgressService(
        enrollments=enrollments,
        catalog=catalog,
        lock=lock,
        bus=bus,
        cache=cache,
        default_final_score=default_final_score,
        max_write_attempts=max_write_attempts,
        lookup_timeout=lookup_timeout,
        clock=clock,
    )
    certificate_service = CertificateService(
        certificates=certificates,
        enrollments=enrollments,
        catalog=catalog,
        directory=directory,
        lock=lock,
        queue=queue,
        cache=cache,
        issuer_name="Test Academy",
        frontend_url="https://learn.example.com",
        max_identity_attempts=max_identity_attempts,
        max_write_attempts=max_write_attempts,
        lookup_timeout=lookup_timeout,
        clock=clock,
    )
    bus.subscribe(CompletionReached, certificate_service.handle_completion)

    return Stack(
        enrollments=enrollments,
        certificates=certificates,
        catalog=catalog,
        directory=directory,
        lock=lock,
        bus=bus,
        cache=cache,
        queue=queue,
        clock=clock,
        progress=progress,
        certificate_service=certificate_service,
    )


@pytest.fixture
def stack() -> Stack:
    return build_stack()
