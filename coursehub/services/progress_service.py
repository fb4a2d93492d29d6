"""Progress update protocol.

Every mutation follows the same path:

  1. take the per-enrollment lock
  2. load the record, apply the change, recompute derived fields
  3. write with a version check; on VersionConflictError reload and redo,
     up to MAX_WRITE_ATTEMPTS times
  4. overwrite the cached progress snapshot with the stored record
  5. if the record is at 100% and has no certificate, publish
     CompletionReached (still under the lock)

Authorization is not checked here; routers do that before calling in.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from coursehub.core.errors import (
    ConflictError,
    DuplicateKeyError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionError,
    VersionConflictError,
)
from coursehub.core.metrics import PROGRESS_UPDATES, VERSION_CONFLICTS
from coursehub.models.enrollment import EnrollmentRecord
from coursehub.repos.course_catalog import CourseCatalog
from coursehub.repos.enrollment_repo import EnrollmentRepo
from coursehub.services.cache import CacheService, store_progress
from coursehub.services.completion import recompute
from coursehub.services.events import CompletionReached, EventBus
from coursehub.services.locks import KeyedLock, enrollment_lock_key
from coursehub.services.lookups import bounded

logger = logging.getLogger(__name__)


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


@dataclass(frozen=True, slots=True)
class ScoreUpdate:
    total_assignments: int | None = None
    completed_assignments: int | None = None
    total_quizzes: int | None = None
    completed_quizzes: int | None = None
    avg_quiz_score: float | None = None
    avg_assignment_score: float | None = None


@dataclass(frozen=True, slots=True)
class CourseStats:
    course_id: str
    total_students: int
    completed_students: int
    average_progress: int
    total_time_spent: int


class ProgressService:
    def __init__(
        self,
        *,
        enrollments: EnrollmentRepo,
        catalog: CourseCatalog,
        lock: KeyedLock,
        bus: EventBus,
        cache: CacheService,
        default_final_score: int | None,
        max_write_attempts: int,
        lookup_timeout: float,
        clock: Callable[[], int] = _now,
    ) -> None:
        self._enrollments = enrollments
        self._catalog = catalog
        self._lock = lock
        self._bus = bus
        self._cache = cache
        self._placeholder = default_final_score
        self._max_attempts = max_write_attempts
        self._timeout = lookup_timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def enroll(self, student_id: str, course_id: str) -> EnrollmentRecord:
        course = await bounded(
            self._catalog.get_course(course_id),
            what="course lookup",
            timeout=self._timeout,
        )
        if course is None:
            raise NotFoundError("course not found")
        if course.status != "published":
            raise PreconditionError(f"course is {course.status}, not open for enrollment")
        modules = await bounded(
            self._catalog.get_module_list(course_id),
            what="module list lookup",
            timeout=self._timeout,
        )
        now = self._clock()
        record = EnrollmentRecord.new(
            student_id=student_id,
            course_id=course_id,
            module_ids=tuple(m.id for m in modules),
            now=now,
        )
        record = recompute(record, now=now, placeholder=self._placeholder)

        async with self._lock.hold(enrollment_lock_key(student_id, course_id)):
            try:
                stored = await self._enrollments.add(record)
            except DuplicateKeyError:
                raise ConflictError("already enrolled in this course") from None

        PROGRESS_UPDATES.labels(operation="enroll").inc()
        logger.info(
            "Enrollment created: student=%s course=%s modules=%d",
            student_id,
            course_id,
            len(modules),
            extra={"student_id": student_id, "course_id": course_id},
        )
        return stored

    async def mark_lesson_complete(
        self,
        student_id: str,
        course_id: str,
        module_id: str,
        lesson_id: str,
        time_spent: int | None = None,
    ) -> EnrollmentRecord:
        """Add ``lesson_id`` to the module's completed set.

        Repeating a lesson is a no-op for completion.  A positive
        ``time_spent`` is added on every call, repeats included.
        """
        if time_spent is not None and time_spent < 0:
            raise InvalidArgumentError("time_spent must not be negative")

        lesson_count: int | None = None

        async def lookup_lesson_count() -> int:
            nonlocal lesson_count
            if lesson_count is None:
                lesson_count = await bounded(
                    self._catalog.get_module_lesson_count(course_id, module_id),
                    what="lesson count lookup",
                    timeout=self._timeout,
                )
            return lesson_count

        async def apply(record: EnrollmentRecord, now: int) -> EnrollmentRecord:
            index = _require_module(record, module_id)
            needed = await lookup_lesson_count()
            module = record.module_progress[index].with_lesson(lesson_id)
            minutes = time_spent or 0
            module = replace(
                module,
                completed=module.completed or len(module.completed_lessons) >= needed,
                time_spent=module.time_spent + minutes,
                last_accessed=now,
            )
            updated = record.with_module(index, module)
            return replace(updated, total_time_spent=updated.total_time_spent + minutes)

        return await self._mutate(student_id, course_id, "lesson_complete", apply)

    async def mark_module_complete(
        self, student_id: str, course_id: str, module_id: str
    ) -> EnrollmentRecord:
        async def apply(record: EnrollmentRecord, now: int) -> EnrollmentRecord:
            index = _require_module(record, module_id)
            module = replace(
                record.module_progress[index], completed=True, last_accessed=now
            )
            return record.with_module(index, module)

        return await self._mutate(student_id, course_id, "module_complete", apply)

    async def add_time_spent(
        self,
        student_id: str,
        course_id: str,
        minutes: int,
        module_id: str | None = None,
    ) -> EnrollmentRecord:
        if minutes <= 0:
            raise InvalidArgumentError("minutes must be positive")

        async def apply(record: EnrollmentRecord, now: int) -> EnrollmentRecord:
            if module_id is not None:
                index = _require_module(record, module_id)
                current = record.module_progress[index]
                record = record.with_module(
                    index,
                    replace(
                        current, time_spent=current.time_spent + minutes, last_accessed=now
                    ),
                )
            return replace(record, total_time_spent=record.total_time_spent + minutes)

        return await self._mutate(
            student_id, course_id, "time_spent", apply, recompute_derived=False
        )

    async def update_scores(
        self, student_id: str, course_id: str, scores: ScoreUpdate
    ) -> EnrollmentRecord:
        for name in ("avg_quiz_score", "avg_assignment_score"):
            value = getattr(scores, name)
            if value is not None and not 0 <= value <= 100:
                raise InvalidArgumentError(f"{name} must be between 0 and 100")
        for name in (
            "total_assignments",
            "completed_assignments",
            "total_quizzes",
            "completed_quizzes",
        ):
            value = getattr(scores, name)
            if value is not None and value < 0:
                raise InvalidArgumentError(f"{name} must not be negative")

        async def apply(record: EnrollmentRecord, now: int) -> EnrollmentRecord:
            changes = {
                k: getattr(scores, k)
                for k in ScoreUpdate.__dataclass_fields__
                if getattr(scores, k) is not None
            }
            updated = replace(record, **changes)
            if updated.completed_assignments > updated.total_assignments:
                raise InvalidArgumentError(
                    "completed_assignments cannot exceed total_assignments"
                )
            if updated.completed_quizzes > updated.total_quizzes:
                raise InvalidArgumentError(
                    "completed_quizzes cannot exceed total_quizzes"
                )
            return updated

        return await self._mutate(student_id, course_id, "scores", apply)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_progress(self, student_id: str, course_id: str) -> EnrollmentRecord:
        record = await self._enrollments.get(student_id, course_id)
        if record is None:
            raise NotFoundError("enrollment not found")
        return record

    async def list_progress(self, student_id: str) -> list[EnrollmentRecord]:
        records = await self._enrollments.list_by_student(student_id)
        return sorted(records, key=lambda r: r.last_activity, reverse=True)

    async def course_stats(self, course_id: str) -> CourseStats:
        records = await self._enrollments.list_by_course(course_id)
        total = len(records)
        if total:
            progress_sum = sum(r.overall_progress for r in records)
            average = (2 * progress_sum + total) // (2 * total)
        else:
            average = 0
        return CourseStats(
            course_id=course_id,
            total_students=total,
            completed_students=sum(1 for r in records if r.is_complete),
            average_progress=average,
            total_time_spent=sum(r.total_time_spent for r in records),
        )

    async def eligible_for_certificates(self, course_id: str) -> list[EnrollmentRecord]:
        records = await self._enrollments.list_by_course(course_id)
        eligible = [r for r in records if r.is_complete and not r.certificate_generated]
        return sorted(eligible, key=lambda r: r.completed_at or 0)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        student_id: str,
        course_id: str,
        operation: str,
        apply: Callable[[EnrollmentRecord, int], Awaitable[EnrollmentRecord]],
        *,
        recompute_derived: bool = True,
    ) -> EnrollmentRecord:
        async with self._lock.hold(enrollment_lock_key(student_id, course_id)):
            stored = await self._write_with_retry(
                student_id, course_id, operation, apply, recompute_derived
            )
            PROGRESS_UPDATES.labels(operation=operation).inc()
            await store_progress(self._cache, stored)

            if stored.is_complete and not stored.certificate_generated:
                await self._bus.publish(
                    CompletionReached(
                        student_id=student_id, course_id=course_id, record=stored
                    )
                )
                # Pick up the certificate back-link, if the handler wrote one
                stored = await self._enrollments.get(student_id, course_id) or stored
        return stored

    async def _write_with_retry(
        self,
        student_id: str,
        course_id: str,
        operation: str,
        apply: Callable[[EnrollmentRecord, int], Awaitable[EnrollmentRecord]],
        recompute_derived: bool,
    ) -> EnrollmentRecord:
        for attempt in range(1, self._max_attempts + 1):
            record = await self.get_progress(student_id, course_id)
            now = self._clock()
            updated = await apply(record, now)
            if recompute_derived:
                updated = recompute(updated, now=now, placeholder=self._placeholder)
            updated = replace(updated, last_activity=now)
            try:
                return await self._enrollments.update(updated)
            except VersionConflictError:
                VERSION_CONFLICTS.inc()
                logger.warning(
                    "Version conflict on %s: student=%s course=%s attempt=%d/%d",
                    operation,
                    student_id,
                    course_id,
                    attempt,
                    self._max_attempts,
                )
        raise ConflictError("enrollment was modified concurrently, retry later")


def _require_module(record: EnrollmentRecord, module_id: str) -> int:
    index = record.module_index(module_id)
    if index is None:
        raise NotFoundError("module not found in enrollment")
    return index
