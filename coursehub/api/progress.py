"""Progress endpoints.

Mutations are PATCH routes under /v1/progress/courses/{course_id}.  The
acting student defaults to the caller; admins (and, where the policy
allows, the course instructor) name another student in the body.

GET /v1/progress/courses/{course_id} is read-through cached under
``progress:{student}:{course}``.  ProgressService overwrites the entry
after every mutation; a cache miss only fills an empty entry.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from coursehub.api.dependencies import CurrentUser
from coursehub.api.errors import to_http
from coursehub.api.ratelimit import require_rate_limit
from coursehub.core.config import SETTINGS
from coursehub.core.errors import CourseHubError, NotFoundError
from coursehub.core.metrics import CACHE_OPERATIONS
from coursehub.core.policy import Resource, policy
from coursehub.models.course import Course
from coursehub.models.enrollment import EnrollmentRecord
from coursehub.models.principal import Principal
from coursehub.services.cache import (
    PROGRESS_TTL_SECONDS,
    decode_progress,
    encode_progress,
    progress_cache_key,
)
from coursehub.services.lookups import bounded
from coursehub.services.progress_service import ScoreUpdate
from coursehub.wiring import cache_service, course_catalog, progress_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])

_rate_limited = [Depends(require_rate_limit())]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class ModuleProgressOut(BaseModel):
    module_id: str
    completed: bool
    completed_lessons: list[str]
    time_spent: int
    last_accessed: int


class ProgressOut(BaseModel):
    student_id: str
    course_id: str
    module_progress: list[ModuleProgressOut]
    overall_progress: int
    completion_percentage: int
    final_score: int
    total_time_spent: int
    total_assignments: int
    completed_assignments: int
    total_quizzes: int
    completed_quizzes: int
    avg_quiz_score: float
    avg_assignment_score: float
    certificate_generated: bool
    certificate_id: str | None
    enrolled_at: int
    last_activity: int
    completed_at: int | None

    @staticmethod
    def from_record(record: EnrollmentRecord) -> ProgressOut:
        return ProgressOut(
            student_id=record.student_id,
            course_id=record.course_id,
            module_progress=[
                ModuleProgressOut(
                    module_id=m.module_id,
                    completed=m.completed,
                    completed_lessons=list(m.completed_lessons),
                    time_spent=m.time_spent,
                    last_accessed=m.last_accessed,
                )
                for m in record.module_progress
            ],
            overall_progress=record.overall_progress,
            completion_percentage=record.completion_percentage,
            final_score=record.final_score,
            total_time_spent=record.total_time_spent,
            total_assignments=record.total_assignments,
            completed_assignments=record.completed_assignments,
            total_quizzes=record.total_quizzes,
            completed_quizzes=record.completed_quizzes,
            avg_quiz_score=record.avg_quiz_score,
            avg_assignment_score=record.avg_assignment_score,
            certificate_generated=record.certificate_generated,
            certificate_id=record.certificate_id,
            enrolled_at=record.enrolled_at,
            last_activity=record.last_activity,
            completed_at=record.completed_at,
        )


class LessonCompleteIn(BaseModel):
    time_spent: int | None = Field(default=None, description="minutes")
    student_id: str | None = None


class ModuleCompleteIn(BaseModel):
    student_id: str


class TimeSpentIn(BaseModel):
    minutes: int
    module_id: str | None = None
    student_id: str | None = None


class ScoresIn(BaseModel):
    student_id: str
    total_assignments: int | None = None
    completed_assignments: int | None = None
    total_quizzes: int | None = None
    completed_quizzes: int | None = None
    avg_quiz_score: float | None = None
    avg_assignment_score: float | None = None


class CourseStatsOut(BaseModel):
    course_id: str
    total_students: int
    completed_students: int
    average_progress: int
    total_time_spent: int


class EligibleOut(BaseModel):
    student_id: str
    course_id: str
    completion_percentage: int
    final_score: int
    completed_at: int | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def load_course(course_id: str) -> Course:
    course = await bounded(
        course_catalog.get_course(course_id),
        what="course lookup",
        timeout=SETTINGS.lookup_timeout_seconds,
    )
    if course is None:
        raise NotFoundError("course not found")
    return course


async def _authorize_for_course(
    principal: Principal, action: str, course_id: str, student_id: str | None = None
) -> Course:
    course = await load_course(course_id)
    policy.authorize(
        principal,
        action,
        Resource(student_id=student_id, instructor_id=course.instructor_id),
    )
    return course


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.patch(
    "/courses/{course_id}/modules/{module_id}/lessons/{lesson_id}/complete",
    response_model=ProgressOut,
    dependencies=_rate_limited,
)
async def complete_lesson(
    course_id: str,
    module_id: str,
    lesson_id: str,
    principal: CurrentUser,
    body: LessonCompleteIn | None = None,
) -> ProgressOut:
    body = body or LessonCompleteIn()
    student_id = body.student_id or principal.user_id
    try:
        await _authorize_for_course(principal, "progress:record", course_id, student_id)
        record = await progress_service.mark_lesson_complete(
            student_id, course_id, module_id, lesson_id, time_spent=body.time_spent
        )
    except CourseHubError as e:
        raise to_http(e) from None
    return ProgressOut.from_record(record)


@router.patch(
    "/courses/{course_id}/modules/{module_id}/complete",
    response_model=ProgressOut,
    dependencies=_rate_limited,
)
async def complete_module(
    course_id: str,
    module_id: str,
    body: ModuleCompleteIn,
    principal: CurrentUser,
) -> ProgressOut:
    try:
        await _authorize_for_course(
            principal, "progress:override_module", course_id, body.student_id
        )
        record = await progress_service.mark_module_complete(
            body.student_id, course_id, module_id
        )
    except CourseHubError as e:
        raise to_http(e) from None
    return ProgressOut.from_record(record)


@router.patch(
    "/courses/{course_id}/time",
    response_model=ProgressOut,
    dependencies=_rate_limited,
)
async def record_time_spent(
    course_id: str, body: TimeSpentIn, principal: CurrentUser
) -> ProgressOut:
    student_id = body.student_id or principal.user_id
    try:
        await _authorize_for_course(principal, "progress:record", course_id, student_id)
        record = await progress_service.add_time_spent(
            student_id, course_id, body.minutes, module_id=body.module_id
        )
    except CourseHubError as e:
        raise to_http(e) from None
    return ProgressOut.from_record(record)


@router.patch(
    "/courses/{course_id}/scores",
    response_model=ProgressOut,
    dependencies=_rate_limited,
)
async def update_scores(
    course_id: str, body: ScoresIn, principal: CurrentUser
) -> ProgressOut:
    scores = ScoreUpdate(**body.model_dump(exclude={"student_id"}))
    try:
        await _authorize_for_course(
            principal, "progress:update_scores", course_id, body.student_id
        )
        record = await progress_service.update_scores(body.student_id, course_id, scores)
    except CourseHubError as e:
        raise to_http(e) from None
    return ProgressOut.from_record(record)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/me", response_model=list[ProgressOut])
async def my_progress(principal: CurrentUser) -> list[ProgressOut]:
    records = await progress_service.list_progress(principal.user_id)
    return [ProgressOut.from_record(r) for r in records]


@router.get("/students/{student_id}", response_model=list[ProgressOut])
async def student_progress(student_id: str, principal: CurrentUser) -> list[ProgressOut]:
    """All enrollments of one student.

    Instructors see only the enrollments in courses they teach.
    """
    try:
        if not principal.has_role("instructor"):
            policy.authorize(principal, "progress:read", Resource(student_id=student_id))
        records = await progress_service.list_progress(student_id)
        visible = []
        for record in records:
            course = await bounded(
                course_catalog.get_course(record.course_id),
                what="course lookup",
                timeout=SETTINGS.lookup_timeout_seconds,
            )
            resource = Resource(
                student_id=student_id,
                instructor_id=course.instructor_id if course else None,
            )
            if policy.allows(principal, "progress:read", resource):
                visible.append(record)
    except CourseHubError as e:
        raise to_http(e) from None
    return [ProgressOut.from_record(r) for r in visible]


@router.get("/courses/{course_id}", response_model=ProgressOut)
async def get_progress(
    course_id: str,
    principal: CurrentUser,
    student_id: Annotated[str | None, Query()] = None,
) -> ProgressOut:
    student_id = student_id or principal.user_id
    try:
        await _authorize_for_course(principal, "progress:read", course_id, student_id)

        key = progress_cache_key(student_id, course_id)
        cached = await cache_service.get(key)
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return ProgressOut.from_record(decode_progress(cached))
        CACHE_OPERATIONS.labels(operation="miss").inc()

        record = await progress_service.get_progress(student_id, course_id)
    except CourseHubError as e:
        raise to_http(e) from None

    # A concurrent write may already have stored a newer snapshot
    await cache_service.set_if_absent(key, encode_progress(record), PROGRESS_TTL_SECONDS)
    return ProgressOut.from_record(record)


@router.get("/courses/{course_id}/stats", response_model=CourseStatsOut)
async def course_stats(course_id: str, principal: CurrentUser) -> CourseStatsOut:
    try:
        await _authorize_for_course(principal, "progress:course_stats", course_id)
        stats = await progress_service.course_stats(course_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return CourseStatsOut(
        course_id=stats.course_id,
        total_students=stats.total_students,
        completed_students=stats.completed_students,
        average_progress=stats.average_progress,
        total_time_spent=stats.total_time_spent,
    )


@router.get(
    "/courses/{course_id}/eligible-certificates", response_model=list[EligibleOut]
)
async def eligible_certificates(
    course_id: str, principal: CurrentUser
) -> list[EligibleOut]:
    try:
        await _authorize_for_course(principal, "progress:course_stats", course_id)
        records = await progress_service.eligible_for_certificates(course_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return [
        EligibleOut(
            student_id=r.student_id,
            course_id=r.course_id,
            completion_percentage=r.completion_percentage,
            final_score=r.final_score,
            completed_at=r.completed_at,
        )
        for r in records
    ]
