"""Course catalog and enrollment endpoints.

Enrolling snapshots the course's module list onto the new enrollment
record; modules added to the course later are not picked up by existing
enrollments.
"""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from coursehub.api.dependencies import CurrentUser
from coursehub.api.errors import to_http
from coursehub.api.progress import ProgressOut, load_course
from coursehub.core.errors import ConflictError, CourseHubError, DuplicateKeyError
from coursehub.core.policy import Resource, policy
from coursehub.models.course import Course, CourseModule
from coursehub.wiring import course_catalog, progress_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class ModuleOut(BaseModel):
    id: str
    title: str
    position: int
    lesson_ids: list[str]


class CourseOut(BaseModel):
    id: str
    slug: str
    title: str
    instructor_id: str
    status: str
    duration_hours: int
    grading: str
    skills: list[str]
    modules: list[ModuleOut]
    version: int

    @staticmethod
    def from_course(course: Course) -> CourseOut:
        return CourseOut(
            id=course.id,
            slug=course.slug,
            title=course.title,
            instructor_id=course.instructor_id,
            status=course.status,
            duration_hours=course.duration_hours,
            grading=course.grading,
            skills=list(course.skills),
            modules=[
                ModuleOut(
                    id=m.id,
                    title=m.title,
                    position=m.position,
                    lesson_ids=list(m.lesson_ids),
                )
                for m in course.modules
            ],
            version=course.version,
        )


class ModuleIn(BaseModel):
    title: str = Field(min_length=1)
    lesson_ids: list[str] = Field(default_factory=list)


class CourseIn(BaseModel):
    slug: str = Field(min_length=1, pattern=r"^[a-z0-9][a-z0-9-]*$")
    title: str = Field(min_length=1)
    duration_hours: int = Field(default=10, gt=0)
    grading: Literal["letter", "pass_fail"] = "letter"
    skills: list[str] = Field(default_factory=list)
    modules: list[ModuleIn] = Field(default_factory=list)


class EnrollIn(BaseModel):
    # Admins may enroll someone else
    student_id: str | None = None


@router.get("", response_model=list[CourseOut])
async def list_courses() -> list[CourseOut]:
    return [CourseOut.from_course(c) for c in await course_catalog.list_courses()]


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(course_id: str) -> CourseOut:
    try:
        course = await load_course(course_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return CourseOut.from_course(course)


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(body: CourseIn, principal: CurrentUser) -> CourseOut:
    course = Course.new(
        slug=body.slug,
        title=body.title,
        instructor_id=principal.user_id,
        duration_hours=body.duration_hours,
        grading=body.grading,
        skills=tuple(body.skills),
        modules=tuple(
            CourseModule.new(
                title=m.title, position=i, lesson_ids=tuple(m.lesson_ids)
            )
            for i, m in enumerate(body.modules)
        ),
    )
    try:
        policy.authorize(principal, "course:create")
        stored = await course_catalog.add(course)
    except DuplicateKeyError:
        raise to_http(ConflictError(f"slug {body.slug!r} is taken")) from None
    except CourseHubError as e:
        raise to_http(e) from None
    logger.info(
        "Course created: id=%s slug=%s modules=%d",
        stored.id,
        stored.slug,
        len(stored.modules),
        extra={"course_id": stored.id},
    )
    return CourseOut.from_course(stored)


@router.post(
    "/{course_id}/enroll",
    response_model=ProgressOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    course_id: str, principal: CurrentUser, body: EnrollIn | None = None
) -> ProgressOut:
    student_id = (body.student_id if body else None) or principal.user_id
    try:
        policy.authorize(principal, "progress:enroll", Resource(student_id=student_id))
        record = await progress_service.enroll(student_id, course_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return ProgressOut.from_record(record)
