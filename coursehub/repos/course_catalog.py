"""Course catalog collaborator.

Progress and certificate code needs only a handful of facts about a
course: its module list (snapshotted at enrollment), how many lessons a
module has, and the display fields copied onto a certificate.
"""

from __future__ import annotations

from typing import Protocol

from coursehub.core.errors import DuplicateKeyError, NotFoundError
from coursehub.models.course import Course, CourseModule


class CourseCatalog(Protocol):
    async def get_course(self, course_id: str) -> Course | None: ...
    async def get_module_list(self, course_id: str) -> tuple[CourseModule, ...]: ...
    async def get_module_lesson_count(self, course_id: str, module_id: str) -> int: ...
    async def list_courses(self) -> list[Course]: ...
    async def add(self, course: Course) -> Course: ...


class InMemoryCourseCatalog:
    def __init__(self) -> None:
        self._by_id: dict[str, Course] = {}

    async def get_course(self, course_id: str) -> Course | None:
        return self._by_id.get(course_id)

    async def get_module_list(self, course_id: str) -> tuple[CourseModule, ...]:
        course = self._by_id.get(course_id)
        if course is None:
            raise NotFoundError("course not found")
        return course.modules

    async def get_module_lesson_count(self, course_id: str, module_id: str) -> int:
        course = self._by_id.get(course_id)
        if course is None:
            raise NotFoundError("course not found")
        module = course.module(module_id)
        if module is None:
            raise NotFoundError("module not found")
        return module.lesson_count

    async def list_courses(self) -> list[Course]:
        return sorted(self._by_id.values(), key=lambda c: c.title)

    async def add(self, course: Course) -> Course:
        if any(c.slug == course.slug for c in self._by_id.values()):
            raise DuplicateKeyError("slug", "course slug already exists")
        self._by_id[course.id] = course
        return course

    def clear(self) -> None:
        self._by_id.clear()
