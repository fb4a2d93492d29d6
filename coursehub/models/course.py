from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class CourseModule:
    id: str
    title: str
    position: int
    lesson_ids: tuple[str, ...] = ()

    @staticmethod
    def new(
        *, title: str, position: int, lesson_ids: tuple[str, ...] = ()
    ) -> CourseModule:
        return CourseModule(
            id=str(uuid4()), title=title, position=position, lesson_ids=lesson_ids
        )

    @property
    def lesson_count(self) -> int:
        return len(self.lesson_ids)


@dataclass(frozen=True, slots=True)
class Course:
    id: str
    slug: str
    title: str
    instructor_id: str
    status: str = "published"  # draft|published|retired
    duration_hours: int = 10
    grading: str = "letter"  # letter|pass_fail
    skills: tuple[str, ...] = ()
    modules: tuple[CourseModule, ...] = ()
    version: int = 1

    @staticmethod
    def new(
        *,
        slug: str,
        title: str,
        instructor_id: str,
        modules: tuple[CourseModule, ...] = (),
        duration_hours: int = 10,
        grading: str = "letter",
        skills: tuple[str, ...] = (),
    ) -> Course:
        return Course(
            id=str(uuid4()),
            slug=slug,
            title=title,
            instructor_id=instructor_id,
            duration_hours=duration_hours,
            grading=grading,
            skills=skills,
            modules=tuple(sorted(modules, key=lambda m: m.position)),
        )

    def module(self, module_id: str) -> CourseModule | None:
        for m in self.modules:
            if m.id == module_id:
                return m
        return None

    @property
    def module_ids(self) -> tuple[str, ...]:
        return tuple(m.id for m in self.modules)
