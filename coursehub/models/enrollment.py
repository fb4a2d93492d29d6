"""Enrollment record: per-student, per-course progress state.

The module list is snapshotted from the course when the student enrolls.
Modules added to the course afterwards do not appear here, so they do not
count toward either progress denominator.

Derived fields (overall_progress, completion_percentage, final_score) are
only ever written by coursehub.services.completion.recompute().
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    module_id: str
    completed: bool = False
    # Insertion-ordered, duplicate-free
    completed_lessons: tuple[str, ...] = ()
    time_spent: int = 0  # minutes
    last_accessed: int = 0

    def with_lesson(self, lesson_id: str) -> ModuleProgress:
        if lesson_id in self.completed_lessons:
            return self
        return replace(self, completed_lessons=(*self.completed_lessons, lesson_id))


@dataclass(frozen=True, slots=True)
class EnrollmentRecord:
    student_id: str
    course_id: str
    module_progress: tuple[ModuleProgress, ...]
    enrolled_at: int
    last_activity: int
    total_time_spent: int = 0  # minutes

    overall_progress: int = 0
    completion_percentage: int = 0
    final_score: int = 0

    # Owned by the quiz/assignment subsystems; consumed here
    total_assignments: int = 0
    completed_assignments: int = 0
    total_quizzes: int = 0
    completed_quizzes: int = 0
    avg_quiz_score: float = 0.0
    avg_assignment_score: float = 0.0

    certificate_generated: bool = False
    certificate_id: str | None = None
    completed_at: int | None = None
    version: int = 1

    @staticmethod
    def new(
        *, student_id: str, course_id: str, module_ids: tuple[str, ...], now: int
    ) -> EnrollmentRecord:
        return EnrollmentRecord(
            student_id=student_id,
            course_id=course_id,
            module_progress=tuple(
                ModuleProgress(module_id=m, last_accessed=now) for m in module_ids
            ),
            enrolled_at=now,
            last_activity=now,
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.student_id, self.course_id)

    @property
    def is_complete(self) -> bool:
        return self.completion_percentage >= 100

    @property
    def completed_module_count(self) -> int:
        return sum(1 for m in self.module_progress if m.completed)

    def module_index(self, module_id: str) -> int | None:
        for i, m in enumerate(self.module_progress):
            if m.module_id == module_id:
                return i
        return None

    def with_module(self, index: int, module: ModuleProgress) -> EnrollmentRecord:
        modules = list(self.module_progress)
        modules[index] = module
        return replace(self, module_progress=tuple(modules))

    def with_certificate(self, certificate_id: str, now: int) -> EnrollmentRecord:
        """Back-link an issued certificate; the guard flag moves with it."""
        return replace(
            self,
            certificate_generated=True,
            certificate_id=certificate_id,
            completed_at=self.completed_at if self.completed_at is not None else now,
        )
