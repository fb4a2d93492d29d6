"""PostgreSQL implementation of CourseCatalog."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.errors import NotFoundError
from coursehub.db.tables import CourseModuleRow, CourseRow
from coursehub.models.course import Course, CourseModule
from coursehub.repos.pg_errors import duplicate_key


class PgCourseCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_course(self, course_id: str) -> Course | None:
        async with self._sessions() as session:
            row = await session.get(CourseRow, course_id)
            if row is None:
                return None
            modules = await self._modules(session, course_id)
        return _row_to_course(row, modules)

    async def get_module_list(self, course_id: str) -> tuple[CourseModule, ...]:
        course = await self.get_course(course_id)
        if course is None:
            raise NotFoundError("course not found")
        return course.modules

    async def get_module_lesson_count(self, course_id: str, module_id: str) -> int:
        stmt = select(CourseModuleRow).where(
            CourseModuleRow.course_id == course_id, CourseModuleRow.id == module_id
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("module not found")
        return len(row.lesson_ids or ())

    async def list_courses(self) -> list[Course]:
        async with self._sessions() as session:
            rows = (
                await session.execute(select(CourseRow).order_by(CourseRow.title))
            ).scalars().all()
            module_rows = (
                await session.execute(
                    select(CourseModuleRow).order_by(CourseModuleRow.position)
                )
            ).scalars().all()
        by_course: dict[str, list[CourseModule]] = {}
        for m in module_rows:
            by_course.setdefault(m.course_id, []).append(_row_to_module(m))
        return [_row_to_course(r, tuple(by_course.get(r.id, ()))) for r in rows]

    async def add(self, course: Course) -> Course:
        try:
            async with self._sessions() as session, session.begin():
                session.add(
                    CourseRow(
                        id=course.id,
                        slug=course.slug,
                        title=course.title,
                        instructor_id=course.instructor_id,
                        status=course.status,
                        duration_hours=course.duration_hours,
                        grading=course.grading,
                        skills=list(course.skills),
                        version=course.version,
                    )
                )
                await session.flush()
                for m in course.modules:
                    session.add(
                        CourseModuleRow(
                            id=m.id,
                            course_id=course.id,
                            position=m.position,
                            title=m.title,
                            lesson_ids=list(m.lesson_ids),
                        )
                    )
        except IntegrityError as exc:
            dup = duplicate_key(exc)
            if dup is None:
                raise
            raise dup from None
        return course

    @staticmethod
    async def _modules(session: AsyncSession, course_id: str) -> tuple[CourseModule, ...]:
        stmt = (
            select(CourseModuleRow)
            .where(CourseModuleRow.course_id == course_id)
            .order_by(CourseModuleRow.position)
        )
        rows = (await session.execute(stmt)).scalars().all()
        return tuple(_row_to_module(r) for r in rows)


def _row_to_module(row: CourseModuleRow) -> CourseModule:
    return CourseModule(
        id=row.id,
        title=row.title,
        position=row.position,
        lesson_ids=tuple(row.lesson_ids or ()),
    )


def _row_to_course(row: CourseRow, modules: tuple[CourseModule, ...]) -> Course:
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        instructor_id=row.instructor_id,
        status=row.status,
        duration_hours=row.duration_hours,
        grading=row.grading,
        skills=tuple(row.skills or ()),
        modules=modules,
        version=row.version,
    )
