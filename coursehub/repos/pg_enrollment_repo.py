"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.errors import NotFoundError, VersionConflictError
from coursehub.db.tables import EnrollmentRow
from coursehub.models.enrollment import EnrollmentRecord, ModuleProgress
from coursehub.repos.pg_errors import duplicate_key


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol; one session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, student_id: str, course_id: str) -> EnrollmentRecord | None:
        async with self._sessions() as session:
            row = await session.get(EnrollmentRow, (student_id, course_id))
            return _row_to_record(row) if row is not None else None

    async def list_by_student(self, student_id: str) -> list[EnrollmentRecord]:
        stmt = select(EnrollmentRow).where(EnrollmentRow.student_id == student_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_record(r) for r in rows]

    async def list_by_course(self, course_id: str) -> list[EnrollmentRecord]:
        stmt = select(EnrollmentRow).where(EnrollmentRow.course_id == course_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_record(r) for r in rows]

    async def add(self, record: EnrollmentRecord) -> EnrollmentRecord:
        values = _record_to_values(record)
        values["version"] = 1
        try:
            async with self._sessions() as session, session.begin():
                session.add(EnrollmentRow(**values))
        except IntegrityError as exc:
            dup = duplicate_key(exc)
            if dup is None:
                raise
            raise dup from None
        return _row_to_record(EnrollmentRow(**values))

    async def update(self, record: EnrollmentRecord) -> EnrollmentRecord:
        values = _record_to_values(record)
        values["version"] = record.version + 1
        key_match = (
            EnrollmentRow.student_id == record.student_id,
            EnrollmentRow.course_id == record.course_id,
        )
        stmt = (
            update(EnrollmentRow)
            .where(*key_match, EnrollmentRow.version == record.version)
            .values(**values)
        )
        async with self._sessions() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount == 0:
                current = await session.scalar(
                    select(EnrollmentRow.version).where(*key_match)
                )
                if current is None:
                    raise NotFoundError("enrollment not found")
                raise VersionConflictError(
                    f"enrollment version {record.version} is stale (now {current})"
                )
        return _row_to_record(EnrollmentRow(**values))


def _record_to_values(record: EnrollmentRecord) -> dict:
    return {
        "student_id": record.student_id,
        "course_id": record.course_id,
        "module_progress": [
            {
                "module_id": m.module_id,
                "completed": m.completed,
                "completed_lessons": list(m.completed_lessons),
                "time_spent": m.time_spent,
                "last_accessed": m.last_accessed,
            }
            for m in record.module_progress
        ],
        "enrolled_at": record.enrolled_at,
        "last_activity": record.last_activity,
        "total_time_spent": record.total_time_spent,
        "overall_progress": record.overall_progress,
        "completion_percentage": record.completion_percentage,
        "final_score": record.final_score,
        "total_assignments": record.total_assignments,
        "completed_assignments": record.completed_assignments,
        "total_quizzes": record.total_quizzes,
        "completed_quizzes": record.completed_quizzes,
        "avg_quiz_score": record.avg_quiz_score,
        "avg_assignment_score": record.avg_assignment_score,
        "certificate_generated": record.certificate_generated,
        "certificate_id": record.certificate_id,
        "completed_at": record.completed_at,
        "version": record.version,
    }


def _row_to_record(row: EnrollmentRow) -> EnrollmentRecord:
    return EnrollmentRecord(
        student_id=row.student_id,
        course_id=row.course_id,
        module_progress=tuple(
            ModuleProgress(
                module_id=m["module_id"],
                completed=bool(m.get("completed", False)),
                completed_lessons=tuple(m.get("completed_lessons", ())),
                time_spent=int(m.get("time_spent", 0)),
                last_accessed=int(m.get("last_accessed", 0)),
            )
            for m in row.module_progress or ()
        ),
        enrolled_at=row.enrolled_at,
        last_activity=row.last_activity,
        total_time_spent=row.total_time_spent,
        overall_progress=row.overall_progress,
        completion_percentage=row.completion_percentage,
        final_score=row.final_score,
        total_assignments=row.total_assignments,
        completed_assignments=row.completed_assignments,
        total_quizzes=row.total_quizzes,
        completed_quizzes=row.completed_quizzes,
        avg_quiz_score=row.avg_quiz_score,
        avg_assignment_score=row.avg_assignment_score,
        certificate_generated=row.certificate_generated,
        certificate_id=row.certificate_id,
        completed_at=row.completed_at,
        version=row.version,
    )
