"""PostgreSQL implementation of CertificateRepo."""

from __future__ import annotations

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursehub.core.errors import NotFoundError, VersionConflictError
from coursehub.db.tables import CertificateRow
from coursehub.models.certificate import (
    Analytics,
    Certificate,
    Performance,
    Verification,
)
from coursehub.repos.certificate_repo import (
    ANALYTICS_COUNTERS,
    SORT_FIELDS,
    CertificateFilter,
    Page,
)
from coursehub.repos.pg_errors import duplicate_key


class PgCertificateRepo:
    """Satisfies the CertificateRepo Protocol; one session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get(self, certificate_id: str) -> Certificate | None:
        async with self._sessions() as session:
            row = await session.get(CertificateRow, certificate_id)
            return _row_to_certificate(row) if row is not None else None

    async def get_by_pair(self, student_id: str, course_id: str) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.student_id == student_id,
            CertificateRow.course_id == course_id,
        )
        return await self._one(stmt)

    async def get_by_verification_code(self, code: str) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.verification_code == code.upper()
        )
        return await self._one(stmt)

    async def list(self, flt: CertificateFilter, page: Page) -> list[Certificate]:
        sort_by = page.sort_by if page.sort_by in SORT_FIELDS else "issued_date"
        column = getattr(CertificateRow, sort_by)
        order = column.desc().nulls_last() if page.descending else column.asc()
        stmt = (
            _apply_filter(select(CertificateRow), flt)
            .order_by(order, CertificateRow.id)
            .offset(page.offset)
            .limit(page.size)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_certificate(r) for r in rows]

    async def count(self, flt: CertificateFilter) -> int:
        stmt = _apply_filter(select(func.count()).select_from(CertificateRow), flt)
        async with self._sessions() as session:
            return int(await session.scalar(stmt) or 0)

    async def list_all(self) -> list[Certificate]:
        async with self._sessions() as session:
            rows = (await session.execute(select(CertificateRow))).scalars().all()
        return [_row_to_certificate(r) for r in rows]

    async def add(self, cert: Certificate) -> Certificate:
        values = _certificate_to_values(cert)
        values["version"] = 1
        try:
            async with self._sessions() as session, session.begin():
                session.add(CertificateRow(**values))
        except IntegrityError as exc:
            dup = duplicate_key(exc)
            if dup is None:
                raise
            raise dup from None
        return _row_to_certificate(CertificateRow(**values))

    async def update(self, cert: Certificate) -> Certificate:
        values = _certificate_to_values(cert)
        # Counters are owned by increment_analytics
        for name in (*ANALYTICS_COUNTERS, "last_viewed", "last_downloaded"):
            values.pop(name)
        values["version"] = cert.version + 1
        stmt = (
            update(CertificateRow)
            .where(CertificateRow.id == cert.id, CertificateRow.version == cert.version)
            .values(**values)
        )
        async with self._sessions() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount == 0:
                current = await session.scalar(
                    select(CertificateRow.version).where(CertificateRow.id == cert.id)
                )
                if current is None:
                    raise NotFoundError("certificate not found")
                raise VersionConflictError(
                    f"certificate version {cert.version} is stale (now {current})"
                )
        stored = await self.get(cert.id)
        if stored is None:
            raise NotFoundError("certificate not found")
        return stored

    async def increment_analytics(
        self, certificate_id: str, counter: str, *, timestamp: int | None = None
    ) -> Certificate:
        if counter not in ANALYTICS_COUNTERS:
            raise ValueError(f"unknown analytics counter {counter!r}")
        column = getattr(CertificateRow, counter)
        values: dict = {counter: column + 1}
        if timestamp is not None and counter == "view_count":
            values["last_viewed"] = timestamp
        if timestamp is not None and counter == "download_count":
            values["last_downloaded"] = timestamp
        stmt = (
            update(CertificateRow)
            .where(CertificateRow.id == certificate_id)
            .values(**values)
            .returning(CertificateRow)
        )
        async with self._sessions() as session, session.begin():
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise NotFoundError("certificate not found")
            return _row_to_certificate(row)

    async def _one(self, stmt: Select) -> Certificate | None:
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_certificate(row) if row is not None else None


def _apply_filter(stmt: Select, flt: CertificateFilter) -> Select:
    if flt.status is not None:
        stmt = stmt.where(CertificateRow.status == flt.status)
    if flt.student_id is not None:
        stmt = stmt.where(CertificateRow.student_id == flt.student_id)
    if flt.course_id is not None:
        stmt = stmt.where(CertificateRow.course_id == flt.course_id)
    if flt.instructor_id is not None:
        stmt = stmt.where(CertificateRow.instructor_id == flt.instructor_id)
    if flt.issued_from is not None:
        stmt = stmt.where(CertificateRow.issued_date >= flt.issued_from)
    if flt.issued_to is not None:
        stmt = stmt.where(CertificateRow.issued_date <= flt.issued_to)
    return stmt


def _certificate_to_values(cert: Certificate) -> dict:
    p = cert.performance
    a = cert.analytics
    return {
        "id": cert.id,
        "student_id": cert.student_id,
        "course_id": cert.course_id,
        "instructor_id": cert.instructor_id,
        "student_name": cert.student_name,
        "course_name": cert.course_name,
        "instructor_name": cert.instructor_name,
        "enrollment_date": cert.enrollment_date,
        "completion_date": cert.completion_date,
        "duration_hours": cert.duration_hours,
        "skills": list(cert.skills),
        "issuer_name": cert.issuer_name,
        "issuer_url": cert.issuer_url,
        "final_score": p.final_score,
        "performance": {
            "total_assignments": p.total_assignments,
            "completed_assignments": p.completed_assignments,
            "total_quizzes": p.total_quizzes,
            "completed_quizzes": p.completed_quizzes,
            "avg_quiz_score": p.avg_quiz_score,
            "avg_assignment_score": p.avg_assignment_score,
            "grading": p.grading,
        },
        "status": cert.status,
        "certificate_number": cert.certificate_number,
        "verification_code": (
            cert.verification.code.upper() if cert.verification.code else None
        ),
        "verification_url": cert.verification.url,
        "is_verifiable": cert.verification.is_verifiable,
        "issued_date": cert.issued_date,
        "revoked_at": cert.revoked_at,
        "revocation_reason": cert.revocation_reason,
        "view_count": a.view_count,
        "download_count": a.download_count,
        "share_count": a.share_count,
        "verification_count": a.verification_count,
        "last_viewed": a.last_viewed,
        "last_downloaded": a.last_downloaded,
        "created_at": cert.created_at,
        "updated_at": cert.updated_at,
        "version": cert.version,
    }


def _row_to_certificate(row: CertificateRow) -> Certificate:
    perf = row.performance or {}
    return Certificate(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        instructor_id=row.instructor_id,
        student_name=row.student_name,
        course_name=row.course_name,
        instructor_name=row.instructor_name,
        enrollment_date=row.enrollment_date,
        completion_date=row.completion_date,
        duration_hours=row.duration_hours,
        performance=Performance(
            final_score=row.final_score,
            total_assignments=perf.get("total_assignments", 0),
            completed_assignments=perf.get("completed_assignments", 0),
            total_quizzes=perf.get("total_quizzes", 0),
            completed_quizzes=perf.get("completed_quizzes", 0),
            avg_quiz_score=perf.get("avg_quiz_score", 0.0),
            avg_assignment_score=perf.get("avg_assignment_score", 0.0),
            grading=perf.get("grading", "letter"),
        ),
        skills=tuple(row.skills or ()),
        issuer_name=row.issuer_name,
        issuer_url=row.issuer_url or "",
        status=row.status,
        certificate_number=row.certificate_number,
        verification=Verification(
            code=row.verification_code,
            url=row.verification_url,
            is_verifiable=row.is_verifiable,
        ),
        issued_date=row.issued_date,
        revoked_at=row.revoked_at,
        revocation_reason=row.revocation_reason,
        analytics=Analytics(
            view_count=row.view_count,
            download_count=row.download_count,
            share_count=row.share_count,
            verification_count=row.verification_count,
            last_viewed=row.last_viewed,
            last_downloaded=row.last_downloaded,
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )
