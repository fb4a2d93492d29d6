"""Certificate issuance, verification and lifecycle.

Issuance writes the certificate first and the enrollment back-link
second.  If the process dies between the two writes, the certificate
exists but the enrollment still says certificate_generated=False; the
next qualifying progress update, or the reconciliation worker, finds
the certificate by (student, course) and links it instead of issuing
a second one.  The unique (student, course) constraint on certificates
is what makes "at most one" hold even without the lock.

Entry points and locking:

  handle_completion   called by the event bus while ProgressService
                      holds the enrollment lock; must not re-acquire it
  issue_manually      acquires the lock
  reconcile           acquires the lock
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from coursehub.core.errors import (
    ConflictError,
    DuplicateKeyError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionError,
    VersionConflictError,
)
from coursehub.core.metrics import (
    CERTIFICATE_ISSUANCE_FAILURES,
    CERTIFICATE_VERIFICATIONS,
    CERTIFICATES_ISSUED,
    IDENTITY_COLLISIONS,
    VERSION_CONFLICTS,
)
from coursehub.models.certificate import Certificate, Performance
from coursehub.models.enrollment import EnrollmentRecord
from coursehub.repos.certificate_repo import CertificateFilter, CertificateRepo, Page
from coursehub.repos.course_catalog import CourseCatalog
from coursehub.repos.enrollment_repo import EnrollmentRepo
from coursehub.repos.user_directory import UserDirectory
from coursehub.services.cache import CacheService, store_progress
from coursehub.services.events import CompletionReached
from coursehub.services.identity import new_identity, normalize_code
from coursehub.services.locks import KeyedLock, enrollment_lock_key
from coursehub.services.lookups import bounded
from coursehub.services.task_queue import RECONCILIATION_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

_DAY = 24 * 60 * 60
_ALREADY_ISSUED = "certificate already issued for this student and course"


def _now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


@dataclass(frozen=True, slots=True)
class CoursePopularity:
    course_id: str
    course_name: str
    certificate_count: int
    average_score: float


@dataclass(frozen=True, slots=True)
class AnalyticsOverview:
    timeframe: str
    total_certificates: int
    issued_certificates: int
    revoked_certificates: int
    recent_certificates: int
    issuance_rate: float
    popular_courses: list[CoursePopularity]
    top_performers: list[Certificate]


class CertificateService:
    def __init__(
        self,
        *,
        certificates: CertificateRepo,
        enrollments: EnrollmentRepo,
        catalog: CourseCatalog,
        directory: UserDirectory,
        lock: KeyedLock,
        queue: TaskQueue,
        cache: CacheService,
        issuer_name: str,
        frontend_url: str,
        max_identity_attempts: int,
        max_write_attempts: int,
        lookup_timeout: float,
        clock: Callable[[], int] = _now,
    ) -> None:
        self._certificates = certificates
        self._enrollments = enrollments
        self._catalog = catalog
        self._directory = directory
        self._lock = lock
        self._queue = queue
        self._cache = cache
        self._issuer_name = issuer_name
        self._frontend_url = frontend_url
        self._max_identity_attempts = max_identity_attempts
        self._max_write_attempts = max_write_attempts
        self._timeout = lookup_timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def handle_completion(self, event: CompletionReached) -> None:
        """Automatic trigger.  Never raises; failures schedule reconciliation."""
        record = event.record
        if not record.is_complete or record.certificate_generated:
            return
        try:
            await self._issue_for(event.student_id, event.course_id, "automatic")
        except Exception as exc:
            CERTIFICATE_ISSUANCE_FAILURES.labels(reason=type(exc).__name__).inc()
            logger.exception(
                "Automatic certificate issuance failed: student=%s course=%s",
                event.student_id,
                event.course_id,
                extra={"student_id": event.student_id, "course_id": event.course_id},
            )
            await self._schedule_reconciliation(event.student_id, event.course_id)

    async def issue_manually(self, student_id: str, course_id: str) -> Certificate:
        """Issue for a completed enrollment that holds no certificate yet.

        Raises ConflictError when the pair already has one, revoked or not.
        Unlike the automatic trigger, an existing certificate is never
        handed back as the result.
        """
        async with self._lock.hold(enrollment_lock_key(student_id, course_id)):
            record = await self._enrollments.get(student_id, course_id)
            if record is None:
                raise NotFoundError("enrollment not found")
            if record.certificate_generated:
                raise ConflictError(_ALREADY_ISSUED)
            existing = await bounded(
                self._certificates.get_by_pair(student_id, course_id),
                what="certificate lookup",
                timeout=self._timeout,
            )
            if existing is not None:
                raise ConflictError(_ALREADY_ISSUED)

            try:
                cert, created = await self._issue_for(student_id, course_id, "manual")
            except (NotFoundError, PreconditionError):
                raise
            except Exception as exc:
                CERTIFICATE_ISSUANCE_FAILURES.labels(reason=type(exc).__name__).inc()
                raise
            if not created:
                raise ConflictError(_ALREADY_ISSUED)
            return cert

    async def reconcile(self, student_id: str, course_id: str) -> Certificate | None:
        """Repair a missing back-link or a missed issuance.

        Returns the certificate that is now linked, or None when there was
        nothing to do.
        """
        async with self._lock.hold(enrollment_lock_key(student_id, course_id)):
            record = await self._enrollments.get(student_id, course_id)
            if record is None:
                logger.warning(
                    "Reconciliation skipped, no enrollment: student=%s course=%s",
                    student_id,
                    course_id,
                )
                return None
            if record.certificate_generated and record.certificate_id:
                return None
            if not record.is_complete:
                existing = await self._certificates.get_by_pair(student_id, course_id)
                if existing is None:
                    return None
                await self._link(record, existing)
                return existing
            cert, _ = await self._issue_for(student_id, course_id, "reconciliation")
            return cert

    async def _issue_for(
        self, student_id: str, course_id: str, trigger: str
    ) -> tuple[Certificate, bool]:
        record = await self._enrollments.get(student_id, course_id)
        if record is None:
            raise NotFoundError("enrollment not found")

        if record.certificate_generated and record.certificate_id:
            linked = await self._certificates.get(record.certificate_id)
            if linked is not None:
                return linked, False

        existing = await bounded(
            self._certificates.get_by_pair(student_id, course_id),
            what="certificate lookup",
            timeout=self._timeout,
        )
        if existing is not None:
            await self._link(record, existing)
            return existing, False

        if not record.is_complete:
            raise PreconditionError(
                f"course not completed ({record.completion_percentage}%)"
            )

        pending = await self._build(record)
        cert, created = await self._insert_with_identity(pending)
        await self._link(record, cert)

        if created:
            CERTIFICATES_ISSUED.labels(trigger=trigger).inc()
            logger.info(
                "Certificate issued: number=%s student=%s course=%s trigger=%s",
                cert.certificate_number,
                student_id,
                course_id,
                trigger,
                extra={
                    "student_id": student_id,
                    "course_id": course_id,
                    "certificate_id": cert.id,
                },
            )
        return cert, created

    async def _build(self, record: EnrollmentRecord) -> Certificate:
        course = await bounded(
            self._catalog.get_course(record.course_id),
            what="course lookup",
            timeout=self._timeout,
        )
        if course is None:
            raise NotFoundError("course not found")
        student_name = await bounded(
            self._directory.get_display_name(record.student_id),
            what="student lookup",
            timeout=self._timeout,
        )
        instructor_name = await bounded(
            self._directory.get_display_name(course.instructor_id),
            what="instructor lookup",
            timeout=self._timeout,
        )
        now = self._clock()
        return Certificate.new(
            student_id=record.student_id,
            course_id=record.course_id,
            instructor_id=course.instructor_id,
            student_name=student_name,
            course_name=course.title,
            instructor_name=instructor_name,
            enrollment_date=record.enrolled_at,
            completion_date=record.completed_at or now,
            duration_hours=course.duration_hours,
            performance=Performance(
                final_score=record.final_score,
                total_assignments=record.total_assignments,
                completed_assignments=record.completed_assignments,
                total_quizzes=record.total_quizzes,
                completed_quizzes=record.completed_quizzes,
                avg_quiz_score=record.avg_quiz_score,
                avg_assignment_score=record.avg_assignment_score,
                grading=course.grading,
            ),
            skills=course.skills,
            issuer_name=self._issuer_name,
            issuer_url=self._frontend_url,
            now=now,
        )

    async def _insert_with_identity(
        self, pending: Certificate
    ) -> tuple[Certificate, bool]:
        for attempt in range(1, self._max_identity_attempts + 1):
            now = self._clock()
            cert = pending.issue(
                now=now, identity=new_identity(now), verify_base_url=self._frontend_url
            )
            try:
                stored = await bounded(
                    self._certificates.add(cert),
                    what="certificate insert",
                    timeout=self._timeout,
                )
                return stored, True
            except DuplicateKeyError as exc:
                if exc.field == "student_course":
                    existing = await self._certificates.get_by_pair(
                        pending.student_id, pending.course_id
                    )
                    if existing is None:
                        raise ConflictError(
                            "certificate insert collided but no certificate found"
                        ) from None
                    return existing, False
                IDENTITY_COLLISIONS.labels(field=exc.field).inc()
                logger.warning(
                    "Certificate identity collision on %s, attempt %d/%d",
                    exc.field,
                    attempt,
                    self._max_identity_attempts,
                )
        raise ConflictError("could not allocate a unique certificate identity")

    async def _link(self, record: EnrollmentRecord, cert: Certificate) -> EnrollmentRecord:
        for _ in range(self._max_write_attempts):
            if record.certificate_generated and record.certificate_id == cert.id:
                return record
            try:
                stored = await self._enrollments.update(
                    record.with_certificate(cert.id, self._clock())
                )
            except VersionConflictError:
                VERSION_CONFLICTS.inc()
                fresh = await self._enrollments.get(record.student_id, record.course_id)
                if fresh is None:
                    raise NotFoundError("enrollment not found") from None
                record = fresh
                continue
            await store_progress(self._cache, stored)
            return stored
        raise ConflictError("could not link certificate to enrollment")

    async def _schedule_reconciliation(self, student_id: str, course_id: str) -> None:
        task = await self._queue.enqueue(
            RECONCILIATION_QUEUE, {"student_id": student_id, "course_id": course_id}
        )
        logger.info(
            "Reconciliation scheduled: task=%s student=%s course=%s",
            task.id,
            student_id,
            course_id,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def verify(self, code: str) -> Certificate:
        """Public lookup.  Only issued, verifiable certificates resolve."""
        cert = await self._certificates.get_by_verification_code(normalize_code(code))
        if cert is None or not cert.is_verifiable:
            CERTIFICATE_VERIFICATIONS.labels(result="not_found").inc()
            raise NotFoundError("certificate not found or invalid verification code")
        CERTIFICATE_VERIFICATIONS.labels(result="valid").inc()
        return await self._certificates.increment_analytics(
            cert.id, "verification_count"
        )

    async def revoke(self, certificate_id: str, reason: str | None) -> Certificate:
        reason = (reason or "").strip() or "Revoked by administrator"
        for _ in range(self._max_write_attempts):
            cert = await self.get(certificate_id)
            revoked = cert.revoke(reason=reason, now=self._clock())
            try:
                stored = await self._certificates.update(revoked)
            except VersionConflictError:
                VERSION_CONFLICTS.inc()
                continue
            logger.info(
                "Certificate revoked: number=%s reason=%s",
                stored.certificate_number,
                reason,
                extra={"certificate_id": stored.id},
            )
            return stored
        raise ConflictError("certificate was modified concurrently, retry later")

    async def get(self, certificate_id: str) -> Certificate:
        cert = await self._certificates.get(certificate_id)
        if cert is None:
            raise NotFoundError("certificate not found")
        return cert

    async def track_view(self, certificate_id: str) -> Certificate:
        return await self._certificates.increment_analytics(
            certificate_id, "view_count", timestamp=self._clock()
        )

    async def track_download(self, certificate_id: str) -> Certificate:
        cert = await self.get(certificate_id)
        if cert.status != "issued":
            raise PreconditionError(f"cannot download a {cert.status} certificate")
        return await self._certificates.increment_analytics(
            certificate_id, "download_count", timestamp=self._clock()
        )

    async def track_share(self, certificate_id: str) -> Certificate:
        cert = await self.get(certificate_id)
        if not cert.is_verifiable:
            raise PreconditionError(f"cannot share a {cert.status} certificate")
        return await self._certificates.increment_analytics(certificate_id, "share_count")

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def list_for_student(
        self, student_id: str, *, status: str | None, page: Page
    ) -> tuple[list[Certificate], int]:
        flt = CertificateFilter(status=status, student_id=student_id)
        return await self._certificates.list(flt, page), await self._certificates.count(flt)

    async def list_all(
        self, flt: CertificateFilter, page: Page
    ) -> tuple[list[Certificate], int]:
        return await self._certificates.list(flt, page), await self._certificates.count(flt)

    async def analytics_overview(self, timeframe: str = "30d") -> AnalyticsOverview:
        if timeframe not in TIMEFRAME_DAYS:
            raise InvalidArgumentError(
                f"timeframe must be one of {', '.join(TIMEFRAME_DAYS)}"
            )
        since = self._clock() - TIMEFRAME_DAYS[timeframe] * _DAY
        certs = await self._certificates.list_all()
        issued = [c for c in certs if c.status == "issued"]
        total = len(certs)

        by_course: dict[str, list[Certificate]] = {}
        for c in issued:
            by_course.setdefault(c.course_id, []).append(c)
        popular = sorted(
            (
                CoursePopularity(
                    course_id=course_id,
                    course_name=group[0].course_name,
                    certificate_count=len(group),
                    average_score=round(
                        sum(c.performance.final_score for c in group) / len(group), 2
                    ),
                )
                for course_id, group in by_course.items()
            ),
            key=lambda p: p.certificate_count,
            reverse=True,
        )[:10]

        return AnalyticsOverview(
            timeframe=timeframe,
            total_certificates=total,
            issued_certificates=len(issued),
            revoked_certificates=sum(1 for c in certs if c.status == "revoked"),
            recent_certificates=sum(
                1 for c in issued if c.issued_date is not None and c.issued_date >= since
            ),
            issuance_rate=round(len(issued) / total * 100, 2) if total else 0.0,
            popular_courses=popular,
            top_performers=sorted(
                issued, key=lambda c: c.performance.final_score, reverse=True
            )[:10],
        )
