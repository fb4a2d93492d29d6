"""Certificate endpoints.

Route order matters: the literal paths (/issue, /verify, /me, /students,
/analytics) are registered before /{certificate_id} so they are never
captured as an id.

Verification is public and returns only what a third party needs to
confirm the credential; every other route requires a bearer token.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from coursehub.api.dependencies import CurrentUser
from coursehub.api.errors import to_http
from coursehub.api.progress import load_course
from coursehub.api.ratelimit import require_rate_limit
from coursehub.core.errors import CourseHubError
from coursehub.core.policy import Resource, policy
from coursehub.models.certificate import Certificate
from coursehub.models.principal import Principal
from coursehub.repos.certificate_repo import SORT_FIELDS, CertificateFilter, Page
from coursehub.services.rate_limiter import RateLimitConfig
from coursehub.wiring import certificate_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])

# Public endpoint, keyed by client IP; tighter than the default
VERIFY_RATE_LIMIT = RateLimitConfig(capacity=20, refill_rate=20 / 60)

DOWNLOAD_FORMATS = ("pdf", "png", "json")


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class PerformanceOut(BaseModel):
    final_score: int
    grade: str
    total_assignments: int
    completed_assignments: int
    total_quizzes: int
    completed_quizzes: int
    avg_quiz_score: float
    avg_assignment_score: float


class AnalyticsOut(BaseModel):
    view_count: int
    download_count: int
    share_count: int
    verification_count: int
    last_viewed: int | None
    last_downloaded: int | None


class CertificateOut(BaseModel):
    id: str
    student_id: str
    course_id: str
    instructor_id: str
    student_name: str
    course_name: str
    instructor_name: str
    enrollment_date: int
    completion_date: int
    duration_hours: int
    duration_weeks: int
    performance: PerformanceOut
    skills: list[str]
    issuer_name: str
    issuer_url: str
    status: str
    certificate_number: str | None
    verification_code: str | None
    verification_url: str | None
    is_verifiable: bool
    issued_date: int | None
    revoked_at: int | None
    revocation_reason: str | None
    analytics: AnalyticsOut

    @staticmethod
    def from_certificate(cert: Certificate) -> CertificateOut:
        p = cert.performance
        a = cert.analytics
        return CertificateOut(
            id=cert.id,
            student_id=cert.student_id,
            course_id=cert.course_id,
            instructor_id=cert.instructor_id,
            student_name=cert.student_name,
            course_name=cert.course_name,
            instructor_name=cert.instructor_name,
            enrollment_date=cert.enrollment_date,
            completion_date=cert.completion_date,
            duration_hours=cert.duration_hours,
            duration_weeks=cert.duration_weeks,
            performance=PerformanceOut(
                final_score=p.final_score,
                grade=p.grade,
                total_assignments=p.total_assignments,
                completed_assignments=p.completed_assignments,
                total_quizzes=p.total_quizzes,
                completed_quizzes=p.completed_quizzes,
                avg_quiz_score=p.avg_quiz_score,
                avg_assignment_score=p.avg_assignment_score,
            ),
            skills=list(cert.skills),
            issuer_name=cert.issuer_name,
            issuer_url=cert.issuer_url,
            status=cert.status,
            certificate_number=cert.certificate_number,
            verification_code=cert.verification.code,
            verification_url=cert.verification.url,
            is_verifiable=cert.verification.is_verifiable,
            issued_date=cert.issued_date,
            revoked_at=cert.revoked_at,
            revocation_reason=cert.revocation_reason,
            analytics=AnalyticsOut(
                view_count=a.view_count,
                download_count=a.download_count,
                share_count=a.share_count,
                verification_count=a.verification_count,
                last_viewed=a.last_viewed,
                last_downloaded=a.last_downloaded,
            ),
        )


class VerificationOut(BaseModel):
    is_valid: bool
    certificate_number: str | None
    student_name: str
    course_name: str
    instructor_name: str
    completion_date: int
    issued_date: int | None
    final_score: int
    grade: str
    skills: list[str]
    issuer_name: str
    issuer_url: str


class CertificatePageOut(BaseModel):
    items: list[CertificateOut]
    total: int
    page: int
    limit: int
    pages: int


class IssueIn(BaseModel):
    student_id: str
    course_id: str


class RevokeIn(BaseModel):
    reason: str | None = None


class ShareIn(BaseModel):
    platform: str | None = None


class ShareOut(BaseModel):
    certificate_id: str
    verification_url: str | None
    share_count: int
    platform: str | None


class DownloadOut(BaseModel):
    download_format: str
    certificate: CertificateOut


class CoursePopularityOut(BaseModel):
    course_id: str
    course_name: str
    certificate_count: int
    average_score: float


class PerformerOut(BaseModel):
    certificate_id: str
    student_name: str
    course_name: str
    final_score: int
    grade: str


class AnalyticsOverviewOut(BaseModel):
    timeframe: str
    total_certificates: int
    issued_certificates: int
    revoked_certificates: int
    recent_certificates: int
    issuance_rate: float
    popular_courses: list[CoursePopularityOut]
    top_performers: list[PerformerOut]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _page_out(
    items: list[Certificate], total: int, page: Page
) -> CertificatePageOut:
    return CertificatePageOut(
        items=[CertificateOut.from_certificate(c) for c in items],
        total=total,
        page=page.number,
        limit=page.size,
        pages=(total + page.size - 1) // page.size,
    )


def _resource(cert: Certificate) -> Resource:
    return Resource(student_id=cert.student_id, instructor_id=cert.instructor_id)


async def _readable(principal: Principal, certificate_id: str) -> Certificate:
    cert = await certificate_service.get(certificate_id)
    policy.authorize(principal, "certificate:read", _resource(cert))
    return cert


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post(
    "/issue", response_model=CertificateOut, status_code=status.HTTP_201_CREATED
)
async def issue_certificate(body: IssueIn, principal: CurrentUser) -> CertificateOut:
    """Manual issuance for a completed enrollment.

    409 when the student already holds a certificate for the course.
    """
    try:
        course = await load_course(body.course_id)
        policy.authorize(
            principal,
            "certificate:issue",
            Resource(student_id=body.student_id, instructor_id=course.instructor_id),
        )
        cert = await certificate_service.issue_manually(body.student_id, body.course_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return CertificateOut.from_certificate(cert)


@router.get(
    "/verify/{code}",
    response_model=VerificationOut,
    dependencies=[Depends(require_rate_limit(VERIFY_RATE_LIMIT))],
)
async def verify_certificate(code: str) -> VerificationOut:
    try:
        cert = await certificate_service.verify(code)
    except CourseHubError as e:
        raise to_http(e) from None
    return VerificationOut(
        is_valid=True,
        certificate_number=cert.certificate_number,
        student_name=cert.student_name,
        course_name=cert.course_name,
        instructor_name=cert.instructor_name,
        completion_date=cert.completion_date,
        issued_date=cert.issued_date,
        final_score=cert.performance.final_score,
        grade=cert.performance.grade,
        skills=list(cert.skills),
        issuer_name=cert.issuer_name,
        issuer_url=cert.issuer_url,
    )


@router.get("/me", response_model=CertificatePageOut)
async def my_certificates(
    principal: CurrentUser,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> CertificatePageOut:
    pg = Page(number=page, size=limit)
    items, total = await certificate_service.list_for_student(
        principal.user_id, status=status_filter, page=pg
    )
    return _page_out(items, total, pg)


@router.get("/students/{student_id}", response_model=CertificatePageOut)
async def student_certificates(
    student_id: str,
    principal: CurrentUser,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> CertificatePageOut:
    """A student's certificates; instructors see those from their courses."""
    pg = Page(number=page, size=limit)
    try:
        if principal.is_admin() or principal.user_id == student_id:
            items, total = await certificate_service.list_for_student(
                student_id, status=status_filter, page=pg
            )
        else:
            if not principal.has_role("instructor"):
                policy.authorize(
                    principal, "certificate:read", Resource(student_id=student_id)
                )
            items, total = await certificate_service.list_all(
                CertificateFilter(
                    status=status_filter,
                    student_id=student_id,
                    instructor_id=principal.user_id,
                ),
                pg,
            )
    except CourseHubError as e:
        raise to_http(e) from None
    return _page_out(items, total, pg)


@router.get("/analytics/overview", response_model=AnalyticsOverviewOut)
async def analytics_overview(
    principal: CurrentUser,
    timeframe: Annotated[str, Query()] = "30d",
) -> AnalyticsOverviewOut:
    try:
        policy.authorize(principal, "certificate:analytics")
        overview = await certificate_service.analytics_overview(timeframe)
    except CourseHubError as e:
        raise to_http(e) from None
    return AnalyticsOverviewOut(
        timeframe=overview.timeframe,
        total_certificates=overview.total_certificates,
        issued_certificates=overview.issued_certificates,
        revoked_certificates=overview.revoked_certificates,
        recent_certificates=overview.recent_certificates,
        issuance_rate=overview.issuance_rate,
        popular_courses=[
            CoursePopularityOut(
                course_id=p.course_id,
                course_name=p.course_name,
                certificate_count=p.certificate_count,
                average_score=p.average_score,
            )
            for p in overview.popular_courses
        ],
        top_performers=[
            PerformerOut(
                certificate_id=c.id,
                student_name=c.student_name,
                course_name=c.course_name,
                final_score=c.performance.final_score,
                grade=c.performance.grade,
            )
            for c in overview.top_performers
        ],
    )


@router.get("", response_model=CertificatePageOut)
async def list_certificates(
    principal: CurrentUser,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    student_id: Annotated[str | None, Query()] = None,
    course_id: Annotated[str | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    sort_by: Annotated[str, Query()] = "issued_date",
    sort_order: Annotated[Literal["asc", "desc"], Query()] = "desc",
) -> CertificatePageOut:
    pg = Page(
        number=page,
        size=limit,
        sort_by=sort_by if sort_by in SORT_FIELDS else "issued_date",
        descending=sort_order == "desc",
    )
    try:
        policy.authorize(principal, "certificate:list_all")
        items, total = await certificate_service.list_all(
            CertificateFilter(
                status=status_filter, student_id=student_id, course_id=course_id
            ),
            pg,
        )
    except CourseHubError as e:
        raise to_http(e) from None
    return _page_out(items, total, pg)


@router.get("/{certificate_id}", response_model=CertificateOut)
async def get_certificate(certificate_id: str, principal: CurrentUser) -> CertificateOut:
    try:
        await _readable(principal, certificate_id)
        cert = await certificate_service.track_view(certificate_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return CertificateOut.from_certificate(cert)


@router.get("/{certificate_id}/download", response_model=DownloadOut)
async def download_certificate(
    certificate_id: str,
    principal: CurrentUser,
    download_format: Annotated[str, Query(alias="format")] = "pdf",
) -> DownloadOut:
    # Rendering is left to the client; this returns the data to render
    if download_format not in DOWNLOAD_FORMATS:
        download_format = "pdf"
    try:
        await _readable(principal, certificate_id)
        cert = await certificate_service.track_download(certificate_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return DownloadOut(
        download_format=download_format,
        certificate=CertificateOut.from_certificate(cert),
    )


@router.post("/{certificate_id}/share", response_model=ShareOut)
async def share_certificate(
    certificate_id: str, principal: CurrentUser, body: ShareIn | None = None
) -> ShareOut:
    try:
        cert = await certificate_service.get(certificate_id)
        policy.authorize(principal, "certificate:share", _resource(cert))
        cert = await certificate_service.track_share(certificate_id)
    except CourseHubError as e:
        raise to_http(e) from None
    return ShareOut(
        certificate_id=cert.id,
        verification_url=cert.verification.url,
        share_count=cert.analytics.share_count,
        platform=body.platform if body else None,
    )


@router.put("/{certificate_id}/revoke", response_model=CertificateOut)
async def revoke_certificate(
    certificate_id: str, principal: CurrentUser, body: RevokeIn | None = None
) -> CertificateOut:
    try:
        cert = await certificate_service.get(certificate_id)
        policy.authorize(principal, "certificate:revoke", _resource(cert))
        cert = await certificate_service.revoke(
            certificate_id, body.reason if body else None
        )
    except CourseHubError as e:
        raise to_http(e) from None
    return CertificateOut.from_certificate(cert)
