"""Certificate entity and its lifecycle.

    pending ──issue()──> issued ──revoke()──> revoked
                                  (expired exists in the status vocabulary
                                   but nothing in this service produces it)

Identity fields (certificate_number, verification code) are attached at the
issue transition and never change afterwards.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from uuid import uuid4

from coursehub.core.errors import PreconditionError

STATUSES = ("pending", "issued", "revoked", "expired")

GRADES = (
    "A+", "A", "A-", "B+", "B", "B-", "C+", "C", "C-", "D", "F", "Pass", "Fail"
)

_LETTER_THRESHOLDS = (
    (95, "A+"),
    (90, "A"),
    (85, "A-"),
    (80, "B+"),
    (75, "B"),
    (70, "B-"),
    (65, "C+"),
    (60, "C"),
    (55, "C-"),
    (50, "D"),
)

PASS_MARK = 50


def grade_for(score: float, grading: str = "letter") -> str:
    if grading == "pass_fail":
        return "Pass" if score >= PASS_MARK else "Fail"
    for threshold, letter in _LETTER_THRESHOLDS:
        if score >= threshold:
            return letter
    return "F"


def duration_weeks(hours: int) -> int:
    # 40-hour study week
    return math.ceil(hours / 40) if hours > 0 else 0


@dataclass(frozen=True, slots=True)
class CertificateIdentity:
    certificate_number: str
    verification_code: str


@dataclass(frozen=True, slots=True)
class Performance:
    final_score: int = 0
    total_assignments: int = 0
    completed_assignments: int = 0
    total_quizzes: int = 0
    completed_quizzes: int = 0
    avg_quiz_score: float = 0.0
    avg_assignment_score: float = 0.0
    grading: str = "letter"

    @property
    def grade(self) -> str:
        return grade_for(self.final_score, self.grading)


@dataclass(frozen=True, slots=True)
class Verification:
    code: str | None = None
    url: str | None = None
    is_verifiable: bool = True


@dataclass(frozen=True, slots=True)
class Analytics:
    view_count: int = 0
    download_count: int = 0
    share_count: int = 0
    verification_count: int = 0
    last_viewed: int | None = None
    last_downloaded: int | None = None


@dataclass(frozen=True, slots=True)
class Certificate:
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
    performance: Performance
    skills: tuple[str, ...] = ()
    issuer_name: str = "Online Course Platform"
    issuer_url: str = ""

    status: str = "pending"
    certificate_number: str | None = None
    verification: Verification = field(default_factory=Verification)
    issued_date: int | None = None
    revoked_at: int | None = None
    revocation_reason: str | None = None
    analytics: Analytics = field(default_factory=Analytics)

    created_at: int = 0
    updated_at: int = 0
    version: int = 1

    @staticmethod
    def new(
        *,
        student_id: str,
        course_id: str,
        instructor_id: str,
        student_name: str,
        course_name: str,
        instructor_name: str,
        enrollment_date: int,
        completion_date: int,
        duration_hours: int,
        performance: Performance,
        skills: tuple[str, ...] = (),
        issuer_name: str = "Online Course Platform",
        issuer_url: str = "",
        now: int,
    ) -> Certificate:
        return Certificate(
            id=str(uuid4()),
            student_id=student_id,
            course_id=course_id,
            instructor_id=instructor_id,
            student_name=student_name,
            course_name=course_name,
            instructor_name=instructor_name,
            enrollment_date=enrollment_date,
            completion_date=completion_date,
            duration_hours=duration_hours,
            performance=performance,
            skills=skills,
            issuer_name=issuer_name,
            issuer_url=issuer_url,
            created_at=now,
            updated_at=now,
        )

    @property
    def duration_weeks(self) -> int:
        return duration_weeks(self.duration_hours)

    @property
    def verification_code(self) -> str | None:
        return self.verification.code

    @property
    def is_verifiable(self) -> bool:
        return self.status == "issued" and self.verification.is_verifiable

    def issue(
        self, *, now: int, identity: CertificateIdentity, verify_base_url: str
    ) -> Certificate:
        if self.status == "issued":
            return self
        if self.status != "pending":
            raise PreconditionError(f"cannot issue a {self.status} certificate")
        number = self.certificate_number or identity.certificate_number
        code = self.verification.code or identity.verification_code
        return replace(
            self,
            status="issued",
            certificate_number=number,
            verification=Verification(
                code=code,
                url=f"{verify_base_url.rstrip('/')}/verify/{code}",
                is_verifiable=True,
            ),
            issued_date=now,
            updated_at=now,
        )

    def revoke(self, *, reason: str, now: int) -> Certificate:
        if self.status != "issued":
            raise PreconditionError(f"cannot revoke a {self.status} certificate")
        return replace(
            self,
            status="revoked",
            verification=replace(self.verification, is_verifiable=False),
            revocation_reason=reason,
            revoked_at=now,
            updated_at=now,
        )
