"""Certificate entity: grading and the pending -> issued -> revoked lifecycle."""

from __future__ import annotations

from dataclasses import replace

import pytest

from coursehub.core.errors import PreconditionError
from coursehub.models.certificate import (
    GRADES,
    Certificate,
    CertificateIdentity,
    Performance,
    duration_weeks,
    grade_for,
)

_IDENTITY = CertificateIdentity(
    certificate_number="CERT-202603-0042", verification_code="LZ8K2ABCDEFGHIJK"
)


def _pending(**performance) -> Certificate:
    return Certificate.new(
        student_id="s1",
        course_id="c1",
        instructor_id="i1",
        student_name="Grace Hopper",
        course_name="Compilers",
        instructor_name="Ada Lovelace",
        enrollment_date=1_000,
        completion_date=2_000,
        duration_hours=45,
        performance=Performance(**performance),
        now=2_000,
    )


# ---- grades ----


@pytest.mark.parametrize(
    ("score", "grade"),
    [
        (100, "A+"),
        (95, "A+"),
        (92, "A"),
        (90, "A"),
        (89, "A-"),
        (80, "B+"),
        (77, "B"),
        (70, "B-"),
        (65, "C+"),
        (60, "C"),
        (55, "C-"),
        (50, "D"),
        (49, "F"),
        (0, "F"),
    ],
)
def test_letter_grades(score: int, grade: str) -> None:
    assert grade_for(score) == grade


def test_pass_fail_grading() -> None:
    assert grade_for(50, "pass_fail") == "Pass"
    assert grade_for(49, "pass_fail") == "Fail"


def test_every_grade_is_in_vocabulary() -> None:
    produced = {grade_for(s) for s in range(101)} | {
        grade_for(s, "pass_fail") for s in (0, 100)
    }
    assert produced <= set(GRADES)


def test_performance_grade_follows_grading_scheme() -> None:
    assert Performance(final_score=92).grade == "A"
    assert Performance(final_score=92, grading="pass_fail").grade == "Pass"


def test_duration_weeks_rounds_up() -> None:
    assert duration_weeks(45) == 2
    assert duration_weeks(40) == 1
    assert duration_weeks(0) == 0


# ---- lifecycle ----


def test_new_certificate_is_pending_without_identity() -> None:
    cert = _pending()
    assert cert.status == "pending"
    assert cert.certificate_number is None
    assert cert.verification_code is None
    assert not cert.is_verifiable


def test_issue_attaches_identity_and_url() -> None:
    cert = _pending().issue(
        now=3_000, identity=_IDENTITY, verify_base_url="https://learn.example.com/"
    )
    assert cert.status == "issued"
    assert cert.issued_date == 3_000
    assert cert.certificate_number == "CERT-202603-0042"
    assert cert.verification.url == "https://learn.example.com/verify/LZ8K2ABCDEFGHIJK"
    assert cert.is_verifiable


def test_issue_twice_keeps_first_identity() -> None:
    issued = _pending().issue(now=3_000, identity=_IDENTITY, verify_base_url="x")
    other = CertificateIdentity(certificate_number="CERT-202603-9999", verification_code="Z")
    again = issued.issue(now=4_000, identity=other, verify_base_url="x")
    assert again is issued


def test_revoke_issued_certificate() -> None:
    issued = _pending().issue(now=3_000, identity=_IDENTITY, verify_base_url="x")
    revoked = issued.revoke(reason="plagiarism", now=4_000)
    assert revoked.status == "revoked"
    assert revoked.revocation_reason == "plagiarism"
    assert revoked.revoked_at == 4_000
    assert not revoked.is_verifiable
    # Identity survives revocation
    assert revoked.certificate_number == issued.certificate_number


def test_cannot_revoke_pending() -> None:
    with pytest.raises(PreconditionError):
        _pending().revoke(reason="x", now=1)


def test_cannot_reissue_revoked() -> None:
    issued = _pending().issue(now=3_000, identity=_IDENTITY, verify_base_url="x")
    revoked = issued.revoke(reason="x", now=4_000)
    with pytest.raises(PreconditionError):
        revoked.issue(now=5_000, identity=_IDENTITY, verify_base_url="x")


def test_expired_is_not_verifiable() -> None:
    issued = _pending().issue(now=3_000, identity=_IDENTITY, verify_base_url="x")
    assert not replace(issued, status="expired").is_verifiable
