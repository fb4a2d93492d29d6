"""Translate Postgres unique violations into DuplicateKeyError."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from coursehub.core.errors import DuplicateKeyError

# constraint name -> logical field reported to callers
_UNIQUE_FIELDS = {
    "enrollments_pkey": "student_course",
    "uq_certificates_student_course": "student_course",
    "uq_certificates_number": "certificate_number",
    "uq_certificates_verification_code": "verification_code",
    "courses_slug_key": "slug",
    "users_email_key": "email",
}


def duplicate_key(exc: IntegrityError) -> DuplicateKeyError | None:
    """Return the matching DuplicateKeyError, or None for other integrity errors."""
    message = str(exc.orig)
    for constraint, field in _UNIQUE_FIELDS.items():
        if constraint in message:
            return DuplicateKeyError(field)
    return None
