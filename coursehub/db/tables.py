"""SQLAlchemy table definitions.

Rows map to the frozen dataclass domain models in coursehub/models/; the
Pg* repositories convert in both directions.  Unique constraints are
named explicitly because the repositories tell violations apart by
constraint name (see coursehub/repos/pg_errors.py).
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from coursehub.db.engine import Base


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(
        String(32), nullable=False, default="student"
    )  # student|instructor|admin
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    instructor_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="published"
    )  # draft|published|retired
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    grading: Mapped[str] = mapped_column(
        String(16), nullable=False, default="letter"
    )  # letter|pass_fail
    skills: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=[])
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class CourseModuleRow(Base):
    __tablename__ = "course_modules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    lesson_ids: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=[]
    )


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    # [{module_id, completed, completed_lessons, time_spent, last_accessed}]
    module_progress: Mapped[list[dict]] = mapped_column(
        JSONB, nullable=False, default=list
    )
    enrolled_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_activity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    overall_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_percentage: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    final_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_assignments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_assignments: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_quizzes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_quizzes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_quiz_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_assignment_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )

    certificate_generated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    certificate_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    completed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class CertificateRow(Base):
    __tablename__ = "certificates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    instructor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_name: Mapped[str] = mapped_column(String(512), nullable=False)
    course_name: Mapped[str] = mapped_column(String(500), nullable=False)
    instructor_name: Mapped[str] = mapped_column(String(512), nullable=False)
    enrollment_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    completion_date: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    skills: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=[])
    issuer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    issuer_url: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # final_score is a column for sorting; the rest of the snapshot is JSON
    final_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    performance: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending"
    )  # pending|issued|revoked|expired
    certificate_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Stored upper-cased; lookups upper-case the probe
    verification_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verification_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_verifiable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    issued_date: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    revoked_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    share_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    verification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_viewed: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_downloaded: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint(
            "student_id", "course_id", name="uq_certificates_student_course"
        ),
        UniqueConstraint("certificate_number", name="uq_certificates_number"),
        UniqueConstraint(
            "verification_code", name="uq_certificates_verification_code"
        ),
    )
