"""create users, courses, enrollments and certificates

Revision ID: 3b7e1c9d2a40
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7e1c9d2a40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id", name="users_pkey"),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("instructor_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="published"),
        sa.Column("duration_hours", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("grading", sa.String(length=16), nullable=False, server_default="letter"),
        sa.Column(
            "skills",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["instructor_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id", name="courses_pkey"),
        sa.UniqueConstraint("slug", name="courses_slug_key"),
    )

    op.create_table(
        "course_modules",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column(
            "lesson_ids",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="course_modules_pkey"),
    )
    op.create_index("ix_course_modules_course_id", "course_modules", ["course_id"])

    op.create_table(
        "enrollments",
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column(
            "module_progress",
            postgresql.JSONB(),
            nullable=False,
            server_default="[]",
        ),
        sa.Column("enrolled_at", sa.BigInteger(), nullable=False),
        sa.Column("last_activity", sa.BigInteger(), nullable=False),
        sa.Column("total_time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overall_progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "completion_percentage", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("final_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_assignments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "completed_assignments", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("total_quizzes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_quizzes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_quiz_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("avg_assignment_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "certificate_generated", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("certificate_id", sa.String(length=64), nullable=True),
        sa.Column("completed_at", sa.BigInteger(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("student_id", "course_id", name="enrollments_pkey"),
    )
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("instructor_id", sa.String(length=64), nullable=False),
        sa.Column("student_name", sa.String(length=512), nullable=False),
        sa.Column("course_name", sa.String(length=500), nullable=False),
        sa.Column("instructor_name", sa.String(length=512), nullable=False),
        sa.Column("enrollment_date", sa.BigInteger(), nullable=False),
        sa.Column("completion_date", sa.BigInteger(), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False),
        sa.Column(
            "skills",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("issuer_name", sa.String(length=255), nullable=False),
        sa.Column("issuer_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("final_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "performance", postgresql.JSONB(), nullable=False, server_default="{}"
        ),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("certificate_number", sa.String(length=32), nullable=True),
        sa.Column("verification_code", sa.String(length=64), nullable=True),
        sa.Column("verification_url", sa.Text(), nullable=True),
        sa.Column("is_verifiable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("issued_date", sa.BigInteger(), nullable=True),
        sa.Column("revoked_at", sa.BigInteger(), nullable=True),
        sa.Column("revocation_reason", sa.Text(), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("share_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("verification_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_viewed", sa.BigInteger(), nullable=True),
        sa.Column("last_downloaded", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id", name="certificates_pkey"),
        sa.UniqueConstraint(
            "student_id", "course_id", name="uq_certificates_student_course"
        ),
        sa.UniqueConstraint("certificate_number", name="uq_certificates_number"),
        sa.UniqueConstraint(
            "verification_code", name="uq_certificates_verification_code"
        ),
    )
    op.create_index("ix_certificates_student_id", "certificates", ["student_id"])
    op.create_index("ix_certificates_course_id", "certificates", ["course_id"])


def downgrade() -> None:
    op.drop_index("ix_certificates_course_id", table_name="certificates")
    op.drop_index("ix_certificates_student_id", table_name="certificates")
    op.drop_table("certificates")
    op.drop_index("ix_enrollments_course_id", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index("ix_course_modules_course_id", table_name="course_modules")
    op.drop_table("course_modules")
    op.drop_table("courses")
    op.drop_table("users")
