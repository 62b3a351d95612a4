"""create exam tables

Revision ID: 3b1e7c9d2a40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e7c9d2a40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "exams",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(length=320), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "allowed_students",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column(
            "question_ids",
            postgresql.ARRAY(postgresql.UUID(as_uuid=True)),
            nullable=False,
            server_default="{}",
        ),
        sa.Column(
            "shuffle_questions", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "project_total_marks", sa.Float(), nullable=False, server_default="100"
        ),
        sa.Column("project_passing_marks", sa.Float(), nullable=True),
    )

    op.create_table(
        "questions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "exam_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("exams.id"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("points", sa.Float(), nullable=False),
        sa.Column(
            "options", postgresql.JSONB(), nullable=False, server_default="[]"
        ),
        sa.Column("correct_answer", sa.String(length=16), nullable=True),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=320), nullable=True),
    )
    op.create_index("ix_questions_exam_id", "questions", ["exam_id"])

    op.create_table(
        "exam_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "exam_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("exams.id"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(length=320), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column(
            "status", sa.String(length=16), nullable=False, server_default="in_progress"
        ),
        sa.Column(
            "questions", postgresql.JSONB(), nullable=False, server_default="[]"
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_marks", sa.Float(), nullable=False, server_default="0"),
        sa.Column("graded_by", sa.String(length=320), nullable=True),
        sa.Column("graded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_exam_attempts_exam_student", "exam_attempts", ["exam_id", "student_id"]
    )
    op.create_index("ix_exam_attempts_status", "exam_attempts", ["status"])

    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "exam_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("exams.id"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(length=320), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("submission_type", sa.String(length=16), nullable=False),
        sa.Column("answers", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column(
            "total_marks_obtained", sa.Float(), nullable=False, server_default="0"
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("project", postgresql.JSONB(), nullable=True),
        sa.UniqueConstraint(
            "exam_id", "student_id", "attempt_number", name="uq_submission_attempt"
        ),
    )

    op.create_table(
        "results",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "exam_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("exams.id"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(length=320), nullable=False),
        sa.Column(
            "submission_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("submissions.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("total_marks", sa.Float(), nullable=False),
        sa.Column("obtained_marks", sa.Float(), nullable=False),
        sa.Column("percentage", sa.Float(), nullable=False),
        sa.Column("grade", sa.String(length=2), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column(
            "question_results", postgresql.JSONB(), nullable=False, server_default="[]"
        ),
        sa.Column("analytics", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("is_released", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_by", sa.String(length=320), nullable=True),
        sa.Column("evaluated_by", sa.String(length=320), nullable=True),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
    )
    op.create_index("ix_results_exam_student", "results", ["exam_id", "student_id"])


def downgrade() -> None:
    op.drop_index("ix_results_exam_student", table_name="results")
    op.drop_table("results")
    op.drop_table("submissions")
    op.drop_index("ix_exam_attempts_status", table_name="exam_attempts")
    op.drop_index("ix_exam_attempts_exam_student", table_name="exam_attempts")
    op.drop_table("exam_attempts")
    op.drop_index("ix_questions_exam_id", table_name="questions")
    op.drop_table("questions")
    op.drop_table("exams")
