"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in exam_service/models/.
Ordered sub-records (attempt questions, graded answers, result breakdowns)
are stored as JSONB arrays on their parent row: they are always read and
rewritten together with it, and JSONB containment (@>) answers "which rows
mention question X" for the recalculation fan-out.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from exam_service.db.engine import Base


class ExamRow(Base):
    __tablename__ = "exams"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # mcq|project|mixed
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="draft"
    )  # draft|published|archived
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[str] = mapped_column(String(320), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allowed_students: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=[]
    )
    question_ids: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, default=[]
    )
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    project_total_marks: Mapped[float] = mapped_column(Float, nullable=False, default=100)
    project_passing_marks: Mapped[float | None] = mapped_column(Float, nullable=True)


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("exams.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[float] = mapped_column(Float, nullable=False)
    options: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=[])
    correct_answer: Mapped[str | None] = mapped_column(String(16), nullable=True)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(320), nullable=True)


class AttemptRow(Base):
    __tablename__ = "exam_attempts"
    __table_args__ = (Index("ix_exam_attempts_exam_student", "exam_id", "student_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("exams.id"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(320), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="in_progress", index=True
    )  # in_progress|submitted|expired
    questions: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=[])
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    total_marks: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    graded_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    graded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SubmissionRow(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        # The one uniqueness the storage layer must enforce: two concurrent
        # submits of the same attempt number collapse onto one row.
        UniqueConstraint(
            "exam_id", "student_id", "attempt_number", name="uq_submission_attempt"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("exams.id"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(320), nullable=False)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    submission_type: Mapped[str] = mapped_column(String(16), nullable=False)
    answers: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=[])
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="draft"
    )  # draft|submitted|graded
    total_marks_obtained: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    project: Mapped[dict | None] = mapped_column(JSONB, nullable=True)


class ResultRow(Base):
    __tablename__ = "results"
    __table_args__ = (Index("ix_results_exam_student", "exam_id", "student_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("exams.id"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(320), nullable=False)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("submissions.id"), unique=True, nullable=False
    )
    total_marks: Mapped[float] = mapped_column(Float, nullable=False)
    obtained_marks: Mapped[float] = mapped_column(Float, nullable=False)
    percentage: Mapped[float] = mapped_column(Float, nullable=False)
    grade: Mapped[str] = mapped_column(String(2), nullable=False)
    status: Mapped[str] = mapped_column(String(8), nullable=False)  # pass|fail
    question_results: Mapped[list[dict]] = mapped_column(
        JSONB, nullable=False, default=[]
    )
    analytics: Mapped[dict] = mapped_column(JSONB, nullable=False, default={})
    is_released: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    released_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    evaluated_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    evaluated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
