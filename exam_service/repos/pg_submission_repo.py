"""PostgreSQL implementation of SubmissionRepo."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import SubmissionRow
from exam_service.models.exam import ExamType
from exam_service.models.submission import (
    ChoiceAnswer,
    GradedAnswer,
    ManualAnswer,
    ProjectWork,
    Submission,
    SubmissionStatus,
    TrueFalseAnswer,
)

_SCORED = (SubmissionStatus.SUBMITTED.value, SubmissionStatus.GRADED.value)


class PgSubmissionRepo:
    """Satisfies the SubmissionRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, submission_id: UUID) -> Submission | None:
        stmt = select(SubmissionRow).where(SubmissionRow.id == submission_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_submission(row)

    async def get_by_key(
        self, exam_id: UUID, student_id: str, attempt_number: int
    ) -> Submission | None:
        stmt = select(SubmissionRow).where(
            SubmissionRow.exam_id == exam_id,
            SubmissionRow.student_id == student_id,
            SubmissionRow.attempt_number == attempt_number,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_submission(row) if row is not None else None

    async def upsert(self, submission: Submission) -> Submission:
        values = _submission_values(submission)
        stmt = (
            pg_insert(SubmissionRow)
            .values(id=submission.id, **values)
            .on_conflict_do_update(constraint="uq_submission_attempt", set_=values)
            .returning(SubmissionRow.id)
        )
        stored_id = (await self._session.execute(stmt)).scalar_one()
        if stored_id != submission.id:
            submission = replace(submission, id=stored_id)
        return submission

    async def latest_attempt_number(self, exam_id: UUID, student_id: str) -> int:
        stmt = select(func.coalesce(func.max(SubmissionRow.attempt_number), 0)).where(
            SubmissionRow.exam_id == exam_id, SubmissionRow.student_id == student_id
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_graded_with_question(
        self, exam_id: UUID, question_id: UUID
    ) -> list[Submission]:
        stmt = select(SubmissionRow).where(
            SubmissionRow.exam_id == exam_id,
            SubmissionRow.status.in_(_SCORED),
            SubmissionRow.answers.contains([{"question_id": str(question_id)}]),
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_submission(r) for r in rows]

    async def list_by_exam(self, exam_id: UUID) -> list[Submission]:
        stmt = select(SubmissionRow).where(SubmissionRow.exam_id == exam_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_submission(r) for r in rows]

    async def delete_by_exam(self, exam_id: UUID) -> int:
        stmt = delete(SubmissionRow).where(SubmissionRow.exam_id == exam_id)
        return (await self._session.execute(stmt)).rowcount


# ---------------------------------------------------------------------------
# JSONB codecs
# ---------------------------------------------------------------------------


def _answer_to_json(answer: GradedAnswer) -> dict:
    data = {
        "kind": answer.kind,
        "question_id": str(answer.question_id),
        "is_correct": answer.is_correct,
        "marks_obtained": answer.marks_obtained,
    }
    match answer:
        case ChoiceAnswer():
            data["selected_option"] = answer.selected_option
            data["time_spent"] = answer.time_spent
        case TrueFalseAnswer():
            data["answer"] = answer.answer
            data["time_spent"] = answer.time_spent
        case ManualAnswer():
            data["answer"] = answer.answer
            data["graded_by"] = answer.graded_by
    return data


def _answer_from_json(data: dict) -> GradedAnswer:
    question_id = UUID(data["question_id"])
    is_correct = bool(data["is_correct"])
    marks = float(data["marks_obtained"])
    kind = data["kind"]
    if kind == ChoiceAnswer.kind:
        return ChoiceAnswer(
            question_id=question_id,
            selected_option=data["selected_option"],
            is_correct=is_correct,
            marks_obtained=marks,
            time_spent=int(data.get("time_spent", 0)),
        )
    if kind == TrueFalseAnswer.kind:
        return TrueFalseAnswer(
            question_id=question_id,
            answer=data["answer"],
            is_correct=is_correct,
            marks_obtained=marks,
            time_spent=int(data.get("time_spent", 0)),
        )
    if kind == ManualAnswer.kind:
        return ManualAnswer(
            question_id=question_id,
            answer=data["answer"],
            is_correct=is_correct,
            marks_obtained=marks,
            graded_by=data.get("graded_by"),
        )
    raise ValueError(f"unknown answer kind {kind!r}")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _project_to_json(project: ProjectWork | None) -> dict | None:
    if project is None:
        return None
    return {
        "file_url": project.file_url,
        "file_name": project.file_name,
        "file_size": project.file_size,
        "file_type": project.file_type,
        "submitted_at": project.submitted_at.isoformat(),
        "marks_obtained": project.marks_obtained,
        "feedback": project.feedback,
        "graded_by": project.graded_by,
        "graded_at": project.graded_at.isoformat() if project.graded_at else None,
    }


def _project_from_json(data: dict | None) -> ProjectWork | None:
    if not data:
        return None
    return ProjectWork(
        file_url=data["file_url"],
        file_name=data["file_name"],
        file_size=int(data["file_size"]),
        file_type=data["file_type"],
        submitted_at=datetime.fromisoformat(data["submitted_at"]),
        marks_obtained=data.get("marks_obtained"),
        feedback=data.get("feedback"),
        graded_by=data.get("graded_by"),
        graded_at=_dt(data.get("graded_at")),
    )


def _submission_values(submission: Submission) -> dict:
    return {
        "exam_id": submission.exam_id,
        "student_id": submission.student_id,
        "attempt_number": submission.attempt_number,
        "submission_type": submission.submission_type.value,
        "answers": [_answer_to_json(a) for a in submission.answers],
        "status": submission.status.value,
        "total_marks_obtained": submission.total_marks_obtained,
        "started_at": submission.started_at,
        "submitted_at": submission.submitted_at,
        "completed_at": submission.completed_at,
        "is_late": submission.is_late,
        "project": _project_to_json(submission.project),
    }


def _row_to_submission(row: SubmissionRow) -> Submission:
    return Submission(
        id=row.id,
        exam_id=row.exam_id,
        student_id=row.student_id,
        attempt_number=row.attempt_number,
        submission_type=ExamType(row.submission_type),
        answers=tuple(_answer_from_json(a) for a in row.answers or ()),
        status=SubmissionStatus(row.status),
        total_marks_obtained=row.total_marks_obtained,
        started_at=row.started_at,
        submitted_at=row.submitted_at,
        completed_at=row.completed_at,
        is_late=row.is_late,
        project=_project_from_json(row.project),
    )
