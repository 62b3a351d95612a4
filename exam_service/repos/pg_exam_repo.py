"""PostgreSQL implementation of ExamRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import ExamRow
from exam_service.models.exam import Exam, ExamStatus, ExamType


class PgExamRepo:
    """Satisfies the ExamRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, exam_id: UUID) -> Exam | None:
        stmt = select(ExamRow).where(ExamRow.id == exam_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_exam(row)

    async def add(self, exam: Exam) -> None:
        self._session.add(ExamRow(id=exam.id, **_exam_values(exam)))
        await self._session.flush()

    async def save(self, exam: Exam) -> None:
        stmt = update(ExamRow).where(ExamRow.id == exam.id).values(**_exam_values(exam))
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("exam not found")

    async def delete(self, exam_id: UUID) -> bool:
        result = await self._session.execute(delete(ExamRow).where(ExamRow.id == exam_id))
        return result.rowcount > 0


def _exam_values(exam: Exam) -> dict:
    return {
        "title": exam.title,
        "type": exam.type.value,
        "status": exam.status.value,
        "duration_minutes": exam.duration_minutes,
        "start_date": exam.start_date,
        "end_date": exam.end_date,
        "created_by": exam.created_by,
        "is_public": exam.is_public,
        "allowed_students": list(exam.allowed_students),
        "question_ids": list(exam.question_ids),
        "shuffle_questions": exam.shuffle_questions,
        "max_attempts": exam.max_attempts,
        "project_total_marks": exam.project_total_marks,
        "project_passing_marks": exam.project_passing_marks,
    }


def _row_to_exam(row: ExamRow) -> Exam:
    return Exam(
        id=row.id,
        title=row.title,
        type=ExamType(row.type),
        status=ExamStatus(row.status),
        duration_minutes=row.duration_minutes,
        start_date=row.start_date,
        end_date=row.end_date,
        created_by=row.created_by,
        is_public=row.is_public,
        allowed_students=tuple(row.allowed_students or ()),
        question_ids=tuple(row.question_ids or ()),
        shuffle_questions=row.shuffle_questions,
        max_attempts=row.max_attempts,
        project_total_marks=row.project_total_marks,
        project_passing_marks=row.project_passing_marks,
    )
