"""PostgreSQL implementation of QuestionRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import QuestionRow
from exam_service.models.question import Option, Question, QuestionType


class PgQuestionRepo:
    """Satisfies the QuestionRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, question_id: UUID) -> Question | None:
        stmt = select(QuestionRow).where(QuestionRow.id == question_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_question(row)

    async def list_by_ids(self, question_ids: list[UUID]) -> list[Question]:
        if not question_ids:
            return []
        stmt = select(QuestionRow).where(QuestionRow.id.in_(question_ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        by_id = {row.id: _row_to_question(row) for row in rows}
        return [by_id[q] for q in question_ids if q in by_id]

    async def add(self, question: Question) -> None:
        self._session.add(QuestionRow(id=question.id, **_question_values(question)))
        await self._session.flush()

    async def save(self, question: Question) -> None:
        stmt = (
            update(QuestionRow)
            .where(QuestionRow.id == question.id)
            .values(**_question_values(question))
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("question not found")

    async def delete(self, question_id: UUID) -> bool:
        stmt = delete(QuestionRow).where(QuestionRow.id == question_id)
        return (await self._session.execute(stmt)).rowcount > 0

    async def delete_by_exam(self, exam_id: UUID) -> int:
        stmt = delete(QuestionRow).where(QuestionRow.exam_id == exam_id)
        return (await self._session.execute(stmt)).rowcount


def _question_values(question: Question) -> dict:
    return {
        "exam_id": question.exam_id,
        "type": question.type.value,
        "text": question.text,
        "points": question.points,
        "options": [
            {"id": o.id, "text": o.text, "is_correct": o.is_correct}
            for o in question.options
        ],
        "correct_answer": question.correct_answer,
        "explanation": question.explanation,
        "created_by": question.created_by,
    }


def _row_to_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        exam_id=row.exam_id,
        type=QuestionType(row.type),
        text=row.text,
        points=row.points,
        options=tuple(
            Option(id=o["id"], text=o["text"], is_correct=bool(o.get("is_correct")))
            for o in row.options or ()
        ),
        correct_answer=row.correct_answer,
        explanation=row.explanation,
        created_by=row.created_by,
    )
