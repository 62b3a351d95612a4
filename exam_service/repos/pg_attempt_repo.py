"""PostgreSQL implementation of AttemptRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import AttemptRow
from exam_service.models.attempt import Attempt, AttemptQuestion, AttemptStatus


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, attempt_id: UUID) -> Attempt | None:
        stmt = select(AttemptRow).where(AttemptRow.id == attempt_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_attempt(row)

    async def add(self, attempt: Attempt) -> None:
        self._session.add(AttemptRow(id=attempt.id, **_attempt_values(attempt)))
        await self._session.flush()

    async def save(
        self, attempt: Attempt, *, expected_status: AttemptStatus | None = None
    ) -> bool:
        # A single UPDATE ... WHERE status = :expected is the status gate:
        # of two racing submits only one matches the row.
        stmt = update(AttemptRow).where(AttemptRow.id == attempt.id)
        if expected_status is not None:
            stmt = stmt.where(AttemptRow.status == expected_status.value)
        result = await self._session.execute(stmt.values(**_attempt_values(attempt)))
        if result.rowcount == 0 and expected_status is None:
            raise KeyError("attempt not found")
        return result.rowcount > 0

    async def count_for(self, exam_id: UUID, student_id: str) -> int:
        stmt = select(func.count()).where(
            AttemptRow.exam_id == exam_id, AttemptRow.student_id == student_id
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def find_in_progress(self, exam_id: UUID, student_id: str) -> Attempt | None:
        stmt = (
            select(AttemptRow)
            .where(
                AttemptRow.exam_id == exam_id,
                AttemptRow.student_id == student_id,
                AttemptRow.status == AttemptStatus.IN_PROGRESS.value,
            )
            .order_by(AttemptRow.start_time.desc())
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_attempt(row) if row is not None else None

    async def list_submitted_with_question(self, question_id: UUID) -> list[Attempt]:
        stmt = select(AttemptRow).where(
            AttemptRow.status == AttemptStatus.SUBMITTED.value,
            AttemptRow.questions.contains([{"question_id": str(question_id)}]),
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def list_by_exam(self, exam_id: UUID) -> list[Attempt]:
        stmt = select(AttemptRow).where(AttemptRow.exam_id == exam_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def delete_by_exam(self, exam_id: UUID) -> int:
        stmt = delete(AttemptRow).where(AttemptRow.exam_id == exam_id)
        return (await self._session.execute(stmt)).rowcount


def _attempt_values(attempt: Attempt) -> dict:
    return {
        "exam_id": attempt.exam_id,
        "student_id": attempt.student_id,
        "start_time": attempt.start_time,
        "end_time": attempt.end_time,
        "attempt_number": attempt.attempt_number,
        "status": attempt.status.value,
        "questions": [
            {"question_id": str(e.question_id), "answer": e.answer, "marks": e.marks}
            for e in attempt.questions
        ],
        "submitted_at": attempt.submitted_at,
        "total_marks": attempt.total_marks,
        "graded_by": attempt.graded_by,
        "graded_at": attempt.graded_at,
    }


def _row_to_attempt(row: AttemptRow) -> Attempt:
    return Attempt(
        id=row.id,
        exam_id=row.exam_id,
        student_id=row.student_id,
        start_time=row.start_time,
        end_time=row.end_time,
        attempt_number=row.attempt_number,
        status=AttemptStatus(row.status),
        questions=tuple(
            AttemptQuestion(
                question_id=UUID(e["question_id"]),
                answer=e.get("answer"),
                marks=float(e.get("marks") or 0),
            )
            for e in row.questions or ()
        ),
        submitted_at=row.submitted_at,
        total_marks=row.total_marks,
        graded_by=row.graded_by,
        graded_at=row.graded_at,
    )
