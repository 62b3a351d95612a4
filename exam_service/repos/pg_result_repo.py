"""PostgreSQL implementation of ResultRepo."""

from __future__ import annotations

from dataclasses import asdict, replace
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import ResultRow
from exam_service.models.result import Analytics, QuestionResult, Result, ResultStatus


class PgResultRepo:
    """Satisfies the ResultRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, result_id: UUID) -> Result | None:
        stmt = select(ResultRow).where(ResultRow.id == result_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_result(row)

    async def get_by_submission(self, submission_id: UUID) -> Result | None:
        stmt = select(ResultRow).where(ResultRow.submission_id == submission_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_result(row) if row is not None else None

    async def upsert(self, result: Result) -> Result:
        values = _result_values(result)
        stmt = (
            pg_insert(ResultRow)
            .values(id=result.id, **values)
            .on_conflict_do_update(index_elements=[ResultRow.submission_id], set_=values)
            .returning(ResultRow.id)
        )
        stored_id = (await self._session.execute(stmt)).scalar_one()
        if stored_id != result.id:
            result = replace(result, id=stored_id)
        return result

    async def list_with_question(
        self, exam_id: UUID, question_id: UUID
    ) -> list[Result]:
        stmt = select(ResultRow).where(
            ResultRow.exam_id == exam_id,
            ResultRow.question_results.contains([{"question_id": str(question_id)}]),
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_result(r) for r in rows]

    async def list_by_exam(self, exam_id: UUID) -> list[Result]:
        stmt = select(ResultRow).where(ResultRow.exam_id == exam_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_result(r) for r in rows]

    async def list_by_student(self, student_id: str) -> list[Result]:
        stmt = select(ResultRow).where(ResultRow.student_id == student_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_result(r) for r in rows]

    async def delete_by_exam(self, exam_id: UUID) -> int:
        stmt = delete(ResultRow).where(ResultRow.exam_id == exam_id)
        return (await self._session.execute(stmt)).rowcount


def _result_values(result: Result) -> dict:
    return {
        "exam_id": result.exam_id,
        "student_id": result.student_id,
        "submission_id": result.submission_id,
        "total_marks": result.total_marks,
        "obtained_marks": result.obtained_marks,
        "percentage": result.percentage,
        "grade": result.grade,
        "status": result.status.value,
        "question_results": [
            {
                "question_id": str(qr.question_id),
                "obtained_marks": qr.obtained_marks,
                "total_marks": qr.total_marks,
                "is_correct": qr.is_correct,
            }
            for qr in result.question_results
        ],
        "analytics": asdict(result.analytics),
        "is_released": result.is_released,
        "released_at": result.released_at,
        "released_by": result.released_by,
        "evaluated_by": result.evaluated_by,
        "evaluated_at": result.evaluated_at,
        "feedback": result.feedback,
    }


def _row_to_result(row: ResultRow) -> Result:
    return Result(
        id=row.id,
        exam_id=row.exam_id,
        student_id=row.student_id,
        submission_id=row.submission_id,
        total_marks=row.total_marks,
        obtained_marks=row.obtained_marks,
        percentage=row.percentage,
        grade=row.grade,
        status=ResultStatus(row.status),
        question_results=tuple(
            QuestionResult(
                question_id=UUID(qr["question_id"]),
                obtained_marks=float(qr["obtained_marks"]),
                total_marks=float(qr["total_marks"]),
                is_correct=bool(qr["is_correct"]),
            )
            for qr in row.question_results or ()
        ),
        analytics=Analytics(**(row.analytics or {})),
        is_released=row.is_released,
        released_at=row.released_at,
        released_by=row.released_by,
        evaluated_by=row.evaluated_by,
        evaluated_at=row.evaluated_at,
        feedback=row.feedback,
    )
