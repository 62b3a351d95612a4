from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from exam_service.models.result import Result


class ResultRepo(Protocol):
    async def get(self, result_id: UUID) -> Result | None: ...
    async def get_by_submission(self, submission_id: UUID) -> Result | None: ...

    async def upsert(self, result: Result) -> Result:
        """Atomic write keyed on submission_id; an existing row keeps its id."""
        ...

    async def list_with_question(
        self, exam_id: UUID, question_id: UUID
    ) -> list[Result]: ...
    async def list_by_exam(self, exam_id: UUID) -> list[Result]: ...
    async def list_by_student(self, student_id: str) -> list[Result]: ...
    async def delete_by_exam(self, exam_id: UUID) -> int: ...


class InMemoryResultRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Result] = {}
        self._by_submission: dict[UUID, UUID] = {}

    async def get(self, result_id: UUID) -> Result | None:
        return self._by_id.get(result_id)

    async def get_by_submission(self, submission_id: UUID) -> Result | None:
        result_id = self._by_submission.get(submission_id)
        if result_id is None:
            return None
        return self._by_id.get(result_id)

    async def upsert(self, result: Result) -> Result:
        existing_id = self._by_submission.get(result.submission_id)
        if existing_id is not None and existing_id != result.id:
            result = replace(result, id=existing_id)
        self._by_id[result.id] = result
        self._by_submission[result.submission_id] = result.id
        return result

    async def list_with_question(
        self, exam_id: UUID, question_id: UUID
    ) -> list[Result]:
        return [
            r
            for r in self._by_id.values()
            if r.exam_id == exam_id and r.references(question_id)
        ]

    async def list_by_exam(self, exam_id: UUID) -> list[Result]:
        return [r for r in self._by_id.values() if r.exam_id == exam_id]

    async def list_by_student(self, student_id: str) -> list[Result]:
        return [r for r in self._by_id.values() if r.student_id == student_id]

    async def delete_by_exam(self, exam_id: UUID) -> int:
        doomed = [r for r in self._by_id.values() if r.exam_id == exam_id]
        for r in doomed:
            del self._by_id[r.id]
            self._by_submission.pop(r.submission_id, None)
        return len(doomed)
