from __future__ import annotations

from typing import Protocol
from uuid import UUID

from exam_service.models.question import Question


class QuestionRepo(Protocol):
    async def get(self, question_id: UUID) -> Question | None: ...
    async def list_by_ids(self, question_ids: list[UUID]) -> list[Question]: ...
    async def add(self, question: Question) -> None: ...
    async def save(self, question: Question) -> None: ...
    async def delete(self, question_id: UUID) -> bool: ...
    async def delete_by_exam(self, exam_id: UUID) -> int: ...


class InMemoryQuestionRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Question] = {}

    async def get(self, question_id: UUID) -> Question | None:
        return self._by_id.get(question_id)

    async def list_by_ids(self, question_ids: list[UUID]) -> list[Question]:
        # Preserves the caller's order; unknown ids are skipped.
        return [self._by_id[q] for q in question_ids if q in self._by_id]

    async def add(self, question: Question) -> None:
        if question.id in self._by_id:
            raise ValueError("question already exists")
        self._by_id[question.id] = question

    async def save(self, question: Question) -> None:
        if question.id not in self._by_id:
            raise KeyError("question not found")
        self._by_id[question.id] = question

    async def delete(self, question_id: UUID) -> bool:
        return self._by_id.pop(question_id, None) is not None

    async def delete_by_exam(self, exam_id: UUID) -> int:
        doomed = [q.id for q in self._by_id.values() if q.exam_id == exam_id]
        for question_id in doomed:
            del self._by_id[question_id]
        return len(doomed)
