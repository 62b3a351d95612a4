from __future__ import annotations

from typing import Protocol
from uuid import UUID

from exam_service.models.exam import Exam


class ExamRepo(Protocol):
    async def get(self, exam_id: UUID) -> Exam | None: ...
    async def add(self, exam: Exam) -> None: ...
    async def save(self, exam: Exam) -> None: ...
    async def delete(self, exam_id: UUID) -> bool: ...


class InMemoryExamRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Exam] = {}

    async def get(self, exam_id: UUID) -> Exam | None:
        return self._by_id.get(exam_id)

    async def add(self, exam: Exam) -> None:
        if exam.id in self._by_id:
            raise ValueError("exam already exists")
        self._by_id[exam.id] = exam

    async def save(self, exam: Exam) -> None:
        if exam.id not in self._by_id:
            raise KeyError("exam not found")
        self._by_id[exam.id] = exam

    async def delete(self, exam_id: UUID) -> bool:
        return self._by_id.pop(exam_id, None) is not None
