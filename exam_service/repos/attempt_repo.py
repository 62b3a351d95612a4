from __future__ import annotations

from typing import Protocol
from uuid import UUID

from exam_service.models.attempt import Attempt, AttemptStatus


class AttemptRepo(Protocol):
    async def get(self, attempt_id: UUID) -> Attempt | None: ...
    async def add(self, attempt: Attempt) -> None: ...

    async def save(
        self, attempt: Attempt, *, expected_status: AttemptStatus | None = None
    ) -> bool:
        """Overwrite the stored attempt.

        With expected_status, the write only happens if the stored status
        still equals it (compare-and-set).  Returns False when it did not.
        """
        ...

    async def count_for(self, exam_id: UUID, student_id: str) -> int: ...
    async def find_in_progress(
        self, exam_id: UUID, student_id: str
    ) -> Attempt | None: ...
    async def list_submitted_with_question(self, question_id: UUID) -> list[Attempt]: ...
    async def list_by_exam(self, exam_id: UUID) -> list[Attempt]: ...
    async def delete_by_exam(self, exam_id: UUID) -> int: ...


class InMemoryAttemptRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Attempt] = {}

    async def get(self, attempt_id: UUID) -> Attempt | None:
        return self._by_id.get(attempt_id)

    async def add(self, attempt: Attempt) -> None:
        if attempt.id in self._by_id:
            raise ValueError("attempt already exists")
        self._by_id[attempt.id] = attempt

    async def save(
        self, attempt: Attempt, *, expected_status: AttemptStatus | None = None
    ) -> bool:
        current = self._by_id.get(attempt.id)
        if current is None:
            raise KeyError("attempt not found")
        if expected_status is not None and current.status != expected_status:
            return False
        self._by_id[attempt.id] = attempt
        return True

    async def count_for(self, exam_id: UUID, student_id: str) -> int:
        return sum(
            1
            for a in self._by_id.values()
            if a.exam_id == exam_id and a.student_id == student_id
        )

    async def find_in_progress(self, exam_id: UUID, student_id: str) -> Attempt | None:
        candidates = [
            a
            for a in self._by_id.values()
            if a.exam_id == exam_id
            and a.student_id == student_id
            and a.status == AttemptStatus.IN_PROGRESS
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda a: a.start_time)

    async def list_submitted_with_question(self, question_id: UUID) -> list[Attempt]:
        return [
            a
            for a in self._by_id.values()
            if a.status == AttemptStatus.SUBMITTED
            and a.entry_for(question_id) is not None
        ]

    async def list_by_exam(self, exam_id: UUID) -> list[Attempt]:
        return [a for a in self._by_id.values() if a.exam_id == exam_id]

    async def delete_by_exam(self, exam_id: UUID) -> int:
        doomed = [a.id for a in self._by_id.values() if a.exam_id == exam_id]
        for attempt_id in doomed:
            del self._by_id[attempt_id]
        return len(doomed)
