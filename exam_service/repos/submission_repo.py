from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from exam_service.models.submission import Submission, SubmissionStatus


class SubmissionRepo(Protocol):
    async def get(self, submission_id: UUID) -> Submission | None: ...
    async def get_by_key(
        self, exam_id: UUID, student_id: str, attempt_number: int
    ) -> Submission | None: ...

    async def upsert(self, submission: Submission) -> Submission:
        """Atomic write keyed on (exam_id, student_id, attempt_number).

        If a row with that key exists, it is overwritten in place and keeps
        its id.  Returns the stored submission.
        """
        ...

    async def latest_attempt_number(self, exam_id: UUID, student_id: str) -> int: ...
    async def list_graded_with_question(
        self, exam_id: UUID, question_id: UUID
    ) -> list[Submission]: ...
    async def list_by_exam(self, exam_id: UUID) -> list[Submission]: ...
    async def delete_by_exam(self, exam_id: UUID) -> int: ...


_SCORED = (SubmissionStatus.SUBMITTED, SubmissionStatus.GRADED)


class InMemorySubmissionRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Submission] = {}
        self._by_key: dict[tuple[UUID, str, int], UUID] = {}

    async def get(self, submission_id: UUID) -> Submission | None:
        return self._by_id.get(submission_id)

    async def get_by_key(
        self, exam_id: UUID, student_id: str, attempt_number: int
    ) -> Submission | None:
        submission_id = self._by_key.get((exam_id, student_id, attempt_number))
        if submission_id is None:
            return None
        return self._by_id.get(submission_id)

    async def upsert(self, submission: Submission) -> Submission:
        existing_id = self._by_key.get(submission.key)
        if existing_id is not None and existing_id != submission.id:
            submission = replace(submission, id=existing_id)
        self._by_id[submission.id] = submission
        self._by_key[submission.key] = submission.id
        return submission

    async def latest_attempt_number(self, exam_id: UUID, student_id: str) -> int:
        return max(
            (
                s.attempt_number
                for s in self._by_id.values()
                if s.exam_id == exam_id and s.student_id == student_id
            ),
            default=0,
        )

    async def list_graded_with_question(
        self, exam_id: UUID, question_id: UUID
    ) -> list[Submission]:
        return [
            s
            for s in self._by_id.values()
            if s.exam_id == exam_id
            and s.status in _SCORED
            and s.answer_for(question_id) is not None
        ]

    async def list_by_exam(self, exam_id: UUID) -> list[Submission]:
        return [s for s in self._by_id.values() if s.exam_id == exam_id]

    async def delete_by_exam(self, exam_id: UUID) -> int:
        doomed = [s for s in self._by_id.values() if s.exam_id == exam_id]
        for s in doomed:
            del self._by_id[s.id]
            self._by_key.pop(s.key, None)
        return len(doomed)
