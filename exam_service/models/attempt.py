from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4


class AttemptStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class AttemptQuestion:
    question_id: UUID
    answer: str | None = None
    marks: float = 0.0


@dataclass(frozen=True, slots=True)
class Attempt:
    id: UUID
    exam_id: UUID
    student_id: str
    start_time: datetime
    end_time: datetime
    attempt_number: int
    questions: tuple[AttemptQuestion, ...] = ()
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    submitted_at: datetime | None = None
    total_marks: float = 0.0
    graded_by: str | None = None
    graded_at: datetime | None = None

    @staticmethod
    def new(
        *,
        exam_id: UUID,
        student_id: str,
        start_time: datetime,
        end_time: datetime,
        attempt_number: int,
        question_ids: tuple[UUID, ...],
    ) -> Attempt:
        if end_time <= start_time:
            raise ValueError("attempt end_time must be after start_time")
        return Attempt(
            id=uuid4(),
            exam_id=exam_id,
            student_id=student_id,
            start_time=start_time,
            end_time=end_time,
            attempt_number=attempt_number,
            questions=tuple(AttemptQuestion(question_id=q) for q in question_ids),
        )

    @property
    def is_completed(self) -> bool:
        return self.status in (AttemptStatus.SUBMITTED, AttemptStatus.EXPIRED)

    def entry_for(self, question_id: UUID) -> AttemptQuestion | None:
        for entry in self.questions:
            if entry.question_id == question_id:
                return entry
        return None


def sum_marks(entries: tuple[AttemptQuestion, ...]) -> float:
    return float(sum(e.marks for e in entries))
