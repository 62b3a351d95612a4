from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4


class ResultStatus(StrEnum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class QuestionResult:
    question_id: UUID
    obtained_marks: float
    total_marks: float
    is_correct: bool


@dataclass(frozen=True, slots=True)
class Analytics:
    time_spent: int = 0  # seconds
    attempts_count: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    skipped_questions: int = 0
    accuracy_rate: float = 0.0


@dataclass(frozen=True, slots=True)
class Result:
    """Student-facing outcome of one submission.

    percentage, grade and status are only ever produced together by
    result_service._scored(); nothing assigns one of them alone.
    """

    id: UUID
    exam_id: UUID
    student_id: str
    submission_id: UUID
    total_marks: float
    obtained_marks: float
    percentage: float
    grade: str
    status: ResultStatus
    question_results: tuple[QuestionResult, ...] = ()
    analytics: Analytics = field(default_factory=Analytics)
    is_released: bool = False
    released_at: datetime | None = None
    released_by: str | None = None
    evaluated_by: str | None = None
    evaluated_at: datetime | None = None
    feedback: str | None = None

    @staticmethod
    def new_id() -> UUID:
        return uuid4()

    def references(self, question_id: UUID) -> bool:
        return any(qr.question_id == question_id for qr in self.question_results)
