from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import ClassVar
from uuid import UUID, uuid4

from exam_service.models.exam import ExamType


class SubmissionStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    GRADED = "graded"


# ---------------------------------------------------------------------------
# Graded answers: a closed union, one variant per way an answer gets marks.
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChoiceAnswer:
    kind: ClassVar[str] = "choice"

    question_id: UUID
    selected_option: str
    is_correct: bool
    marks_obtained: float
    time_spent: int = 0


@dataclass(frozen=True, slots=True)
class TrueFalseAnswer:
    kind: ClassVar[str] = "true_false"

    question_id: UUID
    answer: str  # normalized
    is_correct: bool
    marks_obtained: float
    time_spent: int = 0


@dataclass(frozen=True, slots=True)
class ManualAnswer:
    """Marks entered by a grader for a short_answer/essay question."""

    kind: ClassVar[str] = "manual"

    question_id: UUID
    answer: str
    is_correct: bool
    marks_obtained: float
    graded_by: str | None = None


GradedAnswer = ChoiceAnswer | TrueFalseAnswer | ManualAnswer


@dataclass(frozen=True, slots=True)
class ProjectWork:
    file_url: str
    file_name: str
    file_size: int
    file_type: str
    submitted_at: datetime
    marks_obtained: float | None = None
    feedback: str | None = None
    graded_by: str | None = None
    graded_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Submission:
    id: UUID
    exam_id: UUID
    student_id: str
    attempt_number: int
    submission_type: ExamType
    answers: tuple[GradedAnswer, ...] = ()
    status: SubmissionStatus = SubmissionStatus.DRAFT
    total_marks_obtained: float = 0.0
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    is_late: bool = False
    project: ProjectWork | None = None

    @staticmethod
    def new(
        *,
        exam_id: UUID,
        student_id: str,
        attempt_number: int,
        submission_type: ExamType,
        started_at: datetime | None = None,
    ) -> Submission:
        return Submission(
            id=uuid4(),
            exam_id=exam_id,
            student_id=student_id,
            attempt_number=attempt_number,
            submission_type=submission_type,
            started_at=started_at,
        )

    @property
    def key(self) -> tuple[UUID, str, int]:
        return (self.exam_id, self.student_id, self.attempt_number)

    def answer_for(self, question_id: UUID) -> GradedAnswer | None:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def with_answers(self, answers: tuple[GradedAnswer, ...]) -> Submission:
        """Replace the answers and recompute the total from scratch."""
        return replace(
            self, answers=answers, total_marks_obtained=total_of(answers)
        )

    def with_project(self, project: ProjectWork) -> Submission:
        return replace(
            self,
            project=project,
            total_marks_obtained=float(project.marks_obtained or 0),
        )


def total_of(answers: tuple[GradedAnswer, ...]) -> float:
    return float(sum(a.marks_obtained for a in answers))
