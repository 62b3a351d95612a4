from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from uuid import UUID, uuid4


class ExamType(StrEnum):
    MCQ = "mcq"
    PROJECT = "project"
    MIXED = "mixed"


class ExamStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class Exam:
    """Exam metadata as seen by the scoring engine.

    question_ids is the authored order.  Attempts snapshot it (possibly
    shuffled) at creation; edits here never reorder a running attempt.
    """

    id: UUID
    title: str
    type: ExamType
    duration_minutes: int
    start_date: datetime
    end_date: datetime
    created_by: str
    status: ExamStatus = ExamStatus.DRAFT
    is_public: bool = False
    allowed_students: tuple[str, ...] = ()
    question_ids: tuple[UUID, ...] = ()
    shuffle_questions: bool = True
    max_attempts: int = 1
    project_total_marks: float = 100
    project_passing_marks: float | None = None

    @staticmethod
    def new(
        *,
        title: str,
        type: ExamType,
        duration_minutes: int,
        start_date: datetime,
        end_date: datetime,
        created_by: str,
        is_public: bool = False,
        allowed_students: tuple[str, ...] = (),
        shuffle_questions: bool = True,
        max_attempts: int = 1,
        project_total_marks: float = 100,
        project_passing_marks: float | None = None,
    ) -> Exam:
        return Exam(
            id=uuid4(),
            title=title,
            type=type,
            duration_minutes=duration_minutes,
            start_date=start_date,
            end_date=end_date,
            created_by=created_by,
            is_public=is_public,
            allowed_students=allowed_students,
            shuffle_questions=shuffle_questions,
            max_attempts=max_attempts,
            project_total_marks=project_total_marks,
            project_passing_marks=project_passing_marks,
        )

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def passing_marks(self) -> float:
        """Project pass threshold; half the project total unless set."""
        if self.project_passing_marks is not None:
            return self.project_passing_marks
        return math.ceil(self.project_total_marks * 0.5)

    def is_open_at(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date

    def admits(self, student_id: str) -> bool:
        return self.is_public or student_id in self.allowed_students
