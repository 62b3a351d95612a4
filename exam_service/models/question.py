from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4


class QuestionType(StrEnum):
    SINGLE_CHOICE = "single_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"

    @property
    def is_auto_graded(self) -> bool:
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE)


@dataclass(frozen=True, slots=True)
class Option:
    id: str
    text: str
    is_correct: bool = False

    @staticmethod
    def new(*, text: str, is_correct: bool = False) -> Option:
        return Option(id=uuid4().hex[:12], text=text, is_correct=is_correct)


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    exam_id: UUID
    type: QuestionType
    text: str
    points: float
    options: tuple[Option, ...] = ()
    correct_answer: str | None = None  # "true"|"false" for true_false
    explanation: str | None = None
    created_by: str | None = None

    @staticmethod
    def new(
        *,
        exam_id: UUID,
        type: QuestionType,
        text: str,
        points: float,
        options: tuple[Option, ...] = (),
        correct_answer: str | None = None,
        explanation: str | None = None,
        created_by: str | None = None,
    ) -> Question:
        return Question(
            id=uuid4(),
            exam_id=exam_id,
            type=type,
            text=text,
            points=points,
            options=options,
            correct_answer=correct_answer,
            explanation=explanation,
            created_by=created_by,
        )

    def correct_options(self) -> tuple[Option, ...]:
        return tuple(o for o in self.options if o.is_correct)

    def answer_key(self) -> str | None:
        """The value a submission must match: option id or "true"/"false".

        For a single_choice question with several flagged options the first
        one wins; callers that care about the violation check
        `correct_options()` themselves.
        """
        if self.type is QuestionType.SINGLE_CHOICE:
            flagged = self.correct_options()
            return flagged[0].id if flagged else None
        if self.type is QuestionType.TRUE_FALSE:
            return self.correct_answer
        return None
