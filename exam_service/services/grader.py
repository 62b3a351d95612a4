"""Scoring of a single answer against a question's key.

Pure functions: no storage, no clock.  The same code path grades a live
submission and replays grading during answer-key recalculation, so both
always agree.

  single_choice  correct iff the submitted option id is the flagged option
  true_false     correct iff the trimmed, lower-cased answer equals the key
  short_answer,
  essay          not auto-graded; marks come from a human grader

An unanswered question (None, empty or whitespace) is not graded at all:
grade_answer() returns None and the caller records zero marks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import assert_never

from exam_service.core.errors import DataIntegrityFault
from exam_service.core.metrics import GRADING_INTEGRITY_FAULTS
from exam_service.models.question import Question, QuestionType
from exam_service.models.submission import ChoiceAnswer, GradedAnswer, TrueFalseAnswer

logger = logging.getLogger(__name__)

TRUE_FALSE_VALUES = ("true", "false")


@dataclass(frozen=True, slots=True)
class GradeOutcome:
    is_correct: bool
    marks_obtained: float


def normalize_true_false(value: str) -> str:
    return value.strip().lower()


def is_unanswered(submitted: str | None) -> bool:
    return submitted is None or not submitted.strip()


def question_integrity_fault(question: Question) -> DataIntegrityFault | None:
    """Return the fault an answer key violates, or None if it is sound.

    Authoring calls this before saving and rejects the question; the grader
    calls it so a bad key that slipped into storage is logged and counted.
    """
    if question.points < 0:
        return DataIntegrityFault(
            "question points must be non-negative", question_id=question.id
        )

    match question.type:
        case QuestionType.SINGLE_CHOICE:
            if len(question.options) < 2:
                return DataIntegrityFault(
                    "single_choice questions need at least 2 options",
                    question_id=question.id,
                )
            if len({o.id for o in question.options}) != len(question.options):
                return DataIntegrityFault(
                    "option ids must be unique", question_id=question.id
                )
            flagged = len(question.correct_options())
            if flagged != 1:
                return DataIntegrityFault(
                    f"single_choice questions need exactly one correct option "
                    f"(found {flagged})",
                    question_id=question.id,
                )
        case QuestionType.TRUE_FALSE:
            if question.correct_answer not in TRUE_FALSE_VALUES:
                return DataIntegrityFault(
                    "true_false correct_answer must be 'true' or 'false'",
                    question_id=question.id,
                )
        case QuestionType.SHORT_ANSWER | QuestionType.ESSAY:
            pass
        case _:
            assert_never(question.type)
    return None


def grade_answer(question: Question, submitted: str | None) -> GradeOutcome | None:
    if is_unanswered(submitted):
        return None

    match question.type:
        case QuestionType.SINGLE_CHOICE:
            key = _checked_key(question)
            is_correct = key is not None and submitted.strip() == key
        case QuestionType.TRUE_FALSE:
            key = _checked_key(question)
            is_correct = (
                key in TRUE_FALSE_VALUES and normalize_true_false(submitted) == key
            )
        case QuestionType.SHORT_ANSWER | QuestionType.ESSAY:
            return None
        case _:
            assert_never(question.type)

    return GradeOutcome(
        is_correct=is_correct,
        marks_obtained=float(question.points) if is_correct else 0.0,
    )


def graded_answer(
    question: Question, submitted: str | None, *, time_spent: int = 0
) -> GradedAnswer | None:
    """Grade and wrap the outcome in the answer variant stored on a Submission."""
    outcome = grade_answer(question, submitted)
    if outcome is None:
        return None
    if question.type is QuestionType.SINGLE_CHOICE:
        return ChoiceAnswer(
            question_id=question.id,
            selected_option=submitted.strip(),
            is_correct=outcome.is_correct,
            marks_obtained=outcome.marks_obtained,
            time_spent=time_spent,
        )
    return TrueFalseAnswer(
        question_id=question.id,
        answer=normalize_true_false(submitted),
        is_correct=outcome.is_correct,
        marks_obtained=outcome.marks_obtained,
        time_spent=time_spent,
    )


def _checked_key(question: Question) -> str | None:
    fault = question_integrity_fault(question)
    if fault is not None:
        GRADING_INTEGRITY_FAULTS.inc()
        logger.error(
            "Grading against invalid answer key question=%s: %s",
            question.id,
            fault.message,
        )
    return question.answer_key()
