"""Question authoring: create, edit, delete.

Editing the answer key of a question students were already scored on is a
key-change event and triggers recalculation in the same unit of work.
Deleting a question strips it out of every derived record first and only
then removes the question itself; each step is idempotent, so a failed
delete is retried by calling it again.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from uuid import UUID

from exam_service.core.errors import (
    AuthorizationFault,
    NotFound,
    ValidationFault,
    state_conflict,
)
from exam_service.models.attempt import sum_marks
from exam_service.models.exam import Exam, ExamType
from exam_service.models.principal import Principal
from exam_service.models.question import Option, Question, QuestionType
from exam_service.repos.store import ExamStore
from exam_service.services.grader import normalize_true_false, question_integrity_fault
from exam_service.services.recalculation import (
    RecalculationReport,
    on_question_key_changed,
)
from exam_service.services.result_service import parse_marks, rebuilt

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QuestionUpdate:
    question: Question
    key_changed: bool
    recalculation: RecalculationReport | None = None


@dataclass(frozen=True, slots=True)
class QuestionCleanup:
    question_id: UUID
    exam_id: UUID
    attempts: int = 0
    submissions: int = 0
    results: int = 0


async def create_question(
    store: ExamStore,
    exam_id: UUID,
    principal: Principal,
    *,
    type: QuestionType,
    text: str,
    points: object,
    options: Sequence[Option] = (),
    correct_answer: str | None = None,
    explanation: str | None = None,
) -> Question:
    exam = await _exam(store, exam_id)
    _authorize(principal, exam)
    if exam.type is ExamType.PROJECT:
        raise state_conflict("project exams have no questions", reason="wrong_exam_type")

    question = _validated(
        Question.new(
            exam_id=exam.id,
            type=type,
            text=text,
            points=_points(points),
            options=_clean_options(type, options),
            correct_answer=_clean_key(type, correct_answer),
            explanation=explanation,
            created_by=principal.user_id,
        )
    )
    await store.questions.add(question)
    await store.exams.save(replace(exam, question_ids=exam.question_ids + (question.id,)))
    logger.info(
        "Question created question=%s exam=%s type=%s points=%s",
        question.id,
        exam.id,
        question.type,
        question.points,
    )
    return question


async def update_question(
    store: ExamStore,
    question_id: UUID,
    principal: Principal,
    *,
    text: str | None = None,
    points: object | None = None,
    options: Sequence[Option] | None = None,
    correct_answer: str | None = None,
    explanation: str | None = None,
) -> QuestionUpdate:
    """Apply the given fields; the question type itself cannot change."""
    current = await _question(store, question_id)
    exam = await _exam(store, current.exam_id)
    _authorize(principal, exam, current)

    updated = replace(
        current,
        text=current.text if text is None else text,
        points=current.points if points is None else _points(points),
        options=(
            current.options
            if options is None
            else _clean_options(current.type, options)
        ),
        correct_answer=(
            current.correct_answer
            if correct_answer is None
            else _clean_key(current.type, correct_answer)
        ),
        explanation=current.explanation if explanation is None else explanation,
    )
    updated = _validated(updated)
    await store.questions.save(updated)

    key_changed = (
        current.type.is_auto_graded and current.answer_key() != updated.answer_key()
    )
    report = None
    if key_changed:
        logger.info(
            "Answer key changed question=%s exam=%s old=%s new=%s",
            updated.id,
            updated.exam_id,
            current.answer_key(),
            updated.answer_key(),
        )
        report = await on_question_key_changed(store, updated)
    return QuestionUpdate(question=updated, key_changed=key_changed, recalculation=report)


async def get_question(
    store: ExamStore, question_id: UUID, principal: Principal
) -> Question:
    """Load a question the principal may author."""
    question = await _question(store, question_id)
    exam = await _exam(store, question.exam_id)
    _authorize(principal, exam, question)
    return question


async def recalculate_question(
    store: ExamStore, question_id: UUID, principal: Principal
) -> RecalculationReport:
    """Re-run recalculation for a question, e.g. after a batch failed."""
    question = await get_question(store, question_id, principal)
    return await on_question_key_changed(store, question)


async def delete_question(
    store: ExamStore, question_id: UUID, principal: Principal
) -> QuestionCleanup:
    question = await _question(store, question_id)
    exam = await store.exams.get(question.exam_id)
    if exam is not None:
        _authorize(principal, exam, question)
    elif not principal.is_admin() and principal.user_id != question.created_by:
        raise AuthorizationFault("not authorized to delete this question")

    # 1. detach from the exam
    if exam is not None and question.id in exam.question_ids:
        await store.exams.save(
            replace(
                exam,
                question_ids=tuple(q for q in exam.question_ids if q != question.id),
            )
        )

    # 2. attempts
    attempts = 0
    for attempt in await store.attempts.list_by_exam(question.exam_id):
        if attempt.entry_for(question.id) is None:
            continue
        entries = tuple(e for e in attempt.questions if e.question_id != question.id)
        await store.attempts.save(
            replace(attempt, questions=entries, total_marks=sum_marks(entries))
        )
        attempts += 1

    # 3. submissions
    submissions = 0
    for submission in await store.submissions.list_by_exam(question.exam_id):
        if submission.answer_for(question.id) is None:
            continue
        await store.submissions.upsert(
            submission.with_answers(
                tuple(a for a in submission.answers if a.question_id != question.id)
            )
        )
        submissions += 1

    # 4. results: the question's points leave the total as well
    results = 0
    for result in await store.results.list_by_exam(question.exam_id):
        if not result.references(question.id):
            continue
        breakdown = tuple(
            qr for qr in result.question_results if qr.question_id != question.id
        )
        total = max(0.0, result.total_marks - float(question.points))
        await store.results.upsert(rebuilt(result, breakdown, total))
        results += 1

    # 5. the question itself
    await store.questions.delete(question.id)
    logger.info(
        "Question deleted question=%s exam=%s attempts=%d submissions=%d results=%d",
        question.id,
        question.exam_id,
        attempts,
        submissions,
        results,
    )
    return QuestionCleanup(
        question_id=question.id,
        exam_id=question.exam_id,
        attempts=attempts,
        submissions=submissions,
        results=results,
    )


def _points(value: object) -> float:
    points = parse_marks(value)
    if points < 0:
        raise ValidationFault("points must be non-negative")
    return points


def _clean_options(type: QuestionType, options: Sequence[Option]) -> tuple[Option, ...]:
    if type is not QuestionType.SINGLE_CHOICE:
        return ()
    # Blank options are dropped, as an empty form row would be.
    return tuple(replace(o, text=o.text.strip()) for o in options if o.text.strip())


def _clean_key(type: QuestionType, correct_answer: str | None) -> str | None:
    if type is not QuestionType.TRUE_FALSE:
        return None
    if correct_answer is None:
        return None
    return normalize_true_false(correct_answer)


def _validated(question: Question) -> Question:
    if not question.text or not question.text.strip():
        raise ValidationFault("question text is required")
    fault = question_integrity_fault(question)
    if fault is not None:
        logger.warning("Rejected answer key question=%s: %s", question.id, fault.message)
        raise fault
    return question


def _authorize(principal: Principal, exam: Exam, question: Question | None = None) -> None:
    if principal.can_manage(exam.created_by):
        return
    if (
        question is not None
        and principal.has_role("instructor")
        and principal.user_id == question.created_by
    ):
        return
    logger.warning(
        "Access denied: user=%s may not author questions for exam=%s",
        principal.user_id,
        exam.id,
    )
    raise AuthorizationFault("not authorized to edit questions of this exam")


async def _question(store: ExamStore, question_id: UUID) -> Question:
    question = await store.questions.get(question_id)
    if question is None:
        raise NotFound("question not found")
    return question


async def _exam(store: ExamStore, exam_id: UUID) -> Exam:
    exam = await store.exams.get(exam_id)
    if exam is None:
        raise NotFound("exam not found")
    return exam
