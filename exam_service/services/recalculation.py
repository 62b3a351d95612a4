"""Retroactive re-scoring after an answer key changes.

When an instructor fixes the correct option of a question that students
have already been scored on, three derived records go stale:

  attempts      entry marks and total_marks
  submissions   graded answer and total_marks_obtained
  results       question breakdown, obtained marks, percentage/grade/status

on_question_key_changed() replays grading for that one question with the
same grader that scored the live submission, then rewrites each affected
record whole with totals summed from scratch.  Records that come out
identical are not written, so running it twice, or again after a batch
failed halfway, converges on the same state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from uuid import UUID

from exam_service.core.metrics import RECALCULATED_RECORDS, RECALCULATION_DURATION
from exam_service.models.attempt import Attempt, sum_marks
from exam_service.models.question import Question
from exam_service.models.result import Result
from exam_service.models.submission import (
    ChoiceAnswer,
    GradedAnswer,
    ManualAnswer,
    Submission,
    TrueFalseAnswer,
)
from exam_service.repos.store import ExamStore
from exam_service.services.grader import grade_answer, graded_answer
from exam_service.services.result_service import rebuilt
from exam_service.services.task_queue import RECALCULATION_QUEUE, TaskQueue, task_queue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RecalculationReport:
    question_id: UUID
    attempts: int = 0
    submissions: int = 0
    results: int = 0

    @property
    def total(self) -> int:
        return self.attempts + self.submissions + self.results


async def on_question_key_changed(
    store: ExamStore, question: Question
) -> RecalculationReport:
    if not question.type.is_auto_graded:
        return RecalculationReport(question_id=question.id)

    started = time.perf_counter()
    attempts = await _regrade_attempts(store, question)
    submissions = await _regrade_submissions(store, question)
    results = await _repair_results(store, question)
    RECALCULATION_DURATION.observe(time.perf_counter() - started)

    report = RecalculationReport(
        question_id=question.id,
        attempts=attempts,
        submissions=submissions,
        results=results,
    )
    logger.info(
        "Recalculated question=%s exam=%s attempts=%d submissions=%d results=%d",
        question.id,
        question.exam_id,
        attempts,
        submissions,
        results,
        extra={"exam_id": str(question.exam_id), "question_id": str(question.id)},
    )
    return report


async def schedule_recalculation(
    question_id: UUID, queue: TaskQueue | None = None
) -> str:
    """Queue a recalculation for the worker; returns the task id."""
    task = await (queue or task_queue).enqueue(
        RECALCULATION_QUEUE, {"question_id": str(question_id)}
    )
    logger.info("Recalculation queued question=%s task=%s", question_id, task.id)
    return task.id


async def _regrade_attempts(store: ExamStore, question: Question) -> int:
    written = 0
    for attempt in await store.attempts.list_submitted_with_question(question.id):
        updated = _regraded_attempt(attempt, question)
        if updated != attempt:
            await store.attempts.save(updated)
            written += 1
    RECALCULATED_RECORDS.labels(kind="attempt").inc(written)
    return written


def _regraded_attempt(attempt: Attempt, question: Question) -> Attempt:
    entries = []
    for entry in attempt.questions:
        if entry.question_id == question.id:
            outcome = grade_answer(question, entry.answer)
            entry = replace(entry, marks=outcome.marks_obtained if outcome else 0.0)
        entries.append(entry)
    return replace(attempt, questions=tuple(entries), total_marks=sum_marks(tuple(entries)))


async def _regrade_submissions(store: ExamStore, question: Question) -> int:
    written = 0
    for submission in await store.submissions.list_graded_with_question(
        question.exam_id, question.id
    ):
        updated = _regraded_submission(submission, question)
        if updated != submission:
            await store.submissions.upsert(updated)
            written += 1
    RECALCULATED_RECORDS.labels(kind="submission").inc(written)
    return written


def _regraded_submission(submission: Submission, question: Question) -> Submission:
    answers: list[GradedAnswer] = []
    for answer in submission.answers:
        if answer.question_id == question.id:
            answer = _regraded_answer(answer, question)
        answers.append(answer)
    return submission.with_answers(tuple(answers))


def _regraded_answer(answer: GradedAnswer, question: Question) -> GradedAnswer:
    match answer:
        case ChoiceAnswer():
            fresh = graded_answer(
                question, answer.selected_option, time_spent=answer.time_spent
            )
        case TrueFalseAnswer():
            fresh = graded_answer(question, answer.answer, time_spent=answer.time_spent)
        case ManualAnswer():
            return answer
    return fresh if fresh is not None else answer


async def _repair_results(store: ExamStore, question: Question) -> int:
    total = await _exam_total(store, question.exam_id)
    written = 0
    for result in await store.results.list_with_question(question.exam_id, question.id):
        submission = await store.submissions.get(result.submission_id)
        if submission is None:
            continue
        answer = submission.answer_for(question.id)
        if answer is None:
            continue
        updated = _repaired_result(
            result, answer, question, result.total_marks if total is None else total
        )
        if updated != result:
            await store.results.upsert(updated)
            written += 1
    RECALCULATED_RECORDS.labels(kind="result").inc(written)
    return written


async def _exam_total(store: ExamStore, exam_id: UUID) -> float | None:
    """Total marks of the exam as it stands now, the same sum a submit uses."""
    exam = await store.exams.get(exam_id)
    if exam is None:
        return None
    questions = await store.questions.list_by_ids(list(exam.question_ids))
    return float(sum(q.points for q in questions))


def _repaired_result(
    result: Result, answer: GradedAnswer, question: Question, total: float
) -> Result:
    breakdown = tuple(
        replace(
            qr,
            obtained_marks=answer.marks_obtained,
            total_marks=float(question.points),
            is_correct=answer.is_correct,
        )
        if qr.question_id == question.id
        else qr
        for qr in result.question_results
    )
    return rebuilt(result, breakdown, total)
