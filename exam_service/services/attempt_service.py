"""Attempt lifecycle: start, lazy expiry, submit, manual grading.

    in_progress ──submit──────────────▶ submitted   (terminal)
         │
         └──read after deadline──▶ expired ──submit──▶ submitted

Expiry is lazy: nothing runs at the deadline.  The first read after it
persists `expired`, and a submit that arrives later (the client's timer
fired, or the student came back) still goes through as a forced
submission.

Every status change is written as a compare-and-set on the previous
status.  Two concurrent submits of the same attempt both pass the early
status check, but only one of them wins the write; the other gets a
StateConflict and nothing it computed is stored.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from exam_service.core.errors import (
    AuthorizationFault,
    NotFound,
    ValidationFault,
    state_conflict,
)
from exam_service.core.metrics import ATTEMPTS_STARTED, ATTEMPTS_SUBMITTED
from exam_service.models.attempt import Attempt, AttemptStatus, sum_marks
from exam_service.models.exam import Exam, ExamStatus, ExamType
from exam_service.models.principal import Principal
from exam_service.models.question import Question
from exam_service.models.result import Result
from exam_service.models.submission import (
    GradedAnswer,
    ManualAnswer,
    Submission,
    SubmissionStatus,
)
from exam_service.repos.store import ExamStore
from exam_service.services import time_window
from exam_service.services.grader import graded_answer, is_unanswered
from exam_service.services.notifications import EventSink, notify
from exam_service.services.result_service import compile_result, parse_marks, record_result
from exam_service.services.submission_service import upsert_submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    attempt: Attempt
    submission: Submission
    result: Result


async def start_attempt(
    store: ExamStore,
    exam_id: UUID,
    principal: Principal,
    now: datetime,
    rng: random.Random | None = None,
) -> Attempt:
    exam = await _exam(store, exam_id)
    if exam.status is not ExamStatus.PUBLISHED:
        raise state_conflict("exam is not published", reason="not_published")
    if not exam.is_open_at(now):
        raise state_conflict("exam is not currently open", reason="not_open")
    if not exam.admits(principal.user_id):
        raise AuthorizationFault("not authorized to take this exam")

    prior = await store.attempts.count_for(exam.id, principal.user_id)
    if prior >= exam.max_attempts:
        raise state_conflict(
            f"maximum attempts reached ({exam.max_attempts})", reason="max_attempts"
        )

    # The order is fixed here and stored; later reads never reshuffle it.
    order = list(exam.question_ids)
    if exam.shuffle_questions:
        (rng or random.Random()).shuffle(order)

    attempt = Attempt.new(
        exam_id=exam.id,
        student_id=principal.user_id,
        start_time=now,
        end_time=now + exam.duration,
        attempt_number=prior + 1,
        question_ids=tuple(order),
    )
    await store.attempts.add(attempt)
    ATTEMPTS_STARTED.inc()
    logger.info(
        "Attempt started attempt=%s exam=%s student=%s attempt_number=%d ends=%s",
        attempt.id,
        exam.id,
        principal.user_id,
        attempt.attempt_number,
        attempt.end_time.isoformat(),
        extra={"exam_id": str(exam.id), "attempt_id": str(attempt.id)},
    )
    return attempt


async def load_attempt(
    store: ExamStore, attempt_id: UUID, principal: Principal, now: datetime
) -> Attempt:
    """Fetch an attempt for its owner (or the exam's staff), expiring it if due."""
    attempt = await _attempt(store, attempt_id)
    if attempt.student_id != principal.user_id:
        exam = await _exam(store, attempt.exam_id)
        if not principal.can_manage(exam.created_by):
            raise AuthorizationFault("not your attempt")

    if attempt.status is AttemptStatus.IN_PROGRESS and time_window.is_expired(
        attempt, now
    ):
        expired = replace(attempt, status=AttemptStatus.EXPIRED)
        if await store.attempts.save(expired, expected_status=AttemptStatus.IN_PROGRESS):
            logger.info("Attempt expired attempt=%s exam=%s", attempt.id, attempt.exam_id)
            return expired
        # Lost the race to a submit; report what was stored.
        return await _attempt(store, attempt_id)
    return attempt


def preview_order(attempt: Attempt, rng: random.Random | None = None) -> list[UUID]:
    """A throwaway shuffle for display only; the stored order is untouched."""
    order = [e.question_id for e in attempt.questions]
    (rng or random.Random()).shuffle(order)
    return order


async def marks_visible(store: ExamStore, attempt: Attempt, principal: Principal) -> bool:
    """Per-question marks are staff data until the attempt's result is released."""
    exam = await store.exams.get(attempt.exam_id)
    if exam is not None and principal.can_manage(exam.created_by):
        return True
    submission = await store.submissions.get_by_key(
        attempt.exam_id, attempt.student_id, attempt.attempt_number
    )
    if submission is None:
        return False
    result = await store.results.get_by_submission(submission.id)
    return result is not None and result.is_released


async def submit_attempt(
    store: ExamStore,
    attempt_id: UUID,
    principal: Principal,
    answers: Mapping[UUID, str | None],
    *,
    now: datetime,
    time_expired: bool = False,
    events: EventSink | None = None,
) -> SubmitOutcome:
    attempt = await _attempt(store, attempt_id)
    if attempt.student_id != principal.user_id:
        raise AuthorizationFault("not your attempt")
    if attempt.status is AttemptStatus.SUBMITTED:
        raise state_conflict("attempt was already submitted", reason="already_submitted")

    exam = await _exam(store, attempt.exam_id)
    if exam.type is ExamType.PROJECT:
        raise state_conflict(
            "project exams are submitted as project work", reason="wrong_exam_type"
        )

    captured = {e.question_id for e in attempt.questions}
    stray = [qid for qid in answers if qid not in captured]
    if stray:
        raise ValidationFault(f"answers given for questions not in this attempt: {stray}")

    questions = await _questions_by_id(store, [e.question_id for e in attempt.questions])
    entries = []
    graded: list[GradedAnswer] = []
    for entry in attempt.questions:
        submitted = answers.get(entry.question_id)
        question = questions.get(entry.question_id)
        answer = graded_answer(question, submitted) if question is not None else None
        if answer is not None:
            graded.append(answer)
        entries.append(
            replace(
                entry,
                answer=None if is_unanswered(submitted) else submitted.strip(),
                marks=answer.marks_obtained if answer is not None else 0.0,
            )
        )

    if attempt.status is AttemptStatus.EXPIRED:
        trigger = "expired"
    elif time_expired or time_window.is_expired(attempt, now):
        trigger = "time_expired"
    else:
        trigger = "manual"

    submitted_attempt = replace(
        attempt,
        questions=tuple(entries),
        total_marks=sum_marks(tuple(entries)),
        status=AttemptStatus.SUBMITTED,
        submitted_at=now,
    )
    if not await store.attempts.save(submitted_attempt, expected_status=attempt.status):
        raise state_conflict("attempt was already submitted", reason="already_submitted")

    submission = await upsert_submission(store, exam, submitted_attempt, tuple(graded), now)
    exam_questions = await store.questions.list_by_ids(list(exam.question_ids))
    total = float(sum(q.points for q in exam_questions))
    result = await record_result(
        store, compile_result(submission, total, questions=exam_questions)
    )

    ATTEMPTS_SUBMITTED.labels(trigger=trigger).inc()
    logger.info(
        "Attempt submitted attempt=%s exam=%s student=%s trigger=%s marks=%s/%s",
        attempt.id,
        exam.id,
        attempt.student_id,
        trigger,
        submission.total_marks_obtained,
        total,
        extra={"exam_id": str(exam.id), "attempt_id": str(attempt.id)},
    )
    await notify(
        events,
        "attempt_submitted",
        attempt_id=attempt.id,
        exam_id=exam.id,
        student_id=attempt.student_id,
        result_id=result.id,
    )
    return SubmitOutcome(attempt=submitted_attempt, submission=submission, result=result)


async def grade_essay_answer(
    store: ExamStore,
    attempt_id: UUID,
    principal: Principal,
    marks: Mapping[UUID, object],
    now: datetime,
    events: EventSink | None = None,
) -> SubmitOutcome:
    """Record marks for short_answer/essay entries of a submitted attempt.

    Marks are clamped to [0, points].  Auto-graded questions cannot be
    overridden here; a wrong key is fixed by editing the question.
    """
    attempt = await _attempt(store, attempt_id)
    exam = await _exam(store, attempt.exam_id)
    if not principal.can_manage(exam.created_by):
        raise AuthorizationFault("not authorized to grade this attempt")
    if attempt.status is not AttemptStatus.SUBMITTED:
        raise state_conflict("only submitted attempts can be graded", reason="not_submitted")
    if not marks:
        raise ValidationFault("no marks given")

    questions = await _questions_by_id(store, [e.question_id for e in attempt.questions])
    awarded: dict[UUID, float] = {}
    for question_id, raw in marks.items():
        question = questions.get(question_id)
        if attempt.entry_for(question_id) is None or question is None:
            raise ValidationFault(f"question {question_id} is not part of this attempt")
        if question.type.is_auto_graded:
            raise ValidationFault(f"question {question_id} is graded automatically")
        awarded[question_id] = min(max(parse_marks(raw), 0.0), float(question.points))

    entries = tuple(
        replace(e, marks=awarded[e.question_id]) if e.question_id in awarded else e
        for e in attempt.questions
    )
    graded_attempt = replace(
        attempt,
        questions=entries,
        total_marks=sum_marks(entries),
        graded_by=principal.user_id,
        graded_at=now,
    )
    if not await store.attempts.save(graded_attempt, expected_status=AttemptStatus.SUBMITTED):
        raise state_conflict("attempt changed while grading", reason="not_submitted")

    existing = await store.submissions.get_by_key(
        exam.id, attempt.student_id, attempt.attempt_number
    )
    kept = {a.question_id: a for a in (existing.answers if existing else ())}
    for question_id, value in awarded.items():
        kept[question_id] = ManualAnswer(
            question_id=question_id,
            answer=graded_attempt.entry_for(question_id).answer or "",
            is_correct=value >= float(questions[question_id].points),
            marks_obtained=value,
            graded_by=principal.user_id,
        )
    ordered = tuple(kept[e.question_id] for e in entries if e.question_id in kept)

    submission = await upsert_submission(
        store, exam, graded_attempt, ordered, now, status=SubmissionStatus.GRADED
    )
    exam_questions = await store.questions.list_by_ids(list(exam.question_ids))
    total = float(sum(q.points for q in exam_questions))
    compiled = replace(
        compile_result(submission, total, questions=exam_questions),
        evaluated_by=principal.user_id,
        evaluated_at=now,
    )
    result = await record_result(store, compiled)

    logger.info(
        "Manual marks recorded attempt=%s exam=%s questions=%d by=%s total=%s",
        attempt.id,
        exam.id,
        len(awarded),
        principal.user_id,
        graded_attempt.total_marks,
    )
    await notify(
        events,
        "essay_graded",
        attempt_id=attempt.id,
        exam_id=exam.id,
        student_id=attempt.student_id,
        result_id=result.id,
    )
    return SubmitOutcome(attempt=graded_attempt, submission=submission, result=result)


async def _attempt(store: ExamStore, attempt_id: UUID) -> Attempt:
    attempt = await store.attempts.get(attempt_id)
    if attempt is None:
        raise NotFound("attempt not found")
    return attempt


async def _exam(store: ExamStore, exam_id: UUID) -> Exam:
    exam = await store.exams.get(exam_id)
    if exam is None:
        raise NotFound("exam not found")
    return exam


async def _questions_by_id(store: ExamStore, question_ids: list[UUID]) -> dict[UUID, Question]:
    return {q.id: q for q in await store.questions.list_by_ids(question_ids)}
