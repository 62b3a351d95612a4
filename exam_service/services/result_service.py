"""Result compilation, release, and project grading.

A Result is derived, never edited field by field: percentage, grade and
status always come out of _scored() together, from the obtained and total
marks they describe.

Pass rules differ by exam type:

  mcq / mixed   pass iff obtained >= 50% of total
  project       pass iff obtained >= exam.passing_marks
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID

from exam_service.core.errors import (
    AuthorizationFault,
    NotFound,
    ValidationFault,
    state_conflict,
)
from exam_service.models.attempt import AttemptStatus
from exam_service.models.exam import Exam, ExamType
from exam_service.models.principal import Principal
from exam_service.models.question import Question
from exam_service.models.result import (
    Analytics,
    QuestionResult,
    Result,
    ResultStatus,
)
from exam_service.models.submission import ProjectWork, Submission, SubmissionStatus
from exam_service.repos.store import ExamStore
from exam_service.services.notifications import EventSink, notify

logger = logging.getLogger(__name__)

PASS_RATIO = 0.5

# (minimum percentage, letter), checked top-down.
GRADE_BANDS: tuple[tuple[float, str], ...] = (
    (90, "A+"),
    (80, "A"),
    (75, "B+"),
    (70, "B"),
    (65, "C+"),
    (60, "C"),
    (50, "D"),
)


def grade_for(percentage: float) -> str:
    for floor, letter in GRADE_BANDS:
        if percentage >= floor:
            return letter
    return "F"


def percentage_of(obtained: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round(obtained / total * 100, 2)


def _scored(
    obtained: float, total: float, *, passing_marks: float | None = None
) -> tuple[float, str, ResultStatus]:
    """percentage, grade letter and pass/fail for one obtained/total pair.

    passing_marks switches from the 50% rule to an absolute threshold
    (project exams).
    """
    threshold = total * PASS_RATIO if passing_marks is None else passing_marks
    percentage = percentage_of(obtained, total)
    status = ResultStatus.PASS if obtained >= threshold else ResultStatus.FAIL
    return percentage, grade_for(percentage), status


def rescored(result: Result, obtained: float, total: float) -> Result:
    """Copy of `result` with obtained/total replaced and the score re-derived."""
    obtained = min(obtained, total)
    percentage, grade, status = _scored(obtained, total)
    return replace(
        result,
        obtained_marks=obtained,
        total_marks=total,
        percentage=percentage,
        grade=grade,
        status=status,
    )


def rebuilt(
    result: Result, breakdown: tuple[QuestionResult, ...], total: float
) -> Result:
    """Re-derive a Result from an edited question breakdown.

    Obtained marks and the correct/incorrect analytics are summed from the
    breakdown; skipped and time figures are kept.
    """
    answered = len(breakdown)
    correct = sum(1 for qr in breakdown if qr.is_correct)
    analytics = replace(
        result.analytics,
        correct_answers=correct,
        incorrect_answers=answered - correct,
        accuracy_rate=round(correct / answered * 100, 2) if answered else 0.0,
    )
    obtained = float(sum(qr.obtained_marks for qr in breakdown))
    return rescored(
        replace(result, question_results=breakdown, analytics=analytics),
        obtained,
        total,
    )


def compile_result(
    submission: Submission,
    total_marks: float,
    *,
    questions: Sequence[Question],
) -> Result:
    """Derive a fresh Result from a graded submission.

    `questions` is the exam's current question list; it sizes the skipped
    count and supplies each answered question's points for the breakdown.
    """
    points = {q.id: float(q.points) for q in questions}
    answered = len(submission.answers)
    correct = sum(1 for a in submission.answers if a.is_correct)

    time_spent = 0
    if submission.started_at is not None and submission.completed_at is not None:
        time_spent = max(
            0, int((submission.completed_at - submission.started_at).total_seconds())
        )

    obtained = min(submission.total_marks_obtained, total_marks)
    percentage, grade, status = _scored(obtained, total_marks)
    return Result(
        id=Result.new_id(),
        exam_id=submission.exam_id,
        student_id=submission.student_id,
        submission_id=submission.id,
        total_marks=total_marks,
        obtained_marks=obtained,
        percentage=percentage,
        grade=grade,
        status=status,
        question_results=tuple(
            QuestionResult(
                question_id=a.question_id,
                obtained_marks=a.marks_obtained,
                total_marks=points.get(a.question_id, 0.0),
                is_correct=a.is_correct,
            )
            for a in submission.answers
        ),
        analytics=Analytics(
            time_spent=time_spent,
            attempts_count=submission.attempt_number,
            correct_answers=correct,
            incorrect_answers=answered - correct,
            skipped_questions=max(0, len(questions) - answered),
            accuracy_rate=round(correct / answered * 100, 2) if answered else 0.0,
        ),
    )


async def record_result(store: ExamStore, result: Result) -> Result:
    """Upsert by submission_id, carrying over release and evaluation state."""
    existing = await store.results.get_by_submission(result.submission_id)
    if existing is not None:
        result = replace(
            result,
            id=existing.id,
            is_released=existing.is_released,
            released_at=existing.released_at,
            released_by=existing.released_by,
            evaluated_by=result.evaluated_by or existing.evaluated_by,
            evaluated_at=result.evaluated_at or existing.evaluated_at,
            feedback=result.feedback or existing.feedback,
        )
    return await store.results.upsert(result)


async def get_result(store: ExamStore, result_id: UUID, principal: Principal) -> Result:
    """Students see their own results only once released; staff see all."""
    result = await store.results.get(result_id)
    if result is None:
        raise NotFound("result not found")
    exam = await store.exams.get(result.exam_id)
    if exam is not None and principal.can_manage(exam.created_by):
        return result
    if result.student_id != principal.user_id:
        raise AuthorizationFault("not your result")
    if not result.is_released:
        raise state_conflict("result has not been released yet", reason="not_released")
    return result


async def release_result(
    store: ExamStore,
    result_id: UUID,
    principal: Principal,
    now: datetime,
    events: EventSink | None = None,
) -> Result:
    result = await store.results.get(result_id)
    if result is None:
        raise NotFound("result not found")
    exam = await _exam_or_404(store, result.exam_id)
    if not principal.can_manage(exam.created_by):
        raise AuthorizationFault("not authorized to release results for this exam")

    if result.is_released:
        return result

    released = replace(
        result, is_released=True, released_at=now, released_by=principal.user_id
    )
    released = await store.results.upsert(released)
    logger.info(
        "Result released result=%s exam=%s student=%s by=%s",
        released.id,
        released.exam_id,
        released.student_id,
        principal.user_id,
    )
    await notify(
        events,
        "result_released",
        result_id=released.id,
        exam_id=released.exam_id,
        student_id=released.student_id,
    )
    return released


# ---------------------------------------------------------------------------
# Project exams
# ---------------------------------------------------------------------------


ALLOWED_PROJECT_TYPES = frozenset(
    {
        "application/pdf",
        "application/zip",
        "application/x-rar-compressed",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "image/jpeg",
        "image/png",
        "image/jpg",
        "video/mp4",
        "video/mov",
        "video/avi",
        "video/mkv",
        "video/webm",
    }
)


@dataclass(frozen=True, slots=True)
class ProjectUpload:
    """Metadata of a file already stored by the upload service."""

    file_url: str
    file_name: str
    file_size: int
    file_type: str


async def submit_project(
    store: ExamStore,
    exam_id: UUID,
    principal: Principal,
    upload: ProjectUpload,
    now: datetime,
    events: EventSink | None = None,
) -> tuple[Submission, Result]:
    exam = await _exam_or_404(store, exam_id)
    if exam.type is not ExamType.PROJECT:
        raise state_conflict("exam does not accept project work", reason="wrong_exam_type")
    if not upload.file_url.strip() or not upload.file_name.strip():
        raise ValidationFault("file_url and file_name are required")
    if upload.file_type not in ALLOWED_PROJECT_TYPES:
        raise ValidationFault(f"unsupported file type {upload.file_type!r}")
    if upload.file_size < 0:
        raise ValidationFault("file_size must be non-negative")

    attempt = await store.attempts.find_in_progress(exam.id, principal.user_id)
    if attempt is None:
        raise state_conflict("no active attempt; start the exam first", reason="no_attempt")

    next_number = await store.submissions.latest_attempt_number(exam.id, principal.user_id) + 1
    if next_number > exam.max_attempts:
        raise state_conflict("maximum attempts reached", reason="max_attempts")

    closed = replace(attempt, status=AttemptStatus.SUBMITTED, submitted_at=now)
    if not await store.attempts.save(closed, expected_status=AttemptStatus.IN_PROGRESS):
        raise state_conflict("attempt was already submitted", reason="already_submitted")

    work = ProjectWork(
        file_url=upload.file_url,
        file_name=upload.file_name,
        file_size=upload.file_size,
        file_type=upload.file_type,
        submitted_at=now,
    )
    submission = replace(
        Submission.new(
            exam_id=exam.id,
            student_id=principal.user_id,
            attempt_number=next_number,
            submission_type=ExamType.PROJECT,
            started_at=attempt.start_time,
        ),
        status=SubmissionStatus.SUBMITTED,
        submitted_at=now,
        completed_at=now,
        is_late=now > exam.end_date,
    ).with_project(work)
    submission = await store.submissions.upsert(submission)

    # Ungraded placeholder: counts as a fail until an instructor grades it.
    total = float(exam.project_total_marks)
    result = await record_result(
        store,
        Result(
            id=Result.new_id(),
            exam_id=exam.id,
            student_id=principal.user_id,
            submission_id=submission.id,
            total_marks=total,
            obtained_marks=0.0,
            percentage=0.0,
            grade=grade_for(0.0),
            status=ResultStatus.FAIL,
            analytics=Analytics(
                time_spent=max(0, int((now - attempt.start_time).total_seconds())),
                attempts_count=next_number,
            ),
        ),
    )
    logger.info(
        "Project submitted exam=%s student=%s attempt_number=%d submission=%s",
        exam.id,
        principal.user_id,
        next_number,
        submission.id,
    )
    await notify(
        events,
        "project_submitted",
        exam_id=exam.id,
        student_id=principal.user_id,
        submission_id=submission.id,
    )
    return submission, result


async def grade_project(
    store: ExamStore,
    submission_id: UUID,
    principal: Principal,
    marks: object,
    feedback: str,
    now: datetime,
    events: EventSink | None = None,
) -> tuple[Submission, Result]:
    submission = await store.submissions.get(submission_id)
    if submission is None:
        raise NotFound("submission not found")
    exam = await _exam_or_404(store, submission.exam_id)
    if not principal.can_manage(exam.created_by):
        raise AuthorizationFault("not authorized to grade this submission")
    if submission.project is None:
        raise state_conflict("submission has no project work", reason="wrong_exam_type")
    if not feedback or not feedback.strip():
        raise ValidationFault("feedback is required")

    parsed = parse_marks(marks)
    if parsed < 0:
        raise ValidationFault("marks must be non-negative")
    if parsed > exam.project_total_marks:
        raise ValidationFault(
            f"marks cannot exceed the total marks ({exam.project_total_marks:g})"
        )

    work = replace(
        submission.project,
        marks_obtained=parsed,
        feedback=feedback.strip(),
        graded_by=principal.user_id,
        graded_at=now,
    )
    graded = replace(submission.with_project(work), status=SubmissionStatus.GRADED)
    graded = await store.submissions.upsert(graded)

    total = float(exam.project_total_marks)
    percentage, grade, status = _scored(parsed, total, passing_marks=exam.passing_marks)
    existing = await store.results.get_by_submission(graded.id)
    analytics = existing.analytics if existing is not None else Analytics()
    result = await record_result(
        store,
        Result(
            id=Result.new_id(),
            exam_id=exam.id,
            student_id=graded.student_id,
            submission_id=graded.id,
            total_marks=total,
            obtained_marks=parsed,
            percentage=percentage,
            grade=grade,
            status=status,
            analytics=replace(analytics, accuracy_rate=percentage),
            evaluated_by=principal.user_id,
            evaluated_at=now,
            feedback=feedback.strip(),
        ),
    )
    logger.info(
        "Project graded submission=%s exam=%s marks=%s status=%s by=%s",
        graded.id,
        exam.id,
        parsed,
        status,
        principal.user_id,
    )
    await notify(
        events,
        "project_graded",
        exam_id=exam.id,
        student_id=graded.student_id,
        submission_id=graded.id,
        result_id=result.id,
    )
    return graded, result


async def list_exam_submissions(
    store: ExamStore, exam_id: UUID, principal: Principal
) -> list[Submission]:
    """All submissions to an exam, newest first; exam staff only."""
    await _managed_exam(store, exam_id, principal)
    submissions = await store.submissions.list_by_exam(exam_id)
    return sorted(
        submissions,
        key=lambda s: s.submitted_at or datetime.min.replace(tzinfo=UTC),
        reverse=True,
    )


async def list_exam_results(
    store: ExamStore, exam_id: UUID, principal: Principal
) -> list[Result]:
    """All results of an exam, released or not; exam staff only."""
    await _managed_exam(store, exam_id, principal)
    results = await store.results.list_by_exam(exam_id)
    return sorted(results, key=lambda r: (r.student_id, r.analytics.attempts_count))


def parse_marks(value: object) -> float:
    """Marks arrive from forms and JSON alike; anything non-numeric is rejected."""
    if isinstance(value, bool):
        raise ValidationFault(f"marks must be a number (got {value!r})")
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValidationFault(f"marks must be a number (got {value!r})") from None
    if not math.isfinite(parsed):
        raise ValidationFault(f"marks must be a finite number (got {value!r})")
    return parsed


async def _exam_or_404(store: ExamStore, exam_id: UUID) -> Exam:
    exam = await store.exams.get(exam_id)
    if exam is None:
        raise NotFound("exam not found")
    return exam


async def _managed_exam(store: ExamStore, exam_id: UUID, principal: Principal) -> Exam:
    exam = await _exam_or_404(store, exam_id)
    if not principal.can_manage(exam.created_by):
        raise AuthorizationFault("not authorized to view this exam's work")
    return exam
