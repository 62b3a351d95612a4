"""The single write path for the durable Submission record."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from exam_service.models.attempt import Attempt
from exam_service.models.exam import Exam
from exam_service.models.submission import GradedAnswer, Submission, SubmissionStatus
from exam_service.repos.store import ExamStore

logger = logging.getLogger(__name__)


async def upsert_submission(
    store: ExamStore,
    exam: Exam,
    attempt: Attempt,
    graded_answers: tuple[GradedAnswer, ...],
    now: datetime,
    *,
    status: SubmissionStatus = SubmissionStatus.SUBMITTED,
) -> Submission:
    """Create or overwrite the submission for this attempt.

    Keyed on (exam, student, attempt_number), so calling it again for the
    same attempt rewrites the same row.  The total is always recomputed
    from `graded_answers`, never adjusted incrementally.
    """
    submitted_at = attempt.submitted_at or now
    existing = await store.submissions.get_by_key(
        exam.id, attempt.student_id, attempt.attempt_number
    )
    base = existing or Submission.new(
        exam_id=exam.id,
        student_id=attempt.student_id,
        attempt_number=attempt.attempt_number,
        submission_type=exam.type,
        started_at=attempt.start_time,
    )
    submission = replace(
        base,
        status=status,
        submitted_at=submitted_at,
        completed_at=submitted_at,
        is_late=submitted_at > exam.end_date,
    ).with_answers(graded_answers)

    stored = await store.submissions.upsert(submission)
    logger.info(
        "Submission %s submission=%s exam=%s student=%s attempt_number=%d total=%s",
        "updated" if existing else "created",
        stored.id,
        exam.id,
        attempt.student_id,
        attempt.attempt_number,
        stored.total_marks_obtained,
    )
    return stored
