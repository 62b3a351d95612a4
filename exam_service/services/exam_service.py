"""Exam directory: creation, publishing, and cascade deletion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from exam_service.core.errors import (
    AuthorizationFault,
    NotFound,
    ValidationFault,
    state_conflict,
)
from exam_service.models.exam import Exam, ExamStatus, ExamType
from exam_service.models.principal import Principal
from exam_service.repos.store import ExamStore

logger = logging.getLogger(__name__)

AUTHOR_ROLES = {"instructor", "admin"}


@dataclass(frozen=True, slots=True)
class ExamDeletion:
    exam_id: UUID
    results: int
    submissions: int
    attempts: int
    questions: int


async def create_exam(
    store: ExamStore,
    principal: Principal,
    *,
    title: str,
    type: ExamType,
    duration_minutes: int,
    start_date: datetime,
    end_date: datetime,
    is_public: bool = False,
    allowed_students: tuple[str, ...] = (),
    shuffle_questions: bool = True,
    max_attempts: int = 1,
    project_total_marks: float = 100,
    project_passing_marks: float | None = None,
) -> Exam:
    if not principal.has_any_role(AUTHOR_ROLES):
        raise AuthorizationFault("only instructors can create exams")
    if not title or not title.strip():
        raise ValidationFault("title is required")
    if duration_minutes < 1:
        raise ValidationFault("duration_minutes must be at least 1")
    if end_date <= start_date:
        raise ValidationFault("end_date must be after start_date")
    if max_attempts < 1:
        raise ValidationFault("max_attempts must be at least 1")
    if project_total_marks <= 0:
        raise ValidationFault("project_total_marks must be positive")
    if project_passing_marks is not None and not (
        0 <= project_passing_marks <= project_total_marks
    ):
        raise ValidationFault("passing marks must lie between 0 and the total marks")

    exam = Exam.new(
        title=title.strip(),
        type=type,
        duration_minutes=duration_minutes,
        start_date=start_date,
        end_date=end_date,
        created_by=principal.user_id,
        is_public=is_public,
        allowed_students=tuple(allowed_students),
        shuffle_questions=shuffle_questions,
        max_attempts=max_attempts,
        project_total_marks=project_total_marks,
        project_passing_marks=project_passing_marks,
    )
    await store.exams.add(exam)
    logger.info(
        "Exam created exam=%s type=%s by=%s window=%s..%s",
        exam.id,
        exam.type,
        principal.user_id,
        exam.start_date.isoformat(),
        exam.end_date.isoformat(),
    )
    return exam


async def get_exam(store: ExamStore, exam_id: UUID) -> Exam:
    exam = await store.exams.get(exam_id)
    if exam is None:
        raise NotFound("exam not found")
    return exam


async def publish_exam(store: ExamStore, exam_id: UUID, principal: Principal) -> Exam:
    exam = await _managed_exam(store, exam_id, principal)
    # Project exams are answered with an upload, not with questions.
    if exam.type is not ExamType.PROJECT and not exam.question_ids:
        raise state_conflict("cannot publish an exam without questions", reason="no_questions")
    published = replace(exam, status=ExamStatus.PUBLISHED)
    await store.exams.save(published)
    logger.info("Exam published exam=%s by=%s", exam.id, principal.user_id)
    return published


async def unpublish_exam(store: ExamStore, exam_id: UUID, principal: Principal) -> Exam:
    exam = await _managed_exam(store, exam_id, principal)
    draft = replace(exam, status=ExamStatus.DRAFT)
    await store.exams.save(draft)
    logger.info("Exam unpublished exam=%s by=%s", exam.id, principal.user_id)
    return draft


async def delete_exam(store: ExamStore, exam_id: UUID, principal: Principal) -> ExamDeletion:
    """Delete an exam and everything derived from it, leaves first.

    The exam row goes last, so while it still exists a retry repeats the
    remaining steps; each step is a bulk delete by exam id and deleting
    nothing is not an error.
    """
    exam = await _managed_exam(store, exam_id, principal)

    results = await store.results.delete_by_exam(exam.id)
    submissions = await store.submissions.delete_by_exam(exam.id)
    attempts = await store.attempts.delete_by_exam(exam.id)
    questions = await store.questions.delete_by_exam(exam.id)
    await store.exams.delete(exam.id)

    logger.info(
        "Exam deleted exam=%s by=%s results=%d submissions=%d attempts=%d questions=%d",
        exam.id,
        principal.user_id,
        results,
        submissions,
        attempts,
        questions,
    )
    return ExamDeletion(
        exam_id=exam.id,
        results=results,
        submissions=submissions,
        attempts=attempts,
        questions=questions,
    )


async def _managed_exam(store: ExamStore, exam_id: UUID, principal: Principal) -> Exam:
    exam = await get_exam(store, exam_id)
    if not principal.can_manage(exam.created_by):
        logger.warning(
            "Access denied: user=%s may not manage exam=%s", principal.user_id, exam.id
        )
        raise AuthorizationFault("not authorized to manage this exam")
    return exam
