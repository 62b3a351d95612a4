"""Attempt endpoints: start, read (with countdown), submit, manual grading.

A student never sees marks here before their result is released: the
submit response is a receipt carrying ids, and attempt reads blank out
per-question marks and the total until then.  Staff of the exam always
see them.
"""

from __future__ import annotations

from datetime import datetime
from functools import partial
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import AwareDatetime, BaseModel

from exam_service.api.dependencies import (
    EventsDep,
    NowDep,
    StaffDep,
    StoreDep,
    UnitOfWorkDep,
    UserDep,
)
from exam_service.api.results import ResultOut, SubmissionOut
from exam_service.models.attempt import Attempt, AttemptStatus
from exam_service.services import attempt_service, statistics, time_window

router = APIRouter(tags=["attempts"])


class AttemptQuestionOut(BaseModel):
    question_id: UUID
    answer: str | None
    marks: float | None


class AttemptOut(BaseModel):
    id: UUID
    exam_id: UUID
    student_id: str
    attempt_number: int
    status: AttemptStatus
    start_time: AwareDatetime
    end_time: AwareDatetime
    submitted_at: AwareDatetime | None
    remaining_seconds: int
    total_marks: float | None
    questions: list[AttemptQuestionOut]

    @staticmethod
    def of(
        attempt: Attempt,
        now: datetime,
        order: list[UUID] | None = None,
        *,
        show_marks: bool = True,
    ) -> AttemptOut:
        entries = {e.question_id: e for e in attempt.questions}
        ordered = (
            [entries[qid] for qid in order] if order is not None else list(attempt.questions)
        )
        remaining = (
            int(time_window.remaining(attempt, now).total_seconds())
            if attempt.status is AttemptStatus.IN_PROGRESS
            else 0
        )
        return AttemptOut(
            id=attempt.id,
            exam_id=attempt.exam_id,
            student_id=attempt.student_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            start_time=attempt.start_time,
            end_time=attempt.end_time,
            submitted_at=attempt.submitted_at,
            remaining_seconds=remaining,
            total_marks=attempt.total_marks if show_marks else None,
            questions=[
                AttemptQuestionOut(
                    question_id=e.question_id,
                    answer=e.answer,
                    marks=e.marks if show_marks else None,
                )
                for e in ordered
            ],
        )


class SubmitIn(BaseModel):
    answers: dict[UUID, str | None] = {}
    time_expired: bool = False


class GradesIn(BaseModel):
    marks: dict[UUID, float | str]


class SubmitOut(BaseModel):
    attempt: AttemptOut
    submission: SubmissionOut
    result: ResultOut


class SubmitReceiptOut(BaseModel):
    attempt: AttemptOut
    submission_id: UUID
    result_id: UUID
    is_released: bool


@router.post(
    "/v1/exams/{exam_id}/attempts",
    response_model=AttemptOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(
    exam_id: UUID, principal: UserDep, store: StoreDep, now: NowDep
) -> AttemptOut:
    attempt = await attempt_service.start_attempt(store, exam_id, principal, now)
    return AttemptOut.of(attempt, now, show_marks=False)


@router.get("/v1/attempts/{attempt_id}", response_model=AttemptOut)
async def get_attempt(
    attempt_id: UUID,
    principal: UserDep,
    store: StoreDep,
    now: NowDep,
    preview: Annotated[bool, Query()] = False,
) -> AttemptOut:
    attempt = await attempt_service.load_attempt(store, attempt_id, principal, now)
    order = attempt_service.preview_order(attempt) if preview else None
    show_marks = await attempt_service.marks_visible(store, attempt, principal)
    return AttemptOut.of(attempt, now, order, show_marks=show_marks)


@router.post("/v1/attempts/{attempt_id}/submit", response_model=SubmitReceiptOut)
async def submit_attempt(
    attempt_id: UUID,
    body: SubmitIn,
    principal: UserDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
    events: EventsDep,
    now: NowDep,
) -> SubmitReceiptOut:
    outcome = await attempt_service.submit_attempt(
        store,
        attempt_id,
        principal,
        body.answers,
        now=now,
        time_expired=body.time_expired,
        events=events,
    )
    attempt = outcome.attempt
    uow.after_commit(partial(statistics.invalidate, attempt.exam_id, attempt.student_id))
    return SubmitReceiptOut(
        attempt=AttemptOut.of(attempt, now, show_marks=outcome.result.is_released),
        submission_id=outcome.submission.id,
        result_id=outcome.result.id,
        is_released=outcome.result.is_released,
    )


@router.post("/v1/attempts/{attempt_id}/grades", response_model=SubmitOut)
async def grade_attempt(
    attempt_id: UUID,
    body: GradesIn,
    principal: StaffDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
    events: EventsDep,
    now: NowDep,
) -> SubmitOut:
    outcome = await attempt_service.grade_essay_answer(
        store, attempt_id, principal, body.marks, now, events
    )
    attempt = outcome.attempt
    uow.after_commit(partial(statistics.invalidate, attempt.exam_id, attempt.student_id))
    return SubmitOut(
        attempt=AttemptOut.of(attempt, now),
        submission=SubmissionOut.of(outcome.submission),
        result=ResultOut.of(outcome.result),
    )
