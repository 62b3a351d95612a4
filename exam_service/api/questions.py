"""Question authoring endpoints.

PUT on a question whose answer key changes re-scores every attempt,
submission and result that already used the old key before it returns.
/recalculate repeats that work on demand, inline or queued for the worker.
"""

from __future__ import annotations

from functools import partial
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, Field

from exam_service.api.dependencies import StaffDep, StoreDep, UnitOfWorkDep
from exam_service.models.question import Option, Question, QuestionType
from exam_service.services import question_service, recalculation, statistics

router = APIRouter(tags=["questions"])


class OptionIn(BaseModel):
    id: str | None = None
    text: str
    is_correct: bool = False

    def to_option(self) -> Option:
        if self.id:
            return Option(id=self.id, text=self.text, is_correct=self.is_correct)
        return Option.new(text=self.text, is_correct=self.is_correct)


class QuestionIn(BaseModel):
    type: QuestionType
    text: str = Field(min_length=1)
    points: float = Field(ge=0)
    options: list[OptionIn] = []
    correct_answer: str | None = None
    explanation: str | None = None


class QuestionPatch(BaseModel):
    text: str | None = None
    points: float | None = Field(default=None, ge=0)
    options: list[OptionIn] | None = None
    correct_answer: str | None = None
    explanation: str | None = None


class OptionOut(BaseModel):
    id: str
    text: str
    is_correct: bool


class QuestionOut(BaseModel):
    id: UUID
    exam_id: UUID
    type: QuestionType
    text: str
    points: float
    options: list[OptionOut]
    correct_answer: str | None
    explanation: str | None

    @staticmethod
    def of(question: Question) -> QuestionOut:
        return QuestionOut(
            id=question.id,
            exam_id=question.exam_id,
            type=question.type,
            text=question.text,
            points=question.points,
            options=[
                OptionOut(id=o.id, text=o.text, is_correct=o.is_correct)
                for o in question.options
            ],
            correct_answer=question.correct_answer,
            explanation=question.explanation,
        )


class RecalculationOut(BaseModel):
    question_id: UUID
    attempts: int = 0
    submissions: int = 0
    results: int = 0
    task_id: str | None = None

    @staticmethod
    def of(report: recalculation.RecalculationReport) -> RecalculationOut:
        return RecalculationOut(
            question_id=report.question_id,
            attempts=report.attempts,
            submissions=report.submissions,
            results=report.results,
        )


class QuestionUpdateOut(BaseModel):
    question: QuestionOut
    key_changed: bool
    recalculation: RecalculationOut | None = None


class QuestionCleanupOut(BaseModel):
    question_id: UUID
    attempts: int
    submissions: int
    results: int


@router.post(
    "/v1/exams/{exam_id}/questions",
    response_model=QuestionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_question(
    exam_id: UUID, body: QuestionIn, principal: StaffDep, store: StoreDep
) -> QuestionOut:
    question = await question_service.create_question(
        store,
        exam_id,
        principal,
        type=body.type,
        text=body.text,
        points=body.points,
        options=[o.to_option() for o in body.options],
        correct_answer=body.correct_answer,
        explanation=body.explanation,
    )
    return QuestionOut.of(question)


@router.put("/v1/questions/{question_id}", response_model=QuestionUpdateOut)
async def update_question(
    question_id: UUID,
    body: QuestionPatch,
    principal: StaffDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
) -> QuestionUpdateOut:
    update = await question_service.update_question(
        store,
        question_id,
        principal,
        text=body.text,
        points=body.points,
        options=None if body.options is None else [o.to_option() for o in body.options],
        correct_answer=body.correct_answer,
        explanation=body.explanation,
    )
    if update.key_changed:
        uow.after_commit(partial(statistics.invalidate, update.question.exam_id))
    return QuestionUpdateOut(
        question=QuestionOut.of(update.question),
        key_changed=update.key_changed,
        recalculation=(
            RecalculationOut.of(update.recalculation) if update.recalculation else None
        ),
    )


@router.post("/v1/questions/{question_id}/recalculate", response_model=RecalculationOut)
async def recalculate_question(
    question_id: UUID,
    principal: StaffDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
    response: Response,
    queue: Annotated[bool, Query()] = False,
) -> RecalculationOut:
    if queue:
        # Authorization and existence are checked before anything is queued.
        question = await question_service.get_question(store, question_id, principal)
        task_id = await recalculation.schedule_recalculation(question.id)
        response.status_code = status.HTTP_202_ACCEPTED
        return RecalculationOut(question_id=question.id, task_id=task_id)

    question = await question_service.get_question(store, question_id, principal)
    report = await question_service.recalculate_question(store, question_id, principal)
    uow.after_commit(partial(statistics.invalidate, question.exam_id))
    return RecalculationOut.of(report)


@router.delete("/v1/questions/{question_id}", response_model=QuestionCleanupOut)
async def delete_question(
    question_id: UUID, principal: StaffDep, store: StoreDep, uow: UnitOfWorkDep
) -> QuestionCleanupOut:
    cleanup = await question_service.delete_question(store, question_id, principal)
    uow.after_commit(partial(statistics.invalidate, cleanup.exam_id))
    return QuestionCleanupOut(
        question_id=cleanup.question_id,
        attempts=cleanup.attempts,
        submissions=cleanup.submissions,
        results=cleanup.results,
    )
