"""Exam directory endpoints: create, read, publish/unpublish, delete."""

from __future__ import annotations

from functools import partial
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import AwareDatetime, BaseModel, Field

from exam_service.api.dependencies import StaffDep, StoreDep, UnitOfWorkDep, UserDep
from exam_service.models.exam import Exam, ExamStatus, ExamType
from exam_service.services import exam_service, statistics

router = APIRouter(prefix="/v1/exams", tags=["exams"])


class ExamIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    type: ExamType
    duration_minutes: int = Field(ge=1)
    start_date: AwareDatetime
    end_date: AwareDatetime
    is_public: bool = False
    allowed_students: list[str] = []
    shuffle_questions: bool = True
    max_attempts: int = Field(default=1, ge=1)
    project_total_marks: float = Field(default=100, gt=0)
    project_passing_marks: float | None = Field(default=None, ge=0)


class ExamOut(BaseModel):
    id: UUID
    title: str
    type: ExamType
    status: ExamStatus
    duration_minutes: int
    start_date: AwareDatetime
    end_date: AwareDatetime
    created_by: str
    is_public: bool
    allowed_students: list[str]
    question_ids: list[UUID]
    shuffle_questions: bool
    max_attempts: int
    project_total_marks: float
    passing_marks: float

    @staticmethod
    def of(exam: Exam) -> ExamOut:
        return ExamOut(
            id=exam.id,
            title=exam.title,
            type=exam.type,
            status=exam.status,
            duration_minutes=exam.duration_minutes,
            start_date=exam.start_date,
            end_date=exam.end_date,
            created_by=exam.created_by,
            is_public=exam.is_public,
            allowed_students=list(exam.allowed_students),
            question_ids=list(exam.question_ids),
            shuffle_questions=exam.shuffle_questions,
            max_attempts=exam.max_attempts,
            project_total_marks=exam.project_total_marks,
            passing_marks=exam.passing_marks,
        )


class ExamDeletionOut(BaseModel):
    exam_id: UUID
    results: int
    submissions: int
    attempts: int
    questions: int


@router.post("", response_model=ExamOut, status_code=status.HTTP_201_CREATED)
async def create_exam(body: ExamIn, principal: StaffDep, store: StoreDep) -> ExamOut:
    exam = await exam_service.create_exam(
        store,
        principal,
        title=body.title,
        type=body.type,
        duration_minutes=body.duration_minutes,
        start_date=body.start_date,
        end_date=body.end_date,
        is_public=body.is_public,
        allowed_students=tuple(body.allowed_students),
        shuffle_questions=body.shuffle_questions,
        max_attempts=body.max_attempts,
        project_total_marks=body.project_total_marks,
        project_passing_marks=body.project_passing_marks,
    )
    return ExamOut.of(exam)


@router.get("/{exam_id}", response_model=ExamOut)
async def get_exam(exam_id: UUID, principal: UserDep, store: StoreDep) -> ExamOut:
    return ExamOut.of(await exam_service.get_exam(store, exam_id))


@router.post("/{exam_id}/publish", response_model=ExamOut)
async def publish_exam(exam_id: UUID, principal: StaffDep, store: StoreDep) -> ExamOut:
    return ExamOut.of(await exam_service.publish_exam(store, exam_id, principal))


@router.post("/{exam_id}/unpublish", response_model=ExamOut)
async def unpublish_exam(exam_id: UUID, principal: StaffDep, store: StoreDep) -> ExamOut:
    return ExamOut.of(await exam_service.unpublish_exam(store, exam_id, principal))


@router.delete("/{exam_id}", response_model=ExamDeletionOut)
async def delete_exam(
    exam_id: UUID, principal: StaffDep, store: StoreDep, uow: UnitOfWorkDep
) -> ExamDeletionOut:
    deleted = await exam_service.delete_exam(store, exam_id, principal)
    uow.after_commit(partial(statistics.invalidate, exam_id))
    return ExamDeletionOut(
        exam_id=deleted.exam_id,
        results=deleted.results,
        submissions=deleted.submissions,
        attempts=deleted.attempts,
        questions=deleted.questions,
    )
