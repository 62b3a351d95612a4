"""Results, release, project-work and staff listing endpoints."""

from __future__ import annotations

from functools import partial
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import AwareDatetime, BaseModel, Field

from exam_service.api.dependencies import (
    EventsDep,
    NowDep,
    StaffDep,
    StoreDep,
    UnitOfWorkDep,
    UserDep,
)
from exam_service.models.exam import ExamType
from exam_service.models.result import Result, ResultStatus
from exam_service.models.submission import (
    ChoiceAnswer,
    GradedAnswer,
    ManualAnswer,
    Submission,
    SubmissionStatus,
    TrueFalseAnswer,
)
from exam_service.services import result_service, statistics

router = APIRouter(tags=["results"])


# ---------------------------------------------------------------------------
# Response models shared with the attempts router
# ---------------------------------------------------------------------------


class QuestionResultOut(BaseModel):
    question_id: UUID
    obtained_marks: float
    total_marks: float
    is_correct: bool


class AnalyticsOut(BaseModel):
    time_spent: int
    attempts_count: int
    correct_answers: int
    incorrect_answers: int
    skipped_questions: int
    accuracy_rate: float


class ResultOut(BaseModel):
    id: UUID
    exam_id: UUID
    student_id: str
    submission_id: UUID
    total_marks: float
    obtained_marks: float
    percentage: float
    grade: str
    status: ResultStatus
    question_results: list[QuestionResultOut]
    analytics: AnalyticsOut
    is_released: bool
    released_at: AwareDatetime | None
    evaluated_by: str | None
    evaluated_at: AwareDatetime | None
    feedback: str | None

    @staticmethod
    def of(result: Result) -> ResultOut:
        a = result.analytics
        return ResultOut(
            id=result.id,
            exam_id=result.exam_id,
            student_id=result.student_id,
            submission_id=result.submission_id,
            total_marks=result.total_marks,
            obtained_marks=result.obtained_marks,
            percentage=result.percentage,
            grade=result.grade,
            status=result.status,
            question_results=[
                QuestionResultOut(
                    question_id=qr.question_id,
                    obtained_marks=qr.obtained_marks,
                    total_marks=qr.total_marks,
                    is_correct=qr.is_correct,
                )
                for qr in result.question_results
            ],
            analytics=AnalyticsOut(
                time_spent=a.time_spent,
                attempts_count=a.attempts_count,
                correct_answers=a.correct_answers,
                incorrect_answers=a.incorrect_answers,
                skipped_questions=a.skipped_questions,
                accuracy_rate=a.accuracy_rate,
            ),
            is_released=result.is_released,
            released_at=result.released_at,
            evaluated_by=result.evaluated_by,
            evaluated_at=result.evaluated_at,
            feedback=result.feedback,
        )


class GradedAnswerOut(BaseModel):
    question_id: UUID
    kind: Literal["choice", "true_false", "manual"]
    answer: str
    is_correct: bool
    marks_obtained: float

    @staticmethod
    def of(answer: GradedAnswer) -> GradedAnswerOut:
        match answer:
            case ChoiceAnswer():
                text = answer.selected_option
            case TrueFalseAnswer() | ManualAnswer():
                text = answer.answer
        return GradedAnswerOut(
            question_id=answer.question_id,
            kind=answer.kind,
            answer=text,
            is_correct=answer.is_correct,
            marks_obtained=answer.marks_obtained,
        )


class ProjectWorkOut(BaseModel):
    file_url: str
    file_name: str
    file_size: int
    file_type: str
    submitted_at: AwareDatetime
    marks_obtained: float | None
    feedback: str | None


class SubmissionOut(BaseModel):
    id: UUID
    exam_id: UUID
    student_id: str
    attempt_number: int
    submission_type: ExamType
    status: SubmissionStatus
    answers: list[GradedAnswerOut]
    total_marks_obtained: float
    submitted_at: AwareDatetime | None
    is_late: bool
    project: ProjectWorkOut | None

    @staticmethod
    def of(submission: Submission) -> SubmissionOut:
        project = submission.project
        return SubmissionOut(
            id=submission.id,
            exam_id=submission.exam_id,
            student_id=submission.student_id,
            attempt_number=submission.attempt_number,
            submission_type=submission.submission_type,
            status=submission.status,
            answers=[GradedAnswerOut.of(a) for a in submission.answers],
            total_marks_obtained=submission.total_marks_obtained,
            submitted_at=submission.submitted_at,
            is_late=submission.is_late,
            project=(
                ProjectWorkOut(
                    file_url=project.file_url,
                    file_name=project.file_name,
                    file_size=project.file_size,
                    file_type=project.file_type,
                    submitted_at=project.submitted_at,
                    marks_obtained=project.marks_obtained,
                    feedback=project.feedback,
                )
                if project is not None
                else None
            ),
        )


class SubmissionResultOut(BaseModel):
    submission: SubmissionOut
    result: ResultOut


class ProjectReceiptOut(BaseModel):
    submission: SubmissionOut
    result_id: UUID
    is_released: bool


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ProjectIn(BaseModel):
    file_url: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    file_type: str


class ProjectGradeIn(BaseModel):
    marks: float | str  # validated by parse_marks
    feedback: str


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/v1/results/{result_id}", response_model=ResultOut)
async def get_result(result_id: UUID, principal: UserDep, store: StoreDep) -> ResultOut:
    return ResultOut.of(await result_service.get_result(store, result_id, principal))


@router.post("/v1/results/{result_id}/release", response_model=ResultOut)
async def release_result(
    result_id: UUID,
    principal: StaffDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
    events: EventsDep,
    now: NowDep,
) -> ResultOut:
    result = await result_service.release_result(store, result_id, principal, now, events)
    uow.after_commit(partial(statistics.invalidate, result.exam_id, result.student_id))
    return ResultOut.of(result)


@router.post(
    "/v1/exams/{exam_id}/project-submissions",
    response_model=ProjectReceiptOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_project(
    exam_id: UUID,
    body: ProjectIn,
    principal: UserDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
    events: EventsDep,
    now: NowDep,
) -> ProjectReceiptOut:
    submission, result = await result_service.submit_project(
        store,
        exam_id,
        principal,
        result_service.ProjectUpload(
            file_url=body.file_url,
            file_name=body.file_name,
            file_size=body.file_size,
            file_type=body.file_type,
        ),
        now,
        events,
    )
    uow.after_commit(partial(statistics.invalidate, exam_id, principal.user_id))
    return ProjectReceiptOut(
        submission=SubmissionOut.of(submission),
        result_id=result.id,
        is_released=result.is_released,
    )


@router.post("/v1/submissions/{submission_id}/grade", response_model=SubmissionResultOut)
async def grade_project(
    submission_id: UUID,
    body: ProjectGradeIn,
    principal: StaffDep,
    store: StoreDep,
    uow: UnitOfWorkDep,
    events: EventsDep,
    now: NowDep,
) -> SubmissionResultOut:
    submission, result = await result_service.grade_project(
        store, submission_id, principal, body.marks, body.feedback, now, events
    )
    uow.after_commit(partial(statistics.invalidate, result.exam_id, result.student_id))
    return SubmissionResultOut(
        submission=SubmissionOut.of(submission), result=ResultOut.of(result)
    )


@router.get("/v1/exams/{exam_id}/submissions", response_model=list[SubmissionOut])
async def list_exam_submissions(
    exam_id: UUID, principal: StaffDep, store: StoreDep
) -> list[SubmissionOut]:
    submissions = await result_service.list_exam_submissions(store, exam_id, principal)
    return [SubmissionOut.of(s) for s in submissions]


@router.get("/v1/exams/{exam_id}/results", response_model=list[ResultOut])
async def list_exam_results(
    exam_id: UUID, principal: StaffDep, store: StoreDep
) -> list[ResultOut]:
    results = await result_service.list_exam_results(store, exam_id, principal)
    return [ResultOut.of(r) for r in results]
