"""Cached statistics endpoints.

Both views are read-through: check the cache, on a miss aggregate the
Result records and populate it.  Writers elsewhere invalidate the keys.
"""

from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from exam_service.api.dependencies import StaffDep, StoreDep, UserDep
from exam_service.services import statistics

router = APIRouter(tags=["statistics"])


class ExamStatisticsOut(BaseModel):
    exam_id: str
    total_students: int
    total_results: int
    average_score: float
    pass_rate: float
    highest_score: float
    lowest_score: float
    standard_deviation: float


class StudentStatisticsOut(BaseModel):
    student_id: str
    total_exams: int
    average_score: float
    pass_rate: float


@router.get("/v1/exams/{exam_id}/statistics", response_model=ExamStatisticsOut)
async def exam_statistics(
    exam_id: UUID, principal: StaffDep, store: StoreDep
) -> ExamStatisticsOut:
    stats = await statistics.exam_statistics(store, exam_id, principal)
    return ExamStatisticsOut(**asdict(stats))


@router.get("/v1/students/{student_id}/statistics", response_model=StudentStatisticsOut)
async def student_statistics(
    student_id: str, principal: UserDep, store: StoreDep
) -> StudentStatisticsOut:
    stats = await statistics.student_statistics(store, student_id, principal)
    return StudentStatisticsOut(**asdict(stats))
