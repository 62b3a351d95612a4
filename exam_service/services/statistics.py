"""Statistics read model over Result records.

Aggregates are computed only from Results, never from attempts or
submissions, and served through the read-through cache.  Writers call
invalidate() after any change to Results; the TTL bounds staleness if an
invalidation is missed.

  exam view     every result of the exam (staff only)
  student view  the student's released results only
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from uuid import UUID

from exam_service.core.config import SETTINGS
from exam_service.core.errors import AuthorizationFault, NotFound
from exam_service.core.metrics import CACHE_OPERATIONS
from exam_service.models.principal import Principal
from exam_service.models.result import Result, ResultStatus
from exam_service.repos.store import ExamStore
from exam_service.services.cache import cache_service

logger = logging.getLogger(__name__)

STAFF_ROLES = {"instructor", "admin"}


@dataclass(frozen=True, slots=True)
class ExamStatistics:
    exam_id: str
    total_students: int
    total_results: int
    average_score: float
    pass_rate: float
    highest_score: float
    lowest_score: float
    standard_deviation: float


@dataclass(frozen=True, slots=True)
class StudentStatistics:
    student_id: str
    total_exams: int
    average_score: float
    pass_rate: float


def summarize_exam(exam_id: UUID, results: Sequence[Result]) -> ExamStatistics:
    scores = [r.percentage for r in results]
    if not scores:
        return ExamStatistics(
            exam_id=str(exam_id),
            total_students=0,
            total_results=0,
            average_score=0.0,
            pass_rate=0.0,
            highest_score=0.0,
            lowest_score=0.0,
            standard_deviation=0.0,
        )
    mean = sum(scores) / len(scores)
    variance = sum((s - mean) ** 2 for s in scores) / len(scores)
    return ExamStatistics(
        exam_id=str(exam_id),
        total_students=len({r.student_id for r in results}),
        total_results=len(results),
        average_score=round(mean, 2),
        pass_rate=_pass_rate(results),
        highest_score=max(scores),
        lowest_score=min(scores),
        standard_deviation=round(math.sqrt(variance), 2),
    )


def summarize_student(student_id: str, results: Sequence[Result]) -> StudentStatistics:
    released = [r for r in results if r.is_released]
    average = (
        round(sum(r.percentage for r in released) / len(released), 2) if released else 0.0
    )
    return StudentStatistics(
        student_id=student_id,
        total_exams=len(released),
        average_score=average,
        pass_rate=_pass_rate(released),
    )


def _pass_rate(results: Sequence[Result]) -> float:
    if not results:
        return 0.0
    passed = sum(1 for r in results if r.status is ResultStatus.PASS)
    return round(passed / len(results) * 100, 2)


def exam_key(exam_id: UUID) -> str:
    return f"stats:exam:{exam_id}"


def student_key(student_id: str) -> str:
    return f"stats:student:{student_id}"


async def exam_statistics(
    store: ExamStore, exam_id: UUID, principal: Principal
) -> ExamStatistics:
    exam = await store.exams.get(exam_id)
    if exam is None:
        raise NotFound("exam not found")
    if not principal.can_manage(exam.created_by):
        raise AuthorizationFault("not authorized to view statistics for this exam")

    key = exam_key(exam_id)
    cached = await cache_service.get(key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return ExamStatistics(**json.loads(cached))

    CACHE_OPERATIONS.labels(operation="miss").inc()
    stats = summarize_exam(exam_id, await store.results.list_by_exam(exam_id))
    await cache_service.set(key, json.dumps(asdict(stats)), SETTINGS.stats_cache_ttl)
    return stats


async def student_statistics(
    store: ExamStore, student_id: str, principal: Principal
) -> StudentStatistics:
    if principal.user_id != student_id and not principal.has_any_role(STAFF_ROLES):
        raise AuthorizationFault("not authorized to view another student's statistics")

    key = student_key(student_id)
    cached = await cache_service.get(key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return StudentStatistics(**json.loads(cached))

    CACHE_OPERATIONS.labels(operation="miss").inc()
    stats = summarize_student(student_id, await store.results.list_by_student(student_id))
    await cache_service.set(key, json.dumps(asdict(stats)), SETTINGS.stats_cache_ttl)
    return stats


async def invalidate(exam_id: UUID, student_id: str | None = None) -> None:
    """Drop cached statistics for an exam and one student, or all students."""
    await cache_service.delete(exam_key(exam_id))
    if student_id is not None:
        await cache_service.delete(student_key(student_id))
    else:
        await cache_service.delete_pattern(student_key("*"))
    logger.debug("Statistics invalidated exam=%s student=%s", exam_id, student_id or "*")
