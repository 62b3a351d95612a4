"""The persistent store as one bundle of repositories.

Services take an ExamStore rather than five separate repo arguments.  The
API layer builds it per request: PostgreSQL-backed when DATABASE_URL is
configured, otherwise the process-wide in-memory store.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from exam_service.repos.exam_repo import ExamRepo, InMemoryExamRepo
from exam_service.repos.pg_attempt_repo import PgAttemptRepo
from exam_service.repos.pg_exam_repo import PgExamRepo
from exam_service.repos.pg_question_repo import PgQuestionRepo
from exam_service.repos.pg_result_repo import PgResultRepo
from exam_service.repos.pg_submission_repo import PgSubmissionRepo
from exam_service.repos.question_repo import InMemoryQuestionRepo, QuestionRepo
from exam_service.repos.result_repo import InMemoryResultRepo, ResultRepo
from exam_service.repos.submission_repo import InMemorySubmissionRepo, SubmissionRepo


@dataclass(frozen=True, slots=True)
class ExamStore:
    exams: ExamRepo
    questions: QuestionRepo
    attempts: AttemptRepo
    submissions: SubmissionRepo
    results: ResultRepo

    @staticmethod
    def in_memory() -> ExamStore:
        return ExamStore(
            exams=InMemoryExamRepo(),
            questions=InMemoryQuestionRepo(),
            attempts=InMemoryAttemptRepo(),
            submissions=InMemorySubmissionRepo(),
            results=InMemoryResultRepo(),
        )

    @staticmethod
    def postgres(session: AsyncSession) -> ExamStore:
        return ExamStore(
            exams=PgExamRepo(session),
            questions=PgQuestionRepo(session),
            attempts=PgAttemptRepo(session),
            submissions=PgSubmissionRepo(session),
            results=PgResultRepo(session),
        )
