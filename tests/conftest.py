from __future__ import annotations

import sys
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from exam_service.api.dependencies import reset_memory_store
from exam_service.main import app
from exam_service.models.exam import Exam, ExamType
from exam_service.models.principal import Principal
from exam_service.models.question import Option, Question, QuestionType
from exam_service.repos.store import ExamStore
from exam_service.services import exam_service, question_service, token_service
from exam_service.services.cache import cache_service
from exam_service.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import exam_service` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)

INSTRUCTOR = Principal(user_id="instructor-1", roles=frozenset({"instructor"}))
OTHER_INSTRUCTOR = Principal(user_id="instructor-2", roles=frozenset({"instructor"}))
ADMIN = Principal(user_id="admin-1", roles=frozenset({"admin"}))
STUDENT = Principal(user_id="student-1", roles=frozenset({"student"}))
OTHER_STUDENT = Principal(user_id="student-2", roles=frozenset({"student"}))


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Fresh in-memory exam store between tests."""
    reset_memory_store()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def store() -> ExamStore:
    return ExamStore.in_memory()


def mint_token(
    username: str = "student-1",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(username: str = "student-1", roles: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(username, roles)}"}


# ---------------------------------------------------------------------------
# Question and exam builders
# ---------------------------------------------------------------------------


def single_choice(points: float = 5, correct: str = "a") -> dict:
    """Four options with ids a..d; `correct` is the flagged one."""
    return {
        "type": QuestionType.SINGLE_CHOICE,
        "text": "Pick one",
        "points": points,
        "options": [
            Option(id=oid, text=f"option {oid}", is_correct=oid == correct)
            for oid in ("a", "b", "c", "d")
        ],
    }


def true_false(points: float = 2, key: str = "true") -> dict:
    return {
        "type": QuestionType.TRUE_FALSE,
        "text": "True or false?",
        "points": points,
        "correct_answer": key,
    }


def essay(points: float = 10) -> dict:
    return {"type": QuestionType.ESSAY, "text": "Discuss.", "points": points}


async def seed_exam(
    store: ExamStore,
    questions: Sequence[dict] = (),
    *,
    type: ExamType = ExamType.MCQ,
    owner: Principal = INSTRUCTOR,
    max_attempts: int = 1,
    duration_minutes: int = 60,
    start: datetime = NOW - timedelta(days=1),
    end: datetime = NOW + timedelta(days=1),
    is_public: bool = True,
    allowed_students: tuple[str, ...] = (),
    project_total_marks: float = 100,
    project_passing_marks: float | None = None,
    publish: bool = True,
) -> tuple[Exam, list[Question]]:
    """Create an exam with the given questions, published unless told otherwise."""
    exam = await exam_service.create_exam(
        store,
        owner,
        title="Midterm",
        type=type,
        duration_minutes=duration_minutes,
        start_date=start,
        end_date=end,
        is_public=is_public,
        allowed_students=allowed_students,
        shuffle_questions=False,
        max_attempts=max_attempts,
        project_total_marks=project_total_marks,
        project_passing_marks=project_passing_marks,
    )
    created = [
        await question_service.create_question(store, exam.id, owner, **fields)
        for fields in questions
    ]
    if publish:
        exam = await exam_service.publish_exam(store, exam.id, owner)
    else:
        exam = await exam_service.get_exam(store, exam.id)
    return exam, created


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

STAFF = {"username": "instructor-1", "roles": ["instructor"]}


def staff_auth() -> dict[str, str]:
    return auth(**STAFF)


def choice_json(points: float = 5, correct: str = "a") -> dict:
    return {
        "type": "single_choice",
        "text": "Pick one",
        "points": points,
        "options": [
            {"id": oid, "text": f"option {oid}", "is_correct": oid == correct}
            for oid in ("a", "b", "c", "d")
        ],
    }


def true_false_json(points: float = 2, key: str = "true") -> dict:
    return {"type": "true_false", "text": "True or false?", "points": points, "correct_answer": key}


def essay_json(points: float = 10) -> dict:
    return {"type": "essay", "text": "Discuss.", "points": points}


def api_exam(
    client: TestClient,
    questions: Sequence[dict] = (),
    *,
    type: str = "mcq",
    publish: bool = True,
    **fields: object,
) -> tuple[dict, list[dict]]:
    """Create an exam over HTTP, open from yesterday until tomorrow."""
    now = datetime.now(UTC)
    body = {
        "title": "Midterm",
        "type": type,
        "duration_minutes": 60,
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=1)).isoformat(),
        "is_public": True,
        "shuffle_questions": False,
        **fields,
    }
    resp = client.post("/v1/exams", json=body, headers=staff_auth())
    assert resp.status_code == 201, resp.text
    exam = resp.json()

    created = []
    for question in questions:
        resp = client.post(
            f"/v1/exams/{exam['id']}/questions", json=question, headers=staff_auth()
        )
        assert resp.status_code == 201, resp.text
        created.append(resp.json())

    if publish:
        resp = client.post(f"/v1/exams/{exam['id']}/publish", headers=staff_auth())
        assert resp.status_code == 200, resp.text
        exam = resp.json()
    return exam, created
