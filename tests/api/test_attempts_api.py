"""Attempt lifecycle over HTTP: start, read, submit, grade."""

from __future__ import annotations

from fastapi.testclient import TestClient

from exam_service.services.task_queue import NOTIFICATIONS_QUEUE, task_queue
from tests.conftest import (
    api_exam,
    auth,
    choice_json,
    essay_json,
    staff_auth,
    true_false_json,
)


def _start(client: TestClient, exam_id: str, username: str = "student-1") -> dict:
    resp = client.post(f"/v1/exams/{exam_id}/attempts", headers=auth(username))
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_full_attempt_flow(client: TestClient) -> None:
    exam, (choice, tf) = api_exam(client, [choice_json(5, "b"), true_false_json(5, "true")])
    attempt = _start(client, exam["id"])
    assert attempt["status"] == "in_progress"
    assert attempt["attempt_number"] == 1
    assert 0 < attempt["remaining_seconds"] <= 3600
    assert [q["question_id"] for q in attempt["questions"]] == [choice["id"], tf["id"]]

    resp = client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {choice["id"]: "b", tf["id"]: " False "}},
        headers=auth(),
    )
    assert resp.status_code == 200, resp.text
    receipt = resp.json()
    assert receipt["attempt"]["status"] == "submitted"
    assert receipt["attempt"]["remaining_seconds"] == 0
    assert receipt["is_released"] is False

    graded = client.get(f"/v1/exams/{exam['id']}/submissions", headers=staff_auth()).json()
    assert [s["id"] for s in graded] == [receipt["submission_id"]]
    assert graded[0]["total_marks_obtained"] == 5
    assert graded[0]["is_late"] is False
    kinds = {a["question_id"]: a["kind"] for a in graded[0]["answers"]}
    assert kinds == {choice["id"]: "choice", tf["id"]: "true_false"}

    result = client.get(f"/v1/results/{receipt['result_id']}", headers=staff_auth()).json()
    assert result["total_marks"] == 10
    assert result["percentage"] == 50
    assert result["grade"] == "D"
    assert result["status"] == "pass"
    assert result["is_released"] is False


def test_submit_response_carries_no_scores(client: TestClient) -> None:
    exam, (first, second) = api_exam(client, [choice_json(5, "a"), choice_json(5, "a")])
    attempt = _start(client, exam["id"])
    assert attempt["total_marks"] is None

    receipt = client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {first["id"]: "a", second["id"]: "b"}},
        headers=auth(),
    ).json()

    assert set(receipt) == {"attempt", "submission_id", "result_id", "is_released"}
    assert receipt["attempt"]["total_marks"] is None
    assert all(q["marks"] is None for q in receipt["attempt"]["questions"])
    assert "grade" not in str(receipt)
    assert "is_correct" not in str(receipt)


def test_attempt_marks_are_hidden_until_result_release(client: TestClient) -> None:
    exam, (first, second) = api_exam(client, [choice_json(5, "a"), choice_json(5, "a")])
    attempt = _start(client, exam["id"])
    receipt = client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {first["id"]: "a", second["id"]: "b"}},
        headers=auth(),
    ).json()
    url = f"/v1/attempts/{attempt['id']}"

    before = client.get(url, headers=auth()).json()
    assert before["status"] == "submitted"
    assert before["total_marks"] is None
    assert [q["marks"] for q in before["questions"]] == [None, None]
    assert [q["answer"] for q in before["questions"]] == ["a", "b"]

    staff_view = client.get(url, headers=staff_auth()).json()
    assert staff_view["total_marks"] == 5
    assert [q["marks"] for q in staff_view["questions"]] == [5, 0]

    client.post(f"/v1/results/{receipt['result_id']}/release", headers=staff_auth())
    after = client.get(url, headers=auth()).json()
    assert after["total_marks"] == 5
    assert [q["marks"] for q in after["questions"]] == [5, 0]


def test_second_submit_is_409(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])
    url = f"/v1/attempts/{attempt['id']}/submit"
    assert client.post(url, json={"answers": {q["id"]: "a"}}, headers=auth()).status_code == 200

    resp = client.post(url, json={"answers": {q["id"]: "b"}}, headers=auth())
    assert resp.status_code == 409
    assert resp.json()["reason"] == "already_submitted"


def test_max_attempts_is_409(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])
    client.post(f"/v1/attempts/{attempt['id']}/submit", json={"answers": {}}, headers=auth())

    resp = client.post(f"/v1/exams/{exam['id']}/attempts", headers=auth())
    assert resp.status_code == 409
    assert resp.json()["reason"] == "max_attempts"


def test_draft_exam_cannot_be_started(client: TestClient) -> None:
    exam, _ = api_exam(client, [choice_json()], publish=False)
    resp = client.post(f"/v1/exams/{exam['id']}/attempts", headers=auth())
    assert resp.status_code == 409
    assert resp.json()["reason"] == "not_published"


def test_private_exam_admits_listed_students_only(client: TestClient) -> None:
    exam, _ = api_exam(
        client, [choice_json()], is_public=False, allowed_students=["student-1"]
    )
    assert client.post(f"/v1/exams/{exam['id']}/attempts", headers=auth()).status_code == 201
    resp = client.post(f"/v1/exams/{exam['id']}/attempts", headers=auth("student-2"))
    assert resp.status_code == 403


def test_other_student_cannot_read_or_submit(client: TestClient) -> None:
    exam, _ = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])

    assert client.get(f"/v1/attempts/{attempt['id']}", headers=auth("student-2")).status_code == 403
    resp = client.post(
        f"/v1/attempts/{attempt['id']}/submit", json={"answers": {}}, headers=auth("student-2")
    )
    assert resp.status_code == 403


def test_exam_owner_can_read_attempt(client: TestClient) -> None:
    exam, _ = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])
    resp = client.get(f"/v1/attempts/{attempt['id']}", headers=staff_auth())
    assert resp.status_code == 200
    assert resp.json()["student_id"] == "student-1"


def test_preview_keeps_stored_order(client: TestClient) -> None:
    exam, questions = api_exam(client, [choice_json() for _ in range(6)])
    attempt = _start(client, exam["id"])
    stored = [q["question_id"] for q in attempt["questions"]]

    preview = client.get(f"/v1/attempts/{attempt['id']}?preview=true", headers=auth()).json()
    assert sorted(q["question_id"] for q in preview["questions"]) == sorted(stored)

    again = client.get(f"/v1/attempts/{attempt['id']}", headers=auth()).json()
    assert [q["question_id"] for q in again["questions"]] == stored
    assert stored == [q["id"] for q in questions]


def test_answers_for_foreign_questions_are_422(client: TestClient) -> None:
    exam, _ = api_exam(client, [choice_json()])
    _, (foreign,) = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])
    resp = client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {foreign["id"]: "a"}},
        headers=auth(),
    )
    assert resp.status_code == 422


def test_time_expired_flag_is_accepted(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])
    resp = client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {q["id"]: "a"}, "time_expired": True},
        headers=auth(),
    )
    assert resp.status_code == 200
    result_id = resp.json()["result_id"]
    result = client.get(f"/v1/results/{result_id}", headers=staff_auth()).json()
    assert result["percentage"] == 100


def test_essay_grading_updates_result(client: TestClient) -> None:
    exam, (choice, written) = api_exam(
        client, [choice_json(5, "a"), essay_json(10)], type="mixed"
    )
    attempt = _start(client, exam["id"])
    client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {choice["id"]: "a", written["id"]: "An essay."}},
        headers=auth(),
    )

    resp = client.post(
        f"/v1/attempts/{attempt['id']}/grades",
        json={"marks": {written["id"]: "8"}},
        headers=staff_auth(),
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["attempt"]["total_marks"] == 13
    assert body["result"]["obtained_marks"] == 13
    assert body["result"]["evaluated_by"] == "instructor-1"
    manual = [a for a in body["submission"]["answers"] if a["kind"] == "manual"]
    assert manual[0]["marks_obtained"] == 8


def test_students_cannot_grade(client: TestClient) -> None:
    exam, (written,) = api_exam(client, [essay_json()], type="mixed")
    attempt = _start(client, exam["id"])
    resp = client.post(
        f"/v1/attempts/{attempt['id']}/grades",
        json={"marks": {written["id"]: 5}},
        headers=auth(),
    )
    assert resp.status_code == 403


def test_submit_event_is_queued_only_for_the_committed_submit(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json()])
    attempt = _start(client, exam["id"])
    url = f"/v1/attempts/{attempt['id']}/submit"
    assert client.post(url, json={"answers": {q["id"]: "a"}}, headers=auth()).status_code == 200
    assert client.post(url, json={"answers": {q["id"]: "b"}}, headers=auth()).status_code == 409

    queued = task_queue._queues.get(NOTIFICATIONS_QUEUE, [])
    events = [t.payload["event"] for t in queued]
    assert events.count("attempt_submitted") == 1
