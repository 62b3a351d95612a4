from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import api_exam, auth, choice_json, staff_auth


def _take(client: TestClient, exam: dict, question: dict, username: str, pick: str) -> dict:
    attempt = client.post(f"/v1/exams/{exam['id']}/attempts", headers=auth(username)).json()
    receipt = client.post(
        f"/v1/attempts/{attempt['id']}/submit",
        json={"answers": {question["id"]: pick}},
        headers=auth(username),
    ).json()
    return client.get(f"/v1/results/{receipt['result_id']}", headers=staff_auth()).json()


def test_exam_statistics(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json(4, "a")])
    _take(client, exam, q, "student-1", "a")
    _take(client, exam, q, "student-2", "b")

    resp = client.get(f"/v1/exams/{exam['id']}/statistics", headers=staff_auth())
    assert resp.status_code == 200
    assert resp.json() == {
        "exam_id": exam["id"],
        "total_students": 2,
        "total_results": 2,
        "average_score": 50.0,
        "pass_rate": 50.0,
        "highest_score": 100.0,
        "lowest_score": 0.0,
        "standard_deviation": 50.0,
    }


def test_submit_invalidates_cached_exam_statistics(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json(4, "a")])
    url = f"/v1/exams/{exam['id']}/statistics"
    assert client.get(url, headers=staff_auth()).json()["total_results"] == 0

    _take(client, exam, q, "student-1", "a")
    assert client.get(url, headers=staff_auth()).json()["total_results"] == 1


def test_exam_statistics_require_staff(client: TestClient) -> None:
    exam, _ = api_exam(client, [choice_json()])
    resp = client.get(f"/v1/exams/{exam['id']}/statistics", headers=auth())
    assert resp.status_code == 403


def test_student_statistics_follow_release(client: TestClient) -> None:
    exam, (q,) = api_exam(client, [choice_json(4, "a")])
    result = _take(client, exam, q, "student-1", "a")
    url = "/v1/students/student-1/statistics"

    assert client.get(url, headers=auth()).json()["total_exams"] == 0

    client.post(f"/v1/results/{result['id']}/release", headers=staff_auth())
    stats = client.get(url, headers=auth()).json()
    assert stats["total_exams"] == 1
    assert stats["average_score"] == 100
    assert stats["pass_rate"] == 100


def test_students_cannot_read_each_other(client: TestClient) -> None:
    resp = client.get("/v1/students/student-2/statistics", headers=auth())
    assert resp.status_code == 403
