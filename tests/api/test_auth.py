from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient

from exam_service.services import token_service
from tests.conftest import auth


def test_missing_token_is_401(client: TestClient) -> None:
    resp = client.get(f"/v1/exams/{uuid4()}")
    assert resp.status_code == 401


def test_garbage_token_is_401(client: TestClient) -> None:
    resp = client.get(
        f"/v1/exams/{uuid4()}", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_expired_token_is_401(client: TestClient) -> None:
    token = token_service.create_access_token(sub="student-1", ttl=timedelta(seconds=-1))
    resp = client.get(
        f"/v1/exams/{uuid4()}", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_token_signed_by_another_key_is_401(client: TestClient) -> None:
    foreign_key = ec.generate_private_key(ec.SECP256R1())
    token = jwt.encode(
        {
            "sub": "admin-1",
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "exp": 4102444800,
            "iat": 1700000000,
            "jti": str(uuid4()),
            "roles": ["admin"],
        },
        foreign_key,
        algorithm="ES256",
    )
    resp = client.get(
        f"/v1/exams/{uuid4()}", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 401


def test_student_is_403_on_staff_routes(client: TestClient) -> None:
    resp = client.post(
        "/v1/exams",
        json={
            "title": "Midterm",
            "type": "mcq",
            "duration_minutes": 60,
            "start_date": "2026-03-01T09:00:00Z",
            "end_date": "2026-03-02T09:00:00Z",
        },
        headers=auth(),
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Insufficient permissions"


def test_valid_token_reaches_the_route(client: TestClient) -> None:
    resp = client.get(f"/v1/exams/{uuid4()}", headers=auth())
    assert resp.status_code == 404
