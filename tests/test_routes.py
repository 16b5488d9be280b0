import pytest
from conftest import FakeNotifier, FakeRenderer
from fastapi.testclient import TestClient

from assessment_api.app import app
from assessment_api.database import get_db
from assessment_api.models.db.user import UserRole
from assessment_api.services.auth_service import create_access_token
from assessment_api.services.certificate_renderer import get_certificate_renderer
from assessment_api.services.notification_service import get_notifier


@pytest.fixture()
def client(session_factory):
    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_certificate_renderer] = FakeRenderer
    app.dependency_overrides[get_notifier] = FakeNotifier
    # No context manager: startup hooks (init_db, sweep thread) stay off in tests
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


def test_register_login_and_me(client) -> None:
    response = client.post(
        "/api/auth/register",
        json={"name": "Sam", "email": "Sam@Example.com", "password": "secret123"},
    )
    assert response.status_code == 201
    assert response.json()["role"] == "User"

    login = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "sam@example.com"

    bad = client.post("/api/auth/login", json={"email": "sam@example.com", "password": "nope"})
    assert bad.status_code == 401


def test_assessments_require_learner_role(client, course, make_user) -> None:
    visitor = make_user(UserRole.USER)

    response = client.get(
        f"/api/assessments/chapter/{course.chapters[0].id}/eligibility", headers=_auth(visitor)
    )
    assert response.status_code == 403

    assert client.get(f"/api/assessments/chapter/{course.chapters[0].id}/eligibility").status_code == 401


def test_eligibility_reports_prerequisites(client, course, student) -> None:
    response = client.get(
        f"/api/assessments/chapter/{course.chapters[0].id}/eligibility", headers=_auth(student)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["canStart"] is False
    assert "lessons" in body["reason"]


def test_start_without_prerequisites_is_forbidden(client, course, student) -> None:
    response = client.post(
        f"/api/assessments/chapter/{course.chapters[0].id}/sessions", headers=_auth(student)
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "not_eligible"


def test_unknown_scope_type_is_not_found(client, student) -> None:
    response = client.post("/api/assessments/midterm/1/sessions", headers=_auth(student))

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "scope_not_found"


def test_chapter_test_flow(client, course, student) -> None:
    headers = _auth(student)
    chapter = course.chapters[0]
    for lesson in chapter.lessons:
        assert client.post(f"/api/lessons/{lesson.id}/complete", headers=headers).status_code == 200

    started = client.post(f"/api/assessments/chapter/{chapter.id}/sessions", headers=headers)
    assert started.status_code == 201
    session = started.json()
    assert len(session["questions"]) == 20
    assert "correctAnswer" not in session["questions"][0]
    assert session["remainingSeconds"] > 0

    resumed = client.post(f"/api/assessments/chapter/{chapter.id}/sessions", headers=headers)
    assert resumed.status_code == 200
    assert resumed.json()["resumed"] is True
    assert resumed.json()["sessionId"] == session["sessionId"]

    first = session["questions"][0]
    answered = client.put(
        f"/api/sessions/{session['sessionId']}/answers/{first['questionId']}",
        json={"selectedAnswer": 0, "timeSpentSeconds": 15},
        headers=headers,
    )
    assert answered.status_code == 200
    assert answered.json()["selectedAnswer"] == 0

    submitted = client.post(f"/api/sessions/{session['sessionId']}/submit", headers=headers)
    assert submitted.status_code == 200
    result = submitted.json()
    assert result["status"] == "submitted"
    assert result["totalQuestions"] == 20
    assert len(result["review"]) == 20
    assert result["certificateStatus"] is None

    again = client.post(f"/api/sessions/{session['sessionId']}/submit", headers=headers)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "session_not_active"

    progress = client.get(f"/api/courses/{course.id}/progress", headers=headers)
    assert progress.status_code == 200
    assert progress.json()["chapters"][0]["testAttempts"] == 1


def test_abandon_then_admin_ledger(client, course, student, admin) -> None:
    headers = _auth(student)
    chapter = course.chapters[0]
    for lesson in chapter.lessons:
        client.post(f"/api/lessons/{lesson.id}/complete", headers=headers)
    session_id = client.post(
        f"/api/assessments/chapter/{chapter.id}/sessions", headers=headers
    ).json()["sessionId"]

    abandoned = client.post(
        f"/api/sessions/{session_id}/abandon", json={"reason": "navigation"}, headers=headers
    )
    assert abandoned.status_code == 200
    assert abandoned.json()["abandonReason"] == "navigation"

    blocked = client.post(f"/api/assessments/chapter/{chapter.id}/sessions", headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["detail"]["retryAfterSeconds"] > 0
    assert int(blocked.headers["Retry-After"]) > 0

    assert client.get(f"/api/admin/users/{student.id}/attempts", headers=headers).status_code == 403
    ledger = client.get(f"/api/admin/users/{student.id}/attempts", headers=_auth(admin))
    assert ledger.status_code == 200
    assert [item["outcome"] for item in ledger.json()] == ["abandoned"]


def test_admin_abandon_and_sweep(client, course, student, admin) -> None:
    headers = _auth(student)
    chapter = course.chapters[0]
    for lesson in chapter.lessons:
        client.post(f"/api/lessons/{lesson.id}/complete", headers=headers)
    session_id = client.post(
        f"/api/assessments/chapter/{chapter.id}/sessions", headers=headers
    ).json()["sessionId"]

    response = client.post(f"/api/admin/sessions/{session_id}/abandon", headers=_auth(admin))
    assert response.status_code == 200
    assert response.json()["abandonReason"] == "admin"

    sweep = client.post("/api/admin/sessions/sweep", headers=_auth(admin))
    assert sweep.status_code == 200
    assert sweep.json() == {"expired": 0, "certificatesIssued": 0}


def test_certificate_verification_unknown(client) -> None:
    response = client.get(
        "/api/certificates/verify",
        params={"certificateNumber": "MIC-2026-000000", "verificationCode": "00000000"},
    )

    assert response.status_code == 200
    assert response.json() == {"valid": False, "certificate": None}


def test_certificate_issue_requires_completion(client, course, student) -> None:
    response = client.post(f"/api/courses/{course.id}/certificates/issue", headers=_auth(student))
    assert response.status_code == 403

    listing = client.get(f"/api/courses/{course.id}/certificates", headers=_auth(student))
    assert listing.status_code == 200
    assert listing.json() == {"courseId": course.id, "certificateIssued": False, "certificates": []}
