from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from farmauth.config import settings
from farmauth.core.security import utcnow
from farmauth.models.audit import SecurityEvent
from farmauth.services.email_service import email_service
from farmauth.services.password_reset_service import password_reset_service

PASSWORD = "Harvest#2024"
NEW_PASSWORD = "Seedling$2025"
EMAIL = "grower@example.com"


def _signup(client):
    return client.post(
        "/api/auth/signup",
        json={"email": EMAIL, "password": PASSWORD, "name": "Green Acres"},
    ).json()


def _forgot(client, email=EMAIL):
    return client.post("/api/auth/forgot-password", json={"email": email})


def _reset(client, token, new_password=NEW_PASSWORD):
    return client.post("/api/auth/reset-password", json={"token": token, "newPassword": new_password})


def _token_from_last_email():
    message = email_service.sent[-1]
    assert message["template"] == "password_reset"
    link = message["context"]["reset_link"]
    assert link.startswith(f"{settings.APP_URL}/reset-password?token=")
    return parse_qs(urlparse(link).query)["token"][0]


def test_forgot_password_does_not_reveal_registration(client):
    _signup(client)
    known = _forgot(client)
    unknown = _forgot(client, email="nobody@example.com")

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    resets = [m for m in email_service.sent if m["template"] == "password_reset"]
    assert len(resets) == 1
    assert resets[0]["to"] == EMAIL


def test_reset_password_ends_every_session(client, db):
    session = _signup(client)
    _forgot(client)
    token = _token_from_last_email()

    response = _reset(client, token)
    assert response.status_code == 200
    assert response.json()["success"] is True

    validate = client.get("/api/auth/validate", headers={"Authorization": f"Bearer {session['accessToken']}"})
    assert validate.status_code == 401
    refresh = client.post(
        "/api/auth/refresh",
        headers={
            "Cookie": f"{settings.REFRESH_COOKIE_NAME}={session['refreshToken']}",
            "X-CSRF-Token": session["csrfToken"],
        },
    )
    assert refresh.status_code == 401

    old_login = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
    assert old_login.status_code == 401
    new_login = client.post("/api/auth/login", json={"email": EMAIL, "password": NEW_PASSWORD})
    assert new_login.status_code == 200

    completed = db.query(SecurityEvent).filter(SecurityEvent.event_type == "password_reset_completed").all()
    assert len(completed) == 1
    assert token not in (completed[0].metadata_json or "")


def test_reset_token_works_once(client):
    _signup(client)
    _forgot(client)
    token = _token_from_last_email()
    assert _reset(client, token).status_code == 200

    response = _reset(client, token, new_password="Another#Pass3")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_new_request_replaces_unused_token(client):
    _signup(client)
    _forgot(client)
    first = _token_from_last_email()
    _forgot(client)
    second = _token_from_last_email()

    assert _reset(client, first).status_code == 400
    assert _reset(client, second).status_code == 200


def test_reset_rejects_weak_password(client):
    _signup(client)
    _forgot(client)
    response = _reset(client, _token_from_last_email(), new_password="weak")
    assert response.status_code == 400


def test_expired_reset_token_is_refused(db, user):
    token = password_reset_service.create_token(db, user, now=utcnow() - timedelta(minutes=61))
    assert password_reset_service.consume(db, token) is None


def test_unknown_reset_token_is_refused(db, user):
    assert password_reset_service.consume(db, "made-up") is None


def test_forgot_password_is_throttled(client):
    for _ in range(settings.PASSWORD_RESET_RATE_LIMIT_PER_MINUTE):
        assert _forgot(client, email="nobody@example.com").status_code == 200
    response = _forgot(client, email="nobody@example.com")
    assert response.status_code == 429
    assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
