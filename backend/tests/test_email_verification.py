from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from farmauth.config import settings
from farmauth.core.security import utcnow
from farmauth.models.audit import SecurityEvent
from farmauth.models.user import User
from farmauth.services.email_service import email_service
from farmauth.services.email_verification_service import email_verification_service

PASSWORD = "Harvest#2024"
EMAIL = "grower@example.com"


def _signup(client):
    return client.post(
        "/api/auth/signup",
        json={"email": EMAIL, "password": PASSWORD, "name": "Green Acres"},
    ).json()


def _verification_emails():
    return [m for m in email_service.sent if m["template"] == "email_verification"]


def _token_from_last_email():
    link = _verification_emails()[-1]["context"]["verification_link"]
    assert link.startswith(f"{settings.APP_URL}/verify-email?token=")
    return parse_qs(urlparse(link).query)["token"][0]


def _verify(client, token):
    return client.post("/api/auth/verify-email", json={"token": token})


def test_signup_sends_verification_link(client):
    session = _signup(client)
    assert session["user"]["emailVerified"] is False
    emails = _verification_emails()
    assert len(emails) == 1
    assert emails[0]["to"] == EMAIL


def test_verify_email_marks_user_verified(client, db):
    session = _signup(client)
    response = _verify(client, _token_from_last_email())
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Email verified successfully", "emailVerified": True}

    validate = client.get("/api/auth/validate", headers={"Authorization": f"Bearer {session['accessToken']}"})
    assert validate.json()["user"]["emailVerified"] is True
    user = db.query(User).filter(User.email == EMAIL).one()
    assert user.email_verified_at is not None
    assert db.query(SecurityEvent).filter(SecurityEvent.event_type == "email_verified").count() == 1


def test_verification_token_works_once(client):
    _signup(client)
    token = _token_from_last_email()
    assert _verify(client, token).status_code == 200

    response = _verify(client, token)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_resend_replaces_unused_token(client):
    _signup(client)
    first = _token_from_last_email()
    resend = client.post("/api/auth/resend-verification", json={"email": EMAIL})
    assert resend.status_code == 200
    second = _token_from_last_email()

    assert first != second
    assert _verify(client, first).status_code == 400
    assert _verify(client, second).status_code == 200


def test_send_verification_does_not_reveal_account_state(client):
    _signup(client)
    _verify(client, _token_from_last_email())
    email_service.clear()

    verified = client.post("/api/auth/send-verification", json={"email": EMAIL})
    unknown = client.post("/api/auth/send-verification", json={"email": "nobody@example.com"})

    assert verified.status_code == unknown.status_code == 200
    assert verified.json() == unknown.json()
    assert _verification_emails() == []


def test_expired_verification_token_is_refused(db, user):
    token = email_verification_service.create_token(db, user, now=utcnow() - timedelta(hours=25))
    assert email_verification_service.verify(db, token) is None
    db.refresh(user)
    assert user.email_verified is False


def test_token_for_previous_address_is_refused(db, user):
    token = email_verification_service.create_token(db, user)
    user.email = "new-address@example.com"
    db.commit()
    assert email_verification_service.verify(db, token) is None


def test_unknown_verification_token_is_refused(client):
    response = _verify(client, "made-up")
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Invalid or expired verification token"
