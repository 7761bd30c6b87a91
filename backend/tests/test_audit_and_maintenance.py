import json
from datetime import timedelta

from farmauth.core.security import utcnow
from farmauth.models.security import RefreshToken
from farmauth.services.audit_service import audit_service
from farmauth.services.csrf_service import csrf_service
from farmauth.services.email_verification_service import email_verification_service
from farmauth.services.login_limiter import login_limiter
from farmauth.services.maintenance_service import purge_expired
from farmauth.services.password_reset_service import password_reset_service
from farmauth.services.revocation_service import revocation_service
from farmauth.services.token_service import token_service


def test_audit_event_drops_secret_metadata(db, user):
    event = audit_service.log_event(
        db,
        event_type="login_success",
        user_id=user.id,
        ip_address="203.0.113.7",
        user_agent="pytest",
        metadata={"password": "Harvest#2024", "refresh_token": "abc", "attempt": 2},
    )
    assert json.loads(event.metadata_json) == {"attempt": 2}
    assert event.ip_address == "203.0.113.7"


def test_list_events_filters_newest_first(db, user):
    audit_service.log_event(db, event_type="login_failed", user_id=user.id)
    audit_service.log_event(db, event_type="login_success", user_id=user.id)
    audit_service.log_event(db, event_type="login_failed", user_id=None)

    mine = audit_service.list_events(db, user_id=user.id)
    assert [e.event_type for e in mine] == ["login_success", "login_failed"]
    assert len(audit_service.list_events(db, event_type="login_failed")) == 2


def test_purge_expired_clears_every_store(db, user):
    now = utcnow()
    long_ago = now - timedelta(days=60)

    stale = token_service.issue(db, user, now=long_ago)
    live = token_service.issue(db, user, now=now)
    csrf_service.issue(db, stale.family_id, user.id, now=long_ago)
    revocation_service.revoke(db, "expired-jti", "access", user.id, now - timedelta(minutes=1))
    password_reset_service.create_token(db, user, now=long_ago)
    email_verification_service.create_token(db, user, now=long_ago)
    login_limiter.record_failure(db, "grower@example.com", "203.0.113.7", now=long_ago)

    counts = purge_expired(db, now=now)

    assert counts == {
        "revoked_tokens": 1,
        "refresh_tokens": 1,
        "csrf_tokens": 1,
        "password_reset_tokens": 1,
        "email_verification_tokens": 1,
        "login_attempts": 1,
    }
    remaining = [r.token_jti for r in db.query(RefreshToken).all()]
    assert remaining == [live.jti]
