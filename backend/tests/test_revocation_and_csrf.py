from datetime import timedelta

from farmauth.core.security import utcnow
from farmauth.services.csrf_service import csrf_service
from farmauth.services.revocation_service import revocation_service


def test_revoke_is_idempotent(db):
    expires = utcnow() + timedelta(hours=1)
    assert revocation_service.revoke(db, "jti-1", "access", "user-1", expires) is True
    assert revocation_service.revoke(db, "jti-1", "access", "user-1", expires) is False
    assert revocation_service.is_revoked(db, "jti-1")
    assert not revocation_service.is_revoked(db, "jti-2")


def test_purge_drops_only_entries_past_natural_expiry(db):
    now = utcnow()
    revocation_service.revoke(db, "old", "access", None, now - timedelta(seconds=1))
    revocation_service.revoke(db, "live", "refresh", None, now + timedelta(days=1))

    assert revocation_service.purge_expired(db, now=now) == 1
    assert not revocation_service.is_revoked(db, "old")
    assert revocation_service.is_revoked(db, "live")


def test_csrf_token_is_bound_to_its_session(db, user):
    token = csrf_service.issue(db, "session-a", user.id)
    assert csrf_service.validate(db, token, "session-a")
    assert not csrf_service.validate(db, token, "session-b")
    assert not csrf_service.validate(db, None, "session-a")
    assert not csrf_service.validate(db, token, None)


def test_reissue_invalidates_previous_csrf_token(db, user):
    old = csrf_service.issue(db, "session-a", user.id)
    new = csrf_service.issue(db, "session-a", user.id)
    assert old != new
    assert not csrf_service.validate(db, old, "session-a")
    assert csrf_service.validate(db, new, "session-a")


def test_revoked_csrf_token_fails(db, user):
    token = csrf_service.issue(db, "session-a", user.id)
    csrf_service.revoke(db, "session-a")
    assert not csrf_service.validate(db, token, "session-a")


def test_expired_csrf_token_fails(db, user):
    issued_at = utcnow() - timedelta(days=365)
    token = csrf_service.issue(db, "session-a", user.id, now=issued_at)
    assert not csrf_service.validate(db, token, "session-a")
    assert csrf_service.purge_expired(db) == 1
