from datetime import timedelta

from farmauth.config import settings
from farmauth.core.security import utcnow
from farmauth.services.login_limiter import login_limiter

EMAIL = "grower@example.com"
IP = "203.0.113.7"


def _fail(db, times, now):
    outcome = None
    for _ in range(times):
        outcome = login_limiter.record_failure(db, EMAIL, IP, now=now)
    return outcome


def test_lock_engages_at_threshold(db):
    now = utcnow()
    outcome = _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS - 1, now)
    assert not outcome.locked
    assert login_limiter.is_locked(db, EMAIL, IP, now=now) is None

    outcome = _fail(db, 1, now)
    assert outcome.locked
    assert outcome.locked_until == now + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
    assert login_limiter.is_locked(db, EMAIL, IP, now=now) == outcome.locked_until


def test_lock_is_keyed_by_email_and_ip(db):
    now = utcnow()
    _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS, now)
    assert login_limiter.is_locked(db, EMAIL, "198.51.100.1", now=now) is None
    assert login_limiter.is_locked(db, "other@example.com", IP, now=now) is None
    assert login_limiter.is_locked(db, EMAIL.upper(), IP, now=now) is not None


def test_lock_lapses_and_counting_restarts(db):
    now = utcnow()
    outcome = _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS, now)
    later = outcome.locked_until
    assert login_limiter.is_locked(db, EMAIL, IP, now=later) is None

    assert login_limiter.record_failure(db, EMAIL, IP, now=later).attempt_count == 1


def test_failures_outside_window_are_forgotten(db):
    start = utcnow()
    _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS - 1, start)
    after_window = start + timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES)
    outcome = login_limiter.record_failure(db, EMAIL, IP, now=after_window)
    assert outcome.attempt_count == 1
    assert not outcome.locked


def test_success_resets_counter(db):
    now = utcnow()
    _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS - 1, now)
    login_limiter.record_success(db, EMAIL, IP)
    assert login_limiter.record_failure(db, EMAIL, IP, now=now).attempt_count == 1


def test_backoff_doubles_each_lockout(db, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_LOCKOUT_BACKOFF", True)
    now = utcnow()
    first = _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS, now)
    assert first.locked_until - now == timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)

    resumed = first.locked_until
    second = _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS, resumed)
    assert second.locked_until - resumed == timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES * 2)


def test_purge_stale_keeps_active_locks(db, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_LOCKOUT_MINUTES", settings.LOGIN_ATTEMPT_WINDOW_MINUTES * 4)
    now = utcnow()
    _fail(db, settings.LOGIN_MAX_FAILED_ATTEMPTS, now)
    login_limiter.record_failure(db, "other@example.com", IP, now=now)

    later = now + timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES)
    assert login_limiter.purge_stale(db, now=later) == 1
    assert login_limiter.is_locked(db, EMAIL, IP, now=later) is not None
