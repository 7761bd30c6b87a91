from farmauth.services.rate_limiter import InMemoryRateLimiter


def test_refuses_after_limit_and_reports_retry_after():
    limiter = InMemoryRateLimiter()
    for i in range(3):
        assert limiter.check("signup", "10.0.0.1", [(3, 60)], now=1000.0 + i).allowed

    decision = limiter.check("signup", "10.0.0.1", [(3, 60)], now=1010.0)
    assert not decision.allowed
    assert decision.retry_after == 51


def test_window_slides():
    limiter = InMemoryRateLimiter()
    limiter.check("signup", "10.0.0.1", [(1, 60)], now=1000.0)
    assert not limiter.check("signup", "10.0.0.1", [(1, 60)], now=1059.0).allowed
    assert limiter.check("signup", "10.0.0.1", [(1, 60)], now=1060.0).allowed


def test_refused_hit_does_not_consume_other_windows():
    limiter = InMemoryRateLimiter()
    limits = [(5, 60), (2, 3600)]
    assert limiter.check("refresh", "10.0.0.1", limits, now=0.0).allowed
    assert limiter.check("refresh", "10.0.0.1", limits, now=1.0).allowed
    assert not limiter.check("refresh", "10.0.0.1", limits, now=2.0).allowed
    # Only the two accepted hits count against the minute window.
    assert limiter.check("refresh", "10.0.0.1", [(3, 60)], now=3.0).allowed


def test_clients_and_scopes_are_independent():
    limiter = InMemoryRateLimiter()
    limiter.check("signup", "10.0.0.1", [(1, 60)], now=0.0)
    assert limiter.check("signup", "10.0.0.2", [(1, 60)], now=0.0).allowed
    assert limiter.check("password-reset", "10.0.0.1", [(1, 60)], now=0.0).allowed


def test_reset_clears_state():
    limiter = InMemoryRateLimiter()
    limiter.check("signup", "10.0.0.1", [(1, 60)], now=0.0)
    limiter.reset()
    assert limiter.check("signup", "10.0.0.1", [(1, 60)], now=0.0).allowed


def test_idle_clients_are_forgotten():
    limiter = InMemoryRateLimiter()
    limiter.check("signup", "10.0.0.1", [(5, 60)], now=0.0)
    limiter.check("signup", "10.0.0.2", [(5, 60)], now=0.0)
    assert limiter.tracked_keys() == 2

    # A later check prunes its own window and drops the emptied key.
    limiter.check("signup", "10.0.0.1", [(5, 60)], now=120.0)
    assert limiter.tracked_keys() == 2

    limiter._sweep(now=300.0)
    assert limiter.tracked_keys() == 0


def test_periodic_sweep_drops_expired_windows(monkeypatch):
    limiter = InMemoryRateLimiter()
    monkeypatch.setattr(InMemoryRateLimiter, "SWEEP_EVERY", 3)
    limiter.check("signup", "10.0.0.1", [(5, 60)], now=0.0)
    limiter.check("signup", "10.0.0.2", [(5, 60)], now=0.0)
    limiter.check("refresh", "10.0.0.3", [(5, 60)], now=500.0)
    assert limiter.tracked_keys() == 1
