"""RateLimiter 단위 테스트."""

from __future__ import annotations

import pytest

from src.engine.rate_limiter import RateLimiter


def test_min_interval_floor(clock):
    """최소 간격 2초: 1초 뒤 거절, 2초 뒤 허용."""
    limiter = RateLimiter(min_interval_s=2.0, window_s=60.0, max_requests=100, clock=clock)

    assert limiter.admit("1.2.3.4") is True
    clock.advance(1.0)
    assert limiter.admit("1.2.3.4") is False
    assert limiter.retry_after("1.2.3.4") == pytest.approx(1.0)

    clock.advance(1.0)
    assert limiter.admit("1.2.3.4") is True
    assert limiter.admitted_count == 2
    assert limiter.denied_count == 1


def test_sliding_window_limit(clock):
    """60초 윈도우 안에서 최대 10회."""
    limiter = RateLimiter(min_interval_s=0.0, window_s=60.0, max_requests=10, clock=clock)

    for _ in range(10):
        assert limiter.admit("client") is True
        clock.advance(1.0)

    # t=10: 윈도우 안에 10건
    assert limiter.admit("client") is False
    assert limiter.retry_after("client") == pytest.approx(50.0)

    # t=60: 첫 기록(t=0)이 윈도우 밖으로
    clock.advance(50.0)
    assert limiter.admit("client") is True


def test_denial_does_not_consume_quota(clock):
    limiter = RateLimiter(min_interval_s=1.0, window_s=60.0, max_requests=2, clock=clock)

    assert limiter.admit("a") is True
    for _ in range(5):
        assert limiter.admit("a") is False

    clock.advance(1.0)
    assert limiter.admit("a") is True


def test_identities_are_independent(clock):
    limiter = RateLimiter(min_interval_s=5.0, window_s=60.0, max_requests=10, clock=clock)

    assert limiter.admit("a") is True
    assert limiter.admit("b") is True
    assert limiter.admit("a") is False
    assert limiter.retry_after("unknown") == 0.0


def test_prune_drops_idle_identities(clock):
    """윈도우 밖으로 벗어난 identity 정리."""
    limiter = RateLimiter(min_interval_s=1.0, window_s=10.0, max_requests=5, clock=clock)
    limiter.admit("a")
    clock.advance(5.0)
    limiter.admit("b")

    clock.advance(6.0)
    assert limiter.prune() == 1
    assert limiter.tracked_identities == 1

    clock.advance(10.0)
    assert limiter.prune() == 1
    assert limiter.tracked_identities == 0


def test_invalid_configuration():
    with pytest.raises(ValueError):
        RateLimiter(min_interval_s=-1, window_s=60, max_requests=1)
    with pytest.raises(ValueError):
        RateLimiter(min_interval_s=1, window_s=60, max_requests=0)
