"""TTLCache 단위 테스트."""

from __future__ import annotations

import pytest

from src.engine.ttl_cache import TTLCache


def test_get_within_ttl_returns_value(clock):
    """TTL 이내 조회."""
    cache = TTLCache("feed", ttl_s=3.0, max_entries=10, clock=clock)
    cache.put("k", [1, 2])

    clock.advance(2.999)
    assert cache.get("k") == [1, 2]


def test_entry_expires_exactly_at_ttl(clock):
    """정확히 TTL 경과 시점부터 만료."""
    cache = TTLCache("feed", ttl_s=3.0, max_entries=10, clock=clock)
    cache.put("k", "v")

    clock.advance(3.0)
    assert cache.get("k") is None
    assert "k" not in cache
    # 만료되어도 폴백용으로는 남아 있음
    assert cache.get_stale("k") == "v"
    assert cache.age_of("k") == pytest.approx(3.0)


def test_put_refreshes_timestamp(clock):
    cache = TTLCache("feed", ttl_s=3.0, max_entries=10, clock=clock)
    cache.put("k", "old")
    clock.advance(2.5)
    cache.put("k", "new")
    clock.advance(2.5)

    assert cache.get("k") == "new"


def test_size_bound_evicts_oldest(clock):
    """상한 초과 시 가장 먼저 저장된 항목 제거."""
    cache = TTLCache("characters", ttl_s=100.0, max_entries=2, clock=clock)
    cache.put("a", 1)
    clock.advance(1)
    cache.put("b", 2)
    clock.advance(1)
    cache.put("c", 3)

    assert len(cache) == 2
    assert cache.get_stale("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_sweep_removes_only_entries_past_horizon(clock):
    """sweep은 ttl * multiplier 보다 오래된 항목만 제거."""
    cache = TTLCache("feed", ttl_s=1.0, max_entries=10, sweep_multiplier=3.0, clock=clock)
    cache.put("old", "x")
    clock.advance(2.0)
    cache.put("young", "y")

    assert cache.sweep() == 0
    assert cache.get("old") is None
    assert cache.get_stale("old") == "x"

    clock.advance(1.5)
    assert cache.sweep() == 1
    assert cache.get_stale("old") is None
    assert cache.get_stale("young") == "y"


def test_stats_and_delete(clock):
    cache = TTLCache("feed", ttl_s=3.0, max_entries=5, clock=clock)
    cache.put("a", 1)

    assert cache.stats() == {"name": "feed", "entries": 1, "max_entries": 5, "ttl_s": 3.0}
    assert cache.delete("a") is True
    assert cache.delete("a") is False
    assert len(cache) == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"ttl_s": 0, "max_entries": 1},
        {"ttl_s": 1, "max_entries": 0},
        {"ttl_s": 1, "max_entries": 1, "sweep_multiplier": 0.5},
    ],
)
def test_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        TTLCache("bad", **kwargs)
