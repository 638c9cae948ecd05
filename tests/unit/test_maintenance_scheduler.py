"""MaintenanceScheduler 단위 테스트."""

from __future__ import annotations

import pytest

from src.engine.rate_limiter import RateLimiter
from src.engine.ttl_cache import TTLCache
from src.scheduler.maintenance import MaintenanceScheduler


def test_cache_sweep_covers_all_caches(clock):
    feed = TTLCache("feed", ttl_s=3.0, max_entries=10, sweep_multiplier=2.0, clock=clock)
    characters = TTLCache("characters", ttl_s=10.0, max_entries=10, clock=clock)
    feed.put("k", [])
    characters.put("alpha", "detail")
    limiter = RateLimiter(min_interval_s=1.0, window_s=60.0, max_requests=10, clock=clock)
    scheduler = MaintenanceScheduler([feed, characters], limiter)

    clock.advance(7.0)
    assert scheduler.run_cache_sweep() == 1

    clock.advance(30.0)
    assert scheduler.run_cache_sweep() == 1
    assert len(feed) == 0
    assert len(characters) == 0


def test_rate_prune(clock):
    limiter = RateLimiter(min_interval_s=1.0, window_s=10.0, max_requests=10, clock=clock)
    limiter.admit("a")
    scheduler = MaintenanceScheduler([], limiter)

    clock.advance(11.0)
    assert scheduler.run_rate_prune() == 1
    assert limiter.tracked_identities == 0


@pytest.mark.asyncio
async def test_start_registers_jobs_and_shutdown(clock):
    limiter = RateLimiter(min_interval_s=1.0, window_s=10.0, max_requests=10, clock=clock)
    scheduler = MaintenanceScheduler([], limiter, sweep_interval_s=30.0, prune_interval_s=60.0)

    scheduler.start()
    assert scheduler.running
    job_ids = {job.id for job in scheduler._scheduler.get_jobs()}
    assert job_ids == {"cache_sweep", "rate_record_prune"}

    scheduler.shutdown()
    assert not scheduler.running
