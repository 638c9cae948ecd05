"""RequestQueue 단위 테스트."""

from __future__ import annotations

import asyncio

import pytest

from src.core.exceptions import QueueFullException
from src.engine.rate_limiter import RateLimiter
from src.engine.request_queue import RequestQueue


def _sleep_with(clock):
    """가짜 sleep: 시계를 진행시키고 이벤트 루프에 양보"""
    slept: list[float] = []

    async def _sleep(seconds: float) -> None:
        slept.append(seconds)
        clock.advance(seconds)
        await asyncio.sleep(0)

    _sleep.slept = slept  # type: ignore[attr-defined]
    return _sleep


@pytest.mark.asyncio
async def test_denied_item_is_requeued_until_admitted(clock):
    """거절된 작업은 버려지지 않고 허용될 때 실행."""
    limiter = RateLimiter(min_interval_s=1.0, window_s=60.0, max_requests=10, clock=clock)
    sleep = _sleep_with(clock)
    queue = RequestQueue(limiter, courtesy_delay_s=0.0, denied_wait_s=0.5, sleep=sleep)
    assert limiter.admit("a") is True

    async def task():
        return "done"

    future = queue.enqueue("a", task)
    result = await asyncio.wait_for(future, timeout=1.0)

    assert result == "done"
    assert limiter.denied_count == 2
    assert sleep.slept == [0.5, 0.5]
    assert queue.depth == 0
    assert queue.executed_count == 1
    await queue.stop()


@pytest.mark.asyncio
async def test_fifo_execution_order(clock):
    limiter = RateLimiter(min_interval_s=0.0, window_s=60.0, max_requests=100, clock=clock)
    queue = RequestQueue(limiter, courtesy_delay_s=0.01, sleep=_sleep_with(clock))
    executed: list[str] = []

    def make(name: str):
        async def task():
            executed.append(name)
            return name
        return task

    futures = [queue.enqueue(name, make(name)) for name in ("x", "y", "z")]
    results = await asyncio.wait_for(asyncio.gather(*futures), timeout=1.0)

    assert results == ["x", "y", "z"]
    assert executed == ["x", "y", "z"]
    await queue.stop()


@pytest.mark.asyncio
async def test_queue_full_rejects(clock):
    limiter = RateLimiter(min_interval_s=0.0, window_s=60.0, max_requests=100, clock=clock)
    queue = RequestQueue(limiter, max_size=1, sleep=_sleep_with(clock))

    async def task():
        return 1

    first = queue.enqueue("a", task)
    with pytest.raises(QueueFullException):
        queue.enqueue("b", task)

    assert await asyncio.wait_for(first, timeout=1.0) == 1
    await queue.stop()


@pytest.mark.asyncio
async def test_task_exception_is_delivered_to_future(clock):
    limiter = RateLimiter(min_interval_s=0.0, window_s=60.0, max_requests=100, clock=clock)
    queue = RequestQueue(limiter, courtesy_delay_s=0.0, sleep=_sleep_with(clock))

    async def failing():
        raise ValueError("boom")

    async def ok():
        return "next"

    failed = queue.enqueue("a", failing)
    following = queue.enqueue("b", ok)

    with pytest.raises(ValueError):
        await asyncio.wait_for(failed, timeout=1.0)
    # 실패 후에도 워커는 계속 동작
    assert await asyncio.wait_for(following, timeout=1.0) == "next"
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending(clock):
    limiter = RateLimiter(min_interval_s=100.0, window_s=600.0, max_requests=10, clock=clock)
    queue = RequestQueue(limiter, denied_wait_s=0.01)
    limiter.admit("a")

    async def task():
        return 1

    future = queue.enqueue("a", task)
    await asyncio.sleep(0.03)
    assert queue.is_running

    await queue.stop()
    assert future.cancelled()
    assert queue.depth == 0
    assert not queue.is_running


@pytest.mark.asyncio
async def test_stop_cancels_running_task_future(clock):
    """실행 중에 중지되면 해당 호출자의 Future도 취소."""
    limiter = RateLimiter(min_interval_s=1.0, window_s=60.0, max_requests=10, clock=clock)
    queue = RequestQueue(limiter, courtesy_delay_s=0.0)
    started = asyncio.Event()

    async def slow_task():
        started.set()
        await asyncio.sleep(10)
        return "never"

    future = queue.enqueue("a", slow_task)
    await asyncio.wait_for(started.wait(), timeout=1.0)
    assert queue.depth == 0

    await queue.stop()

    assert future.cancelled()
    assert not queue.is_running
