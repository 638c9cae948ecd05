"""전역 테스트 설정

역할:
- 테스트 환경 구성
- 공통 Fake(시계/렌더링 리소스) 주입
- 오케스트레이터 조립 헬퍼

금지:
- 실제 브라우저 실행
- 실제 업스트림 호출
"""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pytest


# 프로젝트 루트를 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.core.exceptions import ElementNotFoundException  # noqa: E402
from src.crawlers.deaths import DeathsExtractor  # noqa: E402
from src.engine import (  # noqa: E402
    DetailEnricher,
    FeedOrchestrator,
    RateLimiter,
    RequestQueue,
    RetryPolicy,
    TTLCache,
)
from tests.fixtures.death_pages import BASE_URL  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    """테스트 환경 변수 설정 (세션 전역)"""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "INFO"


class FakeClock:
    """수동으로 진행하는 단조 시계"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@dataclass
class FakeSession:
    address: str
    raw: str

    async def extract_raw(self) -> str:
        return self.raw


@dataclass
class FakeResource:
    """렌더링 리소스 Fake

    pages: address → HTML | 예외 | [시도별 HTML/예외 목록]
    delays: address → open 지연(초)
    """

    pages: dict[str, Any] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    opened: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)
    recreate_calls: int = 0
    warmup_calls: int = 0
    shutdown_calls: int = 0
    alive: bool = True

    def is_alive(self) -> bool:
        return self.alive

    async def warmup(self) -> None:
        self.warmup_calls += 1

    async def recreate(self) -> None:
        self.recreate_calls += 1
        self.alive = True

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        self.alive = False

    async def open(self, address: str, options: Any) -> FakeSession:
        self.opened.append(address)
        delay = self.delays.get(address, 0.0)
        if delay:
            await asyncio.sleep(delay)

        page = self.pages.get(address)
        if isinstance(page, list):
            page = page.pop(0) if len(page) > 1 else page[0]
        if isinstance(page, BaseException):
            raise page
        if page is None:
            raise ElementNotFoundException("div.TableContentContainer")

        self.completed.append(address)
        return FakeSession(address=address, raw=page)

    async def close(self, session: FakeSession) -> None:
        self.closed.append(session.address)

    @asynccontextmanager
    async def session(self, address: str, options: Any):
        page_session = await self.open(address, options)
        try:
            yield page_session
        finally:
            await self.close(page_session)

    def open_count(self, address: str) -> int:
        return self.opened.count(address)


@pytest.fixture
def fake_resource() -> FakeResource:
    return FakeResource()


def make_orchestrator(
    resource: FakeResource,
    clock: FakeClock,
    *,
    rate_limiter: Optional[RateLimiter] = None,
    enrich_count: int = 3,
    max_records: int = 10,
    queue_wait_timeout_s: float = 0.2,
    retry_policy: Optional[RetryPolicy] = None,
    notifier=None,
) -> FeedOrchestrator:
    """Fake 리소스 + 실제 엔진 구성요소로 오케스트레이터 조립"""
    extractor = DeathsExtractor(BASE_URL)
    list_cache = TTLCache("feed", ttl_s=3.0, max_entries=50, sweep_multiplier=20.0, clock=clock)
    detail_cache = TTLCache("characters", ttl_s=86400.0, max_entries=100, sweep_multiplier=1.0, clock=clock)
    limiter = rate_limiter or RateLimiter(min_interval_s=1.0, window_s=60.0, max_requests=20, clock=clock)
    queue = RequestQueue(limiter, max_size=10, courtesy_delay_s=0.0, denied_wait_s=0.01)
    policy = retry_policy or RetryPolicy(max_attempts=3, timeout_schedule_s=(1.0, 2.0, 3.0), backoff_s=0.0)
    enricher = DetailEnricher(
        resource,
        extractor,
        detail_cache,
        enrich_count=enrich_count,
        concurrency=3,
        timeout_s=1.0,
    )
    return FeedOrchestrator(
        resource,
        extractor,
        list_cache=list_cache,
        detail_cache=detail_cache,
        rate_limiter=limiter,
        queue=queue,
        retry_policy=policy,
        enricher=enricher,
        notifier=notifier,
        base_url=BASE_URL,
        max_records=max_records,
        queue_wait_timeout_s=queue_wait_timeout_s,
    )
