"""Feed Orchestrator - Main Engine Entry Point

Coordinates the entire feed pipeline:
1. List cache lookup (cache hits never touch the rate limiter)
2. Single-flight join of an identical in-flight fetch
3. Admission (rate limiter) → queue or stale when denied
4. Primary fetch with progressive-timeout retries
5. Detail enrichment (bounded parallel)
6. Cache store + optional notification
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Callable, Optional

import psutil

from src import __version__
from src.core.config import Settings, settings as default_settings
from src.core.exceptions import (
    QueueFullException,
    RateLimitedException,
    UpstreamUnavailableException,
)
from src.core.logging import logger, mask_identity
from src.crawlers.deaths import DeathsExtractor
from src.crawlers.executor import Extractor, RenderingResource
from src.crawlers.playwright import BrowserResource
from src.crawlers.playwright.pages import SessionOptions
from src.schemas.feed_schema import (
    CacheStats,
    DetailRecord,
    EnrichedRecord,
    FeedQuery,
    HealthResponse,
    PrimaryRecord,
)
from src.services.death_notifier import DeathNotifier

from .enrichment import DetailEnricher
from .rate_limiter import RateLimiter
from .request_queue import RequestQueue
from .result import FeedResult
from .retry import RetryPolicy
from .ttl_cache import TTLCache


FEED_PREFIX = "feed"
FAST_FEED_PREFIX = "feed-fast"


class FeedOrchestrator:
    """피드 엔진 오케스트레이터

    Cache → SingleFlight → Admission → (Queue | Stale) → Fetch → Enrich → Store
    파이프라인을 관리합니다.

    - 같은 캐시 키의 동시 미스는 하나의 fetch를 공유 (공유받는 쪽은 입장 비용 없음)
    - 목록 페이지 렌더링은 업스트림 락으로 한 번에 하나만
    - 업스트림 장애 시 만료된 캐시라도 있으면 stale로 응답
    """

    def __init__(
        self,
        resource: RenderingResource,
        extractor: Extractor,
        *,
        list_cache: TTLCache[str, list[EnrichedRecord]],
        detail_cache: TTLCache[str, DetailRecord],
        rate_limiter: RateLimiter,
        queue: RequestQueue,
        retry_policy: RetryPolicy,
        enricher: Optional[DetailEnricher] = None,
        scheduler=None,
        notifier: Optional[DeathNotifier] = None,
        base_url: Optional[str] = None,
        max_records: Optional[int] = None,
        queue_wait_timeout_s: Optional[float] = None,
        prewarm: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            resource: 렌더링 리소스 (open/close/session/recreate)
            extractor: HTML → 레코드 추출기
            list_cache: 목록 캐시 (짧은 TTL)
            detail_cache: 캐릭터 상세 캐시 (긴 TTL)
            rate_limiter: identity별 입장 제어
            queue: 입장 거절 요청 대기열
            retry_policy: 목록 fetch 재시도 정책
            enricher: 상세 보강기 (기본: resource/extractor/detail_cache로 생성)
            scheduler: 주기 정리 작업 (start/shutdown)
            notifier: 새 기록 알림 (선택)
        """
        if resource is None:
            raise ValueError("resource must not be None")
        if extractor is None:
            raise ValueError("extractor must not be None")

        self.resource = resource
        self.extractor = extractor
        self.list_cache = list_cache
        self.detail_cache = detail_cache
        self.rate_limiter = rate_limiter
        self.queue = queue
        self.retry_policy = retry_policy
        self.enricher = enricher or DetailEnricher(resource, extractor, detail_cache)
        self.scheduler = scheduler
        self.notifier = notifier
        self.base_url = base_url or default_settings.upstream_base_url
        self.max_records = max_records or default_settings.feed_max_records
        self.queue_wait_timeout_s = queue_wait_timeout_s or default_settings.queue_wait_timeout_s
        self.prewarm = prewarm
        self._clock = clock

        self._inflight: dict[str, asyncio.Task] = {}
        self._upstream_lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """대기열 워커/스케줄러 시작 + (옵션) 브라우저 사전 기동"""
        self.queue.start()
        if self.scheduler is not None:
            self.scheduler.start()

        if self.prewarm:
            try:
                await self.resource.warmup()
                logger.info("Browser pre-warmed")
            except Exception as e:
                # 첫 요청에서 다시 시도
                logger.error(f"Browser pre-warm failed: {type(e).__name__}: {e}")

    async def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()
        await self.queue.stop()

        pending = list(self._inflight.values()) + list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()

        if self.notifier is not None:
            await self.notifier.close()
        await self.resource.shutdown()
        logger.info("Feed orchestrator stopped")

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def get_feed(self, query: FeedQuery, identity: str, *, enrich: bool = True) -> FeedResult:
        """피드 조회

        Args:
            query: 조회 조건 (모든 필터가 캐시 키에 포함)
            identity: 호출자 식별자 (레이트 리밋 단위)
            enrich: False면 상세 보강 없이 목록만 (별도 캐시 키)

        Returns:
            FeedResult: 캐시/새 결과/공유 결과/stale 결과

        Raises:
            RateLimitedException: 입장 거절 + 대기 불가 + stale 없음
            UpstreamUnavailableException: 재시도 소진 + stale 없음
        """
        started = self._clock()
        key = query.cache_key(FEED_PREFIX if enrich else FAST_FEED_PREFIX)

        # 1. Cache 확인
        result = self._try_cache(key, started)
        if result is not None:
            return result

        # 2. 진행 중인 동일 요청 공유
        task = self._inflight.get(key)
        if task is not None:
            logger.info(f"Joining in-flight fetch: key={key}")
            shared = await asyncio.shield(task)
            return shared.coalesced(self._elapsed_ms(started))

        # 3. 입장 확인 → fetch 또는 대기열
        if self.rate_limiter.admit(identity):
            runner = self._fetch_feed(query, key, enrich)
        else:
            logger.info(f"Admission denied, queueing: identity={mask_identity(identity)}, key={key}")
            runner = self._queue_or_stale(query, key, identity, enrich, started)

        task = asyncio.get_running_loop().create_task(runner, name=f"feed-fetch:{key}")
        self._inflight[key] = task
        task.add_done_callback(lambda t, k=key: self._forget_inflight(k, t))

        result = await asyncio.shield(task)
        result.elapsed_ms = self._elapsed_ms(started)
        return result

    def health(self) -> HealthResponse:
        alive = self.resource.is_alive()
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(),
            version=__version__,
            browser="alive" if alive else "closed",
            caches={
                cache.name: CacheStats(**cache.stats())
                for cache in (self.list_cache, self.detail_cache)
            },
            queue_depth=self.queue.depth,
            tracked_identities=self.rate_limiter.tracked_identities,
            inflight_fetches=len(self._inflight),
            memory_rss_mb=_rss_mb(),
        )

    # ------------------------------------------------------------------
    # pipeline steps
    # ------------------------------------------------------------------

    def _try_cache(self, key: str, started: float) -> Optional[FeedResult]:
        cached = self.list_cache.get(key)
        if cached is None:
            return None
        logger.debug(f"Cache hit: key={key}")
        return FeedResult.from_cache(
            cached, key, elapsed_ms=self._elapsed_ms(started), age_s=self.list_cache.age_of(key)
        )

    async def _queue_or_stale(
        self, query: FeedQuery, key: str, identity: str, enrich: bool, started: float
    ) -> FeedResult:
        """입장 거절 시: 대기열에서 순서를 기다리거나 stale로 응답"""
        # 대기 중에 sweep되더라도 미스 시점의 값으로 폴백
        snapshot = self.list_cache.get_stale(key)
        snapshot_age = self.list_cache.age_of(key)

        async def queued() -> FeedResult:
            # 대기하는 동안 다른 요청이 채웠을 수 있음
            cached = self._try_cache(key, started)
            if cached is not None:
                return cached
            return await self._fetch_feed(query, key, enrich)

        try:
            future = self.queue.enqueue(identity, queued)
        except QueueFullException:
            return self._stale_or_raise(key, identity, snapshot, snapshot_age, started)

        try:
            # shield: 응답은 포기해도 대기열 작업은 끝까지 실행되어 캐시를 채움
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.queue_wait_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"Queue wait exceeded {self.queue_wait_timeout_s:.0f}s: identity={mask_identity(identity)}, key={key}")
            return self._stale_or_raise(key, identity, snapshot, snapshot_age, started)

    def _stale_or_raise(
        self,
        key: str,
        identity: str,
        snapshot: Optional[list[EnrichedRecord]],
        snapshot_age: Optional[float],
        started: float,
    ) -> FeedResult:
        if snapshot is not None:
            logger.info(f"Serving STALE feed to rate-limited caller: identity={mask_identity(identity)}, key={key}")
            return FeedResult.stale(snapshot, key, elapsed_ms=self._elapsed_ms(started), age_s=snapshot_age)
        retry_after = max(1.0, self.rate_limiter.retry_after(identity))
        raise RateLimitedException(retry_after)

    async def _fetch_feed(self, query: FeedQuery, key: str, enrich: bool) -> FeedResult:
        """목록 fetch(재시도) → 보강 → VIP 필터 → 캐시 저장"""
        started = self._clock()
        address = self.extractor.build_feed_url(self.base_url, query)
        logger.info(f"Fetching feed: key={key}, url={address}")

        try:
            # 락 대기는 시도별 타임아웃에 포함하지 않음 (목록 렌더링은 한 번에 하나)
            async with self._upstream_lock:
                outcome = await self.retry_policy.execute(
                    lambda timeout_s: self._fetch_primary(address, timeout_s),
                    on_resource_dead=self.resource.recreate,
                    label=f"feed {key}",
                )
        except UpstreamUnavailableException:
            stale = self.list_cache.get_stale(key)
            if stale is None:
                raise
            logger.warning(f"Upstream unavailable, serving STALE feed: key={key}")
            return FeedResult.stale(
                stale,
                key,
                elapsed_ms=self._elapsed_ms(started),
                attempts=self.retry_policy.max_attempts,
                age_s=self.list_cache.age_of(key),
            )

        primary: list[PrimaryRecord] = outcome.value
        if enrich:
            records = await self.enricher.enrich(primary)
        else:
            records = [EnrichedRecord.merge(record) for record in primary]

        if query.vip_only:
            records = [record for record in records if record.is_vip]

        self.list_cache.put(key, records)
        logger.info(
            f"Feed fetched: key={key}, records={len(records)}, attempts={outcome.attempts}, "
            f"elapsed={self._elapsed_ms(started):.0f}ms"
        )

        if enrich and self.notifier is not None and self.notifier.enabled:
            self._spawn(self.notifier.notify(records))

        return FeedResult.fresh(records, key, elapsed_ms=self._elapsed_ms(started), attempts=outcome.attempts)

    async def _fetch_primary(self, address: str, timeout_s: float) -> list[PrimaryRecord]:
        """목록 페이지 1회 렌더링 + 추출 (호출자가 업스트림 락을 보유)"""
        options = SessionOptions.for_budget(
            timeout_s,
            wait_selector=default_settings.primary_selector,
            fallback_selector=default_settings.primary_fallback_selector,
        )
        async with self.resource.session(address, options) as session:
            raw = await session.extract_raw()

        records = self.extractor.parse_primary_list(raw)
        return records[: self.max_records]

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # 호출자가 모두 떠난 경우 "exception was never retrieved" 방지
            task.exception()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Background task failed: {type(task.exception()).__name__}: {task.exception()}")

    def _elapsed_ms(self, started: float) -> float:
        return max(0.0, (self._clock() - started) * 1000)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)


def _rss_mb() -> Optional[float]:
    try:
        return round(psutil.Process().memory_info().rss / 1024 / 1024, 1)
    except psutil.Error:
        return None


def build_orchestrator(config: Optional[Settings] = None) -> FeedOrchestrator:
    """설정으로 전체 구성요소 생성"""
    from src.scheduler.maintenance import MaintenanceScheduler

    config = config or default_settings

    list_cache: TTLCache[str, list[EnrichedRecord]] = TTLCache(
        "feed",
        ttl_s=config.list_cache_ttl_s,
        max_entries=config.list_cache_max_entries,
        sweep_multiplier=config.list_cache_sweep_multiplier,
    )
    detail_cache: TTLCache[str, DetailRecord] = TTLCache(
        "characters",
        ttl_s=config.detail_cache_ttl_s,
        max_entries=config.detail_cache_max_entries,
        sweep_multiplier=config.detail_cache_sweep_multiplier,
    )
    rate_limiter = RateLimiter(
        config.rate_limit_min_interval_s,
        config.rate_limit_window_s,
        config.rate_limit_max_requests,
    )
    queue = RequestQueue(
        rate_limiter,
        max_size=config.queue_max_size,
        courtesy_delay_s=config.queue_courtesy_delay_s,
        denied_wait_s=config.queue_denied_wait_s,
    )
    retry_policy = RetryPolicy(
        max_attempts=config.retry_max_attempts,
        timeout_schedule_s=tuple(config.retry_timeout_schedule_s),
        backoff_s=config.retry_backoff_s,
    )
    resource = BrowserResource(launch_attempts=config.browser_launch_attempts)
    extractor = DeathsExtractor(config.upstream_base_url)
    enricher = DetailEnricher(
        resource,
        extractor,
        detail_cache,
        enrich_count=config.detail_enrich_count,
        concurrency=config.detail_concurrency,
        timeout_s=config.detail_timeout_s,
    )
    scheduler = MaintenanceScheduler(
        [list_cache, detail_cache],
        rate_limiter,
        sweep_interval_s=config.cache_sweep_interval_s,
        prune_interval_s=config.rate_limit_prune_interval_s,
    )
    notifier = DeathNotifier(config.notify_webhook_url, timeout_s=config.notify_timeout_s)

    return FeedOrchestrator(
        resource,
        extractor,
        list_cache=list_cache,
        detail_cache=detail_cache,
        rate_limiter=rate_limiter,
        queue=queue,
        retry_policy=retry_policy,
        enricher=enricher,
        scheduler=scheduler,
        notifier=notifier,
        base_url=config.upstream_base_url,
        max_records=config.feed_max_records,
        queue_wait_timeout_s=config.queue_wait_timeout_s,
        prewarm=config.browser_prewarm,
    )
