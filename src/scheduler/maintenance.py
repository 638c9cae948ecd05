"""캐시 정리 / 레이트 기록 정리 스케줄러"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config import settings
from src.core.logging import logger
from src.engine.rate_limiter import RateLimiter
from src.engine.ttl_cache import TTLCache


class MaintenanceScheduler:
    """주기 작업: 두 캐시 sweep + 레이트 리미터 prune"""

    def __init__(
        self,
        caches: list[TTLCache],
        rate_limiter: RateLimiter,
        *,
        sweep_interval_s: Optional[float] = None,
        prune_interval_s: Optional[float] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.caches = caches
        self.rate_limiter = rate_limiter
        self.sweep_interval_s = sweep_interval_s or settings.cache_sweep_interval_s
        self.prune_interval_s = prune_interval_s or settings.rate_limit_prune_interval_s
        self._scheduler = scheduler or AsyncIOScheduler()

    def run_cache_sweep(self) -> int:
        """모든 캐시 sweep (제거된 항목 수 반환)"""
        removed = 0
        for cache in self.caches:
            try:
                removed += cache.sweep()
            except Exception as e:
                logger.error(f"[Scheduler] Cache sweep failed: cache={cache.name}, error={e}", exc_info=True)
        if removed:
            logger.info(f"[Scheduler] Cache sweep removed {removed} entries")
        return removed

    def run_rate_prune(self) -> int:
        try:
            return self.rate_limiter.prune()
        except Exception as e:
            logger.error(f"[Scheduler] Rate record prune failed: {e}", exc_info=True)
            return 0

    def start(self) -> None:
        """AsyncIOScheduler에 작업 등록 후 시작 (실행 중인 이벤트 루프 필요)"""
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            self.run_cache_sweep,
            trigger=IntervalTrigger(seconds=self.sweep_interval_s),
            id="cache_sweep",
            name="TTL Cache Sweep",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.run_rate_prune,
            trigger=IntervalTrigger(seconds=self.prune_interval_s),
            id="rate_record_prune",
            name="Rate Record Prune",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"[Scheduler] Maintenance jobs scheduled: sweep every {self.sweep_interval_s:.0f}s, "
            f"prune every {self.prune_interval_s:.0f}s"
        )

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("[Scheduler] Maintenance scheduler stopped")

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)
