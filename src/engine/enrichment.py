"""Detail Enrichment - 캐릭터 상세 정보로 목록 레코드 보강

- 상세 캐시에 있는 캐릭터는 캐시 값 사용
- 캐시에 없는 캐릭터 중 앞에서부터 enrich_count명만 fetch (동시성 제한)
- 나머지는 기본값(Unknown / No Guild)
- fetch 실패/빈 결과도 기본값으로 대체, 실제 값이 있는 경우에만 캐시

결과는 입력 순서(업스트림 순서) 그대로 반환합니다.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from src.core.config import settings
from src.core.logging import logger
from src.crawlers.executor import Extractor, RenderingResource
from src.crawlers.playwright.pages import SessionOptions
from src.schemas.feed_schema import DetailRecord, EnrichedRecord, PrimaryRecord

from .ttl_cache import TTLCache


DETAIL_CACHE = "cache"
DETAIL_FETCHED = "fetched"
DETAIL_FALLBACK = "fallback"
DETAIL_SKIPPED = "skipped"


class DetailEnricher:
    """상세 보강기 (병렬 fetch 수 제한 + 개별 타임아웃)"""

    def __init__(
        self,
        resource: RenderingResource,
        extractor: Extractor,
        detail_cache: TTLCache[str, DetailRecord],
        *,
        enrich_count: Optional[int] = None,
        concurrency: Optional[int] = None,
        timeout_s: Optional[float] = None,
        options: Optional[SessionOptions] = None,
    ) -> None:
        self.resource = resource
        self.extractor = extractor
        self.detail_cache = detail_cache
        self.enrich_count = settings.detail_enrich_count if enrich_count is None else enrich_count
        self.concurrency = max(1, concurrency or settings.detail_concurrency)
        self.timeout_s = timeout_s or settings.detail_timeout_s
        self.options = options or SessionOptions.for_budget(
            self.timeout_s,
            wait_selector=f"{settings.detail_selector} table.TableContent",
            fallback_selector=settings.detail_selector,
        )

    async def enrich(self, records: Sequence[PrimaryRecord]) -> list[EnrichedRecord]:
        """레코드 보강 (입력 순서 유지)"""
        merged: list[Optional[EnrichedRecord]] = [None] * len(records)
        # entity_key → 같은 캐릭터의 레코드 인덱스들 (한 캐릭터는 한 번만 fetch)
        pending: dict[str, list[int]] = {}
        cache_hits = 0

        for index, record in enumerate(records):
            key = record.entity_key
            cached = self.detail_cache.get(key)
            if cached is not None:
                merged[index] = EnrichedRecord.merge(record, cached, DETAIL_CACHE)
                cache_hits += 1
            elif key in pending:
                pending[key].append(index)
            elif record.player_link and len(pending) < self.enrich_count:
                pending[key] = [index]
            else:
                merged[index] = EnrichedRecord.merge(record, None, DETAIL_SKIPPED)

        if pending:
            semaphore = asyncio.Semaphore(self.concurrency)
            keys = list(pending)
            outcomes = await asyncio.gather(
                *(self._fetch_one(records[pending[key][0]], semaphore) for key in keys)
            )
            for key, (detail, source) in zip(keys, outcomes):
                if source == DETAIL_FETCHED:
                    self.detail_cache.put(key, detail)
                for index in pending[key]:
                    merged[index] = EnrichedRecord.merge(records[index], detail, source)

        logger.info(
            f"[Enrich] records={len(records)}, cache_hits={cache_hits}, fetched={len(pending)}, "
            f"skipped={len(records) - cache_hits - sum(len(v) for v in pending.values())}"
        )
        return [record for record in merged if record is not None]

    async def _fetch_one(
        self, record: PrimaryRecord, semaphore: asyncio.Semaphore
    ) -> tuple[DetailRecord, str]:
        async with semaphore:
            try:
                detail = await asyncio.wait_for(self._render_detail(record.player_link or ""), self.timeout_s)
            except asyncio.TimeoutError:
                logger.warning(f"[Enrich] {record.player}: detail timeout ({self.timeout_s:.0f}s), using defaults")
                return DetailRecord(), DETAIL_FALLBACK
            except Exception as e:
                logger.warning(f"[Enrich] {record.player}: {type(e).__name__}: {e}, using defaults")
                return DetailRecord(), DETAIL_FALLBACK

        if not detail.has_data:
            logger.debug(f"[Enrich] {record.player}: no detail data parsed")
            return detail, DETAIL_FALLBACK
        return detail, DETAIL_FETCHED

    async def _render_detail(self, address: str) -> DetailRecord:
        async with self.resource.session(address, self.options) as session:
            raw = await session.extract_raw()
        return self.extractor.parse_detail(raw)
