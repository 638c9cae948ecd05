"""새 사망 기록 웹훅 알림 (httpx)

- webhook URL이 비어 있으면 비활성
- identity(캐릭터명 + 시각) 기준으로 이미 알린 기록은 건너뜀
- 시작 후 첫 배치는 기준점으로만 기록하고 알리지 않음 (재시작 시 과거 기록 폭주 방지)
- 실패는 로그만 남기고 피드 응답에는 영향 없음
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Optional, Sequence

import httpx

from src.core.config import settings
from src.core.logging import logger, sanitize_for_log
from src.schemas.feed_schema import EnrichedRecord


def format_message(record: EnrichedRecord) -> str:
    return (
        f"💀 **{record.player}** (level {record.level}) died at **{record.time}**. "
        f"Cause: {record.cause}. Vocation: {record.vocation}, Residence: {record.residence}. "
        f"Account: {record.account_status}. Guild: {record.guild}"
    )


class DeathNotifier:
    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        timeout_s: Optional[float] = None,
        max_seen: int = 500,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.webhook_url = settings.notify_webhook_url if webhook_url is None else webhook_url
        self.timeout_s = timeout_s or settings.notify_timeout_s
        self.max_seen = max_seen
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()
        self._primed = False
        self._lock = asyncio.Lock()
        self._client = client
        self.sent_count = 0

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    def _remember(self, identity: tuple[str, str]) -> bool:
        """처음 본 identity면 True"""
        if identity in self._seen:
            return False
        self._seen[identity] = None
        while len(self._seen) > self.max_seen:
            self._seen.popitem(last=False)
        return True

    async def notify(self, records: Sequence[EnrichedRecord]) -> int:
        """새 기록 알림 (전송 건수 반환)"""
        if not self.enabled:
            return 0

        async with self._lock:
            fresh = [r for r in records if self._remember(r.identity)]
            if not self._primed:
                self._primed = True
                logger.info(f"[Notifier] Primed with {len(fresh)} existing deaths")
                return 0

            sent = 0
            for record in fresh:
                if await self._post(record):
                    sent += 1
            self.sent_count += sent
            return sent

    async def _post(self, record: EnrichedRecord) -> bool:
        client = await self._ensure_client()
        try:
            response = await client.post(self.webhook_url, json={"content": format_message(record)})
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning(
                f"[Notifier] Webhook failed: player={sanitize_for_log(record.player)}, "
                f"error={type(e).__name__}: {sanitize_for_log(str(e))}"
            )
            return False

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
