"""Rate Limiter - 업스트림 호출 입장 제어 (identity 단위)

두 규칙을 모두 평가합니다.
1. 최소 간격: 마지막 허용 이후 min_interval_s 미만이면 거절
2. 슬라이딩 윈도우: window_s 안의 허용 횟수가 max_requests 이상이면 거절

캐시 히트는 이 클래스를 호출하지 않습니다 (업스트림 fetch가 필요할 때만).
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from src.core.logging import logger, mask_identity


@dataclass
class RateRecord:
    """identity별 허용 기록 (window는 단조 비감소)"""

    last_admitted: Optional[float] = None
    window: deque[float] = field(default_factory=deque)

    def prune(self, now: float, window_s: float) -> None:
        while self.window and now - self.window[0] >= window_s:
            self.window.popleft()


class RateLimiter:
    """최소 간격 + 슬라이딩 윈도우 레이트 리미터"""

    def __init__(
        self,
        min_interval_s: float,
        window_s: float,
        max_requests: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        if window_s <= 0:
            raise ValueError("window_s must be positive")
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")

        self.min_interval_s = min_interval_s
        self.window_s = window_s
        self.max_requests = max_requests
        self._clock = clock
        self._records: dict[str, RateRecord] = {}
        self.admitted_count = 0
        self.denied_count = 0

    def admit(self, identity: str) -> bool:
        """업스트림 호출 허용 여부 (허용 시 두 규칙 모두에 기록)"""
        now = self._clock()
        record = self._records.get(identity)
        if record is None:
            record = RateRecord()

        record.prune(now, self.window_s)

        if record.last_admitted is not None and now - record.last_admitted < self.min_interval_s:
            self.denied_count += 1
            logger.debug(
                f"[RateLimiter] Denied (min interval): identity={mask_identity(identity)}, "
                f"since_last={now - record.last_admitted:.3f}s < {self.min_interval_s}s"
            )
            return False

        if len(record.window) >= self.max_requests:
            self.denied_count += 1
            logger.warning(
                f"[RateLimiter] Denied (window): identity={mask_identity(identity)}, "
                f"{len(record.window)} upstream fetches in {self.window_s:.0f}s"
            )
            return False

        record.window.append(now)
        record.last_admitted = now
        self._records[identity] = record
        self.admitted_count += 1
        return True

    def retry_after(self, identity: str) -> float:
        """다음 허용까지 남은 시간 (초). 지금 허용 가능하면 0."""
        record = self._records.get(identity)
        if record is None:
            return 0.0

        now = self._clock()
        record.prune(now, self.window_s)

        wait = 0.0
        if record.last_admitted is not None:
            wait = max(wait, self.min_interval_s - (now - record.last_admitted))
        if len(record.window) >= self.max_requests:
            # 가장 오래된 기록이 윈도우 밖으로 밀려나는 시점
            overflow = len(record.window) - self.max_requests
            wait = max(wait, record.window[overflow] + self.window_s - now)
        return max(0.0, wait)

    def prune(self) -> int:
        """윈도우 안에 기록이 없는 identity 정리

        Returns:
            제거된 identity 수
        """
        now = self._clock()
        stale: list[str] = []
        for identity, record in self._records.items():
            record.prune(now, self.window_s)
            idle = record.last_admitted is None or now - record.last_admitted >= self.window_s
            if not record.window and idle:
                stale.append(identity)

        for identity in stale:
            del self._records[identity]

        if stale:
            logger.debug(f"[RateLimiter] Pruned {len(stale)} idle identities (tracked={len(self._records)})")
        return len(stale)

    @property
    def tracked_identities(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"RateLimiter(min_interval={self.min_interval_s}s, window={self.window_s}s/{self.max_requests}, "
            f"admitted={self.admitted_count}, denied={self.denied_count})"
        )
