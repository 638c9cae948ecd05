"""TTL Cache - 메모리 키/값 캐시 (항목별 만료 + 크기 상한)

목록 캐시(짧은 TTL)와 캐릭터 상세 캐시(긴 TTL) 두 인스턴스로 사용합니다.
- get()은 순수 조회: 만료 여부를 스스로 다시 검사하며 계산을 유발하지 않음
- sweep()은 주기 작업(스케줄러)에서 호출: 오래된 항목 제거 + 크기 상한 유지
- get_stale()은 업스트림 장애 시 최후의 폴백용
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

from src.core.logging import logger


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """캐시 항목 (저장 시각 포함)"""

    value: V
    stored_at: float


class TTLCache(Generic[K, V]):
    """항목별 TTL과 최대 항목 수를 가진 캐시

    Usage:
        cache: TTLCache[str, list] = TTLCache("feed", ttl_s=3.0, max_entries=50)
        cache.put("feed:20", records)
        cache.get("feed:20")        # TTL 이내면 값, 아니면 None
        cache.get_stale("feed:20")  # 만료 여부와 무관 (폴백)
    """

    def __init__(
        self,
        name: str,
        ttl_s: float,
        max_entries: int,
        *,
        sweep_multiplier: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            name: 로그/헬스 체크용 이름
            ttl_s: 항목 유효 시간 (초)
            max_entries: 최대 항목 수 (초과 시 가장 먼저 저장된 항목부터 제거)
            sweep_multiplier: sweep 시 ttl_s * multiplier 보다 오래된 항목 제거
            clock: 단조 시계 (테스트 주입용)
        """
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if sweep_multiplier < 1.0:
            raise ValueError("sweep_multiplier must be >= 1.0")

        self.name = name
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self.sweep_multiplier = sweep_multiplier
        self._clock = clock
        # 삽입 순서 = 오래된 순서 (재저장 시 맨 뒤로 이동)
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()

    def get(self, key: K) -> Optional[V]:
        """유효한(TTL 이내) 값 조회. 정확히 TTL 경과 시점부터 만료로 취급."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_s:
            return None
        return entry.value

    def get_entry(self, key: K) -> Optional[CacheEntry[V]]:
        """만료 여부와 무관하게 항목 조회"""
        return self._entries.get(key)

    def get_stale(self, key: K) -> Optional[V]:
        """만료된 값이라도 반환 (최후의 폴백)"""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def age_of(self, key: K) -> Optional[float]:
        """항목 경과 시간 (초)"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return max(0.0, self._clock() - entry.stored_at)

    def put(self, key: K, value: V) -> None:
        """값 저장 (재저장 시 가장 최신 위치로 이동)"""
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
        self._evict_overflow()

    def delete(self, key: K) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """오래된 항목 제거 + 크기 상한 유지

        Returns:
            제거된 항목 수
        """
        now = self._clock()
        horizon = self.ttl_s * self.sweep_multiplier
        expired = [k for k, entry in self._entries.items() if now - entry.stored_at > horizon]
        for k in expired:
            del self._entries[k]

        removed = len(expired) + self._evict_overflow()
        if removed:
            logger.debug(f"[Cache:{self.name}] Swept {removed} entries (remaining={len(self._entries)})")
        return removed

    def _evict_overflow(self) -> int:
        evicted = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1
        return evicted

    def stats(self) -> dict:
        return {
            "name": self.name,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_s": self.ttl_s,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"TTLCache(name={self.name!r}, entries={len(self._entries)}/{self.max_entries}, ttl={self.ttl_s}s)"
