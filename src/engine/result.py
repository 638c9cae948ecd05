"""Feed Result - Standardized Result Format

Provides a standardized format for feed results across all resolution paths.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from src.schemas.feed_schema import EnrichedRecord


class FeedStatus(str, Enum):
    """피드 결과 상태

    응답 헤더 X-Feed-Status 값으로 그대로 사용됩니다.
    """

    CACHE_HIT = "cache_hit"  # 목록 캐시 히트
    FRESH = "fresh"  # 업스트림에서 새로 가져옴
    COALESCED = "coalesced"  # 진행 중인 동일 요청 결과 공유
    STALE = "stale"  # 만료된 캐시 폴백


@dataclass
class FeedResult:
    """피드 결과 표준 포맷

    Attributes:
        status: 결과 상태
        records: 응답 레코드 (업스트림 순서 유지)
        cache_key: 목록 캐시 키
        elapsed_ms: 소요 시간 (밀리초)
        attempts: 업스트림 시도 횟수 (캐시 히트면 0)
        age_s: 캐시 항목 나이 (초, 새로 가져왔으면 0)
    """

    status: FeedStatus
    records: list[EnrichedRecord] = field(default_factory=list)

    # 메타데이터
    cache_key: Optional[str] = None
    elapsed_ms: Optional[float] = None
    attempts: int = 0
    age_s: Optional[float] = None

    @property
    def is_stale(self) -> bool:
        return self.status == FeedStatus.STALE

    @classmethod
    def from_cache(
        cls, records: list[EnrichedRecord], cache_key: str, elapsed_ms: float, age_s: Optional[float] = None
    ) -> "FeedResult":
        """캐시에서 반환된 결과 생성"""
        return cls(
            status=FeedStatus.CACHE_HIT,
            records=records,
            cache_key=cache_key,
            elapsed_ms=elapsed_ms,
            age_s=age_s,
        )

    @classmethod
    def fresh(
        cls, records: list[EnrichedRecord], cache_key: str, elapsed_ms: float, attempts: int
    ) -> "FeedResult":
        """업스트림 fetch 결과 생성

        Args:
            records: 보강된 레코드
            cache_key: 목록 캐시 키
            elapsed_ms: 소요 시간 (밀리초)
            attempts: 실제 시도 횟수

        Returns:
            FeedResult: 새 결과
        """
        return cls(
            status=FeedStatus.FRESH,
            records=records,
            cache_key=cache_key,
            elapsed_ms=elapsed_ms,
            attempts=attempts,
            age_s=0.0,
        )

    @classmethod
    def stale(
        cls, records: list[EnrichedRecord], cache_key: str, elapsed_ms: float, attempts: int = 0,
        age_s: Optional[float] = None,
    ) -> "FeedResult":
        """만료 캐시 폴백 결과 생성"""
        return cls(
            status=FeedStatus.STALE,
            records=records,
            cache_key=cache_key,
            elapsed_ms=elapsed_ms,
            attempts=attempts,
            age_s=age_s,
        )

    def coalesced(self, elapsed_ms: float) -> "FeedResult":
        """공유받은 결과 (stale 표시는 유지)"""
        return FeedResult(
            status=FeedStatus.STALE if self.is_stale else FeedStatus.COALESCED,
            records=self.records,
            cache_key=self.cache_key,
            elapsed_ms=elapsed_ms,
            attempts=self.attempts,
            age_s=self.age_s,
        )
