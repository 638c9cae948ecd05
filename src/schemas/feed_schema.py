"""Pydantic 스키마 정의 - 사망 기록/상세/피드 응답"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# 상세 정보가 없을 때 사용하는 명시적 기본값 (null 전파 금지)
UNKNOWN = "Unknown"
NO_GUILD = "No Guild"


class PrimaryRecord(BaseModel):
    """목록 페이지에서 추출한 사망 기록 1건 (추출 이후 불변)"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    player: str = Field(..., min_length=1, description="캐릭터명")
    time: str = Field(..., description="사망 시각 (원문)")
    level: int = Field(..., ge=0, description="사망 당시 레벨")
    cause: str = Field("", description="사망 원인")
    player_link: Optional[str] = Field(None, description="캐릭터 상세 페이지 URL")

    @property
    def identity(self) -> tuple[str, str]:
        """중복 제거 키 (캐릭터명 + 시각)"""
        return (self.player, self.time)

    @property
    def entity_key(self) -> str:
        """상세 캐시 키 (캐릭터 단위)"""
        return self.player.strip().lower()


class DetailRecord(BaseModel):
    """캐릭터 상세 정보 - 모든 필드는 기본값을 가짐"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    vocation: str = UNKNOWN
    residence: str = UNKNOWN
    account_status: str = UNKNOWN
    guild: str = NO_GUILD

    @field_validator("vocation", "residence", "account_status", mode="before")
    @classmethod
    def _default_unknown(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return UNKNOWN
        return str(v).strip()

    @field_validator("guild", mode="before")
    @classmethod
    def _default_no_guild(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return NO_GUILD
        return str(v).strip()

    @property
    def has_data(self) -> bool:
        """파싱으로 얻은 실제 값이 하나라도 있는가?"""
        return any(
            value != UNKNOWN
            for value in (self.vocation, self.residence, self.account_status)
        )

    @property
    def is_vip(self) -> bool:
        return "vip" in self.account_status.lower()


class EnrichedRecord(BaseModel):
    """응답용 레코드: PrimaryRecord + DetailRecord (모든 필드 존재)"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    player: str
    time: str
    level: int
    cause: str
    player_link: Optional[str] = None
    vocation: str = UNKNOWN
    residence: str = UNKNOWN
    account_status: str = UNKNOWN
    guild: str = NO_GUILD
    detail_source: str = Field("skipped", description="cache | fetched | fallback | skipped")

    @classmethod
    def merge(
        cls,
        record: PrimaryRecord,
        detail: Optional[DetailRecord] = None,
        detail_source: str = "skipped",
    ) -> "EnrichedRecord":
        """PrimaryRecord와 DetailRecord 병합 (detail이 없으면 기본값)"""
        detail = detail or DetailRecord()
        return cls(
            player=record.player,
            time=record.time,
            level=record.level,
            cause=record.cause,
            player_link=record.player_link,
            vocation=detail.vocation,
            residence=detail.residence,
            account_status=detail.account_status,
            guild=detail.guild,
            detail_source=detail_source,
        )

    @property
    def identity(self) -> tuple[str, str]:
        return (self.player, self.time)

    @property
    def is_vip(self) -> bool:
        return "vip" in self.account_status.lower()


class FeedQuery(BaseModel):
    """피드 조회 조건 - 모든 필터는 목록 캐시 키에 포함"""

    model_config = ConfigDict(frozen=True)

    source: str = Field("20", min_length=1, max_length=10, description="월드(서버) ID")
    min_level: Optional[int] = Field(None, ge=0, le=100000, description="최소 레벨 (업스트림 필터)")
    vip_only: bool = Field(False, description="VIP 계정만 (보강 후 필터)")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit():
            raise ValueError("source는 숫자만 포함되어야 합니다")
        return v

    @property
    def effective_min_level(self) -> Optional[int]:
        """업스트림이 의미 있게 처리하는 레벨 필터 (2 이상만)"""
        if self.min_level is not None and self.min_level > 1:
            return self.min_level
        return None

    def cache_key(self, prefix: str = "feed") -> str:
        level = self.effective_min_level
        return f"{prefix}:{self.source}:{level if level is not None else 'all'}:{'vip' if self.vip_only else 'any'}"


class CacheStats(BaseModel):
    """캐시 점유 현황"""
    name: str
    entries: int
    max_entries: int
    ttl_s: float


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str
    timestamp: datetime
    version: str
    browser: str = Field(..., description="alive | closed")
    caches: dict[str, CacheStats]
    queue_depth: int
    tracked_identities: int
    inflight_fetches: int
    memory_rss_mb: Optional[float] = None


class ErrorResponse(BaseModel):
    """구조화된 오류 응답 (재시도 가능 여부 포함)"""
    status: str = "error"
    message: str
    error_code: str
    retry_after: Optional[float] = Field(None, description="재시도 권장 대기 시간 (초)")
