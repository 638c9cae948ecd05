"""설정 관리 - 환경 변수 로드 및 검증"""
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """애플리케이션 설정"""

    # 업스트림 (최근 사망 목록 페이지)
    upstream_base_url: str = "https://rubinot.com.br/"
    default_source: str = "20"
    crawler_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    crawler_viewport_width: int = 1024
    crawler_viewport_height: int = 600
    primary_selector: str = "div.TableContentContainer table.TableContent"
    primary_fallback_selector: str = "div.TableContentContainer"
    detail_selector: str = "div.TableContentContainer"

    # 피드 구성
    # - feed_max_records: 응답 최대 건수 (렌더링/보강 비용 상한)
    # - detail_enrich_count: 캐시에 없는 캐릭터 중 상세 조회할 최대 건수
    feed_max_records: int = 10
    detail_enrich_count: int = 3
    detail_concurrency: int = 3
    detail_timeout_s: float = 15.0

    # 목록 캐시 (짧은 TTL, 프론트 폴링 1~3초 대응)
    list_cache_ttl_s: float = 3.0
    list_cache_max_entries: int = 50
    # stale 폴백을 위해 만료 후에도 잠시 보관 (TTL의 배수)
    list_cache_sweep_multiplier: float = 20.0

    # 캐릭터 상세 캐시 (거의 변하지 않음)
    detail_cache_ttl_s: float = 86400.0
    detail_cache_max_entries: int = 100
    detail_cache_sweep_multiplier: float = 1.0

    cache_sweep_interval_s: float = 30.0

    # 레이트 리밋 (업스트림 호출에만 적용, 캐시 히트는 제외)
    rate_limit_min_interval_s: float = 1.0
    rate_limit_window_s: float = 60.0
    rate_limit_max_requests: int = 20
    rate_limit_prune_interval_s: float = 60.0
    trust_forwarded_for: bool = True

    # 대기열
    queue_max_size: int = 50
    queue_courtesy_delay_s: float = 0.05
    queue_denied_wait_s: float = 0.5
    queue_wait_timeout_s: float = 10.0

    # 재시도: 시도마다 더 긴 타임아웃 (빠르게 포기 → 점점 인내)
    retry_max_attempts: int = 4
    retry_timeout_schedule_s: tuple[float, ...] = (12.0, 18.0, 28.0, 36.0)
    retry_backoff_s: float = 1.0

    # Playwright 브라우저
    browser_prewarm: bool = True
    browser_launch_attempts: int = 3
    browser_launch_timeout_s: float = 25.0

    # 신규 사망 알림 웹훅 (빈 값이면 비활성화)
    notify_webhook_url: str = ""
    notify_timeout_s: float = 5.0

    # API
    api_title: str = "Latest Deaths Feed"
    api_version: str = "1.0.0"
    api_description: str = "Cache-First 전략으로 최근 사망 목록을 제공합니다."
    api_feed_timeout_s: float = 60.0

    # 로깅
    log_level: str = "INFO"

    @field_validator(
        "list_cache_ttl_s",
        "detail_cache_ttl_s",
        "cache_sweep_interval_s",
        "rate_limit_window_s",
        "rate_limit_prune_interval_s",
        "detail_timeout_s",
        "queue_wait_timeout_s",
        "browser_launch_timeout_s",
        "api_feed_timeout_s",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @field_validator(
        "feed_max_records",
        "detail_concurrency",
        "list_cache_max_entries",
        "detail_cache_max_entries",
        "rate_limit_max_requests",
        "queue_max_size",
        "retry_max_attempts",
        "browser_launch_attempts",
    )
    @classmethod
    def validate_positive_counts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("counts must be positive")
        return v

    @field_validator("detail_enrich_count")
    @classmethod
    def validate_detail_enrich_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("detail_enrich_count must be >= 0")
        return v

    @field_validator("list_cache_sweep_multiplier", "detail_cache_sweep_multiplier")
    @classmethod
    def validate_sweep_multiplier(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError("sweep multiplier must be >= 1.0")
        return v

    @field_validator("retry_timeout_schedule_s")
    @classmethod
    def validate_timeout_schedule(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if not v:
            raise ValueError("retry_timeout_schedule_s must not be empty")
        if v[0] <= 0:
            raise ValueError("retry timeouts must be positive")
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("retry_timeout_schedule_s must be strictly increasing")
        return v

    @field_validator("upstream_base_url")
    @classmethod
    def validate_upstream_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("upstream_base_url must start with http:// or https://")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
