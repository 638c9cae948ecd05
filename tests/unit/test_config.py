"""설정 검증 테스트."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.core.config import Settings


def test_defaults():
    config = Settings()

    assert config.feed_max_records == 10
    assert config.detail_enrich_count == 3
    assert config.list_cache_ttl_s == 3.0
    assert config.detail_cache_ttl_s == 86400.0
    assert config.retry_timeout_schedule_s == (12.0, 18.0, 28.0, 36.0)


def test_env_override(monkeypatch):
    monkeypatch.setenv("LIST_CACHE_TTL_S", "5")
    monkeypatch.setenv("RETRY_TIMEOUT_SCHEDULE_S", "[5, 10]")

    config = Settings()

    assert config.list_cache_ttl_s == 5.0
    assert config.retry_timeout_schedule_s == (5.0, 10.0)


@pytest.mark.parametrize(
    "overrides",
    [
        {"list_cache_ttl_s": 0},
        {"feed_max_records": 0},
        {"detail_enrich_count": -1},
        {"list_cache_sweep_multiplier": 0.5},
        {"retry_timeout_schedule_s": (10.0, 10.0)},
        {"upstream_base_url": "ftp://rubinot.com.br"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)
