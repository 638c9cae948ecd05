"""API 엔드포인트 패키지 - export only."""

from .routes import feed_router, health_router, get_orchestrator

__all__ = ["feed_router", "health_router", "get_orchestrator"]
