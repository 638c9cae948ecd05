"""API routes package."""

from .feed_routes import router as feed_router, get_orchestrator
from .health_routes import router as health_router

__all__ = ["feed_router", "health_router", "get_orchestrator"]
