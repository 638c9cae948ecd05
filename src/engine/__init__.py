"""Engine Layer - Core Orchestration and Pipeline Management

This module provides the core engine layer for the feed service, implementing:
- FeedOrchestrator: Main entry point for feed resolution
- TTLCache: Per-entry TTL cache with size bound (list + detail caches)
- RateLimiter / RequestQueue: Admission control for upstream fetches
- RetryPolicy: Progressive-timeout retries with stale fallback
- DetailEnricher: Bounded-parallel detail enrichment
- FeedResult: Standardized result format
"""

from .enrichment import DetailEnricher
from .orchestrator import FeedOrchestrator, build_orchestrator
from .rate_limiter import RateLimiter, RateRecord
from .request_queue import RequestQueue
from .result import FeedResult, FeedStatus
from .retry import RetryOutcome, RetryPolicy
from .ttl_cache import CacheEntry, TTLCache

__all__ = [
    "FeedOrchestrator",
    "build_orchestrator",
    "DetailEnricher",
    "RateLimiter",
    "RateRecord",
    "RequestQueue",
    "FeedResult",
    "FeedStatus",
    "RetryPolicy",
    "RetryOutcome",
    "TTLCache",
    "CacheEntry",
]
