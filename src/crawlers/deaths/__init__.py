"""Latest deaths (list/detail) extraction."""

from .parsing import DeathsExtractor, build_feed_url, parse_cause, parse_guild

__all__ = ["DeathsExtractor", "build_feed_url", "parse_cause", "parse_guild"]
