"""Latest deaths feed service."""

__version__ = "1.0.0"
