"""부가 서비스 - export only."""

from .death_notifier import DeathNotifier

__all__ = ["DeathNotifier"]
