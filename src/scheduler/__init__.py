"""주기 작업 스케줄러."""

from .maintenance import MaintenanceScheduler

__all__ = ["MaintenanceScheduler"]
