"""Periodic monitoring cycle scheduler."""

from src.scheduler.scheduler import CycleCallback, MonitorScheduler

__all__ = [
    "CycleCallback",
    "MonitorScheduler",
]
