"""Service orchestration helpers."""

from .scheduler import HourlyScheduler, SchedulerState, seconds_until_next_boundary
from .shared_metrics import SharedMetricsService

__all__ = [
    "HourlyScheduler",
    "SchedulerState",
    "SharedMetricsService",
    "seconds_until_next_boundary",
]
