"""Metrics accounting and report building."""

from .accumulator import MetricsWindow, WindowSnapshot
from .anonymize import InvalidAddressError, anonymize_ip
from .persistence import PerUserMetrics, StateFormatError, deserialize_window, serialize_window
from .report import (
    SANCTIONED_COUNTRIES,
    HourlyServerMetricsReport,
    HourlyUserMetricsReport,
    get_hourly_server_metrics_report,
    without_sanctioned_reports,
)

__all__ = [
    "HourlyServerMetricsReport",
    "HourlyUserMetricsReport",
    "InvalidAddressError",
    "MetricsWindow",
    "PerUserMetrics",
    "SANCTIONED_COUNTRIES",
    "StateFormatError",
    "WindowSnapshot",
    "anonymize_ip",
    "deserialize_window",
    "get_hourly_server_metrics_report",
    "serialize_window",
    "without_sanctioned_reports",
]
