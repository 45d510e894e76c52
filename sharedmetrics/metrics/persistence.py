"""Serialization of the accounting window to its persisted JSON layout.

The persisted document looks like::

    {"startTimestamp": 1502896650353,
     "lastHourUserStatsObj": {"0": {"bytesTransferred": 100,
                                    "anonymizedIpAddresses": ["5.2.79.0"]}}}

Field names are shared with deployed servers and must not change.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Set, Tuple

START_TIMESTAMP_KEY = "startTimestamp"
USER_STATS_KEY = "lastHourUserStatsObj"
BYTES_TRANSFERRED_KEY = "bytesTransferred"
ANONYMIZED_IPS_KEY = "anonymizedIpAddresses"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
_MAX_TIMESTAMP_MS = (datetime.max.replace(tzinfo=timezone.utc) - _EPOCH) // _ONE_MS


class StateFormatError(ValueError):
    """Raised when persisted state does not match the expected layout."""


@dataclass(slots=True)
class PerUserMetrics:
    """Traffic accounted to a single access key during the current window."""

    bytes_transferred: int = 0
    anonymized_ip_addresses: Set[str] = field(default_factory=set)

    def copy(self) -> "PerUserMetrics":
        return PerUserMetrics(self.bytes_transferred, set(self.anonymized_ip_addresses))


def datetime_to_ms(value: datetime) -> int:
    """Milliseconds since the epoch, truncated."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _ONE_MS


def ms_to_datetime(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def serialize_window(
    start_datetime: datetime, user_metrics: Mapping[str, PerUserMetrics]
) -> Dict[str, Any]:
    stats: Dict[str, Any] = {}
    for user_id, metrics in user_metrics.items():
        stats[user_id] = {
            BYTES_TRANSFERRED_KEY: metrics.bytes_transferred,
            ANONYMIZED_IPS_KEY: sorted(metrics.anonymized_ip_addresses),
        }
    return {
        START_TIMESTAMP_KEY: datetime_to_ms(start_datetime),
        USER_STATS_KEY: stats,
    }


def _finite_number(value: Any, message: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StateFormatError(message)
    if isinstance(value, float) and not math.isfinite(value):
        raise StateFormatError(message)
    return value


def deserialize_window(
    data: Mapping[str, Any]
) -> Tuple[Optional[datetime], Dict[str, PerUserMetrics]]:
    """Inverse of :func:`serialize_window`.

    Both keys are optional: a document written before any traffic was seen
    has neither.  A missing ``startTimestamp`` is returned as ``None`` so the
    caller can pick the current time.
    """

    if not isinstance(data, Mapping):
        raise StateFormatError("state must be a JSON object")

    start: Optional[datetime] = None
    raw_start = data.get(START_TIMESTAMP_KEY)
    if raw_start is not None:
        raw_start = _finite_number(raw_start, f"{START_TIMESTAMP_KEY} must be a number")
        if raw_start > _MAX_TIMESTAMP_MS:
            raise StateFormatError(f"{START_TIMESTAMP_KEY} is out of range")
        if raw_start > 0:
            start = ms_to_datetime(int(raw_start))

    user_metrics: Dict[str, PerUserMetrics] = {}
    raw_stats = data.get(USER_STATS_KEY) or {}
    if not isinstance(raw_stats, Mapping):
        raise StateFormatError(f"{USER_STATS_KEY} must be an object")
    for user_id, entry in raw_stats.items():
        if not isinstance(entry, Mapping):
            raise StateFormatError(f"stats for user {user_id!r} must be an object")
        message = f"invalid {BYTES_TRANSFERRED_KEY} for user {user_id!r}"
        num_bytes = _finite_number(entry.get(BYTES_TRANSFERRED_KEY, 0), message)
        if num_bytes < 0:
            raise StateFormatError(message)
        addresses = entry.get(ANONYMIZED_IPS_KEY, [])
        if not isinstance(addresses, list) or not all(isinstance(ip, str) for ip in addresses):
            raise StateFormatError(f"invalid {ANONYMIZED_IPS_KEY} for user {user_id!r}")
        user_metrics[str(user_id)] = PerUserMetrics(int(num_bytes), set(addresses))
    return start, user_metrics
