"""Per-user accounting of the current reporting window."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Optional

from sharedmetrics.metrics.anonymize import anonymize_and_dedupe
from sharedmetrics.metrics.persistence import (
    PerUserMetrics,
    StateFormatError,
    deserialize_window,
    serialize_window,
)
from sharedmetrics.storage import ConfigStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class WindowSnapshot:
    """Immutable copy of the window handed to the report builder."""

    start_datetime: datetime
    end_datetime: datetime
    user_metrics: Mapping[str, PerUserMetrics]


class MetricsWindow:
    """Accumulate bytes and anonymized addresses per access key.

    The window is loaded from ``store`` on construction and written back after
    every mutation, so a restarted process resumes the same accounting period.
    """

    def __init__(self, store: ConfigStore, *, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        start, user_metrics = self._load()
        self._start_datetime = start or self._clock()
        self._user_metrics: Dict[str, PerUserMetrics] = user_metrics

    # ------------------------------------------------------------------
    @property
    def start_datetime(self) -> datetime:
        return self._start_datetime

    def __len__(self) -> int:
        return len(self._user_metrics)

    def is_empty(self) -> bool:
        return not self._user_metrics

    def age_seconds(self) -> float:
        return (self._clock() - self._start_datetime).total_seconds()

    def record_bytes_transferred(
        self, user_id: str, num_bytes: int, ip_addresses: Iterable[str]
    ) -> None:
        """Add ``num_bytes`` and the anonymized ``ip_addresses`` to ``user_id``.

        Malformed addresses are logged and skipped; the byte count and the
        remaining addresses are still recorded.
        """

        anonymized = anonymize_and_dedupe(ip_addresses)
        with self._lock:
            metrics = self._user_metrics.get(user_id)
            if metrics is None:
                metrics = self._user_metrics[user_id] = PerUserMetrics()
            metrics.bytes_transferred += num_bytes
            metrics.anonymized_ip_addresses.update(anonymized)
            self._persist_locked()

    def reset(self) -> None:
        """Drop all accounted traffic and start a new window now."""

        with self._lock:
            self._reset_locked()

    def snapshot(self, end_datetime: Optional[datetime] = None) -> WindowSnapshot:
        with self._lock:
            return self._snapshot_locked(end_datetime or self._clock())

    def rollover(self, end_datetime: Optional[datetime] = None) -> WindowSnapshot:
        """Capture the window ending at ``end_datetime`` and reset it atomically."""

        with self._lock:
            snapshot = self._snapshot_locked(end_datetime or self._clock())
            self._reset_locked()
        return snapshot

    def to_json(self) -> Dict[str, object]:
        with self._lock:
            return serialize_window(self._start_datetime, self._user_metrics)

    # ------------------------------------------------------------------
    def _load(self):
        try:
            return deserialize_window(self._store.data())
        except StateFormatError as exc:
            logger.warning("Ignoring unrecognized persisted metrics state: %s", exc)
            return None, {}

    def _snapshot_locked(self, end_datetime: datetime) -> WindowSnapshot:
        return WindowSnapshot(
            start_datetime=self._start_datetime,
            end_datetime=end_datetime,
            user_metrics={user_id: m.copy() for user_id, m in self._user_metrics.items()},
        )

    def _reset_locked(self) -> None:
        self._user_metrics = {}
        # never moves backwards, even if the wall clock does
        self._start_datetime = max(self._clock(), self._start_datetime)
        self._persist_locked()

    def _persist_locked(self) -> None:
        target = self._store.data()
        target.update(serialize_window(self._start_datetime, self._user_metrics))
        self._store.write()


__all__ = ["MetricsWindow", "WindowSnapshot", "utc_now"]
