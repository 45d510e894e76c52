"""High-level orchestration of the opt-in hourly usage report."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Set

import httpx

from sharedmetrics.collectors.ip_location import IpLocationService
from sharedmetrics.metrics.accumulator import MetricsWindow, utc_now
from sharedmetrics.metrics.report import (
    HourlyServerMetricsReport,
    get_hourly_server_metrics_report,
)
from sharedmetrics.publishers.http_report import (
    DEFAULT_MAX_REDIRECTS,
    post_hourly_server_metrics_report,
)
from sharedmetrics.services.scheduler import HourlyScheduler
from sharedmetrics.storage import ConfigStore

logger = logging.getLogger(__name__)

SERVER_ID_KEY = "serverId"
METRICS_ENABLED_KEY = "metricsEnabled"

ONE_HOUR = timedelta(hours=1)


class SharedMetricsService:
    """Couples the accounting window, the report pipeline and the scheduler.

    ``server_config`` is read on every cycle, so a change to ``metricsEnabled``
    or ``serverId`` made through the same store applies from the next report.
    """

    def __init__(
        self,
        window: MetricsWindow,
        server_config: ConfigStore,
        metrics_url: str,
        ip_location: IpLocationService,
        *,
        interval: timedelta = ONE_HOUR,
        clock: Optional[Callable[[], datetime]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        http_timeout: float = 30.0,
    ) -> None:
        self._window = window
        self._server_config = server_config
        self._metrics_url = metrics_url
        self._ip_location = ip_location
        self._interval = interval
        self._clock = clock or utc_now
        self._http_client = http_client
        self._max_redirects = max_redirects
        self._http_timeout = http_timeout
        self._pending_posts: Set[asyncio.Task] = set()
        self._scheduler = HourlyScheduler(
            self.generate_hourly_report, interval=interval, clock=self._clock
        )

    # ------------------------------------------------------------------
    @property
    def window(self) -> MetricsWindow:
        return self._window

    @property
    def scheduler(self) -> HourlyScheduler:
        return self._scheduler

    @property
    def metrics_enabled(self) -> bool:
        return bool(self._server_config.data().get(METRICS_ENABLED_KEY, False))

    @property
    def server_id(self) -> str:
        return str(self._server_config.data().get(SERVER_ID_KEY, ""))

    def record_bytes_transferred(
        self, user_id: str, num_bytes: int, ip_addresses: Iterable[str]
    ) -> None:
        self._window.record_bytes_transferred(user_id, num_bytes, ip_addresses)

    async def start(self) -> None:
        """Catch up on an overdue report, then follow the hourly schedule."""

        if self._window.age_seconds() >= self._interval.total_seconds():
            logger.info("Metrics window started at %s is overdue", self._window.start_datetime)
            await self.generate_hourly_report()
        self._scheduler.start()

    async def stop(self) -> None:
        await self._scheduler.stop()
        await self.wait_for_posts()

    async def build_report(self) -> Optional[HourlyServerMetricsReport]:
        """Build a report from the current window without resetting it."""

        snapshot = self._window.snapshot(self._clock())
        return await get_hourly_server_metrics_report(
            self.server_id,
            snapshot.start_datetime,
            snapshot.end_datetime,
            snapshot.user_metrics,
            self._ip_location,
        )

    async def generate_hourly_report(self) -> Optional[HourlyServerMetricsReport]:
        """Run one report cycle.

        An empty window is left untouched.  Otherwise the window is captured
        and reset before any lookup happens, so traffic recorded while the
        report is being built belongs to the next window.  The reset happens
        even when the report is filtered down to nothing or fails to post.
        The POST runs as a detached task; :meth:`wait_for_posts` (and
        :meth:`stop`) wait for it.
        """

        if self._window.is_empty():
            logger.debug("No connection metrics to report")
            return None

        snapshot = self._window.rollover(self._clock())
        if not self.metrics_enabled:
            logger.debug("Metrics sharing disabled, discarding window")
            return None

        report = await get_hourly_server_metrics_report(
            self.server_id,
            snapshot.start_datetime,
            snapshot.end_datetime,
            snapshot.user_metrics,
            self._ip_location,
        )
        if report is None:
            logger.info("Nothing left to report after filtering")
            return None
        self._post_detached(report)
        return report

    async def wait_for_posts(self) -> None:
        """Wait until every report handed to the transport has been sent or dropped."""

        while self._pending_posts:
            results = await asyncio.gather(*list(self._pending_posts), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Unexpected error posting metrics: %r", result)

    # ------------------------------------------------------------------
    def _post_detached(self, report: HourlyServerMetricsReport) -> None:
        task = asyncio.create_task(
            post_hourly_server_metrics_report(
                report,
                self._metrics_url,
                client=self._http_client,
                max_redirects=self._max_redirects,
                timeout=self._http_timeout,
            )
        )
        self._pending_posts.add(task)
        task.add_done_callback(self._pending_posts.discard)


__all__ = ["METRICS_ENABLED_KEY", "SERVER_ID_KEY", "SharedMetricsService"]
