"""Wall-clock aligned periodic scheduling on top of ``asyncio``."""
from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sharedmetrics.metrics.accumulator import utc_now
from sharedmetrics.metrics.persistence import datetime_to_ms

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[None]]


class SchedulerState(enum.Enum):
    STOPPED = "stopped"
    WAITING_FOR_BOUNDARY = "waiting_for_boundary"
    PERIODIC = "periodic"


def seconds_until_next_boundary(now: datetime, interval: timedelta = timedelta(hours=1)) -> float:
    """Seconds from ``now`` to the next multiple of ``interval`` since the epoch.

    Exactly on a boundary the answer is a full interval, never zero.
    """

    interval_ms = interval // timedelta(milliseconds=1)
    if interval_ms <= 0:
        raise ValueError("interval must be at least one millisecond")
    return (interval_ms - datetime_to_ms(now) % interval_ms) / 1000.0


class HourlyScheduler:
    """Run ``callback`` at every interval boundary until stopped.

    The first run happens at the next wall-clock boundary (top of the hour by
    default).  Later runs are spaced ``interval`` apart on the event loop's
    monotonic clock, counted from that first boundary.  Runs never overlap and
    a run in progress is allowed to finish when the scheduler is stopped.
    """

    def __init__(
        self,
        callback: Task,
        *,
        interval: timedelta = timedelta(hours=1),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if interval.total_seconds() <= 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self._interval = interval
        self._clock = clock or utc_now
        self._state = SchedulerState.STOPPED
        self._task: Optional[asyncio.Task] = None
        self._in_cycle = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Schedule the first run; must be called from a running event loop."""

        if self._task is not None:
            logger.warning("Scheduler already running")
            return
        delay = seconds_until_next_boundary(self._clock(), self._interval)
        logger.debug("Next report cycle in %.3fs", delay)
        self._state = SchedulerState.WAITING_FOR_BOUNDARY
        self._task = asyncio.create_task(self._run(delay))

    async def stop(self) -> None:
        task, self._task = self._task, None
        self._state = SchedulerState.STOPPED
        if task is None:
            return
        if self._in_cycle:
            await task
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    async def _run(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        interval_seconds = self._interval.total_seconds()
        next_tick = loop.time() + delay
        await asyncio.sleep(delay)
        self._state = SchedulerState.PERIODIC
        while True:
            await self._run_cycle()
            if self._state is not SchedulerState.PERIODIC:
                break
            next_tick += interval_seconds
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    async def _run_cycle(self) -> None:
        self._in_cycle = True
        try:
            await self._callback()
        except Exception:
            logger.exception("Scheduled report cycle failed")
        finally:
            self._in_cycle = False


__all__ = ["HourlyScheduler", "SchedulerState", "seconds_until_next_boundary"]
