"""Periodic triggers for the refresh and absence-sweep loops.

Two implementations of the same small interface:
    AsyncioTicker - real time, one asyncio task per trigger
    ManualTicker  - simulated time, advanced explicitly (tests, replays)

Triggers do not prevent overlap and are not coordinated with each other.
Every handle must be cancelled by its owner when it shuts down.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from roomwatch.logging import get_logger

log = get_logger(__name__)

Callback = Callable[[], object]


class TickHandle(Protocol):
    def cancel(self) -> None: ...


class Ticker(Protocol):
    def now(self) -> datetime: ...

    def every(
        self, interval_seconds: float, callback: Callback, *, immediate: bool = True
    ) -> TickHandle: ...


def _run_callback(callback: Callback) -> None:
    # A failing tick is reported; the trigger keeps its schedule
    try:
        callback()
    except Exception:
        log.exception("tick_failed", callback=getattr(callback, "__name__", repr(callback)))


class _TaskHandle:
    def __init__(self, task: "asyncio.Task[None]") -> None:
        self.task = task

    def cancel(self) -> None:
        self.task.cancel()


class AsyncioTicker:
    """Wall-clock ticker for a running asyncio event loop."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def every(
        self, interval_seconds: float, callback: Callback, *, immediate: bool = True
    ) -> _TaskHandle:
        """Call callback every interval_seconds until the handle is cancelled.

        Must be called from inside a running event loop.
        """
        task = asyncio.get_running_loop().create_task(
            self._loop(interval_seconds, callback, immediate)
        )
        log.debug("ticker_started", interval=interval_seconds)
        return _TaskHandle(task)

    async def _loop(
        self, interval_seconds: float, callback: Callback, immediate: bool
    ) -> None:
        if immediate:
            _run_callback(callback)
        while True:
            await asyncio.sleep(interval_seconds)
            _run_callback(callback)


@dataclass
class _ManualJob:
    interval: timedelta
    callback: Callback
    next_due: datetime
    order: int
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTicker:
    """Simulated-time ticker; nothing happens until advance() is called."""

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._jobs: list[_ManualJob] = []

    def now(self) -> datetime:
        return self._now

    def every(
        self, interval_seconds: float, callback: Callback, *, immediate: bool = True
    ) -> _ManualJob:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        interval = timedelta(seconds=interval_seconds)
        job = _ManualJob(
            interval=interval,
            callback=callback,
            next_due=self._now + interval,
            order=len(self._jobs),
        )
        self._jobs.append(job)
        if immediate:
            _run_callback(callback)
        return job

    def advance(self, seconds: float) -> int:
        """Move simulated time forward, firing every due callback in time order.

        Returns:
            Number of callbacks fired.
        """
        target = self._now + timedelta(seconds=seconds)
        fired = 0
        while True:
            due = [j for j in self._jobs if not j.cancelled and j.next_due <= target]
            if not due:
                break
            job = min(due, key=lambda j: (j.next_due, j.order))
            self._now = job.next_due
            job.next_due += job.interval
            _run_callback(job.callback)
            fired += 1
        self._now = target
        self._jobs = [j for j in self._jobs if not j.cancelled]
        return fired

    @property
    def active_jobs(self) -> int:
        return sum(1 for j in self._jobs if not j.cancelled)
