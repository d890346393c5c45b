"""Periodic background job scheduling.

A Scheduler owns its jobs and its worker thread; nothing is module-global.
Time comes from an injected clock so tests can step through ticks without
sleeping: move a fake clock forward and call run_pending().
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now()


@dataclass
class Job:
    name: str
    interval: timedelta
    func: Callable[[], object]
    next_run: datetime | None = None  # None: run on the next pass
    last_error: str | None = None
    runs: int = 0

    def is_due(self, now: datetime) -> bool:
        return self.next_run is None or self.next_run <= now


class Scheduler:
    """Runs registered jobs at fixed intervals on a background thread."""

    def __init__(self, clock: Clock | None = None, poll_seconds: float = 1.0) -> None:
        self._clock = clock or SystemClock()
        self._poll_seconds = poll_seconds
        self._jobs: list[Job] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def every(self, seconds: float, name: str, func: Callable[[], object]) -> Job:
        """Register func to run every `seconds`, starting on the next pass."""
        if seconds <= 0:
            raise ValueError(f"Interval for job {name!r} must be positive")
        job = Job(name=name, interval=timedelta(seconds=seconds), func=func)
        self._jobs.append(job)
        return job

    def run_pending(self) -> list[str]:
        """Run every due job once. Returns the names of the jobs that ran.

        A job that raises is logged and rescheduled like any other.
        """
        ran: list[str] = []
        for job in self._jobs:
            now = self._clock.now()
            if not job.is_due(now):
                continue
            try:
                job.func()
                job.last_error = None
            except Exception as e:
                job.last_error = str(e)
                logger.exception(f"Scheduled job {job.name!r} failed")
            job.runs += 1
            job.next_run = now + job.interval
            ran.append(job.name)
        return ran

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="ideabox-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started with jobs: {[j.name for j in self._jobs]}")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread still running after stop timeout")
                return
            self._thread = None
        logger.info("Scheduler stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stop() is called. Returns True if stopped."""
        return self._stop.wait(timeout)

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(self._poll_seconds)
