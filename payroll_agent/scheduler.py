"""Independent periodic triggers, one daemon thread each."""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def seconds_until_midnight(now: Optional[datetime] = None) -> float:
    """Seconds from `now` (local time by default) until the next local midnight."""
    current = now or datetime.now()
    midnight = (current + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (midnight - current).total_seconds()


class PeriodicTask:
    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], object],
        *,
        initial_delay: float = 0.0,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.initial_delay = max(float(initial_delay), 0.0)
        self._stop = stop_event or threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    def run_once(self) -> None:
        """Fire the callback once; failures are logged and never reach the loop."""
        self.runs += 1
        try:
            self.func()
        except Exception as exc:
            logger.exception("Unexpected error in %s tick: %s", self.name, exc)

    def run_forever(self) -> None:
        """Blocking loop that fires the callback every configured interval."""
        if self._stop.wait(self.initial_delay):
            return
        logger.info("Starting %s loop with interval %s seconds", self.name, self.interval_seconds)
        while not self._stop.is_set():
            start = time.time()
            self.run_once()
            elapsed = time.time() - start
            sleep_for = max(self.interval_seconds - elapsed, 0)
            if self._stop.wait(sleep_for):
                break
        logger.info("%s loop stopped", self.name)

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(target=self.run_forever, name=self.name, daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class Scheduler:
    def __init__(self) -> None:
        self._stop = threading.Event()
        self.tasks: List[PeriodicTask] = []

    def every(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], object],
        *,
        initial_delay: float = 0.0,
    ) -> PeriodicTask:
        task = PeriodicTask(
            name,
            interval_seconds,
            func,
            initial_delay=initial_delay,
            stop_event=self._stop,
        )
        self.tasks.append(task)
        return task

    def daily_at_midnight(self, name: str, func: Callable[[], object]) -> PeriodicTask:
        return self.every(name, SECONDS_PER_DAY, func, initial_delay=seconds_until_midnight())

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        for task in self.tasks:
            task.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        for task in self.tasks:
            task.join(timeout)

    def wait(self) -> None:
        """Block the calling thread until `stop()` is called."""
        while not self._stop.wait(1.0):
            pass
