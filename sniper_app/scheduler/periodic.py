"""
Periodic task scheduling on background threads.

Each task runs on its own thread and sleeps on a stop event between runs, so
``stop`` interrupts the wait immediately. A run that is still in progress
when the next one is due (for example when invoked manually) is skipped,
never overlapped.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from ..utils.time import format_time, utc_now

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Runs ``action`` every ``interval`` seconds until stopped."""

    def __init__(self, name: str, interval: float, action: Callable[[], Any],
                 initial_delay: float = 0.0):
        self.name = name
        self.interval = interval
        self.action = action
        self.initial_delay = initial_delay

        self._stop_event = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

        self.runs = 0
        self.failures = 0
        self.skipped = 0
        self.last_run_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_alive:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"task-{self.name}", daemon=True)
        self._thread.start()
        logger.info("Task started", task=self.name, interval=self.interval)

    def _loop(self) -> None:
        if self._stop_event.wait(self.initial_delay):
            return
        while not self._stop_event.is_set():
            self.run_once()
            if self._stop_event.wait(self.interval):
                break

    def run_once(self) -> bool:
        """
        Execute the action unless a run is already in progress.

        Returns:
            False when the run was skipped
        """
        if not self._run_lock.acquire(blocking=False):
            self.skipped += 1
            logger.warning("Task still running, skipping", task=self.name)
            return False

        try:
            self.action()
            self.runs += 1
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.exception("Task run failed", task=self.name)
        finally:
            self.last_run_at = utc_now()
            self._run_lock.release()
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the task to stop and wait for an in-flight run to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.info("Task stopped", task=self.name)

    def get_stats(self) -> dict[str, Any]:
        return {
            "interval": self.interval,
            "running": self.is_alive,
            "runs": self.runs,
            "failures": self.failures,
            "skipped": self.skipped,
            "last_run_at": format_time(self.last_run_at),
            "last_error": self.last_error,
        }


class Scheduler:
    """Owns a set of named periodic tasks."""

    def __init__(self):
        self._tasks: dict[str, PeriodicTask] = {}

    def add(self, name: str, interval: float, action: Callable[[], Any],
            initial_delay: float = 0.0) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task already registered: {name}")
        task = PeriodicTask(name, interval, action, initial_delay=initial_delay)
        self._tasks[name] = task
        return task

    def get(self, name: str) -> Optional[PeriodicTask]:
        return self._tasks.get(name)

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        for task in self._tasks.values():
            task._stop_event.set()
        for task in self._tasks.values():
            task.stop(timeout)

    def get_stats(self) -> dict[str, Any]:
        return {name: task.get_stats() for name, task in self._tasks.items()}
