"""Periodic execution of the pipeline jobs.

Every job (news fetch, ingestion, validation) has its own interval and its own
lock. A trigger that arrives while the same job is still running is skipped;
different jobs run on separate threads and may overlap, since they touch
disjoint records.
"""

import threading
import time
from typing import Callable, Dict, Optional

import schedule

from signalcheck.core.logger import logger


class PipelineScheduler:
    """``schedule``-driven loop dispatching each job on its own thread.

    Args:
        scheduler: ``schedule.Scheduler`` to register on (a private one by default).
    """

    def __init__(self, scheduler: Optional[schedule.Scheduler] = None) -> None:
        self.scheduler = scheduler or schedule.Scheduler()
        self.jobs: Dict[str, Callable[[], object]] = {}
        self.intervals: Dict[str, float] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._stopped = threading.Event()

    def add_job(self, name: str, func: Callable[[], object], interval_minutes: float) -> None:
        if name in self.jobs:
            raise ValueError(f"job {name!r} already registered")
        self.jobs[name] = func
        self.intervals[name] = interval_minutes
        self._locks[name] = threading.Lock()
        self.scheduler.every(interval_minutes).minutes.do(self.dispatch, name)
        logger.info(f"PipelineScheduler: '{name}' every {interval_minutes} min")

    def run_exclusive(self, name: str) -> bool:
        """
        Run job ``name`` in the calling thread unless it is already running.

        Returns:
            bool: True if the job ran, False if the trigger was skipped.
        """
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            logger.warning(f"PipelineScheduler: previous '{name}' run still in progress, skipping trigger")
            return False

        start = time.time()
        try:
            logger.info(f"PipelineScheduler: ==> '{name}' started")
            self.jobs[name]()
        except Exception as exc:
            logger.error(f"PipelineScheduler: '{name}' run failed: {exc}", exc_info=True)
        finally:
            lock.release()
            logger.info(f"PipelineScheduler: '{name}' finished in {time.time() - start:.1f}s")
        return True

    def dispatch(self, name: str) -> threading.Thread:
        """Start ``name`` on a worker thread and return it."""
        thread = threading.Thread(target=self.run_exclusive, args=(name,), name=name, daemon=True)
        self._threads[name] = thread
        thread.start()
        return thread

    def start(self, run_immediately: bool = True, poll_seconds: float = 1) -> None:
        """Block running pending jobs until :meth:`stop` or Ctrl+C."""
        logger.info(f"PipelineScheduler: starting {len(self.jobs)} jobs, press Ctrl+C to stop")
        if run_immediately:
            for name in self.jobs:
                self.dispatch(name)

        try:
            while not self._stopped.is_set():
                self.scheduler.run_pending()
                self._stopped.wait(poll_seconds)
        except KeyboardInterrupt:
            logger.info("PipelineScheduler: interrupted by user")
        finally:
            self.stop()

    def stop(self, join_timeout: float = 5) -> None:
        self._stopped.set()
        self.scheduler.clear()
        for thread in self._threads.values():
            if thread.is_alive():
                thread.join(join_timeout)
        logger.info("PipelineScheduler: stopped")
