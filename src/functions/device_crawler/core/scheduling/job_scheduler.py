"""
Thread-per-job recurring scheduler.

Each registered job gets a daemon worker that runs its payload immediately
and then at a fixed rate. Runs of one job never overlap: when a run takes
longer than the interval the missed fire times are skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class JobHandle:
    """Registration of one recurring job."""

    def __init__(self, job_id: str, interval_seconds: float) -> None:
        self.job_id = job_id
        self.interval_seconds = interval_seconds
        self.runs = 0
        self.skipped_fires = 0
        self._stop = threading.Event()
        self._running = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def running(self) -> bool:
        """True while a payload run is in flight."""
        return self._running.is_set()

    @property
    def alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def __repr__(self) -> str:
        return f"JobHandle(job_id={self.job_id!r}, interval={self.interval_seconds}, runs={self.runs})"


class JobScheduler:
    """Register, query and remove recurring jobs keyed by id."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: Dict[str, JobHandle] = {}
        self._draining: Dict[str, List[JobHandle]] = {}

    def register_recurring_job(
        self,
        job_id: str,
        interval_seconds: float,
        payload: Callable[[], object],
    ) -> JobHandle:
        """
        Start a recurring job, replacing any job registered under the same id.

        Args:
            job_id: Job identifier (the device id)
            interval_seconds: Seconds between fire times
            payload: Callable run on every fire; exceptions are logged

        Returns:
            JobHandle for the new registration
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        handle = JobHandle(job_id, interval_seconds)
        with self._lock:
            previous = self._jobs.pop(job_id, None)
            if previous is not None:
                self._retire(previous)
            self._jobs[job_id] = handle

        handle.thread = threading.Thread(
            target=self._run,
            args=(handle, payload),
            name=f"job-{job_id}",
            daemon=True,
        )
        handle.thread.start()
        logger.debug("Registered job %s every %ss", job_id, interval_seconds)
        return handle

    def exists(self, job_id: str) -> bool:
        """True while the job is registered or a removed worker is still finishing a run."""

        with self._lock:
            if job_id in self._jobs:
                return True
            workers = [handle for handle in self._draining.get(job_id, []) if handle.alive]
            if workers:
                self._draining[job_id] = workers
                return True
            self._draining.pop(job_id, None)
            return False

    def deregister(self, job_id: str, handle: Optional[JobHandle] = None) -> bool:
        """
        Stop a job. Idempotent.

        Args:
            job_id: Job identifier
            handle: When given, only this registration is removed; a newer
                registration under the same id is left untouched

        Returns:
            True if a registration was removed
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or (handle is not None and current is not handle):
                if handle is not None:
                    handle.stop()
                return False
            del self._jobs[job_id]
            self._retire(current)
        logger.debug("Deregistered job %s", job_id)
        return True

    def job_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        with self._lock:
            handles = list(self._jobs.values())
            for handle in handles:
                self._retire(handle)
            self._jobs.clear()
        if wait:
            for handle in handles:
                if handle.thread is not None:
                    handle.thread.join(timeout)

    def _retire(self, handle: JobHandle) -> None:
        handle.stop()
        if handle.alive:
            self._draining.setdefault(handle.job_id, []).append(handle)

    def _run(self, handle: JobHandle, payload: Callable[[], object]) -> None:
        interval = handle.interval_seconds
        next_fire = self._clock()
        while not handle.stopped:
            handle._running.set()
            try:
                payload()
            except Exception:
                logger.exception("Job %s raised", handle.job_id)
            finally:
                handle._running.clear()
                handle.runs += 1

            next_fire += interval
            now = self._clock()
            if next_fire < now:
                missed = int((now - next_fire) // interval) + 1
                handle.skipped_fires += missed
                next_fire += missed * interval
                logger.debug("Job %s overran its interval, skipped %d fires", handle.job_id, missed)
            if handle._stop.wait(max(0.0, next_fire - now)):
                break
        logger.debug("Job %s worker exiting after %d runs", handle.job_id, handle.runs)
