"""
Per-device task lifecycle: creation, watchdog, stop and restart.

Every device gets one recurring job on the ``JobScheduler`` plus a watchdog
thread. The watchdog cancels and recreates the task when no cycle has
completed within ``scan_interval // 60 + grace`` minutes.

State per device::

    created -> running -> stalled -> restarting -> created
                       -> cancelled
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.shared.utils.logging import device_logger

from ..contracts import CycleReport, DeviceConnection, DeviceStatus, DeviceTask, SupervisorSettings
from ..pipelines import CrawlPipeline
from .cancellation import CancellationToken
from .job_scheduler import JobHandle, JobScheduler
from .state_table import StripedStateTable

logger = logging.getLogger(__name__)

REASON_STALLED = "stalled"
REASON_REPLACED = "replaced"
REASON_STOPPED = "stopped"
REASON_RESTART = "restart"
REASON_SHUTDOWN = "shutdown"


class TaskStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STALLED = "stalled"
    RESTARTING = "restarting"
    CANCELLED = "cancelled"


class TaskRuntimeState:
    """Runtime bookkeeping for the live task of one device."""

    def __init__(self, device: DeviceTask, last_run: datetime, restarts: int = 0) -> None:
        self.device = device
        self.token = CancellationToken()
        self.last_run = last_run
        self.status = TaskStatus.CREATED
        self.restarts = restarts
        self.handle: Optional[JobHandle] = None
        self.watchdog: Optional[threading.Thread] = None
        self.last_report: Optional[CycleReport] = None
        self._lock = threading.Lock()

    def touch(self, when: datetime) -> None:
        with self._lock:
            self.last_run = when

    def elapsed(self, now: datetime):
        with self._lock:
            return now - self.last_run

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            last_run = self.last_run
        report = self.last_report
        return {
            "device_id": self.device.device_id,
            "status": self.status.value,
            "scan_interval": self.device.scan_interval,
            "last_run": last_run.isoformat(),
            "restarts": self.restarts,
            "cancel_reason": self.token.reason,
            "last_report": report.model_dump(mode="json") if report is not None else None,
        }


class TaskSupervisor:
    """Create, watch, stop and restart one recurring crawl job per device."""

    def __init__(
        self,
        pipeline: CrawlPipeline,
        scheduler: Optional[JobScheduler] = None,
        settings: Optional[SupervisorSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.pipeline = pipeline
        self.scheduler = scheduler or JobScheduler()
        self.settings = settings or SupervisorSettings()
        self._clock = clock or datetime.now
        self._sleep = sleep
        self._states: StripedStateTable[str, TaskRuntimeState] = StripedStateTable()
        # One lock per device id, shared by every runtime state of that device
        self._cycle_locks: StripedStateTable[str, threading.Lock] = StripedStateTable()
        self._closed = threading.Event()

    # Public lifecycle

    def start(self, devices: Iterable[DeviceTask]) -> List[str]:
        """
        Create a task for every active device, pausing between creations.

        A device whose creation fails is logged and skipped.

        Returns:
            Ids of the devices that were scheduled
        """
        scheduled: List[str] = []
        pending = list(devices)
        attempted = 0
        for device in pending:
            log = device_logger(logger, device.device_id)
            if device.status is DeviceStatus.DEACTIVATED:
                log.info("Device is deactivated, not scheduling")
                continue
            if attempted and self.settings.stagger_seconds > 0:
                self._sleep(self.settings.stagger_seconds)
            attempted += 1
            try:
                self.add_task(device)
                scheduled.append(device.device_id)
            except Exception as exc:
                log.exception("Failed to create task: %s", exc)

        logger.info("Scheduled %d of %d devices", len(scheduled), len(pending))
        return scheduled

    def add_task(self, device: DeviceTask) -> TaskRuntimeState:
        """Create the device's task, superseding any existing one."""

        return self._create_task(device)

    def stop_task(self, device_id: str) -> bool:
        """
        Cancel a device's task without restarting it.

        Returns:
            False when the device had no live task
        """
        log = device_logger(logger, device_id)
        with self._states.lock_for(device_id):
            state = self._states.get(device_id)
            if state is None:
                log.debug("No active task to stop")
                return False
            if not state.token.cancel(REASON_STOPPED) and state.status is not TaskStatus.RESTARTING:
                log.debug("No active task to stop")
                return False
            # A RESTARTING state is a pending watchdog recreation; this ends it
            state.status = TaskStatus.CANCELLED
        self.scheduler.deregister(device_id, state.handle)
        log.info("Task stopped")
        return True

    def restart_task(self, device: DeviceTask) -> TaskRuntimeState:
        """
        Cancel the device's task, wait until its job is gone, then create it again.

        Behaves like ``add_task`` when the device has no live task.
        """
        log = device_logger(logger, device.device_id)
        state = self._states.get(device.device_id)
        if state is None or state.token.cancelled:
            log.info("No active task, creating one")
            return self.add_task(device)

        state.status = TaskStatus.RESTARTING
        state.token.cancel(REASON_RESTART)
        self.scheduler.deregister(device.device_id, state.handle)

        deadline = time.monotonic() + self.settings.restart_wait_seconds
        while self.scheduler.exists(device.device_id):
            if time.monotonic() >= deadline:
                log.warning(
                    "Job still present after %.0fs, creating the new task anyway",
                    self.settings.restart_wait_seconds,
                )
                break
            self._sleep(self.settings.restart_poll_seconds)

        new_state = self._create_task(device, restarts=state.restarts + 1)
        log.info("Task restarted")
        return new_state

    def run_cycle_now(
        self,
        device_id: str,
        device_address: str,
        host_address: str,
        host_port: int,
        user: str,
        password: str,
    ) -> Optional[CycleReport]:
        """
        Run one crawl cycle for a scheduled device and record its completion.

        This is the payload of every recurring job. It never raises.
        """
        log = device_logger(logger, device_id, host_ip=host_address, device_ip=device_address)
        state = self._states.get(device_id)
        if state is None or state.token.cancelled:
            log.debug("Task is not active, skipping cycle")
            return None

        connection = DeviceConnection(
            device_id=device_id,
            device_address=device_address,
            host_address=host_address,
            host_port=host_port,
            user=user,
            password=password,
        )
        with self._cycle_lock(device_id):
            if state.token.cancelled:
                log.debug("Task was cancelled while waiting for the previous cycle")
                return None
            if state.status is TaskStatus.CREATED:
                state.status = TaskStatus.RUNNING
            try:
                report = self.pipeline.run_cycle(connection, state.token)
            except Exception as exc:
                log.exception("Cycle raised: %s", exc)
                return None
            state.last_report = report
            state.touch(self._clock())
        return report

    def run_once(self, device: DeviceTask) -> CycleReport:
        """Run a cycle immediately, through the live task when there is one."""

        state = self._states.get(device.device_id)
        if state is not None and not state.token.cancelled:
            conn = device.connection
            report = self.run_cycle_now(
                conn.device_id,
                conn.device_address,
                conn.host_address,
                conn.host_port,
                conn.user,
                conn.password,
            )
            if report is not None:
                return report
        with self._cycle_lock(device.device_id):
            return self.pipeline.run_cycle(device.connection)

    def has_task(self, device_id: str) -> bool:
        state = self._states.get(device_id)
        return state is not None and not state.token.cancelled

    def get_state(self, device_id: str) -> Optional[TaskRuntimeState]:
        return self._states.get(device_id)

    def snapshot(self) -> List[Dict[str, Any]]:
        states = sorted(self._states.items(), key=lambda item: item[0])
        return [state.snapshot() for _, state in states]

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """Cancel every task and stop the scheduler."""

        self._closed.set()
        for _, state in self._states.items():
            if state.token.cancel(REASON_SHUTDOWN) or state.status is TaskStatus.RESTARTING:
                state.status = TaskStatus.CANCELLED
        self.scheduler.shutdown(wait=wait, timeout=timeout)
        logger.info("Supervisor shut down")

    # Internals

    def _cycle_lock(self, device_id: str) -> threading.Lock:
        with self._cycle_locks.lock_for(device_id):
            lock = self._cycle_locks.get(device_id)
            if lock is None:
                lock = threading.Lock()
                self._cycle_locks.put(device_id, lock)
            return lock

    def _create_task(
        self,
        device: DeviceTask,
        restarts: int = 0,
        replace: Optional[TaskRuntimeState] = None,
    ) -> Optional[TaskRuntimeState]:
        device_id = device.device_id
        log = device_logger(logger, device_id, host_ip=device.host.address, device_ip=device.device_address)

        with self._states.lock_for(device_id):
            previous = self._states.get(device_id)
            if replace is not None and (previous is not replace or replace.status is not TaskStatus.RESTARTING):
                log.debug("Task was replaced or stopped meanwhile, not recreating")
                return None
            if previous is not None:
                previous.token.cancel(REASON_REPLACED)

            state = TaskRuntimeState(device, last_run=self._clock(), restarts=restarts)
            self._states.put(device_id, state)

            self.scheduler.deregister(device_id)
            conn = device.connection
            payload = functools.partial(
                self.run_cycle_now,
                conn.device_id,
                conn.device_address,
                conn.host_address,
                conn.host_port,
                conn.user,
                conn.password,
            )
            try:
                state.handle = self.scheduler.register_recurring_job(device_id, device.scan_interval, payload)
            except Exception:
                state.token.cancel(REASON_STOPPED)
                if previous is not None:
                    self._states.put(device_id, previous)
                else:
                    self._states.pop(device_id, expected=state)
                raise
            state.watchdog = threading.Thread(
                target=self._watchdog,
                args=(state,),
                name=f"watchdog-{device_id}",
                daemon=True,
            )
            state.watchdog.start()

        log.info(
            "Task created, every %ss, stall timeout %s",
            device.scan_interval,
            device.stall_timeout(self.settings.watchdog_grace_minutes),
        )
        return state

    def _watchdog(self, state: TaskRuntimeState) -> None:
        device = state.device
        log = device_logger(logger, device.device_id, host_ip=device.host.address)
        timeout = device.stall_timeout(self.settings.watchdog_grace_minutes)
        self_triggered = False

        while not state.token.wait(self.settings.watchdog_poll_seconds):
            elapsed = state.elapsed(self._clock())
            if elapsed > timeout:
                state.status = TaskStatus.STALLED
                self_triggered = state.token.cancel(REASON_STALLED)
                log.warning("No completed cycle for %s (limit %s), recycling task", elapsed, timeout)
                break

        self.scheduler.deregister(device.device_id, state.handle)
        if not self_triggered:
            log.debug("Watchdog exiting: %s", state.token.reason)
            return

        state.status = TaskStatus.RESTARTING
        attempts = 0
        while state.status is TaskStatus.RESTARTING:
            attempts += 1
            try:
                self._create_task(device, restarts=state.restarts + 1, replace=state)
                return
            except Exception as exc:
                log.exception("Failed to recreate stalled task (attempt %d): %s", attempts, exc)
            if self._closed.wait(self.settings.watchdog_poll_seconds):
                break
        log.info("Giving up recreating task: %s", state.status.value)
