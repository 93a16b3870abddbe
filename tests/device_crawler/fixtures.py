"""
Test data and fakes for the device crawler tests.

HTML mirrors what the instruments serve: a listing page whose data rows link
to detail pages, and detail pages with a header row followed by data rows.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Union

from src.functions.device_crawler.core.contracts import (
    CycleReport,
    DailyRecord,
    DetailRecord,
    DeviceConnection,
    DeviceTask,
)
from src.functions.device_crawler.core.transport import CommandResult

DEVICE_ID = "08da9248-bb5d-4132-84b2-c9fadb24e266"
DEVICE_ADDRESS = "192.168.10.100"
HOST_ADDRESS = "192.168.1.102"

LISTING_HTML = """
<html><body>
<table>
  <tr><th>File</th><th>Date</th><th>Mode</th><th>Item</th></tr>
  <tr>
    <td><a href="./detail.cgi?id=1">0001</a></td>
    <td>22/08/03 15:09</td>
    <td>Auto</td>
    <td>Fe</td>
  </tr>
  <tr>
    <td><a href="./detail.cgi?id=2">0002</a></td>
    <td>22/08/05 09:30</td>
    <td>Manual</td>
    <td>Cu</td>
  </tr>
</table>
</body></html>
"""

DETAIL_HTML = """
<table>
  <tr><td>No.</td><td>Kind</td><td>ID</td><td>%</td></tr>
  <tr><td>1</td><td>A</td><td>ID&nbsp;01</td><td>12.5</td></tr>
  <tr><td>2</td><td>B</td><td>02</td><td>30.0</td></tr>
  <tr><td>3</td><td>C</td><td>03</td><td>57.5</td></tr>
</table>
"""

# Reference time between the two listing rows
REFERENCE_TIME = datetime(2022, 8, 4, 12, 0)
FIRST_ROW_TIME = datetime(2022, 8, 3, 15, 9)
SECOND_ROW_TIME = datetime(2022, 8, 5, 9, 30)


def make_connection(device_id: str = DEVICE_ID) -> DeviceConnection:
    return DeviceConnection(
        device_id=device_id,
        device_address=DEVICE_ADDRESS,
        host_address=HOST_ADDRESS,
        host_port=22,
        user="admin",
        password="secret",
    )


def make_device(device_id: str = DEVICE_ID, scan_interval: int = 600, status: str = "InUse") -> DeviceTask:
    return DeviceTask(
        device_id=device_id,
        device_address=DEVICE_ADDRESS,
        host={"address": HOST_ADDRESS, "port": 22, "user": "admin", "password": "secret"},
        scan_interval=scan_interval,
        description="desc",
        status=status,
    )


def ok(output: str) -> CommandResult:
    return CommandResult(command="", exit_status=0, output=output)


class FakeExecutor:
    """Returns canned results for commands containing a given fragment."""

    def __init__(self, responses: Dict[str, Union[CommandResult, Exception]]):
        self.responses = responses
        self.commands: List[str] = []
        self.timeouts: List[float] = []

    def run_command(self, host, port, user, password, command, timeout):
        self.commands.append(command)
        self.timeouts.append(timeout)
        for fragment, response in self.responses.items():
            if fragment in command:
                if isinstance(response, Exception):
                    raise response
                return response
        return CommandResult(command=command, exit_status=8, error="404 Not Found")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeHandle:
    def __init__(self, job_id: str):
        self.job_id = job_id


class FakeScheduler:
    """Records registrations instead of starting worker threads."""

    def __init__(self, fail_for: Optional[set] = None, draining_polls: int = 0):
        self.jobs: Dict[str, FakeHandle] = {}
        self.payloads: Dict[str, object] = {}
        self.registered: List[str] = []
        self.deregistered: List[str] = []
        self.fail_for = fail_for or set()
        self.draining_polls = draining_polls
        self._drain_left: Dict[str, int] = {}
        self.shut_down = False
        self.failed_attempts = 0

    def register_recurring_job(self, job_id, interval_seconds, payload):
        if job_id in self.fail_for:
            self.failed_attempts += 1
            raise RuntimeError(f"cannot schedule {job_id}")
        handle = FakeHandle(job_id)
        self.jobs[job_id] = handle
        self.payloads[job_id] = payload
        self.registered.append(job_id)
        return handle

    def exists(self, job_id):
        if job_id in self.jobs:
            return True
        left = self._drain_left.get(job_id, 0)
        if left > 0:
            self._drain_left[job_id] = left - 1
            return True
        return False

    def deregister(self, job_id, handle=None):
        current = self.jobs.get(job_id)
        if current is None or (handle is not None and current is not handle):
            return False
        del self.jobs[job_id]
        self.deregistered.append(job_id)
        self._drain_left[job_id] = self.draining_polls
        return True

    def shutdown(self, wait=False, timeout=None):
        self.jobs.clear()
        self.shut_down = True


class FakePipeline:
    def __init__(self, error: Optional[Exception] = None):
        self.calls: List[tuple] = []
        self.error = error

    def run_cycle(self, connection, cancel_token=None):
        self.calls.append((connection, cancel_token))
        if self.error is not None:
            raise self.error
        return CycleReport(device_id=connection.device_id, started_at=REFERENCE_TIME)


class BlockingPipeline:
    """Holds its first cycle open until released and records peak concurrency."""

    def __init__(self):
        self.release = threading.Event()
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def run_cycle(self, connection, cancel_token=None):
        with self._lock:
            self.calls += 1
            first = self.calls == 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if first:
                self.release.wait(5)
            return CycleReport(device_id=connection.device_id, started_at=REFERENCE_TIME)
        finally:
            with self._lock:
                self.active -= 1


def stored_daily(biz_datetime: datetime = FIRST_ROW_TIME, seqs: tuple = ()) -> tuple:
    """Build an already stored daily record with details for the given sequence numbers."""

    daily = DailyRecord(device_id=DEVICE_ID, biz_datetime=biz_datetime, mode="Auto", item="Fe")
    details = [DetailRecord(daily_id=daily.id, seq_no=seq, kind="K") for seq in seqs]
    return daily, details
