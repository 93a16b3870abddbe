import time
from datetime import datetime, timedelta

from src.functions.device_crawler.core.contracts import SupervisorSettings
from src.functions.device_crawler.core.scheduling import JobScheduler, TaskStatus, TaskSupervisor

from tests.device_crawler.fixtures import (
    DEVICE_ID,
    BlockingPipeline,
    FakeClock,
    FakePipeline,
    FakeScheduler,
    make_device,
)

START = datetime(2022, 8, 4, 12, 0)


def _settings(**overrides):
    values = {
        "stagger_seconds": 0.5,
        "watchdog_poll_seconds": 0.01,
        "watchdog_grace_minutes": 10,
        "restart_poll_seconds": 0.5,
        "restart_wait_seconds": 5,
    }
    values.update(overrides)
    return SupervisorSettings(**values)


def _supervisor(scheduler=None, pipeline=None, clock=None, sleeps=None, **settings):
    recorded = sleeps if sleeps is not None else []
    return TaskSupervisor(
        pipeline or FakePipeline(),
        scheduler=scheduler or FakeScheduler(),
        settings=_settings(**settings),
        clock=clock or FakeClock(START),
        sleep=recorded.append,
    )


def _wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_adding_same_device_twice_leaves_one_live_task():
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler)
    device = make_device()

    first = supervisor.add_task(device)
    second = supervisor.add_task(device)

    try:
        assert first.token.cancelled
        assert first.token.reason == "replaced"
        assert not second.token.cancelled
        assert supervisor.get_state(DEVICE_ID) is second
        assert list(scheduler.jobs) == [DEVICE_ID]
        assert scheduler.jobs[DEVICE_ID] is second.handle
        assert _wait_until(lambda: not first.watchdog.is_alive())
    finally:
        supervisor.shutdown()


def test_watchdog_recycles_stalled_task():
    clock = FakeClock(START)
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler, clock=clock)
    original = supervisor.add_task(make_device(scan_interval=600))

    try:
        clock.now = START + timedelta(minutes=21)

        assert _wait_until(lambda: supervisor.get_state(DEVICE_ID) is not original)
        replacement = supervisor.get_state(DEVICE_ID)
        assert original.token.reason == "stalled"
        assert replacement.last_run == clock.now
        assert replacement.restarts == 1
        assert not replacement.token.cancelled
        assert scheduler.jobs[DEVICE_ID] is replacement.handle
        assert scheduler.registered == [DEVICE_ID, DEVICE_ID]
    finally:
        supervisor.shutdown()


def test_watchdog_leaves_task_alone_within_timeout():
    clock = FakeClock(START)
    supervisor = _supervisor(clock=clock)
    state = supervisor.add_task(make_device(scan_interval=600))

    try:
        clock.now = START + timedelta(minutes=19)
        time.sleep(0.1)

        assert supervisor.get_state(DEVICE_ID) is state
        assert not state.token.cancelled
    finally:
        supervisor.shutdown()


def test_stop_unknown_device_is_noop():
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler)

    assert supervisor.stop_task("missing") is False
    assert supervisor.get_state("missing") is None
    assert scheduler.registered == []


def test_stop_cancels_without_restart():
    clock = FakeClock(START)
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler, clock=clock)
    state = supervisor.add_task(make_device())

    assert supervisor.stop_task(DEVICE_ID) is True

    clock.now = START + timedelta(hours=2)
    assert _wait_until(lambda: not state.watchdog.is_alive())
    assert state.token.reason == "stopped"
    assert state.status is TaskStatus.CANCELLED
    assert supervisor.get_state(DEVICE_ID) is state
    assert not supervisor.has_task(DEVICE_ID)
    assert scheduler.jobs == {}
    assert scheduler.registered == [DEVICE_ID]
    assert supervisor.stop_task(DEVICE_ID) is False


def test_restart_waits_for_job_removal_then_recreates():
    scheduler = FakeScheduler(draining_polls=2)
    sleeps = []
    supervisor = _supervisor(scheduler=scheduler, sleeps=sleeps)
    device = make_device()
    old = supervisor.add_task(device)

    try:
        new = supervisor.restart_task(device)

        assert old.token.reason == "restart"
        assert new is not old
        assert new.restarts == 1
        assert sleeps == [0.5, 0.5]
        assert scheduler.jobs[DEVICE_ID] is new.handle
    finally:
        supervisor.shutdown()


def test_restart_gives_up_waiting_after_bound():
    scheduler = FakeScheduler(draining_polls=1000)
    supervisor = _supervisor(scheduler=scheduler, restart_wait_seconds=0)
    device = make_device()
    supervisor.add_task(device)

    try:
        new = supervisor.restart_task(device)
        assert supervisor.get_state(DEVICE_ID) is new
    finally:
        supervisor.shutdown()


def test_restart_without_task_behaves_like_add():
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler)

    try:
        state = supervisor.restart_task(make_device())

        assert supervisor.get_state(DEVICE_ID) is state
        assert state.restarts == 0
        assert scheduler.registered == [DEVICE_ID]
    finally:
        supervisor.shutdown()


def test_start_skips_deactivated_and_survives_failures():
    scheduler = FakeScheduler(fail_for={"broken"})
    sleeps = []
    supervisor = _supervisor(scheduler=scheduler, sleeps=sleeps)
    devices = [
        make_device("a"),
        make_device("broken"),
        make_device("off", status="Deactivated"),
        make_device("b"),
    ]

    try:
        scheduled = supervisor.start(devices)

        assert scheduled == ["a", "b"]
        assert sorted(scheduler.jobs) == ["a", "b"]
        assert sleeps == [0.5, 0.5]
        assert supervisor.get_state("broken") is None
        assert supervisor.get_state("off") is None
    finally:
        supervisor.shutdown()


def test_scheduled_payload_runs_cycle_and_advances_last_run():
    clock = FakeClock(START)
    scheduler = FakeScheduler()
    pipeline = FakePipeline()
    supervisor = _supervisor(scheduler=scheduler, pipeline=pipeline, clock=clock)
    state = supervisor.add_task(make_device())

    try:
        clock.now = START + timedelta(minutes=5)
        report = scheduler.payloads[DEVICE_ID]()

        connection, token = pipeline.calls[0]
        assert connection.device_id == DEVICE_ID
        assert connection.device_address == "192.168.10.100"
        assert connection.host_address == "192.168.1.102"
        assert token is state.token
        assert state.last_run == clock.now
        assert state.last_report is report
        assert state.status is TaskStatus.RUNNING
    finally:
        supervisor.shutdown()


def test_cycle_that_raises_does_not_advance_last_run():
    clock = FakeClock(START)
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler, pipeline=FakePipeline(error=RuntimeError("boom")), clock=clock)
    state = supervisor.add_task(make_device())

    try:
        clock.now = START + timedelta(minutes=5)

        assert scheduler.payloads[DEVICE_ID]() is None
        assert state.last_run == START
    finally:
        supervisor.shutdown()


def test_run_cycle_now_for_inactive_device_is_skipped():
    pipeline = FakePipeline()
    supervisor = _supervisor(pipeline=pipeline)

    result = supervisor.run_cycle_now(DEVICE_ID, "192.168.10.100", "192.168.1.102", 22, "admin", "secret")

    assert result is None
    assert pipeline.calls == []


def test_run_once_without_task_uses_pipeline_directly():
    pipeline = FakePipeline()
    supervisor = _supervisor(pipeline=pipeline)

    report = supervisor.run_once(make_device())

    assert report.device_id == DEVICE_ID
    assert pipeline.calls[0][1] is None


def test_snapshot_and_shutdown():
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler)
    supervisor.add_task(make_device("b"))
    supervisor.add_task(make_device("a"))

    snapshot = supervisor.snapshot()
    assert [entry["device_id"] for entry in snapshot] == ["a", "b"]
    assert snapshot[0]["status"] == "created"
    assert snapshot[0]["last_report"] is None

    supervisor.shutdown()

    assert scheduler.shut_down
    assert all(entry["status"] == "cancelled" for entry in supervisor.snapshot())


def test_job_recreated_after_stall_waits_for_in_flight_cycle():
    clock = FakeClock(START)
    pipeline = BlockingPipeline()
    supervisor = _supervisor(scheduler=JobScheduler(), pipeline=pipeline, clock=clock)
    original = supervisor.add_task(make_device())

    try:
        assert _wait_until(lambda: pipeline.calls == 1)
        clock.now = START + timedelta(minutes=30)
        assert _wait_until(lambda: supervisor.get_state(DEVICE_ID) is not original)

        time.sleep(0.1)
        assert pipeline.calls == 1

        pipeline.release.set()
        assert _wait_until(lambda: pipeline.calls == 2)
        assert pipeline.max_active == 1
    finally:
        pipeline.release.set()
        supervisor.shutdown(wait=True, timeout=2)


def test_readding_device_mid_cycle_does_not_overlap_cycles():
    pipeline = BlockingPipeline()
    supervisor = _supervisor(scheduler=JobScheduler(), pipeline=pipeline)
    device = make_device()
    supervisor.add_task(device)

    try:
        assert _wait_until(lambda: pipeline.calls == 1)
        second = supervisor.add_task(device)

        time.sleep(0.1)
        assert pipeline.calls == 1

        pipeline.release.set()
        assert _wait_until(lambda: second.last_report is not None)
        assert pipeline.calls == 2
        assert pipeline.max_active == 1
    finally:
        pipeline.release.set()
        supervisor.shutdown(wait=True, timeout=2)


def test_watchdog_retries_recreation_until_registration_succeeds():
    clock = FakeClock(START)
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler, clock=clock)
    original = supervisor.add_task(make_device())

    try:
        scheduler.fail_for = {DEVICE_ID}
        clock.now = START + timedelta(minutes=21)
        assert _wait_until(lambda: scheduler.failed_attempts >= 2)
        assert original.status is TaskStatus.RESTARTING

        scheduler.fail_for = set()
        assert _wait_until(lambda: DEVICE_ID in scheduler.jobs)
        replacement = supervisor.get_state(DEVICE_ID)
        assert replacement is not original
        assert replacement.restarts == 1
        assert scheduler.jobs[DEVICE_ID] is replacement.handle
    finally:
        supervisor.shutdown()


def test_stop_ends_pending_recreation():
    clock = FakeClock(START)
    scheduler = FakeScheduler()
    supervisor = _supervisor(scheduler=scheduler, clock=clock)
    original = supervisor.add_task(make_device())
    scheduler.fail_for = {DEVICE_ID}

    clock.now = START + timedelta(minutes=21)
    assert _wait_until(lambda: scheduler.failed_attempts >= 1)

    assert supervisor.stop_task(DEVICE_ID) is True
    assert _wait_until(lambda: not original.watchdog.is_alive())
    assert original.status is TaskStatus.CANCELLED
    assert supervisor.get_state(DEVICE_ID) is original
    assert scheduler.jobs == {}
    supervisor.shutdown()
