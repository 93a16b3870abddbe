from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from src.functions.device_crawler.core.contracts import (
    CrawlerSettings,
    CycleReport,
    DailyRecord,
    DetailRecord,
    DeviceStatus,
    ServiceConfig,
    TraceBackWindow,
)

from tests.device_crawler.fixtures import make_device


def test_trace_back_defaults_to_seven_days():
    window = TraceBackWindow()

    assert window.is_default
    assert window.span() == timedelta(days=7)
    assert window.cutoff(datetime(2022, 8, 10)) == datetime(2022, 8, 3)


def test_trace_back_sign_is_ignored():
    assert TraceBackWindow(days=-7).span() == TraceBackWindow(days=7).span()


def test_trace_back_uses_minutes_then_hours_then_days():
    assert TraceBackWindow(minutes=30, hours=2, days=1).span() == timedelta(minutes=30)
    assert TraceBackWindow(hours=2, days=1).span() == timedelta(hours=2)
    assert TraceBackWindow(days=1).span() == timedelta(days=1)


def test_unknown_timezone_rejected():
    with pytest.raises(ValidationError):
        CrawlerSettings(timezone="Mars/Olympus")


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Ready", DeviceStatus.READY),
        ("inuse", DeviceStatus.IN_USE),
        ("IN_USE", DeviceStatus.IN_USE),
        (1, DeviceStatus.IN_USE),
        ("2", DeviceStatus.DEACTIVATED),
    ],
)
def test_device_status_parse(value, expected):
    assert DeviceStatus.parse(value) is expected


def test_device_status_parse_rejects_unknown():
    with pytest.raises(ValueError):
        DeviceStatus.parse(7)


def test_device_stall_timeout_uses_interval_minutes_plus_grace():
    device = make_device(scan_interval=600)

    assert device.stall_timeout() == timedelta(minutes=20)
    assert device.stall_timeout(grace_minutes=2) == timedelta(minutes=12)
    assert make_device(scan_interval=59).stall_timeout() == timedelta(minutes=10)


def test_device_rejects_non_positive_interval():
    with pytest.raises(ValidationError):
        make_device(scan_interval=0)


def test_device_connection_and_password_hidden_from_repr():
    device = make_device()

    connection = device.connection
    assert connection.host_address == "192.168.1.102"
    assert connection.password == "secret"
    assert "secret" not in repr(device)
    assert "secret" not in repr(connection)


def test_service_config_rejects_duplicate_devices():
    with pytest.raises(ValidationError):
        ServiceConfig(devices=[make_device("a"), make_device("a")])


def test_service_config_snapshot_omits_credentials():
    config = ServiceConfig(devices=[make_device("a")])

    snapshot = config.snapshot()

    assert snapshot["devices"] == ["a"]
    assert "secret" not in str(snapshot)


def test_daily_record_row_round_trip_drops_offset():
    record = DailyRecord(device_id="a", biz_datetime=datetime(2022, 8, 3, 15, 9), mode="Auto", item="Fe")
    row = record.to_row()
    row["biz_datetime"] = "2022-08-03T15:09:00+00:00"

    loaded = DailyRecord.from_row(row)

    assert loaded.biz_datetime == datetime(2022, 8, 3, 15, 9)
    assert loaded.id == record.id
    assert "source_url" not in row


def test_detail_record_from_row():
    detail = DetailRecord.from_row({"id": "d", "daily_id": "x", "seq_no": "4", "kind": None})

    assert detail.seq_no == 4
    assert detail.kind == ""


def test_cycle_report_tracks_errors_and_duration():
    report = CycleReport(device_id="a", started_at=datetime(2022, 8, 3, 12, 0))
    assert report.succeeded
    assert report.duration_seconds is None

    report.add_error("listing", "timed out")
    report.finished_at = datetime(2022, 8, 3, 12, 0, 2)

    assert not report.succeeded
    assert report.duration_seconds == 2.0
