"""Data contracts for the device crawler."""

from .config import (
    CrawlerSettings,
    ServiceConfig,
    SupabaseSettings,
    SupervisorSettings,
    TraceBackWindow,
)
from .device import DeviceConnection, DeviceStatus, DeviceTask, HostCredentials
from .records import DailyRecord, DetailRecord
from .report import CycleReport, FailureDetail

__all__ = [
    "CrawlerSettings",
    "CycleReport",
    "DailyRecord",
    "DetailRecord",
    "DeviceConnection",
    "DeviceStatus",
    "DeviceTask",
    "FailureDetail",
    "HostCredentials",
    "ServiceConfig",
    "SupabaseSettings",
    "SupervisorSettings",
    "TraceBackWindow",
]
