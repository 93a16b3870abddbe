"""Configuration models for the device crawler service."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator

from .device import DeviceTask

DEFAULT_TRACE_BACK_DAYS = 7


class TraceBackWindow(BaseModel):
    """How far back recently known daily records are re-examined.

    Only one unit is used, in priority order minutes, hours, days. Values are
    magnitudes: ``days: 7`` and ``days: -7`` both mean seven days back.
    """

    minutes: int = Field(default=0)
    hours: int = Field(default=0)
    days: int = Field(default=0)

    def span(self) -> timedelta:
        if self.minutes:
            return timedelta(minutes=abs(self.minutes))
        if self.hours:
            return timedelta(hours=abs(self.hours))
        if self.days:
            return timedelta(days=abs(self.days))
        return timedelta(days=DEFAULT_TRACE_BACK_DAYS)

    @property
    def is_default(self) -> bool:
        return not (self.minutes or self.hours or self.days)

    def cutoff(self, reference: datetime) -> datetime:
        """Return the timestamp before which records are no longer traced back."""

        return reference - self.span()


class CrawlerSettings(BaseModel):
    """Settings for a single polling cycle."""

    fetch_command: str = Field(
        default="wget -q -O -",
        min_length=1,
        description="Command run on the host to print a URL to stdout",
    )
    command_timeout_seconds: float = Field(default=90.0, ge=1, le=3600)
    connect_timeout_seconds: float = Field(default=15.0, ge=1, le=300)
    timezone: str = Field(default="Asia/Shanghai", description="Device-local timezone")
    trace_back: TraceBackWindow = Field(default_factory=TraceBackWindow)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown timezone: {value}"
            raise ValueError(msg) from exc
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class SupervisorSettings(BaseModel):
    """Timing knobs for job creation, the watchdog and restarts."""

    stagger_seconds: float = Field(default=0.5, ge=0, le=60)
    watchdog_poll_seconds: float = Field(default=1.0, gt=0, le=60)
    watchdog_grace_minutes: int = Field(default=10, ge=0, le=1440)
    restart_poll_seconds: float = Field(default=0.5, gt=0, le=60)
    restart_wait_seconds: float = Field(default=120.0, ge=0)


class SupabaseSettings(BaseModel):
    """Table names used by the Supabase store."""

    device_table: str = Field(default="device_info")
    daily_table: str = Field(default="spectro_daily")
    detail_table: str = Field(default="spectro_detail")


class ServiceConfig(BaseModel):
    """Top-level configuration loaded from ``crawler.yaml``."""

    version: int = Field(default=1)
    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    devices: List[DeviceTask] = Field(default_factory=list)

    @field_validator("devices")
    @classmethod
    def _unique_devices(cls, value: List[DeviceTask]) -> List[DeviceTask]:
        seen = set()
        duplicates = set()
        for device in value:
            if device.device_id in seen:
                duplicates.add(device.device_id)
            seen.add(device.device_id)
        if duplicates:
            msg = f"Duplicate device ids found: {', '.join(sorted(duplicates))}"
            raise ValueError(msg)
        return value

    def get_device(self, device_id: str) -> DeviceTask | None:
        for device in self.devices:
            if device.device_id == device_id:
                return device
        return None

    def snapshot(self) -> Dict[str, object]:
        """Return a serialisable snapshot without credentials."""

        try:
            payload = self.model_dump(mode="json", exclude={"devices"})
        except ValidationError:  # pragma: no cover - defensive
            payload = {"version": self.version}
        payload["devices"] = [device.device_id for device in self.devices]
        return payload
