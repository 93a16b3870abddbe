"""Device configuration models consumed by the supervisor and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeviceStatus(str, Enum):
    """Lifecycle status of a laboratory device."""

    READY = "Ready"
    IN_USE = "InUse"
    DEACTIVATED = "Deactivated"

    @classmethod
    def parse(cls, value: object) -> "DeviceStatus":
        """Accept enum names, values or the numeric codes stored by older tables."""

        if isinstance(value, cls):
            return value
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            members = list(cls)
            index = int(value)
            if 0 <= index < len(members):
                return members[index]
            raise ValueError(f"Unknown device status code: {value}")
        text = str(value).strip().replace("_", "").lower()
        for member in cls:
            if text in (member.value.lower(), member.name.replace("_", "").lower()):
                return member
        raise ValueError(f"Unknown device status: {value}")


class HostCredentials(BaseModel):
    """SSH host that can reach the instrument's web interface."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(..., min_length=1, description="SSH host address")
    port: int = Field(default=22, ge=1, le=65535)
    user: str = Field(..., min_length=1)
    password: str = Field(default="", repr=False)


@dataclass(frozen=True, slots=True)
class DeviceConnection:
    """Everything a single polling cycle needs to reach one device."""

    device_id: str
    device_address: str
    host_address: str
    host_port: int
    user: str
    password: str = field(default="", repr=False)


class DeviceTask(BaseModel):
    """A device that should be polled on its own interval."""

    model_config = ConfigDict(frozen=True)

    device_id: str = Field(..., min_length=1)
    device_address: str = Field(..., min_length=1, description="Instrument address as seen from the host")
    host: HostCredentials
    scan_interval: int = Field(..., gt=0, description="Seconds between polling cycles")
    description: str = Field(default="")
    status: DeviceStatus = Field(default=DeviceStatus.IN_USE)
    lab_name: Optional[str] = None
    device_name: Optional[str] = None

    @field_validator("device_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> str:
        return str(value).strip() if value is not None else value

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> DeviceStatus:
        return DeviceStatus.parse(value)

    @property
    def connection(self) -> DeviceConnection:
        return DeviceConnection(
            device_id=self.device_id,
            device_address=self.device_address,
            host_address=self.host.address,
            host_port=self.host.port,
            user=self.host.user,
            password=self.host.password,
        )

    def stall_timeout(self, grace_minutes: int = 10) -> timedelta:
        """Time without a completed cycle after which the job counts as stalled."""

        return timedelta(minutes=self.scan_interval // 60 + grace_minutes)
