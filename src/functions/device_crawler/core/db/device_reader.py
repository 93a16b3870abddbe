"""Device configuration retrieval from the Supabase ``device_info`` table."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..contracts import DeviceTask, SupabaseSettings

logger = logging.getLogger(__name__)


class SupabaseDeviceReader:
    """Reads device rows and normalises them into ``DeviceTask`` models."""

    def __init__(self, client: Any, settings: Optional[SupabaseSettings] = None) -> None:
        self.client = client
        self.settings = settings or SupabaseSettings()

    def fetch_devices(self) -> List[DeviceTask]:
        response = self.client.table(self.settings.device_table).select("*").execute()
        rows = getattr(response, "data", None) or []
        devices: List[DeviceTask] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                devices.append(self._to_device(row))
            except (KeyError, ValueError, ValidationError) as exc:
                logger.warning("Skipping invalid device row %s: %s", row.get("id"), exc)
        logger.info("Loaded %d devices from %s", len(devices), self.settings.device_table)
        return devices

    @staticmethod
    def _to_device(row: Dict[str, Any]) -> DeviceTask:
        return DeviceTask(
            device_id=row["id"],
            device_address=row["device_ip"],
            host={
                "address": row["host_ip"],
                "port": row.get("host_port") or 22,
                "user": row["host_user_name"],
                "password": row.get("host_password") or "",
            },
            scan_interval=row["scan_interval"],
            description=row.get("description") or "",
            status=row.get("status", "InUse"),
            lab_name=row.get("lab_name"),
            device_name=row.get("device_name"),
        )
