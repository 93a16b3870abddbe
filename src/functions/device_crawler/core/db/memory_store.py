"""In-process crawl store used for dry runs and tests."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..contracts import DailyRecord, DetailRecord
from .store import StoreError


class MemoryCrawlStore:
    """Thread-safe dictionary store with the same semantics as the Supabase store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._dailies: Dict[str, DailyRecord] = {}
        self._keys: Dict[Tuple[str, datetime], str] = {}
        self._details: Dict[str, List[DetailRecord]] = {}

    def find_daily_records(self, device_id: str, after: datetime) -> List[DailyRecord]:
        with self._lock:
            return [
                record
                for record in self._dailies.values()
                if record.device_id == device_id and record.biz_datetime > after
            ]

    def daily_exists(self, device_id: str, biz_datetime: datetime) -> bool:
        with self._lock:
            return (device_id, biz_datetime) in self._keys

    def max_detail_sequence(self, daily_id: str) -> Optional[int]:
        with self._lock:
            details = self._details.get(daily_id)
            if not details:
                return None
            return max(detail.seq_no for detail in details)

    def save_daily(self, record: DailyRecord, details: Sequence[DetailRecord]) -> bool:
        with self._lock:
            if record.key in self._keys:
                return False
            self._dailies[record.id] = record
            self._keys[record.key] = record.id
            self._details[record.id] = list(details)
            return True

    def save_details(self, daily_id: str, details: Sequence[DetailRecord]) -> int:
        with self._lock:
            if daily_id not in self._dailies:
                raise StoreError(f"unknown daily record {daily_id}")
            self._details.setdefault(daily_id, []).extend(details)
            return len(details)

    # Inspection helpers

    def add_daily(self, record: DailyRecord, details: Sequence[DetailRecord] = ()) -> None:
        """Seed an existing record, bypassing duplicate checks."""

        with self._lock:
            self._dailies[record.id] = record
            self._keys[record.key] = record.id
            self._details[record.id] = list(details)

    def dailies(self, device_id: Optional[str] = None) -> List[DailyRecord]:
        with self._lock:
            return [
                record
                for record in self._dailies.values()
                if device_id is None or record.device_id == device_id
            ]

    def details(self, daily_id: str) -> List[DetailRecord]:
        with self._lock:
            return list(self._details.get(daily_id, []))
