"""Storage contract consumed by the crawl pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from ..contracts import DailyRecord, DetailRecord


class StoreError(RuntimeError):
    """Raised when the backing store rejects or fails a query."""


class CrawlStore(Protocol):
    """Persistence for daily and detail records.

    Daily records are unique on ``(device_id, biz_datetime)``; saving a
    duplicate is ignored and reported as ``False``.
    """

    def find_daily_records(self, device_id: str, after: datetime) -> List[DailyRecord]:
        ...

    def daily_exists(self, device_id: str, biz_datetime: datetime) -> bool:
        ...

    def max_detail_sequence(self, daily_id: str) -> Optional[int]:
        ...

    def save_daily(self, record: DailyRecord, details: Sequence[DetailRecord]) -> bool:
        ...

    def save_details(self, daily_id: str, details: Sequence[DetailRecord]) -> int:
        ...
