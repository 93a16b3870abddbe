"""
Supabase-backed crawl store.

Tables (names configurable through ``SupabaseSettings``):

* ``spectro_daily``: id, device_id, biz_datetime, mode, item, created_at,
  unique (device_id, biz_datetime)
* ``spectro_detail``: id, daily_id, seq_no, kind, id_string, percent,
  created_at, index (daily_id, seq_no)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from tenacity import retry, stop_after_attempt, wait_exponential

from ..contracts import DailyRecord, DetailRecord, SupabaseSettings
from .store import StoreError

logger = logging.getLogger(__name__)

DAILY_CONFLICT_COLUMNS = "device_id,biz_datetime"

# Reads are safe to repeat; writes are never retried here
_read_retry = retry(
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    stop=stop_after_attempt(3),
    reraise=True,
)


class SupabaseCrawlStore:
    """Persist crawled records through the Supabase client."""

    def __init__(self, client: Any, settings: Optional[SupabaseSettings] = None) -> None:
        self.client = client
        self.settings = settings or SupabaseSettings()

    def find_daily_records(self, device_id: str, after: datetime) -> List[DailyRecord]:
        try:
            rows = self._select_dailies_after(device_id, after)
        except Exception as exc:
            raise StoreError(f"failed to load daily records for {device_id}: {exc}") from exc
        return [DailyRecord.from_row(row) for row in rows]

    def daily_exists(self, device_id: str, biz_datetime: datetime) -> bool:
        try:
            rows = self._select_daily_key(device_id, biz_datetime)
        except Exception as exc:
            raise StoreError(f"failed to look up daily record for {device_id}: {exc}") from exc
        return bool(rows)

    def max_detail_sequence(self, daily_id: str) -> Optional[int]:
        try:
            rows = self._select_max_sequence(daily_id)
        except Exception as exc:
            raise StoreError(f"failed to load max sequence for daily {daily_id}: {exc}") from exc
        if not rows:
            return None
        value = rows[0].get("seq_no")
        return int(value) if value is not None else None

    def save_daily(self, record: DailyRecord, details: Sequence[DetailRecord]) -> bool:
        """Insert a daily record and its details as one unit.

        Returns:
            False when a record with the same (device_id, biz_datetime) already exists
        """
        try:
            response = (
                self.client.table(self.settings.daily_table)
                .upsert(record.to_row(), on_conflict=DAILY_CONFLICT_COLUMNS, ignore_duplicates=True)
                .execute()
            )
        except Exception as exc:
            raise StoreError(f"failed to insert daily record {record.id}: {exc}") from exc

        if not (getattr(response, "data", None) or []):
            logger.info(
                "Daily record for device %s at %s already stored, skipping details",
                record.device_id,
                record.biz_datetime.isoformat(),
            )
            return False

        if not details:
            return True

        try:
            self._insert_details(details)
        except Exception as exc:
            self._remove_daily(record.id)
            raise StoreError(
                f"failed to insert {len(details)} details for daily {record.id}: {exc}"
            ) from exc
        return True

    def save_details(self, daily_id: str, details: Sequence[DetailRecord]) -> int:
        """Append details to an existing daily record in a single insert."""

        if not details:
            return 0
        for detail in details:
            if detail.daily_id != daily_id:
                raise StoreError(f"detail {detail.id} belongs to {detail.daily_id}, not {daily_id}")
        try:
            return self._insert_details(details)
        except Exception as exc:
            raise StoreError(f"failed to insert {len(details)} details for daily {daily_id}: {exc}") from exc

    @_read_retry
    def _select_dailies_after(self, device_id: str, after: datetime) -> List[dict]:
        response = (
            self.client.table(self.settings.daily_table)
            .select("*")
            .eq("device_id", device_id)
            .gt("biz_datetime", after.isoformat())
            .execute()
        )
        return getattr(response, "data", None) or []

    @_read_retry
    def _select_daily_key(self, device_id: str, biz_datetime: datetime) -> List[dict]:
        response = (
            self.client.table(self.settings.daily_table)
            .select("id")
            .eq("device_id", device_id)
            .eq("biz_datetime", biz_datetime.isoformat())
            .limit(1)
            .execute()
        )
        return getattr(response, "data", None) or []

    @_read_retry
    def _select_max_sequence(self, daily_id: str) -> List[dict]:
        response = (
            self.client.table(self.settings.detail_table)
            .select("seq_no")
            .eq("daily_id", daily_id)
            .order("seq_no", desc=True)
            .limit(1)
            .execute()
        )
        return getattr(response, "data", None) or []

    def _insert_details(self, details: Sequence[DetailRecord]) -> int:
        payload = [detail.to_row() for detail in details]
        response = self.client.table(self.settings.detail_table).insert(payload).execute()
        data = getattr(response, "data", None)
        return len(data) if data is not None else len(payload)

    def _remove_daily(self, daily_id: str) -> None:
        try:
            self.client.table(self.settings.daily_table).delete().eq("id", daily_id).execute()
        except Exception as exc:
            logger.error("Failed to remove daily record %s after detail insert failure: %s", daily_id, exc)
