"""Crawled record types and their row (de)serialisation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).replace("Z", "+00:00")
    return datetime.fromisoformat(text)


@dataclass(slots=True)
class DailyRecord:
    """One dated measurement session listed by a device.

    ``biz_datetime`` is the naive device-local time shown in the listing.
    ``source_url`` is the detail-page path from the listing row and is never
    persisted.
    """

    device_id: str
    biz_datetime: datetime
    mode: str = ""
    item: str = ""
    source_url: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, datetime]:
        return (self.device_id, self.biz_datetime)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "biz_datetime": self.biz_datetime.isoformat(),
            "mode": self.mode,
            "item": self.item,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DailyRecord":
        biz = _parse_timestamp(row["biz_datetime"])
        # Stored business times are device-local; drop any offset the database adds
        if biz is not None and biz.tzinfo is not None:
            biz = biz.replace(tzinfo=None)
        return cls(
            id=str(row["id"]),
            device_id=str(row["device_id"]),
            biz_datetime=biz,
            mode=row.get("mode") or "",
            item=row.get("item") or "",
            created_at=_parse_timestamp(row.get("created_at")),
        )


@dataclass(slots=True)
class DetailRecord:
    """One line item of a daily record, ordered by ``seq_no``."""

    daily_id: str
    seq_no: int
    kind: str = ""
    id_string: str = ""
    percent: str = ""
    id: str = field(default_factory=_new_id)
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "daily_id": self.daily_id,
            "seq_no": self.seq_no,
            "kind": self.kind,
            "id_string": self.id_string,
            "percent": self.percent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DetailRecord":
        return cls(
            id=str(row["id"]),
            daily_id=str(row["daily_id"]),
            seq_no=int(row["seq_no"]),
            kind=row.get("kind") or "",
            id_string=row.get("id_string") or "",
            percent=row.get("percent") or "",
            created_at=_parse_timestamp(row.get("created_at")),
        )
