"""
Column mappings for listing and detail rows.

Listing columns: detail link, business date-time, mode, item.
Detail columns: sequence number, kind, identifier, percent.
Columns beyond these are ignored.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from dateutil import parser as date_parser

from ..contracts import DailyRecord, DetailRecord
from .table_extractor import Row

HEADER_MARKERS = ("no.", "kind")
NBSP_ENTITIES = ("&nbsp;", "\xa0")

_SLASH_DATE = re.compile(
    r"^(?P<a>\d{1,4})/(?P<b>\d{1,2})/(?P<c>\d{1,4})"
    r"(?:\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?)?$"
)


class RowParseError(ValueError):
    """Raised when a table row cannot be mapped to a record."""


def parse_business_datetime(text: str) -> datetime:
    """Parse the date-time shown in a listing row.

    Instruments print ``YY/MM/DD HH:MM`` (``22/08/03 15:09`` is 3 Aug 2022);
    two-digit years are promoted to the 2000s. Four-digit years are taken as
    written, either leading (``2022/08/03``) or trailing (``03/08/2022``).

    Raises:
        RowParseError: If the text is empty or not a date-time
    """
    cleaned = " ".join((text or "").split())
    if not cleaned:
        raise RowParseError("empty business date-time")

    match = _SLASH_DATE.match(cleaned)
    if match:
        a, b, c = match.group("a"), match.group("b"), match.group("c")
        if len(c) == 4 and len(a) <= 2:
            day, month, year = int(a), int(b), int(c)
        elif len(a) == 4:
            year, month, day = int(a), int(b), int(c)
        else:
            year, month, day = 2000 + int(a), int(b), int(c)
        try:
            return datetime(
                year,
                month,
                day,
                int(match.group("hour") or 0),
                int(match.group("minute") or 0),
                int(match.group("second") or 0),
            )
        except ValueError as exc:
            raise RowParseError(f"invalid business date-time '{cleaned}': {exc}") from exc

    try:
        parsed = date_parser.parse(cleaned, yearfirst=True)
    except (ValueError, OverflowError) as exc:
        raise RowParseError(f"invalid business date-time '{cleaned}': {exc}") from exc
    return parsed.replace(tzinfo=None)


def normalize_detail_path(href: str) -> str:
    """Turn a listing link such as ``./detail.cgi?id=3`` into ``/detail.cgi?id=3``."""

    path = (href or "").strip().replace("./", "/")
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def parse_listing_row(row: Row, device_id: str, created_at: Optional[datetime] = None) -> DailyRecord:
    """Map a clickable listing row to a daily record.

    Raises:
        RowParseError: If the row has no detail link or no valid date-time
    """
    link = row.link_at(0)
    if link is None or not link.href:
        raise RowParseError("listing row has no detail link in the first column")

    return DailyRecord(
        device_id=device_id,
        biz_datetime=parse_business_datetime(row.text_at(1)),
        mode=row.text_at(2),
        item=row.text_at(3),
        source_url=normalize_detail_path(link.href),
        created_at=created_at,
    )


def is_header_row(row: Row) -> bool:
    lowered = row.html.lower()
    return any(marker in lowered for marker in HEADER_MARKERS)


def parse_detail_row(row: Row, daily_id: str, created_at: Optional[datetime] = None) -> DetailRecord:
    """Map a detail data row to a detail record.

    Raises:
        RowParseError: If the sequence number is missing or not an integer
    """
    raw_seq = row.text_at(0)
    try:
        seq_no = int(raw_seq)
    except ValueError as exc:
        raise RowParseError(f"invalid sequence number '{raw_seq}'") from exc

    id_string = row.text_at(2)
    for entity in NBSP_ENTITIES:
        id_string = id_string.replace(entity, "")

    return DetailRecord(
        daily_id=daily_id,
        seq_no=seq_no,
        kind=row.text_at(1),
        id_string=id_string.strip(),
        percent=row.text_at(3),
        created_at=created_at,
    )
