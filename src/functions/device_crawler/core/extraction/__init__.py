"""HTML table extraction and row mapping."""

from .row_parsers import (
    RowParseError,
    is_header_row,
    normalize_detail_path,
    parse_business_datetime,
    parse_detail_row,
    parse_listing_row,
)
from .table_extractor import Cell, Link, Row, TableExtractor

__all__ = [
    "Cell",
    "Link",
    "Row",
    "RowParseError",
    "TableExtractor",
    "is_header_row",
    "normalize_detail_path",
    "parse_business_datetime",
    "parse_detail_row",
    "parse_listing_row",
]
