"""Persistence for device configuration and crawled records."""

from .device_reader import SupabaseDeviceReader
from .memory_store import MemoryCrawlStore
from .store import CrawlStore, StoreError
from .supabase_store import SupabaseCrawlStore

__all__ = [
    "CrawlStore",
    "MemoryCrawlStore",
    "StoreError",
    "SupabaseCrawlStore",
    "SupabaseDeviceReader",
]
