"""Supabase connection shared by the crawl store and the device reader."""

from .connection import SupabaseConfig, get_supabase_client

__all__ = ["SupabaseConfig", "get_supabase_client"]
