"""Shared Supabase connection utilities.

Creates the Supabase client used by the crawl store and the device reader.
"""

from __future__ import annotations
import os
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import ClientOptions, create_client

from src.shared.utils.config_validator import require_env

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Configuration for Supabase connection.

    Attributes:
        url: Supabase project URL
        key: Supabase API key (service role for the crawler)
        schema: Database schema to use (default: public)
    """
    url: str
    key: str
    schema: str = "public"

    @classmethod
    def from_env(
        cls,
        url_var: str = "SUPABASE_URL",
        key_var: str = "SUPABASE_KEY",
        schema_var: str = "SUPABASE_SCHEMA"
    ) -> SupabaseConfig:
        """Create configuration from environment variables.

        Args:
            url_var: Environment variable name for URL
            key_var: Environment variable name for key
            schema_var: Environment variable name for schema

        Returns:
            SupabaseConfig instance

        Raises:
            ConfigurationError: If required environment variables are not set
        """
        url = require_env(url_var, "Supabase project URL")
        key = require_env(key_var, "Supabase service role key")
        schema = os.getenv(schema_var, "public")
        return cls(url=url, key=key, schema=schema)


def get_supabase_client(config: Optional[SupabaseConfig] = None):
    """Create Supabase client.

    Args:
        config: Optional SupabaseConfig. If None, loads from environment.

    Returns:
        Supabase client instance bound to the configured schema

    Example:
        >>> client = get_supabase_client()
        >>> response = client.table("device_info").select("*").execute()
    """
    if config is None:
        config = SupabaseConfig.from_env()

    logger.debug("Creating Supabase client for %s (schema: %s)", config.url, config.schema)
    return create_client(config.url, config.key, options=ClientOptions(schema=config.schema))
