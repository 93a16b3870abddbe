"""Configuration loading for the device crawler."""

from .loader import build_service_config, default_config_path, load_service_config

__all__ = ["build_service_config", "default_config_path", "load_service_config"]
