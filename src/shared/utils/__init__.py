"""Shared utility functions."""

from .logging import setup_logging, device_logger
from .env import load_env

__all__ = ["setup_logging", "device_logger", "load_env"]
