"""Shared logging configuration for the crawler service.

Every module logs through ``logging.getLogger(__name__)``; this module only
configures the root logger once per process and provides a device-scoped
adapter so transport and persistence messages always carry device context.
"""

from __future__ import annotations
import logging
import os
import sys
from typing import Any, MutableMapping, Optional, Tuple

NOISY_LOGGERS = ("paramiko", "paramiko.transport", "urllib3", "httpx", "httpcore", "supabase")


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True
) -> None:
    """Configure root logger with console handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               If None, reads from LOG_LEVEL env var or defaults to INFO.
        format_string: Custom format string. If None, uses default format.
        include_timestamp: Whether to include timestamp in log messages.

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logger = logging.getLogger(__name__)
        >>> logger.debug("Debug message")
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()

    if format_string is None:
        if include_timestamp:
            format_string = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
        else:
            format_string = "[%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=format_string,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    # SSH transport and HTTP client internals are chatty at INFO
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


class DeviceLogAdapter(logging.LoggerAdapter):
    """Prefix log messages with ``[DeviceId]`` and optional host tags."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        tags = [f"[DeviceId]{extra.get('device_id')}"]
        if extra.get("host_ip"):
            tags.append(f"[HostIp]{extra['host_ip']}")
        if extra.get("device_ip"):
            tags.append(f"[DeviceIp]{extra['device_ip']}")
        return f"{' '.join(tags)} {msg}", kwargs


def device_logger(
    logger: logging.Logger,
    device_id: object,
    *,
    host_ip: Optional[str] = None,
    device_ip: Optional[str] = None,
) -> DeviceLogAdapter:
    """Return an adapter that tags *logger* output with device context.

    Args:
        logger: Module logger to wrap
        device_id: Device identifier
        host_ip: SSH host address, if relevant
        device_ip: Instrument address reachable from the host, if relevant

    Returns:
        LoggerAdapter emitting ``[DeviceId]<id> [HostIp]<ip> ...`` prefixes
    """
    return DeviceLogAdapter(
        logger,
        {"device_id": str(device_id), "host_ip": host_ip, "device_ip": device_ip},
    )
