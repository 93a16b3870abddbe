"""
Configuration loader for the device crawler.

Loads ``crawler.yaml``: crawl settings, supervisor timings, Supabase table
names and the static device list. Environment-specific sections and
environment variables override the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from src.shared.utils.config_validator import ConfigurationError, validate_float_env, validate_int_env

from ..contracts import DeviceTask, ServiceConfig

logger = logging.getLogger(__name__)

SUPPORTED_VERSION = 1

# env var -> (section, key, kind)
ENV_OVERRIDES: Dict[str, Tuple[str, str, str]] = {
    "CRAWLER_FETCH_COMMAND": ("crawler", "fetch_command", "str"),
    "CRAWLER_COMMAND_TIMEOUT": ("crawler", "command_timeout_seconds", "float"),
    "CRAWLER_CONNECT_TIMEOUT": ("crawler", "connect_timeout_seconds", "float"),
    "CRAWLER_TIMEZONE": ("crawler", "timezone", "str"),
    "CRAWLER_STAGGER_SECONDS": ("supervisor", "stagger_seconds", "float"),
    "CRAWLER_WATCHDOG_POLL_SECONDS": ("supervisor", "watchdog_poll_seconds", "float"),
    "CRAWLER_WATCHDOG_GRACE_MINUTES": ("supervisor", "watchdog_grace_minutes", "int"),
    "CRAWLER_RESTART_WAIT_SECONDS": ("supervisor", "restart_wait_seconds", "float"),
}

TRACE_BACK_ENV = {
    "CRAWLER_TRACE_BACK_MINUTES": "minutes",
    "CRAWLER_TRACE_BACK_HOURS": "hours",
    "CRAWLER_TRACE_BACK_DAYS": "days",
}


def default_config_path() -> Path:
    return Path(__file__).parent / "crawler.yaml"


def load_service_config(
    config_path: Optional[str] = None,
    environment: Optional[str] = None,
) -> ServiceConfig:
    """
    Load and validate the crawler configuration.

    Args:
        config_path: Path to crawler.yaml. If None, uses the bundled file
        environment: Environment name (dev, prod) selecting an
            ``environments.<name>`` override block

    Returns:
        Validated ServiceConfig

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the YAML is malformed or the configuration is invalid
    """
    path = Path(config_path) if config_path else default_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Crawler configuration not found: {path}")

    if environment is None:
        environment = os.getenv("CRAWLER_ENV", "dev").lower()

    logger.info("Loading crawler configuration from %s (environment: %s)", path, environment)

    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw_config = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in configuration file: {exc}") from exc

    return build_service_config(raw_config, environment=environment)


def build_service_config(raw_config: Any, environment: Optional[str] = None) -> ServiceConfig:
    """Validate an already parsed configuration document."""

    if not isinstance(raw_config, dict):
        raise ValueError("Crawler configuration must be a YAML dictionary")

    version = raw_config.get("version")
    if version != SUPPORTED_VERSION:
        raise ValueError(f"Unsupported configuration version: {version}. Expected version {SUPPORTED_VERSION}.")

    sections: Dict[str, Dict[str, Any]] = {
        name: dict(raw_config.get(name) or {}) for name in ("crawler", "supervisor", "supabase")
    }
    devices_data = list(raw_config.get("devices") or [])

    env_block = raw_config.get(f"environments.{environment}") if environment else None
    if isinstance(env_block, dict):
        for name, values in sections.items():
            if isinstance(env_block.get(name), dict):
                values.update(env_block[name])
        logger.debug("Applied %s environment overrides", environment)

    _apply_env_var_overrides(sections)

    devices, invalid = _parse_devices(devices_data)
    if invalid:
        logger.warning("Skipped %d invalid devices: %s", len(invalid), "; ".join(invalid))

    try:
        config = ServiceConfig(version=version, devices=devices, **sections)
    except ValidationError as exc:
        raise ValueError(f"Configuration validation failed: {exc}") from exc

    logger.info("Configuration loaded: %d devices", len(config.devices))
    return config


def _parse_devices(devices_data: List[Any]) -> Tuple[List[DeviceTask], List[str]]:
    devices: List[DeviceTask] = []
    invalid: List[str] = []
    for index, entry in enumerate(devices_data):
        if not isinstance(entry, dict):
            invalid.append(f"Device {index + 1}: expected a mapping")
            continue
        try:
            devices.append(DeviceTask.model_validate(_resolve_password(entry)))
        except (ValidationError, ValueError) as exc:
            invalid.append(f"Device {index + 1}: {exc}")
    return devices, invalid


def _resolve_password(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Replace ``host.password_env`` with the named environment variable."""

    host = entry.get("host")
    if not isinstance(host, dict) or "password_env" not in host:
        return entry
    resolved = dict(host)
    env_name = resolved.pop("password_env")
    value = os.getenv(env_name)
    if value is None:
        raise ValueError(f"password_env {env_name} is not set")
    resolved["password"] = value
    return {**entry, "host": resolved}


def _read_env(env_var: str, kind: str) -> Any:
    if kind == "int":
        return validate_int_env(env_var)
    if kind == "float":
        return validate_float_env(env_var, min_value=0)
    return os.getenv(env_var) or None


def _apply_env_var_overrides(sections: Dict[str, Dict[str, Any]]) -> None:
    for env_var, (section, key, kind) in ENV_OVERRIDES.items():
        try:
            value = _read_env(env_var, kind)
        except ConfigurationError as exc:
            logger.warning("Ignoring %s: %s", env_var, exc)
            continue
        if value is None:
            continue
        sections[section][key] = value
        logger.debug("Override from %s: %s.%s = %s", env_var, section, key, value)

    trace_back: Dict[str, int] = {}
    for env_var, key in TRACE_BACK_ENV.items():
        try:
            value = validate_int_env(env_var)
        except ConfigurationError as exc:
            logger.warning("Ignoring %s: %s", env_var, exc)
            continue
        if value is not None:
            trace_back[key] = value
    if trace_back:
        # An explicit unit from the environment replaces the file's window
        sections["crawler"]["trace_back"] = trace_back
