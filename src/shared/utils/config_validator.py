"""
Configuration validation utilities.

Validates environment variables used to override crawler settings and
reports missing or malformed values with clear error messages.
"""

import os
from typing import Optional


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def require_env(name: str, description: Optional[str] = None) -> str:
    """
    Require an environment variable to be set.

    Args:
        name: Environment variable name
        description: Optional description of what the variable is used for

    Returns:
        The value of the environment variable

    Raises:
        ConfigurationError: If the environment variable is not set or empty
    """
    value = os.getenv(name)

    if not value:
        desc_msg = f" ({description})" if description else ""
        raise ConfigurationError(
            f"Missing required environment variable: {name}{desc_msg}\n"
            f"Please set {name} in your .env file or environment."
        )

    return value


def validate_int_env(name: str, default: Optional[int] = None, min_value: Optional[int] = None,
                     max_value: Optional[int] = None) -> Optional[int]:
    """
    Validate an integer environment variable.

    Args:
        name: Environment variable name
        default: Value returned when the variable is not set
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        The validated integer value, or *default* when unset

    Raises:
        ConfigurationError: If the value is not an integer or out of range
    """
    value_str = os.getenv(name)
    if not value_str:
        return default

    try:
        value = int(value_str)
    except ValueError:
        raise ConfigurationError(
            f"Invalid integer value for {name}: '{value_str}'\n"
            f"Expected an integer value."
        )

    _check_range(name, value, min_value, max_value)
    return value


def validate_float_env(name: str, default: Optional[float] = None, min_value: Optional[float] = None,
                       max_value: Optional[float] = None) -> Optional[float]:
    """
    Validate a numeric (seconds, minutes) environment variable.

    Args:
        name: Environment variable name
        default: Value returned when the variable is not set
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        The validated float value, or *default* when unset

    Raises:
        ConfigurationError: If the value is not numeric or out of range
    """
    value_str = os.getenv(name)
    if not value_str:
        return default

    try:
        value = float(value_str)
    except ValueError:
        raise ConfigurationError(
            f"Invalid numeric value for {name}: '{value_str}'\n"
            f"Expected a number."
        )

    _check_range(name, value, min_value, max_value)
    return value


def _check_range(name, value, min_value, max_value) -> None:
    if min_value is not None and value < min_value:
        raise ConfigurationError(
            f"Value for {name} ({value}) is below minimum allowed value ({min_value})"
        )

    if max_value is not None and value > max_value:
        raise ConfigurationError(
            f"Value for {name} ({value}) exceeds maximum allowed value ({max_value})"
        )
