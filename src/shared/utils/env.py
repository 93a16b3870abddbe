"""Environment variable loading utilities.

Loads ``.env`` files so SSH and Supabase credentials can be kept out of the
device configuration file.
"""

from __future__ import annotations
from pathlib import Path
from typing import List, Optional
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env(env_file: Optional[str] = None, override: bool = False) -> List[Path]:
    """Load environment variables from .env files.

    Args:
        env_file: Path to .env file. If None, searches for .env in current
                 directory and parent directories (outermost first, so the
                 nearest file wins when *override* is set).
        override: Whether to override existing environment variables.

    Returns:
        The .env files that were loaded
    """
    env_paths: List[Path] = []
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            env_paths.append(env_path)
        else:
            logger.warning("Requested .env file %s does not exist", env_path)
    else:
        current = Path.cwd()
        for parent in reversed(list(current.parents)):
            candidate = parent / ".env"
            if candidate.exists():
                env_paths.append(candidate)
        candidate = current / ".env"
        if candidate.exists():
            env_paths.append(candidate)

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return []

    loaded: List[Path] = []
    for path in env_paths:
        if path in loaded:
            continue
        load_dotenv(path, override=override)
        loaded.append(path)
        logger.debug("Loaded environment from %s", path)
    return loaded
