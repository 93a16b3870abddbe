"""Process entry point for the device crawler service."""

from __future__ import annotations

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.device_crawler.scripts.run_crawler_cli import run


if __name__ == "__main__":
    sys.exit(run(sys.argv[1:]))
