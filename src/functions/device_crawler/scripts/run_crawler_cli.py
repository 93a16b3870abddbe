"""CLI entry point for the device crawler service."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[4]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.shared.db.connection import SupabaseConfig, get_supabase_client
from src.shared.utils.config_validator import ConfigurationError
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.device_crawler.core.config import load_service_config
from src.functions.device_crawler.core.contracts import CycleReport, DeviceStatus, DeviceTask, ServiceConfig
from src.functions.device_crawler.core.db import (
    CrawlStore,
    MemoryCrawlStore,
    SupabaseCrawlStore,
    SupabaseDeviceReader,
)
from src.functions.device_crawler.core.pipelines import CrawlPipeline
from src.functions.device_crawler.core.scheduling import TaskSupervisor
from src.functions.device_crawler.core.transport import SshCommandExecutor

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl laboratory devices over SSH on per-device intervals.")
    parser.add_argument("--config", help="Path to crawler.yaml (default: bundled configuration)")
    parser.add_argument("--environment", help="Configuration environment block to apply (default: CRAWLER_ENV or dev)")
    parser.add_argument(
        "--devices-from",
        choices=("config", "supabase"),
        default="config",
        help="Where to read device definitions from (default: config)",
    )
    parser.add_argument("--device", "-d", action="append", help="Only crawl this device id (can be repeated)")
    parser.add_argument("--dry-run", action="store_true", help="Keep crawled records in memory instead of Supabase")
    parser.add_argument("--once", action="store_true", help="Run a single cycle per device and exit")
    parser.add_argument("--serve", action="store_true", help="Expose the control API while the supervisor runs")
    parser.add_argument("--host", default="127.0.0.1", help="Control API bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8080, help="Control API port (default: 8080)")
    parser.add_argument("--env-file", help="Explicit .env file to load")
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--output-format",
        choices=("text", "json"),
        default="text",
        help="Output format for --once results (default: text)",
    )
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_env(args.env_file)
    setup_logging(level="DEBUG" if args.verbose else args.log_level)

    try:
        config = load_service_config(args.config, environment=args.environment)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    needs_supabase = not args.dry_run or args.devices_from == "supabase"
    client = None
    if needs_supabase:
        try:
            client = get_supabase_client(SupabaseConfig.from_env())
        except ConfigurationError as exc:
            logger.error("%s", exc)
            return 1

    try:
        devices = _load_devices(args, config, client)
    except Exception as exc:
        logger.error("Failed to load devices: %s", exc)
        return 1
    if not devices:
        logger.error("No devices to crawl")
        return 1

    store: CrawlStore = MemoryCrawlStore() if args.dry_run else SupabaseCrawlStore(client, config.supabase)
    executor = SshCommandExecutor(connect_timeout=config.crawler.connect_timeout_seconds)
    pipeline = CrawlPipeline(executor, store, config.crawler)
    supervisor = TaskSupervisor(pipeline, settings=config.supervisor)

    if args.once:
        return _run_once(supervisor, devices, args.output_format)
    return _run_forever(supervisor, devices, args)


def _load_devices(args: argparse.Namespace, config: ServiceConfig, client) -> List[DeviceTask]:
    if args.devices_from == "supabase":
        devices = SupabaseDeviceReader(client, config.supabase).fetch_devices()
    else:
        devices = list(config.devices)

    if args.device:
        wanted = set(args.device)
        devices = [device for device in devices if device.device_id in wanted]
        missing = wanted - {device.device_id for device in devices}
        if missing:
            logger.warning("Unknown device ids ignored: %s", ", ".join(sorted(missing)))
    return devices


def _run_once(supervisor: TaskSupervisor, devices: List[DeviceTask], output_format: str) -> int:
    reports: List[CycleReport] = []
    for device in devices:
        if device.status is DeviceStatus.DEACTIVATED:
            logger.info("Skipping deactivated device %s", device.device_id)
            continue
        reports.append(supervisor.run_once(device))

    if output_format == "json":
        json.dump([report.model_dump(mode="json") for report in reports], sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        _print_summary(reports)

    return 0 if all(report.succeeded for report in reports) else 2


def _run_forever(supervisor: TaskSupervisor, devices: List[DeviceTask], args: argparse.Namespace) -> int:
    stop_event = threading.Event()

    def _request_stop(signum, _frame) -> None:
        logger.info("Received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    by_id: Dict[str, DeviceTask] = {device.device_id: device for device in devices}
    supervisor.start(devices)

    if args.serve:
        from werkzeug.serving import make_server

        from src.functions.device_crawler.functions.main import create_app

        server = make_server(args.host, args.port, create_app(supervisor, by_id.get), threaded=True)
        threading.Thread(target=server.serve_forever, name="control-api", daemon=True).start()
        logger.info("Control API listening on http://%s:%s", args.host, args.port)
    else:
        server = None

    try:
        while not stop_event.wait(1.0):
            pass
    finally:
        if server is not None:
            server.shutdown()
        supervisor.shutdown(wait=True, timeout=5)
    return 0


def _print_summary(reports: List[CycleReport]) -> None:
    for report in reports:
        logger.info(
            "Device %s: %s listed, %s new, %s saved, %s details saved, %s backfills, %s re-crawls (%ss)",
            report.device_id,
            report.dailies_fetched,
            report.new_dailies,
            report.dailies_saved,
            report.details_saved,
            report.backfills,
            report.recrawls,
            report.duration_seconds,
        )
        for entry in report.errors:
            logger.warning("[%s] %s - %s", report.device_id, entry.stage, entry.message)


def main() -> int:
    return run()


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    sys.exit(run())
