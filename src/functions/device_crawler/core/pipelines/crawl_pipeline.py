"""
Incremental crawl of one device.

A cycle fetches the device listing over SSH, compares it with the daily
records stored inside the trace-back window and then:

* stores unseen rows as new daily records together with their details,
* re-fetches details of already stored rows and appends only the detail
  rows whose sequence number exceeds the stored maximum (backfill), or all
  of them when nothing was stored yet (re-crawl).

A cycle never raises; every failure ends up in the returned ``CycleReport``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from src.shared.utils.logging import device_logger

from ..contracts import CrawlerSettings, CycleReport, DailyRecord, DetailRecord, DeviceConnection
from ..db.store import CrawlStore, StoreError
from ..extraction import (
    RowParseError,
    TableExtractor,
    is_header_row,
    parse_detail_row,
    parse_listing_row,
)
from ..transport import RemoteExecutionError, RemoteExecutor, detail_command, listing_command

logger = logging.getLogger(__name__)


class CycleCancelled(Exception):
    """Raised internally when the cancellation token fires between remote calls."""


class CrawlPipeline:
    """Run polling cycles for devices against a remote executor and a store."""

    def __init__(
        self,
        executor: RemoteExecutor,
        store: CrawlStore,
        settings: Optional[CrawlerSettings] = None,
        extractor: Optional[TableExtractor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.executor = executor
        self.store = store
        self.settings = settings or CrawlerSettings()
        self.extractor = extractor or TableExtractor()
        self._clock = clock or (lambda: datetime.now(self.settings.tzinfo))

    def reference_time(self) -> datetime:
        """Return "now" as a naive device-local timestamp.

        Listing dates are compared against this value. With ``timezone: UTC``
        the cutoff is taken in UTC, as the first deployment did.
        """

        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(self.settings.tzinfo).replace(tzinfo=None)
        return now

    def run_cycle(self, connection: DeviceConnection, cancel_token=None) -> CycleReport:
        """
        Run one incremental crawl for a device.

        Args:
            connection: Device and SSH host to crawl
            cancel_token: Optional token exposing ``cancelled``; checked before
                every remote call

        Returns:
            CycleReport with counters and failures of this cycle
        """
        log = self._log(connection)
        reference = self.reference_time()
        report = CycleReport(device_id=connection.device_id, started_at=reference)

        try:
            self._run(connection, reference, report, cancel_token, log)
        except CycleCancelled:
            report.cancelled = True
            log.info("Cycle cancelled")
        except Exception as exc:
            log.exception("Cycle failed: %s", exc)
            report.add_error("cycle", str(exc))
        finally:
            report.finished_at = self.reference_time()

        log.info(
            "Cycle finished: %d listed, %d new, %d saved, %d backfills, %d re-crawls, %d errors",
            report.dailies_fetched,
            report.new_dailies,
            report.dailies_saved,
            report.backfills,
            report.recrawls,
            len(report.errors),
        )
        return report

    def _run(self, connection, reference, report, cancel_token, log) -> None:
        cutoff = self.settings.trace_back.cutoff(reference)
        try:
            existing = self.store.find_daily_records(connection.device_id, cutoff)
        except StoreError as exc:
            log.error("Failed to load daily records after %s: %s", cutoff.isoformat(), exc)
            report.persistence_failures += 1
            report.add_error("persistence", str(exc))
            return
        known: Dict[datetime, DailyRecord] = {record.biz_datetime: record for record in existing}
        log.debug("Found %d stored daily records after %s", len(known), cutoff.isoformat())

        dailies = self.fetch_dailies(connection, report, reference, cancel_token)

        new_records: List[DailyRecord] = []
        for daily in dailies:
            match = known.get(daily.biz_datetime)
            if match is not None:
                match.source_url = daily.source_url
                self._trace_back(connection, match, report, reference, cancel_token, log)
                continue
            if daily.biz_datetime > reference:
                report.skipped_future += 1
                log.debug("Skipping listing row dated after %s: %s", reference, daily.biz_datetime)
                continue
            if daily.biz_datetime <= cutoff and self._already_stored(daily, log):
                report.skipped_known += 1
                continue
            new_records.append(daily)

        report.new_dailies = len(new_records)
        for record in new_records:
            details = self.fetch_details(connection, record, report, reference, cancel_token)
            self._save_new(record, details, report, log)

    def fetch_dailies(
        self,
        connection: DeviceConnection,
        report: Optional[CycleReport] = None,
        created_at: Optional[datetime] = None,
        cancel_token=None,
    ) -> List[DailyRecord]:
        """Fetch the listing page and map its linked rows to daily records."""

        if report is None:
            report = CycleReport(device_id=connection.device_id, started_at=self.reference_time())
        command = listing_command(self.settings.fetch_command, connection.device_address)
        output = self._fetch(connection, command, "listing", report, cancel_token)
        if output is None:
            return []

        log = self._log(connection)
        records: List[DailyRecord] = []
        for row in self.extractor.extract_rows(output):
            if not row.has_link:
                continue
            try:
                records.append(parse_listing_row(row, connection.device_id, created_at))
            except RowParseError as exc:
                report.rows_skipped += 1
                log.warning("Skipping listing row: %s", exc)

        report.dailies_fetched += len(records)
        return records

    def fetch_details(
        self,
        connection: DeviceConnection,
        daily: DailyRecord,
        report: Optional[CycleReport] = None,
        created_at: Optional[datetime] = None,
        cancel_token=None,
    ) -> List[DetailRecord]:
        """Fetch the detail page of *daily* and map its data rows to detail records."""

        if report is None:
            report = CycleReport(device_id=connection.device_id, started_at=self.reference_time())
        log = self._log(connection)
        if not daily.source_url:
            log.warning("Daily record %s has no detail link, skipping details", daily.id)
            return []

        command = detail_command(self.settings.fetch_command, connection.device_address, daily.source_url)
        output = self._fetch(connection, command, "detail", report, cancel_token, daily_id=daily.id)
        if output is None:
            return []

        details: List[DetailRecord] = []
        for row in self.extractor.extract_rows(output):
            if not row.cells or is_header_row(row):
                continue
            try:
                details.append(parse_detail_row(row, daily.id, created_at))
            except RowParseError as exc:
                report.rows_skipped += 1
                log.warning("Skipping detail row of daily %s: %s", daily.id, exc)

        report.details_fetched += len(details)
        return details

    def _fetch(
        self,
        connection: DeviceConnection,
        command: str,
        stage: str,
        report: CycleReport,
        cancel_token,
        daily_id: Optional[str] = None,
    ) -> Optional[str]:
        if cancel_token is not None and cancel_token.cancelled:
            raise CycleCancelled()

        try:
            result = self.executor.run_command(
                connection.host_address,
                connection.host_port,
                connection.user,
                connection.password,
                command,
                self.settings.command_timeout_seconds,
            )
        except (RemoteExecutionError, OSError) as exc:
            message = str(exc)
        else:
            if result.ok:
                return result.output
            if result.timed_out:
                message = result.error or "command timed out"
            elif result.exit_status != 0:
                message = f"exit status {result.exit_status}: {result.error}".rstrip(": ")
            else:
                message = "empty output"

        self._log(connection).error("[Command]%s %s fetch failed: %s", command, stage, message)
        report.transport_failures += 1
        report.add_error(stage, message, daily_id=daily_id)
        return None

    def _trace_back(self, connection, daily, report, reference, cancel_token, log) -> None:
        details = self.fetch_details(connection, daily, report, reference, cancel_token)
        if not details:
            return

        try:
            max_sequence = self.store.max_detail_sequence(daily.id)
        except StoreError as exc:
            log.error("Failed to read max sequence of daily %s: %s", daily.id, exc)
            report.persistence_failures += 1
            report.add_error("backfill", str(exc), daily_id=daily.id)
            return

        if max_sequence is None:
            batch = details
        else:
            batch = [detail for detail in details if detail.seq_no > max_sequence]
            if not batch:
                log.debug("Daily %s is up to date at sequence %d", daily.id, max_sequence)
                return

        try:
            saved = self.store.save_details(daily.id, batch)
        except StoreError as exc:
            log.error(
                "Backfill of daily %s failed: %d of %d fetched details not saved: %s",
                daily.id,
                len(batch),
                len(details),
                exc,
            )
            report.persistence_failures += 1
            report.add_error("backfill", str(exc), daily_id=daily.id)
            return

        report.details_saved += saved
        if max_sequence is None:
            report.recrawls += 1
            log.info("Re-crawled daily %s: saved %d details", daily.id, saved)
        else:
            report.backfills += 1
            log.info("Backfilled daily %s after sequence %d: saved %d details", daily.id, max_sequence, saved)

    def _save_new(self, record, details, report, log) -> None:
        try:
            inserted = self.store.save_daily(record, details)
        except StoreError as exc:
            log.error("Failed to save daily %s with %d details: %s", record.id, len(details), exc)
            report.persistence_failures += 1
            report.add_error("persistence", str(exc), daily_id=record.id)
            return

        if not inserted:
            report.skipped_known += 1
            return
        report.dailies_saved += 1
        report.details_saved += len(details)
        log.info(
            "Saved daily %s at %s with %d details",
            record.id,
            record.biz_datetime.isoformat(),
            len(details),
        )

    def _already_stored(self, daily: DailyRecord, log) -> bool:
        try:
            return self.store.daily_exists(daily.device_id, daily.biz_datetime)
        except StoreError as exc:
            # Insert-or-ignore still prevents a duplicate row
            log.warning("Could not check stored daily at %s: %s", daily.biz_datetime.isoformat(), exc)
            return False

    @staticmethod
    def _log(connection: DeviceConnection):
        return device_logger(
            logger,
            connection.device_id,
            host_ip=connection.host_address,
            device_ip=connection.device_address,
        )
