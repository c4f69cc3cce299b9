"""Audit engine driving collection, classification and aggregation per source."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional

from .aggregator import ReportAggregator, SourceBatch
from .classifier import ClassificationPolicy, classify_batch
from .exceptions import ConfigurationError, MalformedRecordError, SourceUnavailableError
from .models import RawSnapshotRecord, Report
from .sources import SnapshotSource, build_sources
from .utils import NotificationManager, utc_now


class AuditEngine:
    """Runs one audit over every configured source and produces a Report."""

    def __init__(self, config, notification_manager: Optional[NotificationManager] = None,
                 sources: Optional[List[SnapshotSource]] = None):
        """Initialize audit engine.

        Args:
            config: Configuration object
            notification_manager: Notification manager instance
            sources: Sources to audit; built from the configuration when omitted
        """
        self.config = config
        self.notifier = notification_manager or NotificationManager(config)
        self.policy = ClassificationPolicy.from_config(config)
        self.max_workers = self._validate_workers(config.max_workers)
        self.sources = sources if sources is not None else build_sources(config, self.notifier)

    @staticmethod
    def _validate_workers(value) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(
                f"audit.max_workers must be a positive integer, got {value!r}"
            )
        return value

    def collect(self, source: SnapshotSource, evaluated_at: datetime) -> SourceBatch:
        """List, validate and classify the snapshots of one source.

        Source failures are returned in the batch rather than raised, so one
        unreachable endpoint never stops the rest of the run.
        """
        batch = SourceBatch(source_id=source.source_id)
        self.notifier.info(f"Auditing source {source.source_id} ({source.source_type}: {source.endpoint})")

        try:
            raw_records = source.list_snapshots()
        except SourceUnavailableError as e:
            batch.error = e.reason
            return batch
        except Exception as e:
            batch.error = f"unexpected error: {e}"
            return batch

        records = []
        for raw in raw_records:
            try:
                records.append(RawSnapshotRecord.from_mapping(raw, source.source_id))
            except MalformedRecordError as e:
                self.notifier.warning(f"Skipping record: {e}")
                batch.skipped += 1

        batch.snapshots = list(classify_batch(records, evaluated_at, self.policy))
        self.notifier.info(
            f"Source {source.source_id}: {len(records)} snapshots, "
            f"{len(batch.snapshots)} reportable, {batch.skipped} skipped"
        )
        return batch

    def _collect_closing(self, source: SnapshotSource, evaluated_at: datetime) -> SourceBatch:
        with source:
            return self.collect(source, evaluated_at)

    def run(self, evaluated_at: Optional[datetime] = None, parallel: Optional[bool] = None,
            max_workers: Optional[int] = None) -> Report:
        """Audit every source and return the finalized Report.

        Args:
            evaluated_at: Reference time for snapshot ages, defaults to now (UTC)
            parallel: Collect sources concurrently; defaults to ``audit.parallel``
            max_workers: Thread count for concurrent collection

        Returns:
            Immutable report with snapshots in source order, then record order
        """
        evaluated_at = evaluated_at or utc_now()
        if parallel is None:
            parallel = self.config.parallel

        if not self.sources:
            self.notifier.warning("No sources configured")

        if parallel and len(self.sources) > 1:
            workers = self.max_workers if max_workers is None else self._validate_workers(max_workers)
            self.notifier.debug(f"Collecting {len(self.sources)} sources with {workers} workers")
            with ThreadPoolExecutor(max_workers=workers) as executor:
                # map() yields results in submission order
                batches = list(executor.map(
                    lambda source: self._collect_closing(source, evaluated_at), self.sources
                ))
        else:
            batches = [self._collect_closing(source, evaluated_at) for source in self.sources]

        aggregator = ReportAggregator(evaluated_at, self.policy.retention_days)
        for batch in batches:
            if batch.failed:
                self.notifier.warning(f"Source {batch.source_id} skipped: {batch.error}")
            aggregator.merge(batch)

        report = aggregator.finalize()
        self.notifier.success(
            f"Audit complete: {len(report.to_remove)} snapshots to remove, "
            f"{len(report.protected)} protected, {len(report.failures)} failed sources"
        )
        return report
