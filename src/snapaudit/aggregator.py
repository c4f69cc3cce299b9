"""Aggregation of classified snapshots from many sources into one report."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .exceptions import AggregatorFinalizedError
from .models import ClassifiedSnapshot, Disposition, Report, SourceFailure


@dataclass
class SourceBatch:
    """Everything collected from one source during a run."""

    source_id: str
    snapshots: List[ClassifiedSnapshot] = field(default_factory=list)
    skipped: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ReportAggregator:
    """Collects reportable snapshots in discovery order, then freezes into a Report.

    The aggregator is single-phase: once ``finalize`` has been called every
    further mutation raises ``AggregatorFinalizedError``.
    """

    def __init__(self, evaluated_at: datetime, retention_days: int):
        self.evaluated_at = evaluated_at
        self.retention_days = retention_days
        self._to_remove: List[ClassifiedSnapshot] = []
        self._protected: List[ClassifiedSnapshot] = []
        self._failures: List[SourceFailure] = []
        self._source_ids: List[str] = []
        self._skipped = 0
        self._report: Optional[Report] = None

    @property
    def finalized(self) -> bool:
        return self._report is not None

    def _check_open(self) -> None:
        if self._report is not None:
            raise AggregatorFinalizedError()

    def _seen(self, source_id: str) -> None:
        if source_id not in self._source_ids:
            self._source_ids.append(source_id)

    def record(self, source_id: str, snapshot: ClassifiedSnapshot) -> None:
        """Add one classified snapshot under the given source."""
        self._check_open()
        self._seen(source_id)
        if snapshot.disposition is Disposition.ELIGIBLE:
            self._to_remove.append(snapshot.with_source(source_id))
        elif snapshot.disposition is Disposition.PROTECTED:
            self._protected.append(snapshot.with_source(source_id))

    def record_failure(self, source_id: str, reason: str) -> None:
        self._check_open()
        self._seen(source_id)
        self._failures.append(SourceFailure(source_id=source_id, reason=reason))

    def record_skipped(self, source_id: str, count: int = 1) -> None:
        self._check_open()
        self._seen(source_id)
        self._skipped += count

    def merge(self, batch: SourceBatch) -> None:
        """Record a whole per-source batch."""
        self._check_open()
        self._seen(batch.source_id)
        for snapshot in batch.snapshots:
            self.record(batch.source_id, snapshot)
        if batch.skipped:
            self.record_skipped(batch.source_id, batch.skipped)
        if batch.error is not None:
            self.record_failure(batch.source_id, batch.error)

    def finalize(self) -> Report:
        """Freeze the collected results into an immutable Report."""
        self._check_open()
        self._report = Report(
            evaluated_at=self.evaluated_at,
            retention_days=self.retention_days,
            to_remove=tuple(self._to_remove),
            protected=tuple(self._protected),
            failures=tuple(self._failures),
            skipped_records=self._skipped,
            source_ids=tuple(self._source_ids),
        )
        return self._report
