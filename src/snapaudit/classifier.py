"""Retention classification of snapshot records.

Every snapshot receives exactly one disposition. The rules are applied in a
fixed order and the first match wins:

1. the VM name contains a template pattern (case-insensitive) -> EXCLUDED
2. the VM carries the protected tag (exact match) -> PROTECTED
3. the snapshot is older than the retention threshold -> ELIGIBLE

Anything else is RETAINED. Only PROTECTED and ELIGIBLE snapshots are reported.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Tuple

from .exceptions import ConfigurationError
from .models import ClassifiedSnapshot, Disposition, RawSnapshotRecord

BYTES_PER_MB = 1_048_576
SECONDS_PER_DAY = 86_400

DEFAULT_TEMPLATE_PATTERNS = ("VMT", "Template", "Templ")
DEFAULT_PROTECTED_TAG = "PersistantSnapshot"
DEFAULT_RETENTION_DAYS = 14


@dataclass(frozen=True)
class ClassificationPolicy:
    """Parameters of the fixed classification rules."""

    template_patterns: Tuple[str, ...] = DEFAULT_TEMPLATE_PATTERNS
    protected_tag: str = DEFAULT_PROTECTED_TAG
    retention_days: int = DEFAULT_RETENTION_DAYS

    def __post_init__(self):
        if isinstance(self.retention_days, bool) or not isinstance(self.retention_days, int):
            raise ConfigurationError(
                f"retention_days must be an integer, got {self.retention_days!r}"
            )
        if self.retention_days < 0:
            raise ConfigurationError(
                f"retention_days must be zero or positive, got {self.retention_days}"
            )
        if not self.protected_tag:
            raise ConfigurationError("protected_tag must not be empty")
        # Empty patterns would match every VM name
        patterns = tuple(str(p) for p in self.template_patterns if p)
        object.__setattr__(self, "template_patterns", patterns)

    @classmethod
    def from_config(cls, config) -> "ClassificationPolicy":
        patterns = config.template_patterns
        if isinstance(patterns, str):
            patterns = [patterns]
        return cls(
            template_patterns=tuple(patterns or ()),
            protected_tag=config.protected_tag,
            retention_days=config.retention_days,
        )


def is_template(vm_name: str, policy: ClassificationPolicy) -> bool:
    """Check whether a VM name contains any template pattern, ignoring case."""
    name = vm_name.casefold()
    return any(pattern.casefold() in name for pattern in policy.template_patterns)


def compute_age_days(created_at: datetime, evaluated_at: datetime) -> int:
    """Whole days elapsed between creation and evaluation, rounded down."""
    elapsed = (evaluated_at - created_at).total_seconds()
    return math.floor(elapsed / SECONDS_PER_DAY)


def compute_size_mb(size_bytes: float) -> float:
    return round(size_bytes / BYTES_PER_MB, 2)


def classify(record: RawSnapshotRecord, evaluated_at: datetime,
             policy: ClassificationPolicy) -> ClassifiedSnapshot:
    """Classify a single snapshot record.

    Args:
        record: Validated snapshot record
        evaluated_at: Reference time for age computation (timezone-aware)
        policy: Classification parameters

    Returns:
        The normalized snapshot with its disposition
    """
    age_days = compute_age_days(record.created_at, evaluated_at)

    if is_template(record.vm_name, policy):
        disposition = Disposition.EXCLUDED
    elif policy.protected_tag in record.tags:
        disposition = Disposition.PROTECTED
    elif age_days > policy.retention_days:
        disposition = Disposition.ELIGIBLE
    else:
        disposition = Disposition.RETAINED

    return ClassifiedSnapshot(
        source_id=record.source_id,
        vm_name=record.vm_name,
        snapshot_name=record.snapshot_name,
        snapshot_description=record.snapshot_description,
        size_bytes=record.size_bytes,
        created_at=record.created_at,
        tags=record.tags,
        size_mb=compute_size_mb(record.size_bytes),
        age_days=age_days,
        disposition=disposition,
    )


def classify_batch(records: Iterable[RawSnapshotRecord], evaluated_at: datetime,
                   policy: ClassificationPolicy) -> Iterator[ClassifiedSnapshot]:
    """Classify records, yielding only reportable snapshots in input order."""
    for record in records:
        classified = classify(record, evaluated_at, policy)
        if classified.disposition.reportable:
            yield classified
