"""Data model for snapshot records, classifications and the audit report."""

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .exceptions import MalformedRecordError


class Disposition(str, Enum):
    """Outcome of classifying a single snapshot."""

    EXCLUDED = "excluded"
    PROTECTED = "protected"
    ELIGIBLE = "eligible"
    RETAINED = "retained"

    @property
    def reportable(self) -> bool:
        return self in (Disposition.PROTECTED, Disposition.ELIGIBLE)


def parse_timestamp(value: Any) -> datetime:
    """Parse a creation timestamp into a timezone-aware datetime.

    Accepts datetime objects, ISO-8601 strings (a trailing ``Z`` is allowed)
    and POSIX epoch seconds. Naive values are taken as UTC, and a bare date
    (as PyYAML loads an unquoted ``2024-01-01``) is midnight UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class RawSnapshotRecord:
    """A snapshot as reported by a source connector, validated."""

    source_id: str
    vm_name: str
    snapshot_name: str
    snapshot_description: str
    size_bytes: float
    created_at: datetime
    tags: FrozenSet[str] = frozenset()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any],
                     source_id: Optional[str] = None) -> "RawSnapshotRecord":
        """Validate a raw connector mapping.

        Args:
            mapping: Raw record as returned by ``SnapshotSource.list_snapshots``
            source_id: Provenance to use when the mapping carries none

        Returns:
            Validated record

        Raises:
            MalformedRecordError: If required fields are missing or invalid
        """
        if not isinstance(mapping, Mapping):
            raise MalformedRecordError(f"record is not a mapping: {mapping!r}", source_id)

        origin = mapping.get("source_id") or source_id
        if not origin:
            raise MalformedRecordError("missing source_id", source_id)

        vm_name = mapping.get("vm_name")
        if not vm_name:
            raise MalformedRecordError("missing vm_name", origin)

        if mapping.get("created_at") is None:
            raise MalformedRecordError(f"missing created_at for VM '{vm_name}'", origin)
        try:
            created_at = parse_timestamp(mapping["created_at"])
        except (ValueError, OverflowError, OSError) as e:
            raise MalformedRecordError(f"invalid created_at for VM '{vm_name}': {e}", origin)

        size = mapping.get("size_bytes")
        if size is None:
            size = 0
        if isinstance(size, bool):
            raise MalformedRecordError(f"invalid size_bytes for VM '{vm_name}': {size!r}", origin)
        if not isinstance(size, (int, float)):
            try:
                size = float(size)
            except (TypeError, ValueError):
                raise MalformedRecordError(
                    f"invalid size_bytes for VM '{vm_name}': {size!r}", origin
                )
        if isinstance(size, float) and not math.isfinite(size):
            raise MalformedRecordError(f"invalid size_bytes for VM '{vm_name}': {size!r}", origin)
        if size < 0:
            raise MalformedRecordError(f"negative size_bytes for VM '{vm_name}'", origin)

        tags = mapping.get("tags") or ()
        if isinstance(tags, str):
            tags = (tags,)
        if not isinstance(tags, (list, tuple, set, frozenset)):
            raise MalformedRecordError(f"invalid tags for VM '{vm_name}': {tags!r}", origin)
        for tag in tags:
            if isinstance(tag, bool) or not isinstance(tag, (str, int, float)):
                raise MalformedRecordError(f"invalid tag for VM '{vm_name}': {tag!r}", origin)

        return cls(
            source_id=str(origin),
            vm_name=str(vm_name),
            snapshot_name=str(mapping.get("snapshot_name") or ""),
            snapshot_description=str(mapping.get("snapshot_description") or ""),
            size_bytes=size,
            created_at=created_at,
            tags=frozenset(str(tag) for tag in tags),
        )


@dataclass(frozen=True)
class ClassifiedSnapshot:
    """A snapshot record normalized and tagged with its disposition."""

    source_id: str
    vm_name: str
    snapshot_name: str
    snapshot_description: str
    size_bytes: float
    created_at: datetime
    tags: FrozenSet[str]
    size_mb: float
    age_days: int
    disposition: Disposition

    def with_source(self, source_id: str) -> "ClassifiedSnapshot":
        if source_id == self.source_id:
            return self
        return dataclasses.replace(self, source_id=source_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "vm_name": self.vm_name,
            "snapshot_name": self.snapshot_name,
            "snapshot_description": self.snapshot_description,
            "size_mb": self.size_mb,
            "created_at": self.created_at.isoformat(),
            "age_days": self.age_days,
            "tags": sorted(self.tags),
            "disposition": self.disposition.value,
        }


@dataclass(frozen=True)
class SourceFailure:
    """A source that contributed no records because it could not be enumerated."""

    source_id: str
    reason: str


@dataclass(frozen=True)
class Report:
    """Immutable result of one audit run."""

    evaluated_at: datetime
    retention_days: int
    to_remove: Tuple[ClassifiedSnapshot, ...] = ()
    protected: Tuple[ClassifiedSnapshot, ...] = ()
    failures: Tuple[SourceFailure, ...] = ()
    skipped_records: int = 0
    source_ids: Tuple[str, ...] = field(default=())

    @property
    def is_empty(self) -> bool:
        return not self.to_remove and not self.protected

    @property
    def failed_sources(self) -> Tuple[str, ...]:
        return tuple(failure.source_id for failure in self.failures)

    @staticmethod
    def total_size_mb(snapshots: Tuple[ClassifiedSnapshot, ...]) -> float:
        return round(sum(snapshot.size_mb for snapshot in snapshots), 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluated_at": self.evaluated_at.isoformat(),
            "retention_days": self.retention_days,
            "sources": list(self.source_ids),
            "to_remove": [snapshot.to_dict() for snapshot in self.to_remove],
            "protected": [snapshot.to_dict() for snapshot in self.protected],
            "failures": [
                {"source_id": failure.source_id, "reason": failure.reason}
                for failure in self.failures
            ],
            "skipped_records": self.skipped_records,
            "summary": {
                "to_remove_count": len(self.to_remove),
                "to_remove_size_mb": self.total_size_mb(self.to_remove),
                "protected_count": len(self.protected),
                "protected_size_mb": self.total_size_mb(self.protected),
            },
        }
