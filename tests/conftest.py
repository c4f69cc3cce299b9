"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone

import pytest
import yaml

from snapaudit.classifier import ClassificationPolicy
from snapaudit.config import Config
from snapaudit.models import RawSnapshotRecord
from snapaudit.sources import SnapshotSource
from snapaudit.utils import NotificationManager

EVALUATED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeSource(SnapshotSource):
    """In-memory source returning canned records or raising a canned error."""

    source_type = "fake"
    endpoint = "memory"

    def __init__(self, source_id, records=None, error=None, notifier=None):
        super().__init__(source_id, {}, notifier)
        self.records = records or []
        self.error = error
        self.closed = False

    def list_snapshots(self):
        if self.error is not None:
            raise self.error
        return [
            dict(record, source_id=self.source_id) if isinstance(record, dict) else record
            for record in self.records
        ]

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep SNAPAUDIT_* variables from the developer environment out of tests."""
    for name in (
        "SNAPAUDIT_RETENTION_DAYS",
        "SNAPAUDIT_PROTECTED_TAG",
        "SNAPAUDIT_REPORT_OUTPUT",
        "SNAPAUDIT_LOG_LEVEL",
        "SNAPAUDIT_VSPHERE_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def evaluated_at():
    return EVALUATED_AT


@pytest.fixture
def config():
    """Configuration with console logging disabled."""
    return Config(overrides={"notifications": {"console": False}})


@pytest.fixture
def notifier(config):
    return NotificationManager(config)


@pytest.fixture
def policy():
    return ClassificationPolicy()


@pytest.fixture
def make_raw():
    """Factory for raw connector mappings aged relative to EVALUATED_AT."""

    def _make_raw(vm_name, days_old, tags=(), source_id="A", size_bytes=1048576,
                  snapshot_name="snap", description=""):
        return {
            "source_id": source_id,
            "vm_name": vm_name,
            "snapshot_name": snapshot_name,
            "snapshot_description": description,
            "size_bytes": size_bytes,
            "created_at": EVALUATED_AT - timedelta(days=days_old),
            "tags": set(tags),
        }

    return _make_raw


@pytest.fixture
def make_record(make_raw):
    """Factory for validated RawSnapshotRecord objects."""

    def _make_record(*args, **kwargs):
        return RawSnapshotRecord.from_mapping(make_raw(*args, **kwargs))

    return _make_record


@pytest.fixture
def make_source(notifier):
    """Factory for in-memory sources."""

    def _make_source(source_id, records=None, error=None):
        return FakeSource(source_id, records=records, error=error, notifier=notifier)

    return _make_source


@pytest.fixture
def inventory_file(tmp_path):
    """Write an inventory export and return its path."""

    def _inventory_file(vms, name="inventory.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump({"vms": vms}))
        return path

    return _inventory_file
