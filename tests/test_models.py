"""
Tests for raw record validation and the report value object.
"""

import dataclasses
from datetime import date, datetime, timedelta, timezone

import pytest

from snapaudit.exceptions import MalformedRecordError
from snapaudit.models import Disposition, RawSnapshotRecord, Report, parse_timestamp


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    def test_iso_with_z_suffix(self):
        assert parse_timestamp("2024-05-01T08:30:00Z") == datetime(
            2024, 5, 1, 8, 30, tzinfo=timezone.utc
        )

    def test_iso_with_offset(self):
        parsed = parse_timestamp("2024-05-01T10:30:00+02:00")

        assert parsed == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

    def test_naive_values_are_utc(self):
        assert parse_timestamp(datetime(2024, 5, 1)).tzinfo is timezone.utc
        assert parse_timestamp("2024-05-01 08:30:00").tzinfo is timezone.utc

    def test_date_is_midnight_utc(self):
        assert parse_timestamp(date(2024, 5, 1)) == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["yesterday", "", True, ["2024-01-01"]])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)


class TestFromMapping:
    """Tests for RawSnapshotRecord.from_mapping."""

    def test_valid_mapping(self, make_raw):
        record = RawSnapshotRecord.from_mapping(make_raw("web01", 3, tags=["a", "b"]))

        assert record.vm_name == "web01"
        assert record.tags == frozenset({"a", "b"})
        assert record.created_at.tzinfo is not None

    def test_defaults_for_optional_fields(self):
        record = RawSnapshotRecord.from_mapping(
            {"vm_name": "web01", "created_at": "2024-05-01T00:00:00Z"}, source_id="vc1"
        )

        assert record.source_id == "vc1"
        assert record.snapshot_name == ""
        assert record.snapshot_description == ""
        assert record.size_bytes == 0
        assert record.tags == frozenset()

    def test_mapping_source_id_takes_precedence(self, make_raw):
        record = RawSnapshotRecord.from_mapping(make_raw("web01", 3, source_id="vc2"), "vc1")

        assert record.source_id == "vc2"

    def test_single_tag_string(self):
        record = RawSnapshotRecord.from_mapping({
            "source_id": "vc1", "vm_name": "web01",
            "created_at": "2024-05-01T00:00:00Z", "tags": "PersistantSnapshot",
        })

        assert record.tags == frozenset({"PersistantSnapshot"})

    def test_numeric_string_size(self):
        record = RawSnapshotRecord.from_mapping({
            "source_id": "vc1", "vm_name": "web01",
            "created_at": "2024-05-01T00:00:00Z", "size_bytes": "2048",
        })

        assert record.size_bytes == 2048.0

    @pytest.mark.parametrize("field,value", [
        ("created_at", None),
        ("created_at", "not-a-date"),
        ("vm_name", ""),
        ("vm_name", None),
        ("size_bytes", -1),
        ("size_bytes", "lots"),
        ("size_bytes", True),
        ("size_bytes", "nan"),
        ("size_bytes", "inf"),
        ("size_bytes", float("nan")),
        ("tags", 5),
        ("tags", [["nested"]]),
        ("tags", {"team": "ops"}),
    ])
    def test_malformed_fields(self, make_raw, field, value):
        raw = make_raw("web01", 3)
        raw[field] = value

        with pytest.raises(MalformedRecordError) as exc_info:
            RawSnapshotRecord.from_mapping(raw)

        assert exc_info.value.source_id == "A"

    @pytest.mark.parametrize("raw", [None, "web01", ["web01"]])
    def test_non_mapping_record(self, raw):
        with pytest.raises(MalformedRecordError) as exc_info:
            RawSnapshotRecord.from_mapping(raw, source_id="vc1")

        assert exc_info.value.source_id == "vc1"

    def test_yaml_date_created_at(self):
        record = RawSnapshotRecord.from_mapping(
            {"vm_name": "web01", "created_at": date(2024, 1, 1)}, source_id="vc1"
        )

        assert record.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_missing_source_id(self):
        with pytest.raises(MalformedRecordError):
            RawSnapshotRecord.from_mapping({"vm_name": "web01", "created_at": "2024-05-01"})


class TestReport:
    """Tests for the Report value object."""

    def _snapshot(self, make_record, evaluated_at, policy, vm_name, days, **kwargs):
        from snapaudit.classifier import classify
        return classify(make_record(vm_name, days, **kwargs), evaluated_at, policy)

    def test_report_is_immutable(self, evaluated_at):
        report = Report(evaluated_at=evaluated_at, retention_days=14)

        with pytest.raises(dataclasses.FrozenInstanceError):
            report.to_remove = ()

    def test_to_dict(self, make_record, evaluated_at, policy):
        eligible = self._snapshot(make_record, evaluated_at, policy, "web01", 20,
                                  size_bytes=1572864)
        protected = self._snapshot(make_record, evaluated_at, policy, "app02", 1,
                                   tags={"PersistantSnapshot"})
        report = Report(
            evaluated_at=evaluated_at,
            retention_days=14,
            to_remove=(eligible,),
            protected=(protected,),
            source_ids=("A",),
        )

        data = report.to_dict()

        assert data["summary"] == {
            "to_remove_count": 1,
            "to_remove_size_mb": 1.5,
            "protected_count": 1,
            "protected_size_mb": 1.0,
        }
        assert data["to_remove"][0]["disposition"] == Disposition.ELIGIBLE.value
        assert data["to_remove"][0]["created_at"] == (evaluated_at - timedelta(days=20)).isoformat()
        assert data["protected"][0]["tags"] == ["PersistantSnapshot"]
        assert data["sources"] == ["A"]

    def test_empty_report(self, evaluated_at):
        report = Report(evaluated_at=evaluated_at, retention_days=14)

        assert report.is_empty
        assert Report.total_size_mb(report.to_remove) == 0
