"""
Tests for report aggregation.
"""

import pytest

from snapaudit.aggregator import ReportAggregator, SourceBatch
from snapaudit.classifier import classify
from snapaudit.exceptions import AggregatorFinalizedError


@pytest.fixture
def classified(make_record, evaluated_at, policy):
    """Classify a record built from make_record arguments."""

    def _classified(*args, **kwargs):
        return classify(make_record(*args, **kwargs), evaluated_at, policy)

    return _classified


@pytest.fixture
def aggregator(evaluated_at):
    return ReportAggregator(evaluated_at, 14)


class TestRecord:
    """Tests for recording individual snapshots."""

    def test_routes_by_disposition(self, aggregator, classified):
        aggregator.record("A", classified("web01", 20))
        aggregator.record("A", classified("app02", 1, tags={"PersistantSnapshot"}))

        report = aggregator.finalize()

        assert [s.vm_name for s in report.to_remove] == ["web01"]
        assert [s.vm_name for s in report.protected] == ["app02"]

    def test_excluded_and_retained_are_ignored(self, aggregator, classified):
        aggregator.record("A", classified("db-Template", 30))
        aggregator.record("A", classified("app03", 5))

        report = aggregator.finalize()

        assert report.is_empty

    def test_provenance_is_stamped(self, aggregator, classified):
        aggregator.record("vc2", classified("web01", 20, source_id="vc1"))

        report = aggregator.finalize()

        assert report.to_remove[0].source_id == "vc2"

    def test_discovery_order_preserved(self, aggregator, classified):
        for source, name in [("A", "z"), ("A", "a"), ("B", "m"), ("B", "b")]:
            aggregator.record(source, classified(name, 20, source_id=source))

        report = aggregator.finalize()

        assert [s.vm_name for s in report.to_remove] == ["z", "a", "m", "b"]
        assert report.source_ids == ("A", "B")

    def test_no_deduplication_across_sources(self, aggregator, classified):
        aggregator.record("A", classified("web01", 20, source_id="A"))
        aggregator.record("B", classified("web01", 20, source_id="B"))

        report = aggregator.finalize()

        assert [s.source_id for s in report.to_remove] == ["A", "B"]


class TestMerge:
    """Tests for merging per-source batches."""

    def test_counts_sum_over_sources(self, aggregator, classified):
        batches = []
        for source, eligible, protected in [("A", 2, 1), ("B", 0, 3), ("C", 4, 0)]:
            snapshots = [classified(f"e{i}", 30, source_id=source) for i in range(eligible)]
            snapshots += [
                classified(f"p{i}", 2, tags={"PersistantSnapshot"}, source_id=source)
                for i in range(protected)
            ]
            batches.append(SourceBatch(source_id=source, snapshots=snapshots))

        for batch in batches:
            aggregator.merge(batch)
        report = aggregator.finalize()

        assert len(report.to_remove) == 6
        assert len(report.protected) == 4
        for batch in batches:
            for snapshot in batch.snapshots:
                matching = [
                    s for s in report.to_remove + report.protected
                    if s.vm_name == snapshot.vm_name and s.source_id == batch.source_id
                ]
                assert len(matching) == 1

    def test_failed_batch_is_recorded(self, aggregator):
        aggregator.merge(SourceBatch(source_id="A", error="connection refused"))

        report = aggregator.finalize()

        assert report.failed_sources == ("A",)
        assert report.failures[0].reason == "connection refused"
        assert report.is_empty

    def test_skipped_records_are_counted(self, aggregator):
        aggregator.merge(SourceBatch(source_id="A", skipped=2))
        aggregator.merge(SourceBatch(source_id="B", skipped=1))

        assert aggregator.finalize().skipped_records == 3


class TestFinalize:
    """Tests for the build-then-freeze lifecycle."""

    def test_record_after_finalize_raises(self, aggregator, classified):
        aggregator.finalize()

        with pytest.raises(AggregatorFinalizedError):
            aggregator.record("A", classified("web01", 20))
        with pytest.raises(AggregatorFinalizedError):
            aggregator.record_failure("A", "down")
        with pytest.raises(AggregatorFinalizedError):
            aggregator.merge(SourceBatch(source_id="A"))

    def test_finalize_twice_raises(self, aggregator):
        aggregator.finalize()

        assert aggregator.finalized
        with pytest.raises(AggregatorFinalizedError):
            aggregator.finalize()

    def test_report_carries_run_metadata(self, aggregator, evaluated_at):
        report = aggregator.finalize()

        assert report.evaluated_at == evaluated_at
        assert report.retention_days == 14
