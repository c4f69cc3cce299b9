"""
SnapAudit - Snapshot Retention Audit Tool

Audits VM snapshots across virtualization management endpoints, flags the ones
past the retention threshold and reports them with the protected ones.
"""

__version__ = "0.1.0"

from .aggregator import ReportAggregator, SourceBatch
from .audit_engine import AuditEngine
from .classifier import ClassificationPolicy, classify
from .config import Config
from .models import ClassifiedSnapshot, Disposition, RawSnapshotRecord, Report
from .report_renderer import HtmlReportRenderer

__all__ = [
    "AuditEngine",
    "ClassificationPolicy",
    "ClassifiedSnapshot",
    "Config",
    "Disposition",
    "HtmlReportRenderer",
    "RawSnapshotRecord",
    "Report",
    "ReportAggregator",
    "SourceBatch",
    "classify",
]
