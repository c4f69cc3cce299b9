"""
HTML report generation.

Renders an audit Report into a self-contained HTML page with one tab for
snapshots to remove and one for protected snapshots.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, TemplateError

from .exceptions import RenderError
from .models import Report
from .utils import NotificationManager, ensure_directory, format_size_mb

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "report.html.j2"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M %Z"


class HtmlReportRenderer:
    """Renders Reports to HTML and JSON files."""

    def __init__(self, config, notification_manager: Optional[NotificationManager] = None):
        self.config = config
        self.notifier = notification_manager or NotificationManager(config)
        self.env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=True)
        self.env.filters["timestamp"] = lambda value: value.strftime(TIMESTAMP_FORMAT)
        self.env.filters["human_size"] = format_size_mb

    def build_context(self, report: Report) -> Dict[str, Any]:
        """
        Build data context for the report template.

        Args:
            report: Finalized audit report

        Returns:
            Dictionary with:
            - title, evaluated_at, retention_days
            - sections: the "to remove" and "protected" tables with totals
            - failures: sources that could not be enumerated
            - skipped_records: malformed record count
        """
        return {
            "title": self.config.report_title,
            "evaluated_at": report.evaluated_at,
            "retention_days": report.retention_days,
            "sources": report.source_ids,
            "sections": [
                {
                    "id": "to-remove",
                    "label": "To remove",
                    "description": f"Snapshots older than {report.retention_days} days",
                    "snapshots": report.to_remove,
                    "total_size_mb": Report.total_size_mb(report.to_remove),
                },
                {
                    "id": "protected",
                    "label": "Protected",
                    "description": f"Snapshots of VMs tagged {self.config.protected_tag}",
                    "snapshots": report.protected,
                    "total_size_mb": Report.total_size_mb(report.protected),
                },
            ],
            "failures": report.failures,
            "skipped_records": report.skipped_records,
        }

    def render(self, report: Report) -> str:
        """Render the report to an HTML string."""
        try:
            template = self.env.get_template(TEMPLATE_NAME)
            return template.render(**self.build_context(report))
        except TemplateError as e:
            raise RenderError(TEMPLATE_NAME, f"template error: {e}")

    def write(self, report: Report, output_path: Union[str, Path]) -> Path:
        """Render the report and write it to ``output_path``.

        Raises:
            RenderError: If the page cannot be rendered or written
        """
        output_path = Path(output_path)
        html_content = self.render(report)
        try:
            ensure_directory(output_path.parent)
            output_path.write_text(html_content, encoding="utf-8")
        except OSError as e:
            raise RenderError(str(output_path), str(e))

        self.notifier.success(f"Report written to {output_path}")
        return output_path

    def write_json(self, report: Report, output_path: Union[str, Path]) -> Path:
        """Write the report as JSON."""
        output_path = Path(output_path)
        try:
            ensure_directory(output_path.parent)
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2)
        except OSError as e:
            raise RenderError(str(output_path), str(e))

        self.notifier.info(f"Report data written to {output_path}")
        return output_path
