"""JSON renderer for API/export.

This renderer exports the report and every analyzer's output rows to JSON,
preserving semantic styling information for clients to interpret.
"""

import json
import sys
from typing import Any, TextIO

from ..analyzers.protocol import OutputDescriptor
from ..core.report import Report
from .base import BaseRenderer


class JSONRenderer(BaseRenderer):
    """
    Renders output to JSON format.

    Exports semantic styles as-is, allowing clients to apply their own
    theme interpretation. Nothing is written until render_summary().
    """

    def __init__(self, stream: TextIO | None = None, **kwargs):
        super().__init__(**kwargs)
        self.stream = stream
        self.results: dict[str, dict[str, Any]] = {}
        self.report: dict[str, Any] | None = None

    def render(self, descriptor: OutputDescriptor, result: Any, analyzer_id: str) -> None:
        """
        Collect rows for JSON export.

        Args:
            descriptor: Output descriptor
            result: Analyzer result
            analyzer_id: Analyzer ID
        """
        self.collect_errors_warnings(descriptor, descriptor.title)

        self.results[analyzer_id] = {
            "title": descriptor.title,
            "category": descriptor.category,
            "rows": [
                {
                    "label": row.label,
                    "value": self._serialize_value(row.value),
                    "style_class": row.style_class,
                    "severity": row.severity,
                    "section_type": row.section_type,
                    "section_name": row.section_name,
                    "verbosity": row.verbosity.value,
                    "icon": row.icon,
                }
                for row in descriptor.rows
            ],
        }

    def render_scores(self, report: Report) -> None:
        self.report = report.to_dict()

    def render_summary(self) -> None:
        """Output JSON to stdout."""
        output = {
            "report": self.report,
            "results": self.results,
            "summary": {
                "total_errors": len(self.all_errors),
                "total_warnings": len(self.all_warnings),
                "errors": [{"category": cat, "message": msg} for cat, msg in self.all_errors],
                "warnings": [{"category": cat, "message": msg} for cat, msg in self.all_warnings],
            },
        }

        stream = self.stream or sys.stdout
        json.dump(output, stream, indent=2, default=str)
        stream.write("\n")

    @staticmethod
    def _serialize_value(value: Any) -> Any:
        """
        Serialize value to JSON-compatible format.

        Args:
            value: Value to serialize

        Returns:
            JSON-serializable value
        """
        if value is None or isinstance(value, (str, int, float, bool)):
            return value

        if isinstance(value, (list, tuple)):
            return [JSONRenderer._serialize_value(v) for v in value]

        if isinstance(value, dict):
            return {k: JSONRenderer._serialize_value(v) for k, v in value.items()}

        # Fallback: convert to string
        return str(value)
