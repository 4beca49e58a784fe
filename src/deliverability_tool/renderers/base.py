"""Base renderer protocol.

All renderers must implement this protocol. Renderers are completely decoupled
from analyzers - they only know about OutputDescriptor and the Report.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..analyzers.protocol import OutputDescriptor, VerbosityLevel
from ..core.report import REPORT_FIELDS, Report


class BaseRenderer(ABC):
    """
    Base class for all output renderers.

    Renderers interpret OutputDescriptor semantic styles and render them
    according to their output format (CLI, JSON).
    """

    def __init__(self, verbosity: VerbosityLevel = VerbosityLevel.NORMAL):
        """
        Initialize renderer.

        Args:
            verbosity: Output verbosity level
        """
        self.verbosity = verbosity
        self.all_errors: list[tuple[str, str]] = []  # (category, message)
        self.all_warnings: list[tuple[str, str]] = []  # (category, message)

    def render_report(self, report: Report) -> None:
        """
        Render a whole report: every analyzer section, then scores and summary.

        Args:
            report: Finished report
        """
        for analyzer_id, descriptor in report.descriptors.items():
            result = getattr(report, REPORT_FIELDS.get(analyzer_id, ""), None)
            self.render(descriptor, result, analyzer_id)

        for analyzer_id, error in report.errors.items():
            self.all_errors.append((analyzer_id, f"Analyzer failed: {error}"))

        self.render_scores(report)
        self.render_summary()

    @abstractmethod
    def render(self, descriptor: OutputDescriptor, result: Any, analyzer_id: str) -> None:
        """
        Render analyzer output.

        Args:
            descriptor: Output structure description
            result: Analyzer result (for accessing raw data if needed)
            analyzer_id: Analyzer ID (for categorizing errors/warnings)
        """
        ...

    @abstractmethod
    def render_scores(self, report: Report) -> None:
        """Render the score breakdown and recommendations."""
        ...

    @abstractmethod
    def render_summary(self) -> None:
        """Render summary of all analyses (errors, warnings, totals)."""
        ...

    def collect_errors_warnings(self, descriptor: OutputDescriptor, category: str) -> None:
        """
        Collect errors and warnings from descriptor for summary.

        Args:
            descriptor: Output descriptor
            category: Category name for grouping
        """
        for row in descriptor.rows:
            # Primary check: severity (canonical source of truth)
            if row.severity == "error":
                msg = str(row.value) if row.value else str(row.label)
                self.all_errors.append((category, msg))
            elif row.severity == "warning":
                msg = str(row.value) if row.value else str(row.label)
                self.all_warnings.append((category, msg))
