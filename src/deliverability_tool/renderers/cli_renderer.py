"""CLI renderer using Rich library.

This renderer interprets semantic styles from OutputDescriptor and renders
them to terminal using the Rich library with appropriate colors and formatting.
"""

from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..analyzers.protocol import OutputDescriptor, OutputRow, VerbosityLevel
from ..core.registry import registry
from ..core.report import Report
from .base import BaseRenderer


class CLIRenderer(BaseRenderer):
    """
    Renders output to CLI using Rich library.

    Maps semantic style classes to Rich markup:
    - success -> green
    - error -> red
    - warning -> yellow
    - info -> blue
    - highlight -> bold
    - muted -> dim
    - neutral -> default
    """

    # Semantic style class -> Rich markup color
    STYLE_MAP = {
        "success": "green",
        "error": "red",
        "warning": "yellow",
        "info": "blue",
        "highlight": "bold",
        "muted": "dim",
        "neutral": "",
    }

    # Semantic icon name -> Unicode character
    ICON_MAP = {
        "check": "✓",
        "cross": "✗",
        "warning": "⚠",
        "info": "ℹ",
        "arrow": "→",
        "shield": "🛡",
        "envelope": "✉",
        "globe": "🌐",
        "lock": "🔒",
        "document": "📄",
        "bullet": "•",
    }

    # Category status -> style class
    STATUS_STYLES = {"Pass": "success", "Warn": "warning", "Fail": "error"}

    def __init__(
        self,
        verbosity: VerbosityLevel = VerbosityLevel.NORMAL,
        color: bool = True,
        console: Console | None = None,
    ):
        """
        Initialize CLI renderer.

        Args:
            verbosity: Output verbosity level
            color: Enable colored output
            console: Console to print to (defaults to stdout)
        """
        super().__init__(verbosity)
        self.console = console or Console(color_system="auto" if color else None)

    def render(self, descriptor: OutputDescriptor, result: Any, analyzer_id: str) -> None:
        """
        Render analyzer output to CLI.

        Args:
            descriptor: Output structure description
            result: Analyzer result
            analyzer_id: Analyzer ID
        """
        self.collect_errors_warnings(descriptor, descriptor.title)

        # Quiet mode: use custom summary function
        if self.verbosity == VerbosityLevel.QUIET:
            if descriptor.quiet_summary:
                self.console.print(descriptor.quiet_summary(result))
            return

        metadata = registry.get(analyzer_id)
        icon = self.ICON_MAP.get(metadata.icon, "") if metadata else ""
        title = f"{icon} {descriptor.title}" if icon else descriptor.title
        self.console.print(f"\n[bold blue]{title}[/bold blue]")
        self.console.print()

        rows = descriptor.filter_by_verbosity(self.verbosity)

        if not rows:
            self.console.print("  [dim]No data to display[/dim]")
            return

        # Group by section
        sections: dict[str, list] = {}
        for row in rows:
            sections.setdefault(row.section_name or "_default", []).append(row)

        for section_name, section_rows in sections.items():
            if section_name != "_default":
                self.console.print()
                self.console.print(f"  [cyan]{section_name}[/cyan]")

            for row in section_rows:
                self._render_row(row)

    def _render_row(self, row: OutputRow) -> None:
        """
        Render a single output row.

        Args:
            row: OutputRow to render
        """
        indent = "  "
        style = self.STYLE_MAP.get(row.style_class, "")
        icon = self.ICON_MAP.get(row.icon, "")
        icon_str = f"{icon} " if icon else ""

        if row.section_type == "heading":
            text = row.value or row.label
            self.console.print(f"{indent}[{style} bold]{text}[/{style} bold]")
            self.console.print()
            return

        if row.section_type == "text":
            msg = escape(str(row.value) if row.value else str(row.label))
            if style:
                self.console.print(f"{indent}[{style}]{icon_str}{msg}[/{style}]")
            else:
                self.console.print(f"{indent}{icon_str}{msg}")
            return

        if row.section_type == "list":
            if row.label:
                if style:
                    self.console.print(f"{indent}[{style}]{row.label}:[/{style}]")
                else:
                    self.console.print(f"{indent}{row.label}:")

            items = row.value if isinstance(row.value, list) else [row.value]
            max_items = row.max_items or len(items)

            for item in items[:max_items]:
                self.console.print(f"{indent}  {self.ICON_MAP['bullet']} {escape(str(item))}")

            if len(items) > max_items:
                self.console.print(f"{indent}  [dim]... and {len(items) - max_items} more[/dim]")
            return

        # key_value
        if not row.show_if_empty and not row.value:
            return

        formatted_value = self._format_value(row)
        if style:
            formatted_value = f"[{style}]{formatted_value}[/{style}]"

        if row.label:
            self.console.print(f"{indent}{row.label}: {icon_str}{formatted_value}")
        else:
            self.console.print(f"{indent}{icon_str}{formatted_value}")

    def _format_value(self, row: OutputRow) -> str:
        """
        Format row value for display.

        Args:
            row: OutputRow

        Returns:
            Formatted string
        """
        if row.value is None:
            return "[dim]none[/dim]"

        if isinstance(row.value, bool):
            return "Yes" if row.value else "No"

        if isinstance(row.value, (list, tuple)):
            return escape(", ".join(str(v) for v in row.value))

        return escape(str(row.value))

    def render_scores(self, report: Report) -> None:
        """Render the category score table, overall grade and recommendations."""
        summary = report.summary

        if self.verbosity == VerbosityLevel.QUIET:
            self.console.print(
                f"Score: {summary.overall_score:.1f}/100 ({summary.grade}, {summary.rating})"
            )
            return

        self.console.print()
        self.console.print("[bold blue]═══ Deliverability Score ═══[/bold blue]")
        self.console.print()

        table = Table(box=box.ROUNDED, show_header=True, header_style="bold")
        table.add_column("Category")
        table.add_column("Score", justify="right")
        table.add_column("Percent", justify="right")
        table.add_column("Grade", justify="center")
        table.add_column("Status")

        for entry in summary.categories.values():
            if entry.skipped:
                table.add_row(entry.label, "-", "-", "-", "[dim]skipped[/dim]")
                continue
            style = self.STYLE_MAP[self.STATUS_STYLES[entry.status]]
            table.add_row(
                entry.label,
                f"{entry.score:.2f} / {entry.max_score:.0f}",
                f"{entry.percentage:.0f}%",
                entry.grade,
                f"[{style}]{entry.status}[/{style}]",
            )
        self.console.print(table)

        if summary.overall_score >= 85:
            grade_style = self.STYLE_MAP["success"]
        elif summary.overall_score >= 50:
            grade_style = self.STYLE_MAP["warning"]
        else:
            grade_style = self.STYLE_MAP["error"]
        self.console.print(
            f"\n  [bold]Overall:[/bold] [{grade_style}]{summary.overall_score:.1f}/100 "
            f"grade {summary.grade} ({summary.rating})[/{grade_style}]"
        )

        if summary.recommendations:
            self.console.print()
            self.console.print("  [cyan]Recommendations[/cyan]")
            for recommendation in summary.recommendations:
                self.console.print(f"    {self.ICON_MAP['bullet']} {escape(recommendation)}")

    def render_summary(self) -> None:
        """Render summary of all analyses."""
        if self.verbosity == VerbosityLevel.QUIET:
            return

        self.console.print()
        self.console.print("[bold blue]═══ Summary ═══[/bold blue]")
        self.console.print()

        total_errors = len(self.all_errors)
        total_warnings = len(self.all_warnings)

        if total_errors == 0 and total_warnings == 0:
            self.console.print("[green]✓ No issues found![/green]")
        else:
            if total_errors > 0:
                self.console.print(f"[red]✗ {total_errors} error(s) found:[/red]")
                for category, error in self.all_errors:
                    self.console.print(f"  [red]• {escape(f'[{category}]')} {escape(error)}[/red]")
                self.console.print()

            if total_warnings > 0:
                self.console.print(f"[yellow]⚠ {total_warnings} warning(s) found:[/yellow]")
                for category, warning in self.all_warnings:
                    self.console.print(f"  [yellow]• {escape(f'[{category}]')} {escape(warning)}[/yellow]")

        self.console.print()
