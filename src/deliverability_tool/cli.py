"""Command-line interface for email-deliverability-tool.

This is the main CLI entry point using the modular analyzer system.
All analyzers are auto-discovered via the registry.
"""

import importlib.metadata
import logging
import sys
from pathlib import Path
from typing import Annotated

import rich.panel
import typer
from rich import box
from rich.console import Console
from rich.markup import escape

# Remove borders from CLI help output by monkey-patching Panel
_original_panel_init = rich.panel.Panel.__init__


def _no_border_panel_init(self, *args, **kwargs) -> None:
    kwargs["box"] = box.HORIZONTALS
    return _original_panel_init(self, *args, **kwargs)


rich.panel.Panel.__init__ = _no_border_panel_init

from . import analyzers  # noqa: F401, E402  # Triggers analyzer registration
from .analyzers.protocol import VerbosityLevel  # noqa: E402
from .core.config_manager import LOCAL_CONFIG_NAME, ConfigManager  # noqa: E402
from .core.message import EmailMessage  # noqa: E402
from .core.registry import registry  # noqa: E402
from .core.report import ReportGenerator  # noqa: E402
from .renderers import CLIRenderer, JSONRenderer  # noqa: E402
from .utils.logger import setup_logger  # noqa: E402

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="edt",
    help="Email deliverability analysis: authentication, DNS, blacklists, content and headers",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

OUTPUT_FORMATS = ("cli", "json")


# ============================================================================
# Validation Functions
# ============================================================================


def validate_verbosity(value: str | None) -> str | None:
    """
    Validate verbosity level.

    Args:
        value: Verbosity level string (None keeps the configured level)

    Returns:
        Validated verbosity level

    Raises:
        typer.BadParameter: If verbosity is invalid
    """
    if value is None:
        return None
    valid_levels = [level.value for level in VerbosityLevel]
    if value.lower() not in valid_levels:
        raise typer.BadParameter(
            f"Invalid verbosity: {value}. Must be one of: {', '.join(valid_levels)}"
        )
    return value.lower()


def validate_output_format(value: str) -> str:
    if value.lower() not in OUTPUT_FORMATS:
        raise typer.BadParameter(
            f"Unknown output format: {value}. Available formats: {', '.join(OUTPUT_FORMATS)}"
        )
    return value.lower()


# ============================================================================
# Helper Functions
# ============================================================================


def read_message(source: str) -> EmailMessage:
    """
    Read and parse a message from a file path or "-" for stdin.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the input is empty
    """
    if source == "-":
        raw = sys.stdin.buffer.read()
    else:
        raw = Path(source).read_bytes()

    if not raw.strip():
        raise ValueError("Message is empty")
    return EmailMessage.from_bytes(raw)


def _parse_id_list(values: list[str] | None) -> set[str]:
    """Accept both repeated options and comma-separated values."""
    ids: set[str] = set()
    for value in values or []:
        ids.update(part.strip() for part in value.split(",") if part.strip())
    return ids


# ============================================================================
# CLI Commands
# ============================================================================


@app.command()
def analyze(
    source: Annotated[
        str,
        typer.Argument(help="Message file (.eml) to analyze. Use '-' for stdin."),
    ],
    skip: Annotated[
        list[str] | None,
        typer.Option(help="Analyzers to skip (e.g., --skip rbl --skip content)"),
    ] = None,
    only: Annotated[
        list[str] | None,
        typer.Option(
            help="Run only these analyzers (e.g., --only headers or --only authentication,dns). Cannot be used with --skip."
        ),
    ] = None,
    verbosity: Annotated[
        str | None,
        typer.Option(
            "--verbosity",
            "-v",
            help="Output verbosity: quiet, normal, verbose, debug",
            callback=validate_verbosity,
        ),
    ] = None,
    output_format: Annotated[
        str,
        typer.Option(
            "--format",
            "-f",
            help="Output format: cli, json",
            callback=validate_output_format,
        ),
    ] = "cli",
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    test_id: Annotated[
        str | None,
        typer.Option("--test-id", help="Identifier copied into the report"),
    ] = None,
    no_links: Annotated[
        bool,
        typer.Option("--no-links", help="Do not check links over HTTP"),
    ] = False,
):
    """
    Analyze the deliverability of one email message.

    Runs all enabled analyzers on the message and prints a scored report.
    Exits with code 1 when the grade is F.

    Examples:
        edt analyze message.eml
        edt analyze message.eml --skip rbl --no-links
        edt analyze message.eml --only headers,spam
        cat message.eml | edt analyze - --format json
    """
    if only and skip:
        err_console.print("[red]Error: Cannot use --only and --skip together[/red]")
        raise typer.Exit(1)

    # Load configuration
    config_manager = ConfigManager()
    try:
        config_manager.load_from_files(extra_paths=[config_file] if config_file else None)
    except (RuntimeError, ValueError) as e:
        logger.warning(f"Failed to load configuration: {e}")

    try:
        verbosity_level = VerbosityLevel(verbosity or config_manager.global_config.verbosity)
    except ValueError:
        logger.warning(f"Invalid verbosity in config: {config_manager.global_config.verbosity}")
        verbosity_level = VerbosityLevel.NORMAL
    setup_logger(level=verbosity_level)

    if no_links:
        config_manager.merge_cli_overrides("content", {"check_links": False})

    try:
        message = read_message(source)
    except (OSError, ValueError) as e:
        err_console.print(f"[red]Error: Cannot read message from {source}: {e}[/red]")
        raise typer.Exit(1)

    generator = ReportGenerator(config_manager)
    try:
        report = generator.generate(
            message,
            skip=_parse_id_list(skip),
            only=_parse_id_list(only) or None,
            test_id=test_id,
        )
    except ValueError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        err_console.print(f"\nAvailable analyzers: {', '.join(sorted(registry.get_all_ids()))}")
        raise typer.Exit(1)

    if output_format == "json":
        renderer = JSONRenderer(verbosity=verbosity_level)
    else:
        renderer = CLIRenderer(
            verbosity=verbosity_level,
            color=config_manager.global_config.color,
            console=console,
        )
        if verbosity_level != VerbosityLevel.QUIET:
            subject = message.get("Subject") or "(no subject)"
            console.print(f"[bold blue]Analyzing message: {escape(subject)}[/bold blue]")
            console.print(f"[dim]From: {escape(message.from_address or 'unknown')}[/dim]")

    renderer.render_report(report)

    if report.grade == "F":
        raise typer.Exit(1)


@app.command()
def list_analyzers() -> None:
    """
    List all available analyzers.

    Shows analyzer ID, name, category, and dependencies.
    """
    console.print("[bold blue]Available Analyzers[/bold blue]\n")

    by_category: dict[str, list] = {}
    for analyzer_id, metadata in registry.get_all().items():
        by_category.setdefault(metadata.category, []).append((analyzer_id, metadata))

    for category in sorted(by_category.keys()):
        console.print(f"[cyan]{category.upper()}[/cyan]")
        for analyzer_id, metadata in sorted(by_category[category], key=lambda item: item[0]):
            deps = f" (depends on: {', '.join(metadata.depends_on)})" if metadata.depends_on else ""
            console.print(f"  • {analyzer_id:15} - {metadata.name}{deps}")
        console.print()


@app.command()
def create_config(
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Output file path",
        ),
    ] = Path(LOCAL_CONFIG_NAME),
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing file",
        ),
    ] = False,
):
    """
    Create a default configuration file.

    Generates a TOML configuration file with all analyzer settings.

    Example:
        edt create-config
        edt create-config --output ~/.config/email-deliverability-tool/config.toml
    """
    if output.exists() and not force:
        console.print(f"[yellow]File already exists: {output}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(1)

    config_manager = ConfigManager()

    try:
        config_manager.create_default_config_file(output)
        console.print(f"[green]✓ Created configuration file: {output}[/green]")
    except OSError as e:
        console.print(f"[red]✗ Failed to create config: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    try:
        package_version = importlib.metadata.version("email-deliverability-tool")
        console.print(f"email-deliverability-tool version {package_version}")
    except importlib.metadata.PackageNotFoundError:
        console.print("email-deliverability-tool (version unknown)")


# ============================================================================
# Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
