"""Tests for the CLI and JSON renderers."""

import io
import json

import pytest
from rich.console import Console

from deliverability_tool.analyzers.protocol import VerbosityLevel
from deliverability_tool.core.config_manager import ConfigManager
from deliverability_tool.core.report import ReportGenerator
from deliverability_tool.renderers import CLIRenderer, JSONRenderer


@pytest.fixture
def report(simple_message):
    config_mgr = ConfigManager()
    return ReportGenerator(config_mgr).generate(simple_message, only={"headers", "spam"})


def test_json_renderer(report):
    """Test the JSON document holds the report, rows and summary."""
    stream = io.StringIO()
    JSONRenderer(stream=stream).render_report(report)
    data = json.loads(stream.getvalue())

    assert data["report"]["grade"] == report.grade
    assert data["results"]["headers"]["title"] == "Headers"
    assert all("style_class" in row for row in data["results"]["spam"]["rows"])
    # Missing SpamAssassin headers show up as a warning
    assert data["summary"]["total_warnings"] >= 1


def test_json_renderer_records_failed_analyzers(report):
    """Test analyzer failures are listed as errors."""
    report.errors["rbl"] = "TimeoutError: lookup timed out"
    stream = io.StringIO()
    JSONRenderer(stream=stream).render_report(report)
    errors = json.loads(stream.getvalue())["summary"]["errors"]
    assert {"category": "rbl", "message": "Analyzer failed: TimeoutError: lookup timed out"} in errors


def test_cli_renderer(report):
    """Test sections, the score table and summary are printed."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None)
    CLIRenderer(console=console).render_report(report)
    output = buffer.getvalue()

    assert "Headers" in output
    assert "Deliverability Score" in output
    assert "Summary" in output
    assert f"grade {report.grade}" in output


def test_cli_renderer_quiet(report):
    """Test quiet mode prints one summary line per analyzer."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, color_system=None)
    CLIRenderer(verbosity=VerbosityLevel.QUIET, console=console).render_report(report)
    output = buffer.getvalue()

    assert "SpamAssassin: n/a" in output
    assert "Score: 10.0/100" in output
    assert "Received" not in output
