"""Tests for the edt command-line interface."""

import json

import pytest
import typer
from typer.testing import CliRunner

from deliverability_tool.cli import (
    _parse_id_list,
    app,
    validate_output_format,
    validate_verbosity,
)

from conftest import SIMPLE_MESSAGE

runner = CliRunner()


@pytest.fixture
def eml_file(tmp_path):
    path = tmp_path / "message.eml"
    path.write_bytes(SIMPLE_MESSAGE)
    return path


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user and local config files out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in ("EDT_VERBOSITY", "EDT_COLOR", "EDT_PARALLEL"):
        monkeypatch.delenv(name, raising=False)


class TestValidators:
    """Test option callbacks and helpers."""

    def test_verbosity(self):
        assert validate_verbosity("DEBUG") == "debug"
        assert validate_verbosity(None) is None
        with pytest.raises(typer.BadParameter):
            validate_verbosity("loud")

    def test_output_format(self):
        assert validate_output_format("JSON") == "json"
        with pytest.raises(typer.BadParameter, match="Unknown output format"):
            validate_output_format("xml")

    def test_parse_id_list(self):
        """Test repeated and comma-separated values are merged."""
        assert _parse_id_list(["rbl", "dns, content"]) == {"rbl", "dns", "content"}
        assert _parse_id_list(None) == set()
        assert _parse_id_list([" , "]) == set()


class TestAnalyzeCommand:
    """Test the analyze command end to end without network access."""

    def test_json_output(self, eml_file):
        """Test JSON output carries the report and analyzer rows."""
        result = runner.invoke(
            app, ["analyze", str(eml_file), "--only", "headers,spam", "-f", "json"]
        )
        data = json.loads(result.stdout)

        assert data["report"]["header_analysis"]["domain_alignment"]["from_domain"] == "example.com"
        assert set(data["results"]) == {"headers", "spam"}
        assert data["report"]["score"] == 10.0
        # Headers alone cannot pass, so the grade is F
        assert data["report"]["grade"] == "F"
        assert result.exit_code == 1

    def test_cli_output(self, eml_file):
        """Test the terminal report shows the subject and score table."""
        result = runner.invoke(app, ["analyze", str(eml_file), "--only", "headers"])
        assert "Analyzing message: Monthly update" in result.stdout
        assert "Deliverability Score" in result.stdout

    def test_only_and_skip_conflict(self, eml_file):
        result = runner.invoke(app, ["analyze", str(eml_file), "--only", "dns", "--skip", "rbl"])
        assert result.exit_code == 1
        assert "Cannot use --only and --skip together" in result.output

    def test_unknown_analyzer(self, eml_file):
        result = runner.invoke(app, ["analyze", str(eml_file), "--skip", "seo"])
        assert result.exit_code == 1
        assert "Unknown analyzer" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(tmp_path / "missing.eml")])
        assert result.exit_code == 1
        assert "Cannot read message" in result.output

    def test_empty_file(self, tmp_path):
        empty = tmp_path / "empty.eml"
        empty.write_bytes(b"\n\n")
        result = runner.invoke(app, ["analyze", str(empty)])
        assert result.exit_code == 1
        assert "Cannot read message" in result.output

    def test_stdin(self):
        """Test '-' reads the message from standard input."""
        result = runner.invoke(
            app, ["analyze", "-", "--only", "spam", "-f", "json"], input=SIMPLE_MESSAGE
        )
        data = json.loads(result.stdout)
        assert data["report"]["spamassassin"] == {}

    def test_invalid_format(self, eml_file):
        result = runner.invoke(app, ["analyze", str(eml_file), "-f", "xml"])
        assert result.exit_code != 0


class TestOtherCommands:
    """Test list-analyzers, create-config and version."""

    def test_list_analyzers(self):
        result = runner.invoke(app, ["list-analyzers"])
        assert result.exit_code == 0
        for analyzer_id in ("authentication", "dns", "rbl", "content", "headers", "spam", "rspamd"):
            assert analyzer_id in result.stdout
        assert "depends on: authentication" in result.stdout

    def test_create_config(self, tmp_path):
        output = tmp_path / "edt.toml"
        result = runner.invoke(app, ["create-config", "-o", str(output)])
        assert result.exit_code == 0
        assert output.exists()
        assert "[rbl]" in output.read_text(encoding="utf-8")

    def test_create_config_refuses_overwrite(self, tmp_path):
        output = tmp_path / "edt.toml"
        output.write_text("# mine\n", encoding="utf-8")

        result = runner.invoke(app, ["create-config", "-o", str(output)])
        assert result.exit_code == 1
        assert output.read_text(encoding="utf-8") == "# mine\n"

        result = runner.invoke(app, ["create-config", "-o", str(output), "--force"])
        assert result.exit_code == 0
        assert "[global]" in output.read_text(encoding="utf-8")

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "email-deliverability-tool" in result.stdout
