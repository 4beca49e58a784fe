"""Tests for report generation across all analyzers."""

from unittest.mock import patch

import pytest

from deliverability_tool.analyzers.header_analyzer import HeaderAnalyzer
from deliverability_tool.analyzers.protocol import CheckCategory
from deliverability_tool.core.config_manager import ConfigManager, GlobalConfig
from deliverability_tool.core.report import REPORT_FIELDS, ReportGenerator

from conftest import FakeMX, FakeTXT, make_message, make_resolver

ZONE = {
    ("example.com", "MX"): [FakeMX("mx.example.com", 10)],
    ("example.com", "TXT"): [FakeTXT("v=spf1 include:_spf.example.com ~all")],
    ("_dmarc.example.com", "TXT"): [FakeTXT("v=DMARC1; p=quarantine")],
    ("sel1._domainkey.example.com", "TXT"): [FakeTXT("v=DKIM1; k=rsa; p=MIIBIjAN")],
}


@pytest.fixture
def config_manager():
    config_mgr = ConfigManager()
    config_mgr.load_from_dict({"content": {"check_links": False}})
    return config_mgr


@pytest.fixture
def offline_dns():
    resolver = make_resolver(ZONE)
    with patch(
        "deliverability_tool.analyzers.dns_analyzer.create_resolver", return_value=resolver
    ), patch("deliverability_tool.analyzers.rbl_checker.create_resolver", return_value=resolver):
        yield resolver


class TestAnalyzerSelection:
    """Test which analyzers run."""

    def test_only(self, config_manager):
        """Test --only style selection skips everything else."""
        order, skipped = ReportGenerator(config_manager).select_analyzers(only={"headers", "spam"})
        assert sorted(order) == ["headers", "spam"]
        assert skipped == {"authentication", "dns", "rbl", "content", "rspamd"}

    def test_skip(self, config_manager):
        """Test skipping keeps dependency order for the rest."""
        order, skipped = ReportGenerator(config_manager).select_analyzers(skip={"rbl", "spam"})
        assert order.index("authentication") < order.index("dns")
        assert "rbl" not in order
        assert skipped == {"rbl", "spam"}

    def test_unknown_id(self, config_manager):
        """Test unknown analyzer IDs are rejected."""
        generator = ReportGenerator(config_manager)
        with pytest.raises(ValueError, match="Unknown analyzer"):
            generator.select_analyzers(skip={"seo"})
        with pytest.raises(ValueError, match="Unknown analyzer"):
            generator.select_analyzers(only={"whois"})

    def test_disabled_in_config_counts_as_skipped(self):
        """Test enabled = false leaves the analyzer out."""
        config_mgr = ConfigManager()
        config_mgr.load_from_dict({"rbl": {"enabled": False}})
        order, skipped = ReportGenerator(config_mgr).select_analyzers()
        assert "rbl" not in order
        assert "rbl" in skipped


class TestReportGeneration:
    """Test full report generation with offline DNS."""

    def test_full_report(self, simple_message, config_manager, offline_dns):
        """Test every analyzer contributes to the report."""
        report = ReportGenerator(config_manager).generate(simple_message, test_id="run-1")

        assert report.errors == {}
        assert report.skipped == []
        assert report.test_id == "run-1"
        for report_field in REPORT_FIELDS.values():
            if report_field not in ("spamassassin", "rspamd"):
                assert getattr(report, report_field) is not None

        summary = report.summary
        assert summary.score_of(CheckCategory.AUTHENTICATION) == 3.0
        assert summary.score_of(CheckCategory.HEADERS) == 1.0
        assert summary.score_of(CheckCategory.BLACKLIST) == 2.0
        # No spam filter headers on the sample message
        assert summary.score_of(CheckCategory.SPAM) == 0.0
        assert 0.0 <= report.score <= 100.0
        assert report.grade == summary.grade

    def test_dns_sees_authentication_results(self, simple_message, config_manager, offline_dns):
        """Test DKIM selectors flow from authentication into DNS lookups."""
        report = ReportGenerator(config_manager).generate(
            simple_message, only={"authentication", "dns"}
        )
        assert [d.selector for d in report.dns_results.dkim_records] == ["sel1"]
        assert report.dns_results.dkim_records[0].valid
        assert "DKIM Record (sel1)" in [c.name for c in report.checks]

    def test_dns_without_authentication(self, simple_message, config_manager, offline_dns):
        """Test DNS still runs when authentication is skipped."""
        report = ReportGenerator(config_manager).generate(simple_message, only={"dns"})
        assert report.dns_results.dkim_records == []
        assert report.authentication is None

    def test_skipped_categories(self, simple_message, config_manager):
        """Test categories of skipped analyzers are flagged."""
        report = ReportGenerator(config_manager).generate(simple_message, only={"headers"})
        categories = report.summary.categories
        assert categories[CheckCategory.HEADERS].skipped is False
        assert categories[CheckCategory.BLACKLIST].skipped is True
        assert report.score == 10.0

    def test_failing_analyzer_recorded(self, simple_message, config_manager, monkeypatch):
        """Test an analyzer that raises is recorded and scores zero."""

        def boom(self, message, config, context=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(HeaderAnalyzer, "analyze", boom)
        report = ReportGenerator(config_manager).generate(
            simple_message, only={"headers", "content"}
        )

        assert report.errors == {"headers": "RuntimeError: boom"}
        assert report.header_analysis is None
        assert report.content_analysis is not None
        assert report.summary.score_of(CheckCategory.HEADERS) == 0.0
        assert "headers" not in report.skipped

    def test_sequential_mode(self, simple_message, config_manager, offline_dns):
        """Test parallel = false gives the same result."""
        config_manager.global_config = GlobalConfig(parallel=False)
        report = ReportGenerator(config_manager).generate(
            simple_message, only={"authentication", "rbl", "headers"}
        )
        assert report.errors == {}
        assert report.summary.score_of(CheckCategory.AUTHENTICATION) == 3.0

    def test_to_dict(self, simple_message, config_manager):
        """Test the serialized report layout."""
        report = ReportGenerator(config_manager).generate(simple_message, only={"headers", "spam"})
        data = report.to_dict()

        for key in ("id", "test_id", "created_at", "score", "grade", "rating", "summary"):
            assert key in data
        assert data["header_analysis"]["domain_alignment"]["from_domain"] == "example.com"
        assert data["spamassassin"] == {}
        assert data["authentication"] is None
        assert "Message-ID: <abc123@example.com>" in data["raw_headers"]
        assert data["skipped_analyzers"] == sorted(
            ["authentication", "content", "dns", "rbl", "rspamd"]
        )
        assert all("category" in check for check in data["checks"])


class TestSharedSpamCategory:
    """Test SpamAssassin and rspamd both feeding the Spam category."""

    SPAMD_RESULT = "default: False [6.00 / 15.00]; BAYES_SPAM(5.10)[99.99%]; R_SPF_ALLOW(-0.20)[+mx]"

    def test_scores_are_averaged(self, config_manager):
        message = make_message(
            [
                ("From", "a@example.com"),
                ("X-Spam-Status", "No, score=-1.0 required=5.0 tests=ALL_TRUSTED"),
                ("X-Spamd-Result", self.SPAMD_RESULT),
            ]
        )
        report = ReportGenerator(config_manager).generate(message, only={"spam", "rspamd"})

        assert report.spamassassin.score == -1.0
        assert report.rspamd.score == 6.0
        # (2.0 + 1.6) / 2
        assert report.summary.score_of(CheckCategory.SPAM) == pytest.approx(1.8)
        assert report.summary.categories[CheckCategory.SPAM].skipped is False

    def test_filter_without_headers_is_ignored(self, config_manager):
        """Test a missing SpamAssassin verdict does not drag rspamd's score down."""
        message = make_message(
            [("From", "a@example.com"), ("X-Spamd-Result", self.SPAMD_RESULT)]
        )
        report = ReportGenerator(config_manager).generate(message, only={"spam", "rspamd"})

        assert report.spamassassin is None
        assert report.summary.score_of(CheckCategory.SPAM) == pytest.approx(1.6)

    def test_category_not_skipped_while_one_analyzer_runs(self, config_manager):
        message = make_message(
            [("From", "a@example.com"), ("X-Spamd-Result", self.SPAMD_RESULT)]
        )
        report = ReportGenerator(config_manager).generate(message, only={"rspamd"})

        assert "spam" in report.skipped
        assert report.summary.categories[CheckCategory.SPAM].skipped is False
        assert report.summary.score_of(CheckCategory.SPAM) == pytest.approx(1.6)
