"""Tests for the SpamAssassin analyzer."""

import pytest

from deliverability_tool.analyzers.protocol import CheckStatus, Severity
from deliverability_tool.analyzers.spamassassin import (
    SpamAssassinAnalyzer,
    SpamAssassinConfig,
    SpamAssassinResult,
    get_spam_score,
    parse_spam_report,
    parse_spam_status,
)

from conftest import make_message

REPORT = (
    "Content analysis details:   (2.0 points, 5.0 required)\n"
    " pts rule name              description\n"
    " ---- ---------------------- --------------------------------------------------\n"
    " *  2.5 HTML_IMAGE_ONLY_24 BODY: HTML: images with 2000-2400 bytes of words\n"
    " *  0.5 MISSING_MID Missing Message-Id: header\n"
    " * -1.9 BAYES_00 BODY: Bayes spam probability is 0 to 1%"
)


@pytest.fixture
def analyzer():
    return SpamAssassinAnalyzer()


class TestSpamHeaderParsing:
    """Test X-Spam-Status and X-Spam-Report parsing."""

    def test_parse_status(self):
        """Test verdict, score, threshold and tests are extracted."""
        result = SpamAssassinResult()
        parse_spam_status(
            "Yes, score=7.3 required=5.0 tests=HTML_IMAGE_ONLY_24,MISSING_MID autolearn=no",
            result,
        )
        assert result.is_spam is True
        assert result.score == 7.3
        assert result.required_score == 5.0
        assert result.tests == ["HTML_IMAGE_ONLY_24", "MISSING_MID"]

    def test_parse_negative_score(self):
        """Test negative scores are kept."""
        result = SpamAssassinResult()
        parse_spam_status("No, score=-0.1 required=5.0 tests=BAYES_00", result)
        assert result.is_spam is False
        assert result.score == -0.1

    def test_parse_report(self):
        """Test each report line becomes a test detail."""
        result = SpamAssassinResult()
        parse_spam_report(REPORT, result)
        assert set(result.test_details) == {"HTML_IMAGE_ONLY_24", "MISSING_MID", "BAYES_00"}
        detail = result.test_details["BAYES_00"]
        assert detail.score == -1.9
        assert detail.description == "BODY: Bayes spam probability is 0 to 1%"

    def test_parse_folded_report(self):
        """Test a report unfolded onto one line still splits per test."""
        result = SpamAssassinResult()
        parse_spam_report(" ".join(REPORT.split()), result)
        assert result.test_details["MISSING_MID"].score == 0.5

    def test_default_threshold(self):
        """Test a missing required score falls back to 5.0."""
        assert SpamAssassinResult(score=3.0).effective_required == 5.0


class TestSpamScore:
    """Test mapping of the spam score to the 0-2 category."""

    @pytest.mark.parametrize(
        "score, expected",
        [
            (-2.0, 2.0),
            (0.0, 2.0),
            (2.0, 1.8),
            (4.9, 1.51),
            (5.0, 1.0),
            (9.9, 1.0),
            (10.0, 0.5),
            (14.9, 0.5),
            (15.0, 0.0),
        ],
    )
    def test_thresholds(self, score, expected):
        """Test each band of the spam score mapping."""
        result = SpamAssassinResult(score=score, required_score=5.0)
        assert get_spam_score(result) == pytest.approx(expected)

    def test_no_result_scores_zero(self):
        """Test a message without spam headers gets no spam points."""
        assert get_spam_score(None) == 0.0


class TestSpamAssassinAnalyzer:
    """Test the analyzer on whole messages."""

    def test_no_headers(self, analyzer):
        """Test a message without X-Spam headers yields no result and a warning."""
        assert analyzer.analyze(make_message([("From", "a@example.com")]), SpamAssassinConfig()) is None
        checks = analyzer.generate_checks(None)
        assert checks[0].name == "SpamAssassin Analysis"
        assert checks[0].status == CheckStatus.WARN
        assert analyzer.to_dict(None) == {}

    def test_full_headers(self, analyzer):
        """Test status, report and version headers are combined."""
        message = make_message(
            [
                ("X-Spam-Checker-Version", "SpamAssassin 4.0.0 (2022-12-13) on mx.example.net"),
                (
                    "X-Spam-Status",
                    "No, score=2.0 required=5.0 tests=BAYES_00,HTML_IMAGE_ONLY_24,MISSING_MID autolearn=no",
                ),
                ("X-Spam-Report", REPORT.replace("\n", "\n\t")),
            ]
        )
        result = analyzer.analyze(message, SpamAssassinConfig())

        assert result.score == 2.0
        assert result.version.startswith("SpamAssassin 4.0.0")
        assert analyzer.get_score(result) == pytest.approx(1.8)

        checks = {c.name: c for c in analyzer.generate_checks(result)}
        main = checks["SpamAssassin Score"]
        assert main.status == CheckStatus.PASS
        assert main.message == "Good spam score: 2.0 (threshold: 5.0)"
        assert main.details == "Triggered 3 tests: BAYES_00, HTML_IMAGE_ONLY_24, MISSING_MID"

        # Only tests with |score| > 1.0 are reported individually
        assert "Spam Test: MISSING_MID" not in checks
        assert checks["Spam Test: HTML_IMAGE_ONLY_24"].status == CheckStatus.FAIL
        assert checks["Spam Test: HTML_IMAGE_ONLY_24"].severity == Severity.HIGH
        assert checks["Spam Test: BAYES_00"].status == CheckStatus.PASS
        assert checks["Spam Test: BAYES_00"].score == 0.1

    def test_score_header_fallback(self, analyzer):
        """Test X-Spam-Score is used when X-Spam-Status has no score."""
        message = make_message([("X-Spam-Score", "6.2"), ("X-Spam-Flag", "YES")])
        result = analyzer.analyze(message, SpamAssassinConfig())
        assert result.score == 6.2
        assert result.is_spam is True
        assert analyzer.get_score(result) == 1.0
        assert analyzer.generate_checks(result)[0].status == CheckStatus.WARN

    def test_flag_overrides_status(self, analyzer):
        """Test X-Spam-Flag decides the spam verdict."""
        message = make_message(
            [("X-Spam-Status", "Yes, score=6.0 required=5.0"), ("X-Spam-Flag", "NO")]
        )
        result = analyzer.analyze(message, SpamAssassinConfig())
        assert result.is_spam is False

    def test_many_tests_truncated(self, analyzer):
        """Test the main check lists at most five test names."""
        tests = ",".join(f"T{i}" for i in range(8))
        result = SpamAssassinResult(score=1.0, required_score=5.0, tests=tests.split(","))
        main = analyzer.generate_checks(result)[0]
        assert main.details == "Triggered 8 tests: T0, T1, T2, T3, T4 and 3 more"

    def test_very_high_score_fails(self, analyzer):
        """Test a score at twice the threshold fails."""
        result = SpamAssassinResult(score=12.0, required_score=5.0)
        main = analyzer.generate_checks(result)[0]
        assert main.status == CheckStatus.FAIL
        assert main.severity == Severity.CRITICAL

    def test_unrelated_x_spam_headers_ignored(self, analyzer):
        """Test X-Spam-* headers outside the SpamAssassin set give no verdict."""
        message = make_message([("From", "a@example.com"), ("X-Spam-Processed", "mx.example.net")])
        assert message.spam_headers == {}
        result = analyzer.analyze(message, SpamAssassinConfig())
        assert result is None
        assert analyzer.get_score(result) == 0.0

    def test_spam_level_alone_is_a_verdict(self, analyzer):
        """Test X-Spam-Level counts as a SpamAssassin header."""
        message = make_message([("x-spam-level", "**")])
        assert message.spam_headers == {"X-Spam-Level": "**"}
        assert analyzer.analyze(message, SpamAssassinConfig()) is not None
