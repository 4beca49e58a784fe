"""Tests for the RBL blacklist checker."""

from unittest.mock import patch

import dns.exception
import pytest

from deliverability_tool.analyzers.protocol import CheckStatus, Severity
from deliverability_tool.analyzers.rbl_checker import (
    RBLChecker,
    RBLConfig,
    RBLResults,
    extract_ips,
    get_blacklist_score,
    is_public_ip,
    reverse_ip,
)

from conftest import make_message, make_resolver

RBLS = ["zen.spamhaus.org", "bl.spamcop.net"]


@pytest.fixture
def checker():
    return RBLChecker()


def patched_resolver(answers):
    return patch(
        "deliverability_tool.analyzers.rbl_checker.create_resolver",
        return_value=make_resolver(answers),
    )


class TestIPHelpers:
    """Test IP reversal, classification and extraction."""

    def test_reverse_ip(self):
        """Test octets are reversed for a DNSBL query."""
        assert reverse_ip("192.0.2.1") == "1.2.0.192"
        assert reverse_ip("203.0.113.5") == "5.113.0.203"

    @pytest.mark.parametrize("value", ["2001:db8::1", "300.1.1.1", "not-an-ip", ""])
    def test_reverse_ip_rejects_non_ipv4(self, value):
        """Test IPv6 and garbage reverse to an empty string."""
        assert reverse_ip(value) == ""

    @pytest.mark.parametrize(
        "ip", ["10.0.0.1", "172.16.5.4", "192.168.1.1", "127.0.0.1", "169.254.1.1", "0.0.0.0"]
    )
    def test_non_public_addresses(self, ip):
        """Test private, loopback, link-local and unspecified are not public."""
        assert is_public_ip(ip) is False

    def test_public_address(self):
        """Test a routable address is public."""
        assert is_public_ip("8.8.8.8") is True

    def test_extract_ips_skips_private_and_duplicates(self):
        """Test the Received chain yields unique public IPs in order."""
        message = make_message(
            [
                ("Received", "from relay (relay [192.168.0.10]) by mx with ESMTP"),
                ("Received", "from mail.example.com ([8.8.4.4]) by relay"),
                ("Received", "from other ([8.8.4.4]) by relay2; also 1.1.1.1"),
            ]
        )
        assert extract_ips(message) == ["8.8.4.4", "1.1.1.1"]

    def test_extract_ips_falls_back_to_originating_ip(self):
        """Test X-Originating-IP is used when Received has no public IP."""
        message = make_message(
            [
                ("Received", "from localhost (127.0.0.1) by mx"),
                ("X-Originating-IP", "[8.8.8.8]"),
            ]
        )
        assert extract_ips(message) == ["8.8.8.8"]


class TestBlacklistScore:
    """Test the 0-2 blacklist category score."""

    @pytest.mark.parametrize(
        "listed, expected", [(0, 2.0), (1, 1.0), (2, 0.5), (3, 0.5), (4, 0.0), (7, 0.0)]
    )
    def test_score_by_listing_count(self, listed, expected):
        """Test score thresholds by number of listings."""
        results = RBLResults(ips_checked=["8.8.8.8"], listed_count=listed)
        assert get_blacklist_score(results) == expected

    def test_no_ips_scores_full(self):
        """Test a message without public IPs is not penalized."""
        assert get_blacklist_score(RBLResults()) == 2.0


class TestRBLChecker:
    """Test RBL lookups with a fake resolver."""

    def test_clean_ip(self, checker):
        """Test NXDOMAIN on every RBL means not listed."""
        with patched_resolver({}):
            result = checker.check_ips(["8.8.8.8"], RBLConfig(rbl_servers=RBLS))

        assert result.listed_count == 0
        assert [(c.ip, c.rbl) for c in result.checks] == [
            ("8.8.8.8", "zen.spamhaus.org"),
            ("8.8.8.8", "bl.spamcop.net"),
        ]
        assert checker.get_score(result) == 2.0
        summary = checker.generate_checks(result)[0]
        assert summary.status == CheckStatus.PASS
        assert summary.message == "Not listed on any blacklists (2 RBLs checked)"

    def test_listed_ip(self, checker):
        """Test an A answer marks the IP listed with its response code."""
        answers = {("8.8.8.8.zen.spamhaus.org", "A"): ["127.0.0.2"]}
        with patched_resolver(answers):
            result = checker.check_ips(["8.8.8.8"], RBLConfig(rbl_servers=RBLS))

        assert result.listed_count == 1
        listed = [c for c in result.checks if c.listed]
        assert listed[0].rbl == "zen.spamhaus.org"
        assert listed[0].response == "127.0.0.2"
        assert result.warnings == ["IP 8.8.8.8 is listed on 1 blacklist(s): zen.spamhaus.org"]

        checks = checker.generate_checks(result)
        assert checks[0].status == CheckStatus.WARN
        assert checks[1].name == "RBL: zen.spamhaus.org"
        assert checks[1].severity == Severity.CRITICAL

    def test_lookup_error_is_not_a_listing(self, checker):
        """Test a timeout is recorded on the lookup and not counted."""
        answers = {("8.8.8.8.zen.spamhaus.org", "A"): dns.exception.Timeout()}
        with patched_resolver(answers):
            result = checker.check_ips(["8.8.8.8"], RBLConfig(rbl_servers=RBLS))

        assert result.listed_count == 0
        assert result.checks[0].error.startswith("DNS lookup failed:")

    def test_analyze_first_ip_only(self, checker):
        """Test check_all_ips=False limits lookups to the first IP."""
        message = make_message(
            [
                ("Received", "from a ([8.8.8.8]) by b"),
                ("Received", "from c ([1.1.1.1]) by d"),
            ]
        )
        with patched_resolver({}):
            result = checker.analyze(
                message, RBLConfig(rbl_servers=RBLS, check_all_ips=False)
            )
        assert result.ips_checked == ["8.8.8.8"]
        assert len(result.checks) == 2

    def test_no_public_ip(self, checker):
        """Test a message without public IPs gets a warning check."""
        with patch("deliverability_tool.analyzers.rbl_checker.create_resolver") as factory:
            result = checker.analyze(make_message([("From", "a@example.com")]), RBLConfig())
        factory.assert_not_called()
        checks = checker.generate_checks(result)
        assert checks[0].message == "No public IP addresses found to check"

    def test_many_listings_fail(self, checker):
        """Test more than three listings fail the summary check."""
        rbls = ["a.rbl", "b.rbl", "c.rbl", "d.rbl"]
        answers = {(f"8.8.8.8.{rbl}", "A"): ["127.0.0.2"] for rbl in rbls}
        with patched_resolver(answers):
            result = checker.check_ips(["8.8.8.8"], RBLConfig(rbl_servers=rbls))
        assert result.listed_count == 4
        assert checker.get_score(result) == 0.0
        assert checker.generate_checks(result)[0].status == CheckStatus.FAIL
