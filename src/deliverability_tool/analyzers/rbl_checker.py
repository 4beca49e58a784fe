"""RBL (Realtime Blacklist) checker - identify blacklisted sender IPs.

Extracts the public IPv4 addresses a message travelled through from its
Received headers and queries each of them against a set of DNS
blacklists. The IP x RBL lookups fan out on a bounded thread pool.
"""

import ipaddress
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import dns.resolver
from pydantic import Field

from ..constants import DEFAULT_RBL_SERVERS, DEFAULT_RBL_TIMEOUT, DEFAULT_RBL_WORKERS
from ..core.message import EmailMessage
from ..core.registry import registry
from .dns_utils import create_resolver
from .protocol import (
    AnalyzerConfig,
    Check,
    CheckCategory,
    CheckStatus,
    OutputDescriptor,
    Severity,
    VerbosityLevel,
)

logger = logging.getLogger(__name__)

_IPV4_RE = re.compile(
    r"\b(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b"
)


# ============================================================================
# Configuration
# ============================================================================


class RBLConfig(AnalyzerConfig):
    """RBL checker configuration."""

    rbl_servers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RBL_SERVERS),
        description="List of RBL servers to check against",
    )
    timeout: float = Field(
        default=DEFAULT_RBL_TIMEOUT,
        description="DNS query timeout in seconds",
    )
    check_all_ips: bool = Field(
        default=True,
        description="Check every public IP in the Received chain (False checks only the first)",
    )
    max_workers: int = Field(
        default=DEFAULT_RBL_WORKERS,
        ge=1,
        description="Maximum concurrent RBL lookups",
    )
    nameservers: list[str] | None = Field(
        default=None,
        description="Custom nameservers for RBL queries (uses system default if not specified)",
    )


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class RBLCheck:
    """
    One (IP, RBL) lookup.

    listed=False with an error set means the lookup was indeterminate.
    """

    ip: str
    rbl: str
    listed: bool = False
    response: str | None = None
    error: str | None = None


@dataclass
class RBLResults:
    """Results from RBL analysis."""

    ips_checked: list[str] = field(default_factory=list)
    checks: list[RBLCheck] = field(default_factory=list)
    listed_count: int = 0
    rbls_checked: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ============================================================================
# Helper Functions
# ============================================================================


def reverse_ip(ip: str) -> str:
    """
    Reverse IPv4 octets for a DNSBL query.

    Returns:
        Reversed address (e.g. "1.2.0.192" for "192.0.2.1"), or "" for
        IPv6 and anything that is not a valid IPv4 address
    """
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return ""
    if address.version != 4:
        return ""
    return ".".join(reversed(str(address).split(".")))


def is_public_ip(ip: str) -> bool:
    """False for private, loopback, link-local and unspecified addresses."""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
    )


def extract_ips(message: EmailMessage) -> list[str]:
    """
    Public sender IPs from the Received chain, first seen first.

    Falls back to X-Originating-IP when no Received header yields one.
    """
    ips: list[str] = []
    for received in message.received:
        for candidate in _IPV4_RE.findall(received):
            if candidate not in ips and is_public_ip(candidate):
                ips.append(candidate)

    if not ips:
        originating = message.get("X-Originating-IP")
        if originating:
            candidate = originating.strip().strip("[]").strip()
            if is_public_ip(candidate):
                ips.append(candidate)

    return ips


def get_unique_listed_ips(results: RBLResults) -> list[str]:
    """IPs listed on at least one RBL, in check order."""
    listed: list[str] = []
    for check in results.checks:
        if check.listed and check.ip not in listed:
            listed.append(check.ip)
    return listed


def get_rbls_for_ip(results: RBLResults, ip: str) -> list[str]:
    """RBLs that list a given IP."""
    return [check.rbl for check in results.checks if check.listed and check.ip == ip]


def get_blacklist_score(results: RBLResults) -> float:
    """
    Blacklist category score on a 0-2 scale.

    Listings are counted per (IP, RBL) pair, not per IP.
    """
    if not results.ips_checked:
        return 2.0
    if results.listed_count == 0:
        return 2.0
    if results.listed_count == 1:
        return 1.0
    if results.listed_count <= 3:
        return 0.5
    return 0.0


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class RBLChecker:
    """
    Checks sender IP addresses against realtime blacklists.

    Each lookup queries <reversed-ip>.<rbl> for an A record: NXDOMAIN means
    not listed, an answer means listed (127.0.0.x encodes the reason), and
    any other failure is recorded as an error on that lookup only.
    """

    # ========================================================================
    # Required Metadata
    # ========================================================================

    analyzer_id = "rbl"
    name = "RBL Blacklist Check"
    description = "Check sender IP addresses against spam blacklists"
    category = "reputation"
    icon = "shield"
    check_category = CheckCategory.BLACKLIST
    config_class = RBLConfig
    depends_on: list[str] = []

    # ========================================================================
    # Required Protocol Methods
    # ========================================================================

    def analyze(
        self,
        message: EmailMessage,
        config: RBLConfig,
        context: dict[str, Any] | None = None,
    ) -> RBLResults:
        """
        Check the sender IPs of a message.

        Args:
            message: Parsed email
            config: RBL checker configuration

        Returns:
            RBLResults with one RBLCheck per (IP, RBL) pair
        """
        ips = extract_ips(message)
        if ips and not config.check_all_ips:
            ips = ips[:1]

        logger.info(f"Checking {len(ips)} IP(s) against {len(config.rbl_servers)} RBL(s)")
        return self.check_ips(ips, config)

    def check_ips(self, ips: list[str], config: RBLConfig) -> RBLResults:
        """
        Check IP addresses against every configured RBL.

        Results keep IP-major, then RBL order regardless of completion order.
        """
        result = RBLResults(ips_checked=list(ips), rbls_checked=len(config.rbl_servers))
        if not ips:
            return result

        resolver = create_resolver(nameservers=config.nameservers, timeout=config.timeout)
        pairs = [(ip, rbl) for ip in ips for rbl in config.rbl_servers]

        with ThreadPoolExecutor(max_workers=min(config.max_workers, len(pairs))) as executor:
            result.checks = list(
                executor.map(lambda pair: self._check_rbl(pair[0], pair[1], resolver), pairs)
            )

        result.listed_count = sum(1 for check in result.checks if check.listed)
        for ip in get_unique_listed_ips(result):
            rbls = get_rbls_for_ip(result, ip)
            result.warnings.append(
                f"IP {ip} is listed on {len(rbls)} blacklist(s): {', '.join(rbls)}"
            )
        return result

    def check_ip(self, ip: str, config: RBLConfig | None = None) -> RBLResults:
        """Check a single IP address outside of message analysis."""
        return self.check_ips([ip], config or RBLConfig())

    def get_score(self, result: RBLResults) -> float:
        return get_blacklist_score(result)

    def generate_checks(self, result: RBLResults) -> list[Check]:
        if not result.ips_checked:
            return [
                Check(
                    CheckCategory.BLACKLIST,
                    "RBL Check",
                    CheckStatus.WARN,
                    1.0,
                    "No public IP addresses found to check",
                    Severity.LOW,
                    "Unable to extract sender IP from email headers",
                )
            ]

        checks = [self._summary_check(result)]
        checks.extend(self._listing_check(check) for check in result.checks if check.listed)
        return checks

    def _summary_check(self, result: RBLResults) -> Check:
        total = len(result.checks)
        listed = result.listed_count
        if listed == 0:
            status = CheckStatus.PASS
            severity = Severity.INFO
            message = f"Not listed on any blacklists ({result.rbls_checked} RBLs checked)"
            advice = "Your sending IP has a good reputation"
        elif listed == 1:
            status = CheckStatus.WARN
            severity = Severity.MEDIUM
            message = f"Listed on 1 blacklist (out of {total} checked)"
            advice = (
                "You're listed on one blacklist. Review the specific listing and "
                "request delisting if appropriate"
            )
        elif listed <= 3:
            status = CheckStatus.WARN
            severity = Severity.HIGH
            message = f"Listed on {listed} blacklists (out of {total} checked)"
            advice = (
                "Multiple blacklist listings detected. This will significantly impact "
                "deliverability. Review each listing and take corrective action"
            )
        else:
            status = CheckStatus.FAIL
            severity = Severity.CRITICAL
            message = f"Listed on {listed} blacklists (out of {total} checked)"
            advice = (
                "Your IP is listed on multiple blacklists. This will severely impact email "
                "deliverability. Investigate the cause and request delisting from each RBL"
            )

        return Check(
            CheckCategory.BLACKLIST,
            "RBL Summary",
            status,
            get_blacklist_score(result),
            message,
            severity,
            advice,
            f"IPs checked: {', '.join(result.ips_checked)}",
        )

    def _listing_check(self, check: RBLCheck) -> Check:
        if "spamhaus" in check.rbl:
            severity = Severity.CRITICAL
            advice = (
                "Listed on Spamhaus, a widely-used blocklist. Visit "
                "https://check.spamhaus.org/ to check details and request delisting"
            )
        elif "spamcop" in check.rbl:
            severity = Severity.HIGH
            advice = "Listed on SpamCop. Visit http://www.spamcop.net/bl.shtml to request delisting"
        else:
            severity = Severity.HIGH
            advice = f"Listed on {check.rbl}. Contact the RBL operator for delisting procedures"

        return Check(
            CheckCategory.BLACKLIST,
            f"RBL: {check.rbl}",
            CheckStatus.FAIL,
            0.0,
            f"IP {check.ip} is listed on {check.rbl}",
            severity,
            advice,
            f"Response: {check.response}" if check.response else None,
        )

    def describe_output(self, result: RBLResults) -> OutputDescriptor:
        """
        Describe how to render this analyzer's output.

        Uses semantic styling (theme-agnostic) - no hardcoded colors.
        """
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"RBL: {r.listed_count} listing(s)" if r.listed_count > 0 else "RBL: Clean"
        )

        if not result.ips_checked:
            descriptor.add_row(
                label="Blacklist Status",
                value="No public sender IP found",
                style_class="warning",
                icon="warning",
                verbosity=VerbosityLevel.NORMAL,
            )
        elif result.listed_count > 0:
            descriptor.add_row(
                label="Blacklist Status",
                value=f"{result.listed_count} listing(s)",
                style_class="error",
                severity="error",
                icon="cross",
                verbosity=VerbosityLevel.NORMAL,
            )
        else:
            descriptor.add_row(
                label="Blacklist Status",
                value="Clean (not blacklisted)",
                style_class="success",
                severity="info",
                icon="check",
                verbosity=VerbosityLevel.NORMAL,
            )

        for ip in result.ips_checked:
            rbls = get_rbls_for_ip(result, ip)
            if rbls:
                descriptor.add_row(
                    label=f"IP {ip}",
                    value=rbls,
                    section_type="list",
                    style_class="error",
                    icon="warning",
                    verbosity=VerbosityLevel.NORMAL,
                )
            else:
                descriptor.add_row(
                    label=f"IP {ip}",
                    value="Clean (not listed)",
                    style_class="success",
                    icon="check",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        # Indeterminate lookups
        for check in result.checks:
            if check.error:
                descriptor.add_row(
                    label=f"  {check.ip} @ {check.rbl}",
                    value=check.error,
                    section_type="text",
                    style_class="warning",
                    severity="warning",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        descriptor.add_checks(self.generate_checks(result))
        return descriptor

    def to_dict(self, result: RBLResults) -> dict:
        """
        Serialize result to JSON-compatible dictionary.

        Args:
            result: RBL results

        Returns:
            JSON-serializable dict
        """
        return {
            "ips_checked": result.ips_checked,
            "listed_count": result.listed_count,
            "checks": [
                {
                    "ip": check.ip,
                    "rbl": check.rbl,
                    "listed": check.listed,
                    "response": check.response,
                    "error": check.error,
                }
                for check in result.checks
            ],
            "errors": result.errors,
            "warnings": result.warnings,
        }

    # ========================================================================
    # RBL Checking Logic
    # ========================================================================

    def _check_rbl(self, ip: str, rbl: str, resolver: dns.resolver.Resolver) -> RBLCheck:
        """
        Query one RBL for one IP.

        Args:
            ip: IP address to check
            rbl: RBL zone
            resolver: DNS resolver to use

        Returns:
            RBLCheck with listing status
        """
        check = RBLCheck(ip=ip, rbl=rbl)

        reversed_ip = reverse_ip(ip)
        if not reversed_ip:
            check.error = "Failed to reverse IP address"
            return check

        query = f"{reversed_ip}.{rbl}"
        try:
            answers = resolver.resolve(query, "A")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            logger.debug(f"IP {ip} is not listed on {rbl}")
            return check
        except Exception as e:
            logger.debug(f"Error checking {ip} on {rbl}: {e}")
            check.error = f"DNS lookup failed: {e}"
            return check

        addresses = [str(rdata) for rdata in answers]
        if addresses:
            check.listed = True
            check.response = addresses[0]
            logger.debug(f"IP {ip} is listed on {rbl} ({check.response})")
        return check
