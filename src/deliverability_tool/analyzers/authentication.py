"""Authentication analyzer - SPF, DKIM, DMARC, BIMI, ARC and iprev verdicts.

Reads the verdicts upstream verifiers stamped into Authentication-Results
headers (including the x-google-dkim and x-aligned-from
extensions), falls back to Received-SPF and raw DKIM-Signature headers, and
checks ARC chain sequencing. Nothing is re-verified cryptographically.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import Field

from ..core.message import EmailMessage
from ..core.registry import registry
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

LEGACY_DKIM_DETAILS = "DKIM signature present (verification status unknown)"

_COMMENT_RE = re.compile(r"\(([^)]*)\)")
_SPF_MAILFROM_RE = re.compile(r"smtp\.mailfrom=([^\s;]+)")
_DKIM_DOMAIN_RE = re.compile(r"\b(?:header\.)?d=([^\s;]+)")
_DKIM_SELECTOR_RE = re.compile(r"\b(?:header\.)?s=([^\s;]+)")
_DMARC_FROM_RE = re.compile(r"header\.from=([^\s;]+)")
_BIMI_SELECTOR_RE = re.compile(r"\b(?:header\.)?selector=([^\s;]+)")
_IPREV_IP_RE = re.compile(r"\b(?:smtp\.)?remote-ip=([^\s;()]+)")
_RECEIVED_SPF_DOMAIN_RE = re.compile(r"(?:envelope-from|sender)=\"?([^\s;\"]+)")
_SIGNATURE_DOMAIN_RE = re.compile(r"(?:^|[\s;])d=([^\s;]+)")
_SIGNATURE_SELECTOR_RE = re.compile(r"(?:^|[\s;])s=([^\s;]+)")
_ARC_INSTANCE_RE = re.compile(r"i=(\d+)")


# ============================================================================
# Configuration
# ============================================================================


class AuthenticationConfig(AnalyzerConfig):
    """Authentication analyzer configuration."""

    trusted_authserv_ids: list[str] = Field(
        default_factory=list,
        description=(
            "Only trust Authentication-Results stamped by these authserv-ids "
            "(empty list trusts every header)"
        ),
    )


# ============================================================================
# Result Models
# ============================================================================


class Mechanism(Enum):
    """Authentication mechanisms recognized in Authentication-Results."""

    SPF = "spf"
    DKIM = "dkim"
    DMARC = "dmarc"
    BIMI = "bimi"
    ARC = "arc"
    IPREV = "iprev"
    X_GOOGLE_DKIM = "x-google-dkim"
    X_ALIGNED_FROM = "x-aligned-from"


@dataclass
class AuthResult:
    """Outcome of one mechanism (one per DKIM signature)."""

    result: str
    domain: str | None = None
    selector: str | None = None
    details: str | None = None


@dataclass
class ARCResult:
    """Authenticated Received Chain outcome."""

    result: str
    chain_length: int | None = None
    chain_valid: bool | None = None
    details: str | None = None


@dataclass
class IPRevResult:
    """Reverse DNS (iprev) outcome of the connecting client."""

    result: str
    ip: str | None = None
    hostname: str | None = None


@dataclass
class AuthenticationResults:
    """All authentication verdicts found in one message."""

    spf: AuthResult | None = None
    dkim: list[AuthResult] = field(default_factory=list)
    dmarc: AuthResult | None = None
    bimi: AuthResult | None = None
    arc: ARCResult | None = None
    iprev: IPRevResult | None = None
    x_google_dkim: AuthResult | None = None
    x_aligned_from: AuthResult | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ============================================================================
# Clause Parsers
# ============================================================================


def _first(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None


def _result_word(mechanism: Mechanism, clause: str) -> str:
    match = re.search(rf"{re.escape(mechanism.value)}=(\w+)", clause, re.IGNORECASE)
    return match.group(1).lower() if match else "none"


def _comment(clause: str) -> str | None:
    """First parenthesized comment of a clause."""
    match = _COMMENT_RE.search(clause)
    return match.group(1).strip() if match else None


def _domain_of(address: str) -> str | None:
    if "@" not in address:
        return None
    return address.split("@", 1)[1] or None


def parse_spf_clause(clause: str) -> AuthResult:
    mailfrom = _first(_SPF_MAILFROM_RE, clause)
    return AuthResult(
        result=_result_word(Mechanism.SPF, clause),
        domain=_domain_of(mailfrom) if mailfrom else None,
        details=_comment(clause),
    )


def parse_dkim_clause(clause: str) -> AuthResult:
    return AuthResult(
        result=_result_word(Mechanism.DKIM, clause),
        domain=_first(_DKIM_DOMAIN_RE, clause),
        selector=_first(_DKIM_SELECTOR_RE, clause),
        details=_comment(clause),
    )


def parse_dmarc_clause(clause: str) -> AuthResult:
    return AuthResult(
        result=_result_word(Mechanism.DMARC, clause),
        domain=_first(_DMARC_FROM_RE, clause),
        details=_comment(clause),
    )


def parse_bimi_clause(clause: str) -> AuthResult:
    return AuthResult(
        result=_result_word(Mechanism.BIMI, clause),
        domain=_first(_DKIM_DOMAIN_RE, clause),
        selector=_first(_BIMI_SELECTOR_RE, clause),
        details=_comment(clause),
    )


def parse_arc_clause(clause: str) -> ARCResult:
    return ARCResult(result=_result_word(Mechanism.ARC, clause), details=_comment(clause))


def parse_iprev_clause(clause: str) -> IPRevResult:
    return IPRevResult(
        result=_result_word(Mechanism.IPREV, clause),
        ip=_first(_IPREV_IP_RE, clause),
        hostname=_comment(clause),
    )


def _strip_mechanism(mechanism: Mechanism, clause: str) -> str:
    return clause[len(mechanism.value) + 1 :].strip()


def parse_x_google_dkim_clause(clause: str) -> AuthResult:
    """Google's own DKIM verdict (x-google-dkim=), added on top of regular dkim=."""
    return AuthResult(
        result=_result_word(Mechanism.X_GOOGLE_DKIM, clause),
        domain=_first(_DKIM_DOMAIN_RE, clause),
        selector=_first(_DKIM_SELECTOR_RE, clause),
        details=_strip_mechanism(Mechanism.X_GOOGLE_DKIM, clause),
    )


def parse_x_aligned_from_clause(clause: str) -> AuthResult:
    """Receiver's From-alignment verdict (x-aligned-from=)."""
    return AuthResult(
        result=_result_word(Mechanism.X_ALIGNED_FROM, clause),
        details=_strip_mechanism(Mechanism.X_ALIGNED_FROM, clause),
    )


def parse_received_spf(value: str) -> AuthResult | None:
    """
    Legacy Received-SPF header.

    Example:
        >>> parse_received_spf("pass (mx.example.net: domain of a@example.com ...) envelope-from=a@example.com")
        AuthResult(result='pass', domain='example.com', ...)
    """
    tokens = value.split()
    if not tokens:
        return None
    sender = _first(_RECEIVED_SPF_DOMAIN_RE, value)
    return AuthResult(
        result=tokens[0].lower(),
        domain=_domain_of(sender) if sender else None,
        details=value,
    )


def parse_dkim_signature(value: str) -> AuthResult:
    """Raw DKIM-Signature header: presence only, never a pass."""
    return AuthResult(
        result="none",
        domain=_first(_SIGNATURE_DOMAIN_RE, value),
        selector=_first(_SIGNATURE_SELECTOR_RE, value),
        details=LEGACY_DKIM_DETAILS,
    )


def _arc_instances(headers: list[str]) -> list[int]:
    instances = []
    for header in headers:
        match = _ARC_INSTANCE_RE.search(header)
        if match:
            instances.append(int(match.group(1)))
    return instances


def validate_arc_chain(
    auth_results: list[str], message_signatures: list[str], seals: list[str]
) -> bool:
    """
    ARC sets must be complete and numbered 1..N in every header type.

    Order within each header list does not matter; an empty chain is valid.
    """
    if not (len(auth_results) == len(message_signatures) == len(seals)):
        return False
    if not seals:
        return True

    expected = set(range(1, len(seals) + 1))
    for headers in (seals, message_signatures, auth_results):
        instances = _arc_instances(headers)
        if len(instances) != len(seals) or set(instances) != expected:
            return False
    return True


def _arc_headers(message: EmailMessage) -> tuple[list[str], list[str], list[str]]:
    return (
        message.get_all("ARC-Authentication-Results"),
        message.get_all("ARC-Message-Signature"),
        message.get_all("ARC-Seal"),
    )


def parse_arc_headers(message: EmailMessage) -> ARCResult | None:
    """ARC verdict from the raw ARC header sets; None when there are none."""
    auth_results, signatures, seals = _arc_headers(message)
    if not (auth_results or signatures or seals):
        return None

    chain_length = len(seals)
    chain_valid = validate_arc_chain(auth_results, signatures, seals)

    if chain_length == 0:
        return ARCResult("none", chain_length, chain_valid, "No ARC chain present")
    if not chain_valid:
        return ARCResult(
            "fail",
            chain_length,
            chain_valid,
            f"ARC chain validation failed (chain length: {chain_length})",
        )
    suffix = "y" if chain_length == 1 else "ies"
    return ARCResult(
        "pass",
        chain_length,
        chain_valid,
        f"ARC chain valid with {chain_length} intermediar{suffix}",
    )


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class AuthenticationAnalyzer:
    """
    Extracts per-mechanism authentication verdicts from message headers.

    SPF, DMARC, BIMI, ARC and iprev keep the first verdict found across all
    Authentication-Results headers; every dkim= clause contributes one result.
    """

    analyzer_id = "authentication"
    name = "Authentication"
    description = "SPF, DKIM, DMARC, BIMI and ARC results from message headers"
    category = "authentication"
    icon = "lock"
    check_category = CheckCategory.AUTHENTICATION
    config_class = AuthenticationConfig
    depends_on: list[str] = []

    def __init__(self):
        self._handlers = {
            Mechanism.SPF: self._handle_spf,
            Mechanism.DKIM: self._handle_dkim,
            Mechanism.DMARC: self._handle_dmarc,
            Mechanism.BIMI: self._handle_bimi,
            Mechanism.ARC: self._handle_arc,
            Mechanism.IPREV: self._handle_iprev,
            Mechanism.X_GOOGLE_DKIM: self._handle_x_google_dkim,
            Mechanism.X_ALIGNED_FROM: self._handle_x_aligned_from,
        }

    def analyze(
        self,
        message: EmailMessage,
        config: AuthenticationConfig,
        context: dict[str, Any] | None = None,
    ) -> AuthenticationResults:
        """
        Parse authentication verdicts of one message.

        Args:
            message: Parsed email
            config: Authentication configuration

        Returns:
            AuthenticationResults
        """
        results = AuthenticationResults()
        trusted = {authserv.lower() for authserv in config.trusted_authserv_ids}

        for header in message.authentication_results:
            self.parse_authentication_results_header(header, results, trusted)

        if results.spf is None:
            received_spf = message.get("Received-SPF")
            if received_spf:
                results.spf = parse_received_spf(received_spf)
                logger.debug("SPF taken from Received-SPF header")

        if not results.dkim:
            results.dkim = [parse_dkim_signature(v) for v in message.get_all("DKIM-Signature")]
            if results.dkim:
                logger.debug(f"Found {len(results.dkim)} unverified DKIM-Signature header(s)")

        if results.arc is None:
            results.arc = parse_arc_headers(message)
        else:
            auth_results, signatures, seals = _arc_headers(message)
            if results.arc.chain_length is None:
                results.arc.chain_length = len(seals)
            if results.arc.chain_valid is None:
                results.arc.chain_valid = validate_arc_chain(auth_results, signatures, seals)

        return results

    def parse_authentication_results_header(
        self,
        header: str,
        results: AuthenticationResults,
        trusted: set[str] | None = None,
    ) -> None:
        """Fold one Authentication-Results header into results."""
        clauses = header.split(";")
        if len(clauses) < 2:
            return

        authserv_id = clauses[0].strip().split(" ")[0].lower()
        if trusted and authserv_id not in trusted:
            logger.debug(f"Ignoring Authentication-Results from untrusted {authserv_id}")
            return

        for clause in clauses[1:]:
            clause = clause.strip()
            if not clause:
                continue
            lowered = clause.lower()
            for mechanism, handler in self._handlers.items():
                if lowered.startswith(f"{mechanism.value}="):
                    handler(clause, results)
                    break

    def _handle_spf(self, clause: str, results: AuthenticationResults) -> None:
        if results.spf is None:
            results.spf = parse_spf_clause(clause)

    def _handle_dkim(self, clause: str, results: AuthenticationResults) -> None:
        results.dkim.append(parse_dkim_clause(clause))

    def _handle_dmarc(self, clause: str, results: AuthenticationResults) -> None:
        if results.dmarc is None:
            results.dmarc = parse_dmarc_clause(clause)

    def _handle_bimi(self, clause: str, results: AuthenticationResults) -> None:
        if results.bimi is None:
            results.bimi = parse_bimi_clause(clause)

    def _handle_arc(self, clause: str, results: AuthenticationResults) -> None:
        if results.arc is None:
            results.arc = parse_arc_clause(clause)

    def _handle_iprev(self, clause: str, results: AuthenticationResults) -> None:
        if results.iprev is None:
            results.iprev = parse_iprev_clause(clause)

    def _handle_x_google_dkim(self, clause: str, results: AuthenticationResults) -> None:
        if results.x_google_dkim is None:
            results.x_google_dkim = parse_x_google_dkim_clause(clause)

    def _handle_x_aligned_from(self, clause: str, results: AuthenticationResults) -> None:
        if results.x_aligned_from is None:
            results.x_aligned_from = parse_x_aligned_from_clause(clause)

    # ========================================================================
    # Scoring and Checks
    # ========================================================================

    def get_score(self, result: AuthenticationResults) -> float:
        """
        SPF (0-1) + DKIM (0-1) + DMARC (0-1), clamped to 0-3.

        A non-pass x-google-dkim takes 1.0 off; a passing x-aligned-from
        adds 0.5. BIMI, ARC and iprev never count.
        """
        score = 0.0

        if result.spf:
            if result.spf.result == "pass":
                score += 1.0
            elif result.spf.result in ("neutral", "softfail"):
                score += 0.5

        if any(dkim.result == "pass" for dkim in result.dkim):
            score += 1.0

        if result.dmarc and result.dmarc.result == "pass":
            score += 1.0

        if result.x_google_dkim and result.x_google_dkim.result != "pass":
            score -= 1.0
        if result.x_aligned_from and result.x_aligned_from.result == "pass":
            score += 0.5

        return min(max(score, 0.0), 3.0)

    def generate_checks(self, result: AuthenticationResults) -> list[Check]:
        checks = [self._spf_check(result.spf)]
        checks.extend(self._dkim_checks(result.dkim))
        checks.append(self._dmarc_check(result.dmarc))
        if result.bimi:
            checks.append(self._bimi_check(result.bimi))
        if result.arc:
            checks.append(self._arc_check(result.arc))
        if result.iprev:
            checks.append(self._iprev_check(result.iprev))
        if result.x_google_dkim:
            checks.append(self._x_google_dkim_check(result.x_google_dkim))
        if result.x_aligned_from:
            checks.append(self._x_aligned_from_check(result.x_aligned_from))
        return checks

    def _spf_check(self, spf: AuthResult | None) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "SPF Record"
        if spf is None:
            return Check(
                category,
                name,
                CheckStatus.WARN,
                0.0,
                "No SPF authentication result found",
                Severity.MEDIUM,
                "Ensure your MTA is configured to check SPF records",
            )

        details = f"Domain: {spf.domain}" if spf.domain else None
        outcomes = {
            "pass": (
                CheckStatus.PASS,
                1.0,
                "SPF validation passed",
                Severity.INFO,
                "Your SPF record is properly configured",
            ),
            "fail": (
                CheckStatus.FAIL,
                0.0,
                "SPF validation failed",
                Severity.CRITICAL,
                "Fix your SPF record to authorize this sending server",
            ),
            "softfail": (
                CheckStatus.WARN,
                0.5,
                "SPF validation softfail",
                Severity.MEDIUM,
                "Review your SPF record configuration",
            ),
            "neutral": (
                CheckStatus.WARN,
                0.5,
                "SPF validation neutral",
                Severity.LOW,
                "Consider tightening your SPF policy",
            ),
        }
        status, score, message, severity, advice = outcomes.get(
            spf.result,
            (
                CheckStatus.WARN,
                0.0,
                f"SPF validation result: {spf.result}",
                Severity.MEDIUM,
                "Review your SPF record configuration",
            ),
        )
        return Check(category, name, status, score, message, severity, advice, details)

    def _dkim_checks(self, dkim_results: list[AuthResult]) -> list[Check]:
        category = CheckCategory.AUTHENTICATION
        if not dkim_results:
            return [
                Check(
                    category,
                    "DKIM Signature",
                    CheckStatus.WARN,
                    0.0,
                    "No DKIM signature found",
                    Severity.MEDIUM,
                    "Configure DKIM signing for your domain to improve deliverability",
                )
            ]

        checks = []
        for index, dkim in enumerate(dkim_results, start=1):
            name = f"DKIM Signature #{index}"
            details = f"Domain: {dkim.domain}, Selector: {dkim.selector}"
            if dkim.result == "pass":
                checks.append(
                    Check(
                        category,
                        name,
                        CheckStatus.PASS,
                        1.0,
                        "DKIM signature is valid",
                        Severity.INFO,
                        "Your DKIM signature is properly configured",
                        details,
                    )
                )
            elif dkim.result == "fail":
                checks.append(
                    Check(
                        category,
                        name,
                        CheckStatus.FAIL,
                        0.0,
                        "DKIM signature validation failed",
                        Severity.HIGH,
                        "Check your DKIM keys and signing configuration",
                        details,
                    )
                )
            else:
                checks.append(
                    Check(
                        category,
                        name,
                        CheckStatus.WARN,
                        0.0,
                        f"DKIM signature validation result: {dkim.result}",
                        Severity.MEDIUM,
                        "Ensure DKIM signatures are verified by the receiving server",
                        details,
                    )
                )
        return checks

    def _dmarc_check(self, dmarc: AuthResult | None) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "DMARC Policy"
        if dmarc is None:
            return Check(
                category,
                name,
                CheckStatus.WARN,
                0.0,
                "No DMARC authentication result found",
                Severity.MEDIUM,
                "Implement DMARC policy for your domain",
            )

        details = f"Domain: {dmarc.domain}" if dmarc.domain else None
        if dmarc.result == "pass":
            return Check(
                category,
                name,
                CheckStatus.PASS,
                1.0,
                "DMARC validation passed",
                Severity.INFO,
                "Your DMARC policy is properly aligned",
                details,
            )
        if dmarc.result == "fail":
            return Check(
                category,
                name,
                CheckStatus.FAIL,
                0.0,
                "DMARC validation failed",
                Severity.HIGH,
                "Ensure SPF or DKIM alignment with your From domain",
                details,
            )
        return Check(
            category,
            name,
            CheckStatus.WARN,
            0.0,
            f"DMARC validation result: {dmarc.result}",
            Severity.MEDIUM,
            "Review your DMARC configuration",
            details,
        )

    def _bimi_check(self, bimi: AuthResult) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "BIMI (Brand Indicators)"
        details = f"Domain: {bimi.domain}" if bimi.domain else None
        if bimi.result == "pass":
            return Check(
                category,
                name,
                CheckStatus.PASS,
                0.0,
                "BIMI validation passed",
                Severity.INFO,
                "Your brand logo is displayed in supporting email clients",
                details,
            )
        return Check(
            category,
            name,
            CheckStatus.INFO,
            0.0,
            f"BIMI validation result: {bimi.result}",
            Severity.LOW,
            "BIMI is optional but can improve brand recognition",
            details,
        )

    def _arc_check(self, arc: ARCResult) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "ARC (Authenticated Received Chain)"

        details_parts = []
        if arc.chain_length is not None:
            details_parts.append(f"Chain length: {arc.chain_length}")
        if arc.chain_valid is not None:
            details_parts.append(f"Chain valid: {str(arc.chain_valid).lower()}")
        if arc.details:
            details_parts.append(arc.details)
        details = ", ".join(details_parts) or None

        if arc.result == "pass":
            return Check(
                category,
                name,
                CheckStatus.PASS,
                0.0,
                "ARC chain validation passed",
                Severity.INFO,
                "ARC preserves authentication results through email forwarding",
                details,
            )
        if arc.result == "fail":
            return Check(
                category,
                name,
                CheckStatus.WARN,
                0.0,
                "ARC chain validation failed",
                Severity.MEDIUM,
                "The ARC chain is broken or invalid, forwarding may affect authentication",
                details,
            )
        return Check(
            category,
            name,
            CheckStatus.INFO,
            0.0,
            "No ARC chain present",
            Severity.LOW,
            "ARC is not required for direct email delivery",
            details,
        )

    def _iprev_check(self, iprev: IPRevResult) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "Reverse DNS (iprev)"
        details = ", ".join(
            part
            for part in (
                f"IP: {iprev.ip}" if iprev.ip else "",
                f"Hostname: {iprev.hostname}" if iprev.hostname else "",
            )
            if part
        )
        if iprev.result == "pass":
            return Check(
                category,
                name,
                CheckStatus.PASS,
                0.0,
                "Reverse DNS of the sending server is consistent",
                Severity.INFO,
                None,
                details or None,
            )
        return Check(
            category,
            name,
            CheckStatus.WARN,
            0.0,
            f"Reverse DNS check result: {iprev.result}",
            Severity.MEDIUM,
            "Configure forward-confirmed reverse DNS (PTR) for your sending IP",
            details or None,
        )

    def _x_google_dkim_check(self, verdict: AuthResult) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "Google DKIM (x-google-dkim)"
        details = f"Domain: {verdict.domain}" if verdict.domain else None
        if verdict.result == "pass":
            return Check(
                category,
                name,
                CheckStatus.PASS,
                0.0,
                "Google's DKIM verification passed",
                Severity.INFO,
                None,
                details,
            )
        return Check(
            category,
            name,
            CheckStatus.FAIL,
            -1.0,
            f"Google's DKIM verification result: {verdict.result}",
            Severity.HIGH,
            "Gmail could not verify your DKIM signature; check the key published for your selector",
            details,
        )

    def _x_aligned_from_check(self, verdict: AuthResult) -> Check:
        category = CheckCategory.AUTHENTICATION
        name = "From Alignment (x-aligned-from)"
        if verdict.result == "pass":
            return Check(
                category,
                name,
                CheckStatus.PASS,
                0.5,
                "The receiver reports the From domain as aligned",
                Severity.INFO,
                None,
                verdict.details,
            )
        if verdict.result == "fail":
            return Check(
                category,
                name,
                CheckStatus.WARN,
                0.0,
                "The receiver reports the From domain as not aligned",
                Severity.MEDIUM,
                "Sign with a DKIM key or send from an envelope domain matching your From domain",
                verdict.details,
            )
        return Check(
            category,
            name,
            CheckStatus.INFO,
            0.0,
            f"From alignment result: {verdict.result}",
            Severity.LOW,
            None,
            verdict.details,
        )

    # ========================================================================
    # Output
    # ========================================================================

    def describe_output(self, result: AuthenticationResults) -> OutputDescriptor:
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"Auth: SPF={r.spf.result if r.spf else 'none'} "
            f"DKIM={','.join(d.result for d in r.dkim) or 'none'} "
            f"DMARC={r.dmarc.result if r.dmarc else 'none'}"
        )

        def row_for(label: str, verdict: str | None, extra: str | None = None) -> None:
            if verdict is None:
                descriptor.add_row(
                    label=label, value="not found", style_class="warning", icon="warning"
                )
                return
            style = {"pass": "success", "fail": "error", "none": "muted"}.get(verdict, "warning")
            icon = {"pass": "check", "fail": "cross"}.get(verdict, "warning")
            value = f"{verdict} ({extra})" if extra else verdict
            descriptor.add_row(label=label, value=value, style_class=style, icon=icon)

        row_for("SPF", result.spf.result if result.spf else None, result.spf.domain if result.spf else None)
        if result.dkim:
            for dkim in result.dkim:
                row_for("DKIM", dkim.result, f"{dkim.domain}, selector {dkim.selector}")
        else:
            row_for("DKIM", None)
        row_for(
            "DMARC",
            result.dmarc.result if result.dmarc else None,
            result.dmarc.domain if result.dmarc else None,
        )
        if result.bimi:
            row_for("BIMI", result.bimi.result, result.bimi.domain)
        if result.arc:
            row_for("ARC", result.arc.result, result.arc.details)
        if result.iprev:
            row_for("iprev", result.iprev.result, result.iprev.hostname)
        if result.x_google_dkim:
            row_for("x-google-dkim", result.x_google_dkim.result, result.x_google_dkim.domain)
        if result.x_aligned_from:
            row_for("x-aligned-from", result.x_aligned_from.result)

        descriptor.add_checks(self.generate_checks(result))

        for error in result.errors:
            descriptor.add_row(
                value=error,
                section_type="text",
                style_class="error",
                severity="error",
                icon="cross",
                verbosity=VerbosityLevel.NORMAL,
            )

        return descriptor

    def to_dict(self, result: AuthenticationResults) -> dict:
        def auth(r: AuthResult | None) -> dict | None:
            if r is None:
                return None
            return {
                "result": r.result,
                "domain": r.domain,
                "selector": r.selector,
                "details": r.details,
            }

        return {
            "spf": auth(result.spf),
            "dkim": [auth(d) for d in result.dkim],
            "dmarc": auth(result.dmarc),
            "bimi": auth(result.bimi),
            "arc": (
                {
                    "result": result.arc.result,
                    "chain_length": result.arc.chain_length,
                    "chain_valid": result.arc.chain_valid,
                    "details": result.arc.details,
                }
                if result.arc
                else None
            ),
            "iprev": (
                {
                    "result": result.iprev.result,
                    "ip": result.iprev.ip,
                    "hostname": result.iprev.hostname,
                }
                if result.iprev
                else None
            ),
            "x_google_dkim": auth(result.x_google_dkim),
            "x_aligned_from": auth(result.x_aligned_from),
            "errors": result.errors,
            "warnings": result.warnings,
        }
