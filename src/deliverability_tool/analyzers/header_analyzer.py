"""Header analyzer - RFC 5322 header inventory and DMARC domain alignment.

Checks that the headers receivers expect are present and well formed,
parses the Received chain, and compares the From domain with the
Return-Path and DKIM signing domains at strict and organizational level.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

import tldextract
from pydantic import Field

from ..constants import (
    NO_REPLY_PATTERNS,
    OPTIONAL_LIST_HEADERS,
    RECOMMENDED_HEADERS,
    REQUIRED_HEADERS,
)
from ..core.message import EmailMessage
from ..core.registry import registry
from .authentication import parse_dkim_signature
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

# Bundled Public Suffix List snapshot only, never fetched
_TLD_EXTRACT = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)

_RECEIVED_FROM_RE = re.compile(r"^from\s+([^\s(]+)", re.IGNORECASE)
_RECEIVED_BY_RE = re.compile(r"by\s+([^\s(]+)", re.IGNORECASE)
_RECEIVED_WITH_RE = re.compile(r"by\s+[^\s(]+[^;]*?\s+with\s+([A-Z0-9]+)(?:\s|;)", re.IGNORECASE)
_RECEIVED_ID_RE = re.compile(r"\s+id\s+([^\s;()]+)", re.IGNORECASE)
_RECEIVED_IP_RE = re.compile(r"\[([^\]]+)\]")
_RECEIVED_DATE_RE = re.compile(r";\s*(.+)$")
_TRAILING_ZONE_RE = re.compile(r"\s*\([^)]+\)\s*$")


# ============================================================================
# Configuration
# ============================================================================


class HeaderConfig(AnalyzerConfig):
    """Header analyzer configuration."""

    check_alignment: bool = Field(
        default=True,
        description="Compare the From domain with Return-Path and DKIM signing domains",
    )


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class HeaderCheck:
    """Presence and validity of one header."""

    name: str
    importance: str  # required, recommended, newsletter
    present: bool = False
    value: str | None = None
    valid: bool = False
    issues: list[str] = field(default_factory=list)


@dataclass
class DKIMAlignment:
    domain: str
    org_domain: str
    aligned: bool
    relaxed_aligned: bool


@dataclass
class AlignmentResult:
    """
    From-domain alignment with the SPF and DKIM identifiers.

    spf_* flags stay None when there is no Return-Path to compare.
    """

    from_domain: str | None = None
    from_org_domain: str | None = None
    return_path_domain: str | None = None
    return_path_org_domain: str | None = None
    spf_aligned: bool | None = None
    spf_relaxed_aligned: bool | None = None
    dkim: list[DKIMAlignment] = field(default_factory=list)
    dmarc_aligned: bool = False
    issues: list[str] = field(default_factory=list)

    @property
    def strict_aligned(self) -> bool:
        return bool(self.spf_aligned) or any(d.aligned for d in self.dkim)


@dataclass
class ReceivedHop:
    """One parsed Received header."""

    from_host: str | None = None
    by: str | None = None
    with_protocol: str | None = None
    id: str | None = None
    ip: str | None = None
    timestamp: datetime | None = None
    raw: str = ""


@dataclass
class HeaderResults:
    """Results from header analysis."""

    headers: dict[str, HeaderCheck] = field(default_factory=dict)
    has_mime_structure: bool = False
    reply_to_important: bool = False
    alignment: AlignmentResult | None = None
    received_chain: list[ReceivedHop] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def missing(self, importance: str) -> list[str]:
        return [
            check.name
            for check in self.headers.values()
            if check.importance == importance and not check.present
        ]

    def count(self, importance: str) -> int:
        return sum(1 for check in self.headers.values() if check.importance == importance)


# ============================================================================
# Helper Functions
# ============================================================================


def is_valid_message_id(message_id: str) -> bool:
    """Message-ID must look like <local@domain>, one "@" and both sides non-empty."""
    if not (message_id.startswith("<") and message_id.endswith(">")):
        return False
    parts = message_id[1:-1].split("@")
    return len(parts) == 2 and bool(parts[0]) and bool(parts[1])


def is_no_reply_address(value: str | None) -> bool:
    if not value:
        return False
    lowered = value.lower()
    return any(pattern in lowered for pattern in NO_REPLY_PATTERNS)


def extract_domain(address: str) -> str | None:
    """Domain after the last "@" of an address, angle brackets tolerated."""
    address = address.strip("<> ")
    if "@" not in address:
        return None
    domain = address.rsplit("@", 1)[1].rstrip(">").strip().lower()
    return domain or None


def get_organizational_domain(domain: str) -> str:
    """
    Registrable domain per the Public Suffix List.

    Example:
        >>> get_organizational_domain("mail.example.co.uk")
        'example.co.uk'

    Falls back to the last two labels when the suffix is unknown.
    """
    domain = domain.strip().lower().rstrip(".")
    ext = _TLD_EXTRACT(domain)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"

    labels = domain.split(".")
    if len(labels) <= 2:
        return domain
    return ".".join(labels[-2:])


def analyze_alignment(
    from_domain: str | None, return_path_domain: str | None, dkim_domains: list[str]
) -> AlignmentResult:
    """Strict and relaxed alignment of the From domain with SPF and DKIM identifiers."""
    result = AlignmentResult(from_domain=from_domain, return_path_domain=return_path_domain)
    if from_domain:
        result.from_org_domain = get_organizational_domain(from_domain)
    if return_path_domain:
        result.return_path_org_domain = get_organizational_domain(return_path_domain)

    if not from_domain:
        result.issues.append("From domain could not be determined")
        return result

    if return_path_domain:
        result.spf_aligned = from_domain == return_path_domain
        result.spf_relaxed_aligned = result.from_org_domain == result.return_path_org_domain
        if not result.spf_aligned:
            if result.spf_relaxed_aligned:
                result.issues.append(
                    f"Return-Path domain ({return_path_domain}) does not exactly match From "
                    f"domain ({from_domain}), but satisfies relaxed alignment "
                    f"(organizational domain: {result.from_org_domain})"
                )
            else:
                result.issues.append(
                    f"Return-Path domain ({return_path_domain}) does not match From domain "
                    f"({from_domain}) - neither strict nor relaxed alignment"
                )

    for dkim_domain in dkim_domains:
        org_domain = get_organizational_domain(dkim_domain)
        alignment = DKIMAlignment(
            domain=dkim_domain,
            org_domain=org_domain,
            aligned=dkim_domain == from_domain,
            relaxed_aligned=org_domain == result.from_org_domain,
        )
        result.dkim.append(alignment)
        if not alignment.aligned:
            if alignment.relaxed_aligned:
                result.issues.append(
                    f"DKIM domain ({dkim_domain}) does not exactly match From domain "
                    f"({from_domain}), but satisfies relaxed alignment "
                    f"(organizational domain: {org_domain})"
                )
            else:
                result.issues.append(
                    f"DKIM domain ({dkim_domain}) does not match From domain "
                    f"({from_domain}) - neither strict nor relaxed alignment"
                )

    result.dmarc_aligned = bool(result.spf_relaxed_aligned) or any(
        d.relaxed_aligned for d in result.dkim
    )
    return result


def parse_received_header(value: str) -> ReceivedHop:
    """
    Parse one Received header into its hop fields.

    Headers that start with "by" (locally generated) have no from host.
    """
    normalized = " ".join(value.split())
    hop = ReceivedHop(raw=normalized)

    if not normalized.lower().startswith("by "):
        match = _RECEIVED_FROM_RE.search(normalized)
        if match:
            hop.from_host = match.group(1)

    match = _RECEIVED_BY_RE.search(normalized)
    if match:
        hop.by = match.group(1)

    match = _RECEIVED_WITH_RE.search(normalized)
    if match:
        hop.with_protocol = match.group(1)

    match = _RECEIVED_ID_RE.search(normalized)
    if match:
        hop.id = match.group(1)

    match = _RECEIVED_IP_RE.search(normalized)
    if match:
        candidate = match.group(1).removeprefix("IPv6:")
        if _looks_like_ip(candidate):
            hop.ip = candidate

    match = _RECEIVED_DATE_RE.search(normalized)
    if match:
        date_text = _TRAILING_ZONE_RE.sub("", match.group(1).strip())
        try:
            hop.timestamp = parsedate_to_datetime(date_text)
        except (TypeError, ValueError):
            logger.debug(f"Unparseable Received date: {date_text}")

    return hop


def _looks_like_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class HeaderAnalyzer:
    """
    Analyzes message headers and From-domain alignment.

    Contributes the 0-1 Headers category: 4 points for required headers,
    3 for recommended ones, 2 for a MIME structure and 1 for a valid
    Message-ID, out of 10.
    """

    analyzer_id = "headers"
    name = "Headers"
    description = "Required headers, Message-ID format and domain alignment"
    category = "headers"
    icon = "envelope"
    check_category = CheckCategory.HEADERS
    config_class = HeaderConfig
    depends_on: list[str] = []

    def analyze(
        self,
        message: EmailMessage,
        config: HeaderConfig,
        context: dict[str, Any] | None = None,
    ) -> HeaderResults:
        result = HeaderResults(has_mime_structure=message.is_multipart or message.has_content)

        for name in REQUIRED_HEADERS:
            result.headers[name.lower()] = self._check_header(message, name, "required")
        for name in RECOMMENDED_HEADERS:
            result.headers[name.lower()] = self._check_header(message, name, "recommended")
        for name in OPTIONAL_LIST_HEADERS:
            result.headers[name.lower()] = self._check_header(message, name, "newsletter")

        if is_no_reply_address(message.get("From")):
            result.reply_to_important = True
            reply_to = result.headers["reply-to"]
            if not reply_to.present:
                reply_to.issues.append(
                    "From address is a no-reply address, add a Reply-To header"
                )

        result.received_chain = [parse_received_header(value) for value in message.received]

        if config.check_alignment:
            return_path = message.get("Return-Path")
            dkim_domains: list[str] = []
            for signature in message.get_all("DKIM-Signature"):
                domain = parse_dkim_signature(signature).domain
                if domain and domain.lower() not in dkim_domains:
                    dkim_domains.append(domain.lower())
            result.alignment = analyze_alignment(
                message.from_domain,
                extract_domain(return_path) if return_path else None,
                dkim_domains,
            )

        return result

    def _check_header(self, message: EmailMessage, name: str, importance: str) -> HeaderCheck:
        value = message.get(name)
        check = HeaderCheck(name=name, importance=importance)
        if not value:
            if importance == "required":
                check.issues.append("Required header is missing")
            return check

        check.present = True
        check.value = value
        check.valid = True
        if name == "Message-ID" and not is_valid_message_id(value):
            check.valid = False
            check.issues.append("Invalid Message-ID format (should be <id@domain>)")
        return check

    # ========================================================================
    # Scoring and Checks
    # ========================================================================

    def get_header_points(self, result: HeaderResults) -> float:
        """Header quality on the internal 0-10 scale."""
        points = 0.0
        required = result.count("required")
        if required:
            points += 4.0 * (required - len(result.missing("required"))) / required
        recommended = result.count("recommended")
        if recommended:
            points += 3.0 * (recommended - len(result.missing("recommended"))) / recommended
        if result.has_mime_structure:
            points += 2.0
        message_id = result.headers.get("message-id")
        if message_id and message_id.present and message_id.valid:
            points += 1.0
        return points

    def get_score(self, result: HeaderResults) -> float:
        return round(self.get_header_points(result) / 10.0, 3)

    def generate_checks(self, result: HeaderResults) -> list[Check]:
        checks = [
            self._required_check(result),
            self._recommended_check(result),
            self._message_id_check(result),
            self._mime_check(result),
        ]
        if result.alignment is not None:
            checks.append(self._alignment_check(result.alignment))
        return checks

    def _required_check(self, result: HeaderResults) -> Check:
        missing = result.missing("required")
        if not missing:
            return Check(
                CheckCategory.HEADERS,
                "Required Headers",
                CheckStatus.PASS,
                4.0,
                "All required headers are present",
                Severity.INFO,
                "Your email has proper RFC 5322 headers",
            )
        return Check(
            CheckCategory.HEADERS,
            "Required Headers",
            CheckStatus.FAIL,
            0.0,
            f"Missing required header(s): {', '.join(missing)}",
            Severity.CRITICAL,
            "Add all required headers to ensure email deliverability",
            f"Missing: {', '.join(missing)}",
        )

    def _recommended_check(self, result: HeaderResults) -> Check:
        missing = result.missing("recommended")
        total = result.count("recommended")
        if not missing:
            return Check(
                CheckCategory.HEADERS,
                "Recommended Headers",
                CheckStatus.PASS,
                3.0,
                "All recommended headers are present",
                Severity.INFO,
                "Your email includes all recommended headers",
            )

        advice = "Consider adding recommended headers for better deliverability"
        if result.reply_to_important and "Reply-To" in missing:
            advice = "Your From address does not accept replies, add a Reply-To header"
        if len(missing) == total:
            return Check(
                CheckCategory.HEADERS,
                "Recommended Headers",
                CheckStatus.WARN,
                0.0,
                f"Missing all recommended header(s): {', '.join(missing)}",
                Severity.MEDIUM,
                advice,
                f"Missing: {', '.join(missing)}",
            )
        return Check(
            CheckCategory.HEADERS,
            "Recommended Headers",
            CheckStatus.WARN,
            1.5,
            f"Missing some recommended header(s): {', '.join(missing)}",
            Severity.LOW,
            advice,
            f"Missing: {', '.join(missing)}",
        )

    def _message_id_check(self, result: HeaderResults) -> Check:
        message_id = result.headers.get("message-id")
        if message_id is None or not message_id.present:
            return Check(
                CheckCategory.HEADERS,
                "Message-ID Format",
                CheckStatus.FAIL,
                0.0,
                "Message-ID header is missing",
                Severity.HIGH,
                "Add a unique Message-ID header to every message",
            )
        if not message_id.valid:
            return Check(
                CheckCategory.HEADERS,
                "Message-ID Format",
                CheckStatus.WARN,
                0.5,
                "Message-ID format is invalid",
                Severity.MEDIUM,
                "Use proper Message-ID format: <unique-id@domain.com>",
                message_id.value,
            )
        return Check(
            CheckCategory.HEADERS,
            "Message-ID Format",
            CheckStatus.PASS,
            1.0,
            "Message-ID is properly formatted",
            Severity.INFO,
            None,
            message_id.value,
        )

    def _mime_check(self, result: HeaderResults) -> Check:
        if not result.has_mime_structure:
            return Check(
                CheckCategory.HEADERS,
                "MIME Structure",
                CheckStatus.WARN,
                0.0,
                "No MIME structure found",
                Severity.LOW,
                "Use proper MIME structure for better compatibility",
            )
        return Check(
            CheckCategory.HEADERS,
            "MIME Structure",
            CheckStatus.PASS,
            2.0,
            "Proper MIME structure detected",
            Severity.INFO,
        )

    def _alignment_check(self, alignment: AlignmentResult) -> Check:
        details = "; ".join(alignment.issues) or None
        if alignment.strict_aligned:
            return Check(
                CheckCategory.HEADERS,
                "Domain Alignment",
                CheckStatus.PASS,
                0.0,
                "From domain is aligned with the authenticated domains",
                Severity.INFO,
                None,
                details,
            )
        if alignment.dmarc_aligned:
            return Check(
                CheckCategory.HEADERS,
                "Domain Alignment",
                CheckStatus.WARN,
                0.0,
                "From domain satisfies relaxed alignment only",
                Severity.LOW,
                "Use the same domain in From, Return-Path and DKIM d= for strict alignment",
                details,
            )
        return Check(
            CheckCategory.HEADERS,
            "Domain Alignment",
            CheckStatus.FAIL,
            0.0,
            "From domain is not aligned with Return-Path or DKIM domains",
            Severity.HIGH,
            "Align the Return-Path or DKIM signing domain with your From domain to pass DMARC",
            details,
        )

    # ========================================================================
    # Output
    # ========================================================================

    def describe_output(self, result: HeaderResults) -> OutputDescriptor:
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"Headers: {len(r.missing('required'))} required missing, "
            f"DMARC aligned={r.alignment.dmarc_aligned if r.alignment else 'n/a'}"
        )

        for check in result.headers.values():
            if check.present:
                descriptor.add_row(
                    label=check.name,
                    value=check.value,
                    style_class="success" if check.valid else "warning",
                    icon="check" if check.valid else "warning",
                    verbosity=VerbosityLevel.VERBOSE,
                )
            elif check.importance != "newsletter":
                descriptor.add_row(
                    label=check.name,
                    value="missing",
                    style_class="error" if check.importance == "required" else "warning",
                    icon="cross" if check.importance == "required" else "warning",
                    verbosity=VerbosityLevel.NORMAL,
                )

        if result.alignment:
            for issue in result.alignment.issues:
                descriptor.add_row(
                    value=issue,
                    section_type="text",
                    style_class="warning",
                    severity="warning",
                    icon="warning",
                    verbosity=VerbosityLevel.NORMAL,
                )

        for index, hop in enumerate(result.received_chain, start=1):
            descriptor.add_row(
                label=f"Hop {index}",
                value=f"{hop.from_host or '?'} -> {hop.by or '?'}"
                + (f" [{hop.ip}]" if hop.ip else ""),
                style_class="muted",
                section_name="Received Chain",
                verbosity=VerbosityLevel.DEBUG,
            )

        descriptor.add_checks(self.generate_checks(result))
        return descriptor

    def to_dict(self, result: HeaderResults) -> dict:
        alignment = result.alignment
        return {
            "headers": {
                key: {
                    "name": check.name,
                    "importance": check.importance,
                    "present": check.present,
                    "value": check.value,
                    "valid": check.valid,
                    "issues": check.issues,
                }
                for key, check in result.headers.items()
            },
            "has_mime_structure": result.has_mime_structure,
            "reply_to_important": result.reply_to_important,
            "domain_alignment": (
                {
                    "from_domain": alignment.from_domain,
                    "from_org_domain": alignment.from_org_domain,
                    "return_path_domain": alignment.return_path_domain,
                    "return_path_org_domain": alignment.return_path_org_domain,
                    "spf_aligned": alignment.spf_aligned,
                    "spf_relaxed_aligned": alignment.spf_relaxed_aligned,
                    "dkim": [
                        {
                            "domain": d.domain,
                            "org_domain": d.org_domain,
                            "aligned": d.aligned,
                            "relaxed_aligned": d.relaxed_aligned,
                        }
                        for d in alignment.dkim
                    ],
                    "dmarc_aligned": alignment.dmarc_aligned,
                    "issues": alignment.issues,
                }
                if alignment
                else None
            ),
            "received_chain": [
                {
                    "from": hop.from_host,
                    "by": hop.by,
                    "with": hop.with_protocol,
                    "id": hop.id,
                    "ip": hop.ip,
                    "timestamp": hop.timestamp.isoformat() if hop.timestamp else None,
                }
                for hop in result.received_chain
            ],
            "errors": result.errors,
            "warnings": result.warnings,
        }
