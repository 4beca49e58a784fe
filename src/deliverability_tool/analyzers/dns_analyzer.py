"""DNS analysis module for the sender domain of a message.

Looks up the MX, SPF, DKIM, DMARC and BIMI records of the From domain and
validates their syntax. The first public sender IP also gets a reverse DNS
(PTR) lookup with forward confirmation of the returned names (FCrDNS).
The sub-lookups run concurrently, each bounded by the resolver lifetime,
so one slow record type never holds back the rest.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import dns.resolver
import dns.reversename
from pydantic import Field

from ..constants import DEFAULT_BIMI_SELECTOR, DEFAULT_DNS_TIMEOUT
from ..core.message import EmailMessage
from ..core.registry import registry
from .dns_utils import create_resolver, resolve_txt
from .protocol import (
    AnalyzerConfig,
    Check,
    CheckCategory,
    CheckStatus,
    OutputDescriptor,
    Severity,
    VerbosityLevel,
)
from .rbl_checker import extract_ips
from .record_validators import (
    extract_dmarc_policy,
    extract_tag,
    join_txt_parts,
    validate_bimi,
    validate_dkim,
    validate_dmarc,
    validate_spf,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================


class DNSConfig(AnalyzerConfig):
    """DNS analyzer configuration."""

    nameservers: list[str] | None = Field(
        default=None,
        description="Custom nameservers to use for queries (uses system default if not specified)",
    )
    timeout: float = Field(default=DEFAULT_DNS_TIMEOUT, description="DNS query timeout in seconds")
    bimi_selector: str = Field(
        default=DEFAULT_BIMI_SELECTOR,
        description="BIMI selector to query (<selector>._bimi.<domain>)",
    )
    check_ptr: bool = Field(
        default=True,
        description="Look up reverse DNS (PTR) of the sender IP and confirm it forward",
    )


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class MXRecord:
    """One MX host, or a single invalid entry carrying the lookup error."""

    host: str = ""
    priority: int = 0
    valid: bool = False
    error: str | None = None


@dataclass
class SPFRecord:
    record: str | None = None
    valid: bool = False
    error: str | None = None


@dataclass
class DKIMRecord:
    selector: str
    domain: str
    record: str | None = None
    valid: bool = False
    error: str | None = None


@dataclass
class DMARCRecord:
    record: str | None = None
    policy: str = "unknown"  # none, quarantine, reject, unknown
    valid: bool = False
    error: str | None = None


@dataclass
class BIMIRecord:
    selector: str
    domain: str
    record: str | None = None
    logo_url: str | None = None
    vmc_url: str | None = None
    valid: bool = False
    error: str | None = None


@dataclass
class PTRRecord:
    """Reverse DNS of the sender IP and the addresses its names resolve to."""

    ip: str
    hostnames: list[str] = field(default_factory=list)
    forward_ips: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def forward_confirmed(self) -> bool:
        return self.ip in self.forward_ips


@dataclass
class DNSResults:
    """DNS records of the sender domain."""

    domain: str | None = None
    mx_records: list[MXRecord] | None = None
    spf_record: SPFRecord | None = None
    dkim_records: list[DKIMRecord] = field(default_factory=list)
    dmarc_record: DMARCRecord | None = None
    bimi_record: BIMIRecord | None = None
    ptr_record: PTRRecord | None = None
    errors: list[str] = field(default_factory=list)


# ============================================================================
# Record Lookups
# ============================================================================


def check_mx_records(resolver: dns.resolver.Resolver, domain: str) -> list[MXRecord]:
    try:
        answers = resolver.resolve(domain, "MX")
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        logger.debug(f"No MX records for {domain}")
        return [MXRecord(error="No MX records found")]
    except Exception as e:
        logger.debug(f"MX lookup failed for {domain}: {e}")
        return [MXRecord(error=f"Failed to lookup MX records: {e}")]

    records = [
        MXRecord(host=str(rdata.exchange).rstrip("."), priority=rdata.preference, valid=True)
        for rdata in answers
    ]
    if not records:
        return [MXRecord(error="No MX records found")]
    return records


def check_spf_record(resolver: dns.resolver.Resolver, domain: str) -> SPFRecord:
    try:
        txt_records = resolve_txt(resolver, domain)
    except Exception as e:
        logger.debug(f"TXT lookup failed for {domain}: {e}")
        return SPFRecord(error=f"Failed to lookup TXT records: {e}")

    spf_records = [txt for txt in txt_records if txt.startswith("v=spf1")]
    if not spf_records:
        return SPFRecord(error="No SPF record found")
    if len(spf_records) > 1:
        return SPFRecord(
            record=spf_records[-1], error="Multiple SPF records found (RFC violation)"
        )

    record = spf_records[0]
    if not validate_spf(record):
        return SPFRecord(record=record, error="SPF record appears malformed")
    return SPFRecord(record=record, valid=True)


def check_dkim_record(resolver: dns.resolver.Resolver, domain: str, selector: str) -> DKIMRecord:
    name = f"{selector}._domainkey.{domain}"
    try:
        txt_records = resolve_txt(resolver, name)
    except Exception as e:
        logger.debug(f"DKIM lookup failed for {name}: {e}")
        return DKIMRecord(selector, domain, error=f"Failed to lookup DKIM record: {e}")

    if not txt_records:
        return DKIMRecord(selector, domain, error="No DKIM record found")

    record = join_txt_parts(txt_records)
    if not validate_dkim(record):
        return DKIMRecord(selector, domain, record=record, error="DKIM record appears malformed")
    return DKIMRecord(selector, domain, record=record, valid=True)


def check_dmarc_record(resolver: dns.resolver.Resolver, domain: str) -> DMARCRecord:
    name = f"_dmarc.{domain}"
    try:
        txt_records = resolve_txt(resolver, name)
    except Exception as e:
        logger.debug(f"DMARC lookup failed for {name}: {e}")
        return DMARCRecord(error=f"Failed to lookup DMARC record: {e}")

    record = next((txt for txt in txt_records if txt.startswith("v=DMARC1")), None)
    if record is None:
        return DMARCRecord(error="No DMARC record found")

    policy = extract_dmarc_policy(record)
    if not validate_dmarc(record):
        return DMARCRecord(record=record, policy=policy, error="DMARC record appears malformed")
    return DMARCRecord(record=record, policy=policy, valid=True)


def check_bimi_record(resolver: dns.resolver.Resolver, domain: str, selector: str) -> BIMIRecord:
    name = f"{selector}._bimi.{domain}"
    try:
        txt_records = resolve_txt(resolver, name)
    except Exception as e:
        logger.debug(f"BIMI lookup failed for {name}: {e}")
        return BIMIRecord(selector, domain, error=f"Failed to lookup BIMI record: {e}")

    if not txt_records:
        return BIMIRecord(selector, domain, error="No BIMI record found")

    record = join_txt_parts(txt_records)
    bimi = BIMIRecord(
        selector,
        domain,
        record=record,
        logo_url=extract_tag(record, "l") or None,
        vmc_url=extract_tag(record, "a") or None,
    )
    if not validate_bimi(record):
        bimi.error = "BIMI record appears malformed"
        return bimi
    bimi.valid = True
    return bimi


def check_ptr_record(resolver: dns.resolver.Resolver, ip: str) -> PTRRecord:
    """
    Reverse DNS lookup of an IP with forward confirmation.

    Every PTR name is resolved back to A/AAAA; the result is forward
    confirmed when one of those addresses is the original IP.
    """
    ptr = PTRRecord(ip=ip)
    try:
        answers = resolver.resolve(dns.reversename.from_address(ip), "PTR")
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        ptr.error = "No PTR record found"
        return ptr
    except Exception as e:
        logger.debug(f"PTR lookup failed for {ip}: {e}")
        ptr.error = f"Failed to lookup PTR record: {e}"
        return ptr

    ptr.hostnames = [str(rdata.target).rstrip(".") for rdata in answers]
    if not ptr.hostnames:
        ptr.error = "No PTR record found"
        return ptr

    for hostname in ptr.hostnames:
        for rdtype in ("A", "AAAA"):
            try:
                forward = resolver.resolve(hostname, rdtype)
            except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
                continue
            except Exception as e:
                logger.debug(f"{rdtype} lookup failed for {hostname}: {e}")
                continue
            for rdata in forward:
                if rdata.address not in ptr.forward_ips:
                    ptr.forward_ips.append(rdata.address)

    return ptr


def dkim_pairs(auth_results: Any) -> list[tuple[str, str]]:
    """Unique (domain, selector) pairs of DKIM results carrying both values."""
    pairs: list[tuple[str, str]] = []
    if auth_results is None:
        return pairs
    for dkim in auth_results.dkim:
        if dkim.domain and dkim.selector:
            pair = (dkim.domain.lower(), dkim.selector)
            if pair not in pairs:
                pairs.append(pair)
    return pairs


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class DNSAnalyzer:
    """
    Analyzes DNS records of the message sender domain.

    The domain comes from the From header. DKIM selectors are taken from
    the authentication analyzer's results, so this analyzer runs after it.
    Its checks are reported but do not feed any scoring category.
    """

    # ========================================================================
    # Required Metadata
    # ========================================================================

    analyzer_id = "dns"
    name = "DNS Records"
    description = "MX, SPF, DKIM, DMARC and BIMI records of the sender domain, reverse DNS of the sender IP"
    category = "dns"
    icon = "globe"
    check_category = CheckCategory.DNS
    config_class = DNSConfig
    depends_on = ["authentication"]

    # ========================================================================
    # Required Protocol Methods
    # ========================================================================

    def analyze(
        self,
        message: EmailMessage,
        config: DNSConfig,
        context: dict[str, Any] | None = None,
    ) -> DNSResults:
        """
        Look up and validate the sender domain records.

        Args:
            message: Parsed email
            config: DNS analyzer configuration
            context: May hold "authentication" results for DKIM selectors

        Returns:
            DNSResults; a missing From domain is recorded in errors
        """
        domain = message.from_domain
        if not domain:
            logger.info("No From domain, skipping DNS lookups")
            return DNSResults(errors=["Unable to extract domain from email"])

        logger.info(f"Starting DNS analysis for {domain}")
        result = DNSResults(domain=domain)
        resolver = create_resolver(nameservers=config.nameservers, timeout=config.timeout)
        pairs = dkim_pairs((context or {}).get("authentication"))
        sender_ips = extract_ips(message) if config.check_ptr else []

        with ThreadPoolExecutor(max_workers=5 + len(pairs)) as executor:
            mx_future = executor.submit(check_mx_records, resolver, domain)
            spf_future = executor.submit(check_spf_record, resolver, domain)
            dmarc_future = executor.submit(check_dmarc_record, resolver, domain)
            bimi_future = executor.submit(
                check_bimi_record, resolver, domain, config.bimi_selector
            )
            dkim_futures = [
                executor.submit(check_dkim_record, resolver, dkim_domain, selector)
                for dkim_domain, selector in pairs
            ]
            ptr_future = (
                executor.submit(check_ptr_record, resolver, sender_ips[0]) if sender_ips else None
            )

            result.mx_records = mx_future.result()
            result.spf_record = spf_future.result()
            result.dmarc_record = dmarc_future.result()
            result.bimi_record = bimi_future.result()
            result.dkim_records = [future.result() for future in dkim_futures]
            if ptr_future:
                result.ptr_record = ptr_future.result()

        logger.debug(
            f"DNS analysis for {domain}: "
            f"{sum(1 for mx in result.mx_records if mx.valid)} MX, "
            f"SPF valid={result.spf_record.valid}, DMARC valid={result.dmarc_record.valid}"
        )
        return result

    def get_score(self, result: DNSResults) -> float:
        """DNS findings are informational and never add to the overall score."""
        return 0.0

    def generate_checks(self, result: DNSResults) -> list[Check]:
        if result.domain is None:
            return [
                Check(
                    CheckCategory.DNS,
                    "Domain Extraction",
                    CheckStatus.FAIL,
                    0.0,
                    result.errors[0] if result.errors else "Unable to extract domain from email",
                    Severity.HIGH,
                    "Ensure the message has a valid From header",
                )
            ]

        checks = [self._mx_check(result.mx_records or [])]
        if result.spf_record:
            checks.append(self._spf_check(result.spf_record))
        checks.extend(self._dkim_check(dkim) for dkim in result.dkim_records)
        if result.dmarc_record:
            checks.append(self._dmarc_check(result.dmarc_record))
        if result.bimi_record:
            checks.append(self._bimi_check(result.bimi_record))
        if result.ptr_record:
            checks.append(self._ptr_check(result.ptr_record))
        return checks

    def _mx_check(self, mx_records: list[MXRecord]) -> Check:
        if not mx_records or not mx_records[0].valid:
            message = (
                mx_records[0].error
                if mx_records and mx_records[0].error
                else "No valid MX records found"
            )
            return Check(
                CheckCategory.DNS,
                "MX Records",
                CheckStatus.FAIL,
                0.0,
                message,
                Severity.CRITICAL,
                "Configure MX records for your domain to receive email",
            )

        details = ", ".join(f"{mx.host} (priority {mx.priority})" for mx in mx_records)
        return Check(
            CheckCategory.DNS,
            "MX Records",
            CheckStatus.PASS,
            1.0,
            f"Found {len(mx_records)} valid MX record(s)",
            Severity.INFO,
            "Your MX records are properly configured",
            details,
        )

    def _spf_check(self, spf: SPFRecord) -> Check:
        if spf.valid:
            return Check(
                CheckCategory.DNS,
                "SPF Record",
                CheckStatus.PASS,
                1.0,
                "Valid SPF record found",
                Severity.INFO,
                "Your SPF record is properly configured",
                spf.record,
            )
        if not spf.record:
            return Check(
                CheckCategory.DNS,
                "SPF Record",
                CheckStatus.FAIL,
                0.0,
                spf.error or "No SPF record found",
                Severity.HIGH,
                "Configure an SPF record for your domain to improve deliverability",
            )
        return Check(
            CheckCategory.DNS,
            "SPF Record",
            CheckStatus.WARN,
            0.5,
            f"SPF record found but appears invalid: {spf.error}",
            Severity.MEDIUM,
            "Review and fix your SPF record syntax",
            spf.record,
        )

    def _dkim_check(self, dkim: DKIMRecord) -> Check:
        name = f"DKIM Record ({dkim.selector})"
        details = f"Selector: {dkim.selector}, Domain: {dkim.domain}"
        if not dkim.valid:
            return Check(
                CheckCategory.DNS,
                name,
                CheckStatus.FAIL,
                0.0,
                f"DKIM record not found or invalid: {dkim.error}",
                Severity.HIGH,
                "Ensure DKIM record is published in DNS for the selector used",
                details,
            )
        return Check(
            CheckCategory.DNS,
            name,
            CheckStatus.PASS,
            1.0,
            "Valid DKIM record found",
            Severity.INFO,
            "Your DKIM record is properly published",
            details,
        )

    def _dmarc_check(self, dmarc: DMARCRecord) -> Check:
        if not dmarc.valid:
            return Check(
                CheckCategory.DNS,
                "DMARC Record",
                CheckStatus.FAIL,
                0.0,
                dmarc.error or "No DMARC record found",
                Severity.HIGH,
                "Configure a DMARC record for your domain to improve deliverability "
                "and prevent spoofing",
                dmarc.record,
            )

        advice = {
            "none": (
                "DMARC policy is set to 'none' (monitoring only). Consider upgrading "
                "to 'quarantine' or 'reject' for better protection"
            ),
            "quarantine": "DMARC policy is set to 'quarantine'. This provides good protection",
            "reject": "DMARC policy is set to 'reject'. This provides the strongest protection",
        }.get(dmarc.policy, "Your DMARC record is properly configured")
        return Check(
            CheckCategory.DNS,
            "DMARC Record",
            CheckStatus.PASS,
            1.0,
            f"Valid DMARC record found with policy: {dmarc.policy}",
            Severity.INFO,
            advice,
            dmarc.record,
        )

    def _bimi_check(self, bimi: BIMIRecord) -> Check:
        if bimi.valid:
            details = [f"Selector: {bimi.selector}"]
            if bimi.logo_url:
                details.append(f"Logo URL: {bimi.logo_url}")
            if bimi.vmc_url:
                details.append(f"VMC URL: {bimi.vmc_url}")
                advice = "Your BIMI record is properly configured with a Verified Mark Certificate"
            else:
                advice = (
                    "Your BIMI record is properly configured. Consider adding a "
                    "Verified Mark Certificate (VMC) for enhanced trust"
                )
            return Check(
                CheckCategory.DNS,
                "BIMI Record",
                CheckStatus.PASS,
                0.0,
                "Valid BIMI record found",
                Severity.INFO,
                advice,
                ", ".join(details),
            )
        if not bimi.record:
            return Check(
                CheckCategory.DNS,
                "BIMI Record",
                CheckStatus.INFO,
                0.0,
                "No BIMI record found (optional)",
                Severity.LOW,
                "BIMI is optional. Consider implementing it to display your brand logo in "
                "supported email clients. Requires enforced DMARC policy "
                "(p=quarantine or p=reject)",
            )
        return Check(
            CheckCategory.DNS,
            "BIMI Record",
            CheckStatus.WARN,
            0.0,
            f"BIMI record found but invalid: {bimi.error}",
            Severity.LOW,
            "Review and fix your BIMI record syntax. Ensure it contains v=BIMI1 "
            "and a valid logo URL (l=)",
            bimi.record,
        )

    def _ptr_check(self, ptr: PTRRecord) -> Check:
        name = "Reverse DNS (PTR)"
        if not ptr.hostnames:
            return Check(
                CheckCategory.DNS,
                name,
                CheckStatus.FAIL,
                0.0,
                f"{ptr.error or 'No PTR record found'} for sender IP {ptr.ip}",
                Severity.HIGH,
                "Ask your hosting provider to set a PTR record for the sending IP. "
                "Many receivers reject mail from IPs without reverse DNS",
            )

        details = f"IP: {ptr.ip}, PTR: {', '.join(ptr.hostnames)}"
        if not ptr.forward_confirmed:
            return Check(
                CheckCategory.DNS,
                name,
                CheckStatus.WARN,
                0.5,
                f"PTR of {ptr.ip} does not resolve back to the sender IP",
                Severity.MEDIUM,
                "Add an A/AAAA record for the PTR hostname pointing to the sending IP "
                "(forward-confirmed reverse DNS)",
                details,
            )
        if len(ptr.hostnames) > 1:
            return Check(
                CheckCategory.DNS,
                name,
                CheckStatus.WARN,
                0.5,
                f"Sender IP {ptr.ip} has {len(ptr.hostnames)} PTR records",
                Severity.LOW,
                "Keep a single PTR record per sending IP",
                details,
            )
        return Check(
            CheckCategory.DNS,
            name,
            CheckStatus.PASS,
            1.0,
            f"Sender IP {ptr.ip} has forward-confirmed reverse DNS",
            Severity.INFO,
            "Your reverse DNS is properly configured",
            details,
        )

    def describe_output(self, result: DNSResults) -> OutputDescriptor:
        """
        Describe how to render DNS results.

        Uses semantic styling (theme-agnostic) - no hardcoded colors.
        """
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"DNS: {r.domain or 'no domain'}, "
            f"{sum(1 for mx in (r.mx_records or []) if mx.valid)} MX"
        )

        if result.domain:
            descriptor.add_row(
                label="Domain",
                value=result.domain,
                style_class="highlight",
                verbosity=VerbosityLevel.NORMAL,
            )

        for mx in result.mx_records or []:
            if mx.valid:
                descriptor.add_row(
                    label="MX",
                    value=f"{mx.priority} {mx.host}",
                    style_class="success",
                    icon="check",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        for label, record in (
            ("SPF", result.spf_record),
            ("DMARC", result.dmarc_record),
            ("BIMI", result.bimi_record),
        ):
            if record and record.record:
                descriptor.add_row(
                    label=label,
                    value=record.record,
                    style_class="success" if record.valid else "warning",
                    icon="check" if record.valid else "warning",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        for dkim in result.dkim_records:
            if dkim.record:
                descriptor.add_row(
                    label=f"DKIM ({dkim.selector})",
                    value=dkim.record,
                    style_class="success" if dkim.valid else "warning",
                    verbosity=VerbosityLevel.DEBUG,
                )

        if result.ptr_record and result.ptr_record.hostnames:
            descriptor.add_row(
                label=f"PTR ({result.ptr_record.ip})",
                value=", ".join(result.ptr_record.hostnames),
                style_class="success" if result.ptr_record.forward_confirmed else "warning",
                icon="check" if result.ptr_record.forward_confirmed else "warning",
                verbosity=VerbosityLevel.VERBOSE,
            )

        descriptor.add_checks(self.generate_checks(result))
        return descriptor

    def to_dict(self, result: DNSResults) -> dict:
        """
        Serialize result to JSON-compatible dictionary.

        Args:
            result: DNS results

        Returns:
            JSON-serializable dict
        """
        return {
            "domain": result.domain,
            "mx_records": (
                [
                    {"host": mx.host, "priority": mx.priority, "valid": mx.valid, "error": mx.error}
                    for mx in result.mx_records
                ]
                if result.mx_records is not None
                else None
            ),
            "spf_record": (
                {
                    "record": result.spf_record.record,
                    "valid": result.spf_record.valid,
                    "error": result.spf_record.error,
                }
                if result.spf_record
                else None
            ),
            "dkim_records": [
                {
                    "selector": dkim.selector,
                    "domain": dkim.domain,
                    "record": dkim.record,
                    "valid": dkim.valid,
                    "error": dkim.error,
                }
                for dkim in result.dkim_records
            ],
            "dmarc_record": (
                {
                    "record": result.dmarc_record.record,
                    "policy": result.dmarc_record.policy,
                    "valid": result.dmarc_record.valid,
                    "error": result.dmarc_record.error,
                }
                if result.dmarc_record
                else None
            ),
            "bimi_record": (
                {
                    "selector": result.bimi_record.selector,
                    "domain": result.bimi_record.domain,
                    "record": result.bimi_record.record,
                    "logo_url": result.bimi_record.logo_url,
                    "vmc_url": result.bimi_record.vmc_url,
                    "valid": result.bimi_record.valid,
                    "error": result.bimi_record.error,
                }
                if result.bimi_record
                else None
            ),
            "ptr_record": (
                {
                    "ip": result.ptr_record.ip,
                    "hostnames": result.ptr_record.hostnames,
                    "forward_ips": result.ptr_record.forward_ips,
                    "forward_confirmed": result.ptr_record.forward_confirmed,
                    "error": result.ptr_record.error,
                }
                if result.ptr_record
                else None
            ),
            "errors": result.errors,
        }
