"""DNS resolver utilities for analyzers."""

import logging

import dns.resolver

from ..constants import DEFAULT_DNS_PUBLIC_SERVERS

logger = logging.getLogger(__name__)


def create_resolver(
    nameservers: list[str] | None = None,
    timeout: float = 5.0,
) -> dns.resolver.Resolver:
    """
    Create a DNS resolver with fallback to public DNS servers.

    Handles:
    - System DNS configuration with fallback
    - Custom nameserver configuration
    - Public DNS fallback when system DNS is unavailable
    - Per-query timeout (lifetime bounds the whole query incl. retries)

    Args:
        nameservers: Custom nameservers to use (optional).
                    If None, will try system DNS first, then fallback to public DNS.
        timeout: DNS query timeout in seconds (default: 5.0)

    Returns:
        Configured DNS resolver ready for use

    Example:
        >>> resolver = create_resolver(timeout=10.0)
        >>> answers = resolver.resolve('example.com', 'MX')
    """
    try:
        resolver = dns.resolver.Resolver()
        if not resolver.nameservers:
            raise dns.resolver.NoResolverConfiguration("no nameservers")
    except (dns.resolver.NoResolverConfiguration, OSError):
        resolver = dns.resolver.Resolver(configure=False)
        logger.debug("System DNS not available, using public DNS servers")

    if nameservers:
        resolver.nameservers = list(nameservers)
        logger.debug(f"Using custom nameservers: {', '.join(nameservers)}")
    elif not resolver.nameservers:
        resolver.nameservers = list(DEFAULT_DNS_PUBLIC_SERVERS)
        logger.debug(
            f"Using fallback public DNS servers: {', '.join(DEFAULT_DNS_PUBLIC_SERVERS)}"
        )

    resolver.timeout = timeout
    resolver.lifetime = timeout

    return resolver


def txt_strings(answer) -> list[str]:
    """
    Decode a TXT answer into one string per record.

    The character-strings inside a single record are concatenated, which
    is how DNS intends long records to be read back.
    """
    records = []
    for rdata in answer:
        records.append(b"".join(rdata.strings).decode("utf-8", errors="replace"))
    return records


def resolve_txt(resolver: dns.resolver.Resolver, name: str) -> list[str]:
    """
    TXT records at a name; a missing name or empty answer yields [].

    Raises:
        dns.exception.DNSException: any other resolution failure (timeout,
            SERVFAIL, no nameservers), left for the caller to record
    """
    try:
        answer = resolver.resolve(name, "TXT")
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        logger.debug(f"No TXT records at {name}")
        return []
    return txt_strings(answer)
