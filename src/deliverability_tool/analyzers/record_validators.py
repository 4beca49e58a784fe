"""Syntax validators for email-related DNS TXT records.

Pure, stateless predicates. They answer "does this string look like a
usable record" and leave the wording of any failure to the caller.
"""

import re

SPF_ALL_QUALIFIERS = (" all", " +all", " -all", " ~all", " ?all")

_DMARC_POLICY_RE = re.compile(r"p=(none|quarantine|reject)")


def join_txt_parts(parts: list[str]) -> str:
    """
    Join a multi-part TXT answer in order, with no separator.

    DKIM keys in particular are usually longer than one 255-byte string.

    Example:
        >>> join_txt_parts(["v=DKIM1; k=rsa; p=MIIB", "IjANBg"])
        'v=DKIM1; k=rsa; p=MIIBIjANBg'
    """
    return "".join(parts)


def extract_tag(record: str, tag: str) -> str | None:
    """
    Value of one `tag=value` pair in a semicolon-separated record.

    The tag has to start the record or follow a `;`, so looking up `l`
    never matches the tail of another tag name.

    Returns:
        Stripped value, "" for a present but empty tag, None when absent
    """
    match = re.search(rf"(?:^|;)\s*{re.escape(tag)}=([^;]*)", record)
    if not match:
        return None
    return match.group(1).strip()


def validate_spf(record: str) -> bool:
    """An SPF record must start with v=spf1 and end in an `all` mechanism."""
    if not record.startswith("v=spf1"):
        return False
    return record.endswith(SPF_ALL_QUALIFIERS)


def spf_all_qualifier(record: str) -> str | None:
    """
    Qualifier of the trailing `all` mechanism.

    Returns:
        One of "-", "~", "+", "?" (a bare " all" means "+"), or None
    """
    for ending, qualifier in (
        (" -all", "-"),
        (" ~all", "~"),
        (" +all", "+"),
        (" ?all", "?"),
        (" all", "+"),
    ):
        if record.endswith(ending):
            return qualifier
    return None


def validate_dkim(record: str) -> bool:
    """A DKIM key record needs p=, and if it declares a version it must be DKIM1."""
    if "p=" not in record:
        return False
    if "v=" in record and "v=DKIM1" not in record:
        return False
    return True


def extract_dmarc_policy(record: str) -> str:
    """First recognized p= value of a DMARC record, or "unknown"."""
    match = _DMARC_POLICY_RE.search(record)
    return match.group(1) if match else "unknown"


def validate_dmarc(record: str) -> bool:
    if not record.startswith("v=DMARC1"):
        return False
    return "p=" in record


def validate_bimi(record: str) -> bool:
    """A BIMI record needs the v=BIMI1 prefix and a non-empty logo URL."""
    if not record.startswith("v=BIMI1"):
        return False
    return bool(extract_tag(record, "l"))
