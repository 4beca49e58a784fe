"""Parsed email message model.

Wraps the standard library MIME parser into an immutable view with the
accessors the analyzers need: a case-insensitive, order-preserving header
multimap and a tree of decoded body parts.
"""

import logging
import re
from dataclasses import dataclass, field
from email import policy
from email.message import Message
from email.parser import BytesParser
from email.utils import parseaddr

logger = logging.getLogger(__name__)

_FOLDING_RE = re.compile(r"\r?\n[ \t]+")
_ANGLE_URL_RE = re.compile(r"<([^>]+)>")

# Verdict headers written by SpamAssassin and rspamd
SPAMASSASSIN_HEADERS = (
    "X-Spam-Status",
    "X-Spam-Score",
    "X-Spam-Flag",
    "X-Spam-Level",
    "X-Spam-Report",
    "X-Spam-Checker-Version",
)
RSPAMD_HEADERS = ("X-Spamd-Result", "X-Rspamd-Score", "X-Rspamd-Action", "X-Rspamd-Server")


@dataclass
class MessagePart:
    """One node of the MIME tree. Multipart nodes have children, leaves have content."""

    content_type: str
    content: str = ""
    parts: list["MessagePart"] = field(default_factory=list)
    charset: str | None = None

    @property
    def is_multipart(self) -> bool:
        return self.content_type.startswith("multipart/")

    @property
    def is_html(self) -> bool:
        return self.content_type == "text/html"

    @property
    def is_text(self) -> bool:
        return self.content_type == "text/plain"

    def walk(self):
        """Yield this part and all descendants in document order."""
        yield self
        for part in self.parts:
            yield from part.walk()


def _decode_payload(payload: bytes | None, charset: str | None) -> str:
    """Decode raw part bytes, falling back to UTF-8 with replacement."""
    if not payload:
        return ""
    if charset:
        try:
            return payload.decode(charset)
        except (LookupError, UnicodeDecodeError):
            logger.debug(f"Could not decode part as {charset}, falling back to utf-8")
    return payload.decode("utf-8", errors="replace")


def _build_part(msg: Message) -> MessagePart:
    content_type = msg.get_content_type()
    if msg.is_multipart():
        children = msg.get_payload()
        return MessagePart(
            content_type=content_type,
            parts=[_build_part(child) for child in children if isinstance(child, Message)],
        )

    charset = msg.get_content_charset()
    payload = msg.get_payload(decode=True)
    return MessagePart(
        content_type=content_type,
        content=_decode_payload(payload, charset),
        charset=charset,
    )


class EmailMessage:
    """
    Immutable view over one parsed email.

    Headers keep their original order and duplicates; lookups are
    case-insensitive.

    Example:
        >>> message = EmailMessage.from_bytes(raw)
        >>> message.from_domain
        'example.com'
        >>> message.get_all("Received")
        ['from mx.example.com ...', ...]
    """

    def __init__(
        self,
        headers: list[tuple[str, str]],
        parts: list[MessagePart] | None = None,
        raw_headers: str = "",
        multipart: bool = False,
    ):
        self._headers = tuple((name, value) for name, value in headers)
        self._parts = tuple(parts or [])
        self._raw_headers = raw_headers
        self._multipart = multipart

    @classmethod
    def from_bytes(cls, raw: bytes) -> "EmailMessage":
        """
        Parse RFC 5322 bytes.

        Args:
            raw: Full message including headers and body

        Returns:
            Parsed message; malformed input yields whatever could be recovered
        """
        msg = BytesParser(policy=policy.compat32).parsebytes(raw)

        headers = [(name, _FOLDING_RE.sub(" ", str(value)).strip()) for name, value in msg.items()]

        # Raw header block is everything before the first blank line
        normalized = raw.replace(b"\r\n", b"\n")
        raw_headers = normalized.split(b"\n\n", 1)[0].decode("utf-8", errors="replace")

        # Top-level parts: the children of a multipart root, else the single body
        root = _build_part(msg)
        parts = root.parts if root.is_multipart else [root]

        for defect in msg.defects:
            logger.debug(f"Message parse defect: {defect!r}")

        return cls(
            headers=headers, parts=parts, raw_headers=raw_headers, multipart=root.is_multipart
        )

    @classmethod
    def from_string(cls, raw: str) -> "EmailMessage":
        """Parse a message held in a str."""
        return cls.from_bytes(raw.encode("utf-8"))

    # ========================================================================
    # Header access
    # ========================================================================

    @property
    def headers(self) -> tuple[tuple[str, str], ...]:
        return self._headers

    @property
    def raw_headers(self) -> str:
        return self._raw_headers

    def get_all(self, name: str) -> list[str]:
        """All values of a header, in message order."""
        wanted = name.lower()
        return [value for key, value in self._headers if key.lower() == wanted]

    def get(self, name: str) -> str | None:
        """First value of a header, or None."""
        values = self.get_all(name)
        return values[0] if values else None

    def has_header(self, name: str) -> bool:
        return bool(self.get_all(name))

    @property
    def from_address(self) -> str | None:
        """Bare address of the From header."""
        value = self.get("From")
        if not value:
            return None
        _, address = parseaddr(value)
        return address or None

    @property
    def from_domain(self) -> str | None:
        """Lower-cased domain of the From address."""
        address = self.from_address
        if not address or "@" not in address:
            return None
        domain = address.rsplit("@", 1)[1].strip().lower()
        return domain or None

    @property
    def authentication_results(self) -> list[str]:
        return self.get_all("Authentication-Results")

    @property
    def received(self) -> list[str]:
        return self.get_all("Received")

    @property
    def list_unsubscribe_urls(self) -> list[str]:
        """URLs advertised in List-Unsubscribe (mailto: and http(s):)."""
        urls: list[str] = []
        for value in self.get_all("List-Unsubscribe"):
            urls.extend(match.strip() for match in _ANGLE_URL_RE.findall(value))
        return urls

    def _pick_headers(self, names: tuple[str, ...]) -> dict[str, str]:
        """Present headers out of names, keyed by the name as listed (first value wins)."""
        found: dict[str, str] = {}
        for name in names:
            value = self.get(name)
            if value is not None:
                found[name] = value
        return found

    @property
    def spam_headers(self) -> dict[str, str]:
        """SpamAssassin verdict headers; other X-Spam-* headers are ignored."""
        return self._pick_headers(SPAMASSASSIN_HEADERS)

    @property
    def rspamd_headers(self) -> dict[str, str]:
        return self._pick_headers(RSPAMD_HEADERS)

    # ========================================================================
    # Body access
    # ========================================================================

    @property
    def parts(self) -> tuple[MessagePart, ...]:
        return self._parts

    @property
    def is_multipart(self) -> bool:
        """True when the top-level Content-Type is multipart/*."""
        return self._multipart

    @property
    def has_content(self) -> bool:
        """True when at least one leaf part carries non-blank content."""
        return any(part.content.strip() for part in self._leaves())

    def _leaves(self):
        for top in self._parts:
            for part in top.walk():
                if not part.is_multipart:
                    yield part

    @property
    def html_parts(self) -> list[MessagePart]:
        return [part for part in self._leaves() if part.is_html]

    @property
    def text_parts(self) -> list[MessagePart]:
        return [part for part in self._leaves() if part.is_text]
