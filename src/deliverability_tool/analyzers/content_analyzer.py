"""Content analyzer - links, images, unsubscribe signals and text balance.

Parses the HTML parts of a message, verifies every http(s) link with a
HEAD request, flags suspicious URLs and measures how well the plain text
and HTML versions agree.
"""

import ipaddress
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup
from pydantic import Field

from ..constants import (
    DEFAULT_HTTP_MAX_REDIRECTS,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LINK_CHECK_WORKERS,
    DEFAULT_USER_AGENT,
    MAX_CONTENT_SCORE,
    MAX_SUBDOMAIN_LABELS,
    MAX_SUSPICIOUS_URLS_DISPLAY,
    SUSPICIOUS_HOST_CHARS,
    UNSUBSCRIBE_KEYWORDS,
    URL_SHORTENERS,
)
from ..core.message import EmailMessage
from ..core.registry import registry
from .http_utils import safe_http_head
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

SUSPICIOUS_URL_WARNING = "URL appears suspicious (obfuscated, shortened, or unusual)"

# Sum of every additive term when all are maxed
_RAW_CONTENT_MAX = 1.8
_CONTENT_SCALE = MAX_CONTENT_SCORE / _RAW_CONTENT_MAX

_WHITESPACE_RE = re.compile(r"\s+")


# ============================================================================
# Configuration
# ============================================================================


class ContentConfig(AnalyzerConfig):
    """Content analyzer configuration."""

    http_timeout: float = Field(
        default=DEFAULT_HTTP_TIMEOUT,
        description="Timeout in seconds for each link HEAD request",
    )
    check_links: bool = Field(
        default=True,
        description="Verify http(s) links with HEAD requests (False classifies them offline)",
    )
    max_redirects: int = Field(
        default=DEFAULT_HTTP_MAX_REDIRECTS,
        ge=0,
        description="Maximum redirects to follow per link",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header for link checks",
    )
    max_workers: int = Field(
        default=DEFAULT_LINK_CHECK_WORKERS,
        ge=1,
        description="Maximum concurrent link checks",
    )


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class LinkCheck:
    """
    Validation of one <a href>.

    valid is about the URL itself; an unreachable target stays valid with
    a warning, and a 4xx/5xx target stays valid with an error.
    """

    url: str
    valid: bool = True
    status: int = 0
    error: str | None = None
    is_safe: bool = True
    warning: str | None = None


@dataclass
class ImageCheck:
    src: str
    has_alt: bool = False
    alt_text: str = ""
    valid: bool = True
    error: str | None = None


@dataclass
class ContentResults:
    """Results from content analysis."""

    has_html: bool = False
    html_valid: bool = False
    html_errors: list[str] = field(default_factory=list)
    links: list[LinkCheck] = field(default_factory=list)
    images: list[ImageCheck] = field(default_factory=list)
    has_unsubscribe: bool = False
    unsubscribe_links: list[str] = field(default_factory=list)
    text_content: str = ""
    html_text: str = ""
    text_plain_ratio: float = 0.0
    image_text_ratio: float = 0.0
    suspicious_urls: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def broken_links(self) -> list[LinkCheck]:
        return [link for link in self.links if link.status >= 400]

    @property
    def unverified_links(self) -> list[LinkCheck]:
        return [link for link in self.links if link.status < 400 and link.warning]

    @property
    def images_without_alt(self) -> list[ImageCheck]:
        return [image for image in self.images if not image.has_alt]


# ============================================================================
# Helper Functions
# ============================================================================


def is_ip_host(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def is_suspicious_url(url: str, host: str) -> bool:
    """
    Heuristic for URLs that look obfuscated, shortened or unusual.

    Any one of: an IP literal host, a known shortener, more than
    MAX_SUBDOMAIN_LABELS labels, an "@" anywhere in the URL, or one of
    []()<> in the host.
    """
    host = host.lower()
    if is_ip_host(host):
        return True
    if any(host == shortener or host.endswith(f".{shortener}") for shortener in URL_SHORTENERS):
        return True
    if len(host.split(".")) > MAX_SUBDOMAIN_LABELS:
        return True
    if "@" in url:
        return True
    return any(char in host for char in SUSPICIOUS_HOST_CHARS)


def _url_host(netloc: str) -> str:
    """Host part of a netloc without userinfo or port."""
    host = netloc.rsplit("@", 1)[-1]
    if host.startswith("["):
        return host.split("]", 1)[0] + "]"
    return host.split(":", 1)[0]


def is_unsubscribe_link(href: str, text: str) -> bool:
    lowered = f"{href.lower()} {text.lower()}"
    return any(keyword in lowered for keyword in UNSUBSCRIBE_KEYWORDS)


def extract_text(soup: BeautifulSoup) -> str:
    """Visible text of a document, script and style contents excluded."""
    for element in soup(["script", "style"]):
        element.decompose()
    return soup.get_text()


def _words(text: str) -> list[str]:
    normalized = _WHITESPACE_RE.sub(" ", text.lower()).strip()
    return normalized.split() if normalized else []


def text_html_consistency(plain_text: str, html_text: str) -> float:
    """
    Word overlap between the plain text and HTML versions.

    Counts HTML words that also occur in the plain text, divided by the
    longer word count. 0.0 when either side has no words.
    """
    plain_words = _words(plain_text)
    html_words = _words(html_text)
    if not plain_words or not html_words:
        return 0.0

    plain_set = set(plain_words)
    common = sum(1 for word in html_words if word in plain_set)
    return common / max(len(plain_words), len(html_words))


def _points(raw: float) -> float:
    """Raw content points on the 0-2 category scale, as used for check scores."""
    return round(raw * _CONTENT_SCALE, 3)


def image_text_ratio(image_count: int, text_length: int) -> float:
    """Images per 1000 characters of HTML text."""
    if text_length <= 0:
        return 0.0
    return image_count / text_length * 1000


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class ContentAnalyzer:
    """
    Analyzes the body of a message for spam-signaling patterns.

    Independent of every other analyzer.
    """

    analyzer_id = "content"
    name = "Content Analysis"
    description = "HTML structure, links, images, unsubscribe and text/HTML balance"
    category = "content"
    icon = "document"
    check_category = CheckCategory.CONTENT
    config_class = ContentConfig
    depends_on: list[str] = []

    def analyze(
        self,
        message: EmailMessage,
        config: ContentConfig,
        context: dict[str, Any] | None = None,
    ) -> ContentResults:
        """
        Analyze HTML and plain-text parts of a message.

        Args:
            message: Parsed email
            config: Content analyzer configuration

        Returns:
            ContentResults
        """
        result = ContentResults()
        html_parts = message.html_parts
        text_parts = message.text_parts

        result.text_content = "".join(part.content for part in text_parts)

        hrefs: list[str] = []
        html_texts: list[str] = []
        if html_parts:
            result.has_html = True
            result.html_valid = True
            for part in html_parts:
                text = self._analyze_html(part.content, result, hrefs)
                if text is not None:
                    html_texts.append(text)

        result.html_text = "".join(html_texts)

        # List-Unsubscribe counts as an unsubscribe option even without a body link
        for url in message.list_unsubscribe_urls:
            if url not in result.unsubscribe_links:
                result.unsubscribe_links.append(url)
            result.has_unsubscribe = True

        result.links = self._check_links(hrefs, config)
        result.suspicious_urls = [link.url for link in result.links if not link.is_safe]

        if result.html_text:
            result.image_text_ratio = image_text_ratio(len(result.images), len(result.html_text))
        if html_parts and text_parts:
            result.text_plain_ratio = text_html_consistency(result.text_content, result.html_text)

        logger.debug(
            f"Content: {len(result.links)} links, {len(result.images)} images, "
            f"unsubscribe={result.has_unsubscribe}"
        )
        return result

    def _analyze_html(
        self, html_content: str, result: ContentResults, hrefs: list[str]
    ) -> str | None:
        """
        Walk one HTML part, collecting links and images.

        Returns:
            Extracted text, or None when the part could not be parsed
        """
        try:
            soup = BeautifulSoup(html_content, "html5lib")
        except Exception as e:
            logger.debug(f"Failed to parse HTML part: {e}")
            result.html_valid = False
            result.html_errors.append(f"Failed to parse HTML: {e}")
            return None

        for anchor in soup.find_all("a"):
            href = (anchor.get("href") or "").strip()
            if not href:
                continue
            if is_unsubscribe_link(href, anchor.get_text()):
                result.has_unsubscribe = True
                result.unsubscribe_links.append(href)
            hrefs.append(href)

        for img in soup.find_all("img"):
            src = img.get("src") or ""
            alt = img.get("alt") or ""
            image = ImageCheck(src=src, has_alt=bool(alt), alt_text=alt, valid=bool(src))
            if not src:
                image.error = "Image missing src attribute"
            result.images.append(image)

        return extract_text(soup)

    def _check_links(self, hrefs: list[str], config: ContentConfig) -> list[LinkCheck]:
        if not hrefs:
            return []
        if not config.check_links:
            return [self.validate_link(href, config, None) for href in hrefs]

        with httpx.Client(
            timeout=config.http_timeout,
            follow_redirects=True,
            max_redirects=config.max_redirects,
        ) as client:
            with ThreadPoolExecutor(max_workers=min(config.max_workers, len(hrefs))) as executor:
                return list(
                    executor.map(lambda href: self.validate_link(href, config, client), hrefs)
                )

    def validate_link(
        self, url: str, config: ContentConfig, client: httpx.Client | None
    ) -> LinkCheck:
        """
        Validate one link and, for http(s) with a client, check it with a HEAD request.

        Args:
            url: href value
            config: Content analyzer configuration
            client: Shared HTTP client, or None to skip the network request

        Returns:
            LinkCheck
        """
        check = LinkCheck(url=url)

        try:
            parsed = urlsplit(url)
            host = _url_host(parsed.netloc)
        except ValueError as e:
            check.valid = False
            check.error = f"Invalid URL: {e}"
            return check

        if is_suspicious_url(url, host):
            check.is_safe = False
            check.warning = SUSPICIOUS_URL_WARNING

        if parsed.scheme.lower() not in ("http", "https") or client is None:
            return check

        http_result = safe_http_head(
            url,
            timeout=config.http_timeout,
            max_redirects=config.max_redirects,
            user_agent=config.user_agent,
            client=client,
        )
        if not http_result.success:
            check.warning = f"Could not verify link: {http_result.error}"
            logger.debug(f"Could not verify {url}: {http_result.error}")
            return check

        check.status = http_result.status_code
        if check.status >= 400:
            check.error = f"Link returns {check.status} status"
        return check

    # ========================================================================
    # Scoring and Checks
    # ========================================================================

    def get_score(self, result: ContentResults) -> float:
        """
        Content score on a 0-2 scale.

        The additive terms max out at 1.8 raw points, which are rescaled
        so that a flawless message reaches the full category. Check scores
        carry the same rescaled terms, so the checks of a message with
        links and images add up to this score. The small terms granted for
        having no links or no images have no check of their own.
        """
        raw = 0.0

        if result.html_valid:
            raw += 0.2

        if result.links:
            if not result.broken_links:
                raw += 0.4
        else:
            raw += 0.2

        if result.images:
            missing = len(result.images_without_alt)
            if missing == 0:
                raw += 0.3
            elif missing < len(result.images):
                raw += 0.15
        else:
            raw += 0.15

        if result.has_unsubscribe:
            raw += 0.3

        if result.text_plain_ratio >= 0.3:
            raw += 0.3

        if result.image_text_ratio <= 5.0:
            raw += 0.3
        elif result.image_text_ratio <= 10.0:
            raw += 0.15

        if result.suspicious_urls:
            raw -= min(0.5, 0.1 * len(result.suspicious_urls))

        raw = max(0.0, min(raw, _RAW_CONTENT_MAX))
        return round(raw * _CONTENT_SCALE, 2)

    def generate_checks(self, result: ContentResults) -> list[Check]:
        if not result.has_html:
            checks = [
                Check(
                    CheckCategory.CONTENT,
                    "HTML Content",
                    CheckStatus.INFO,
                    0.0,
                    "No HTML part found, only plain text content analyzed",
                    Severity.INFO,
                    "A multipart message with both HTML and plain text versions is recommended",
                )
            ]
            if result.text_content:
                checks.append(self._unsubscribe_check(result))
            return checks

        checks = [self._html_check(result)]
        if result.links:
            checks.append(self._links_check(result))
        if result.images:
            checks.append(self._images_check(result))
        checks.append(self._unsubscribe_check(result))
        if result.text_content and result.html_text:
            checks.append(self._consistency_check(result))
        if result.images and result.html_text:
            checks.append(self._image_ratio_check(result))
        if result.suspicious_urls:
            checks.append(self._suspicious_check(result))
        return checks

    def _html_check(self, result: ContentResults) -> Check:
        if not result.html_valid:
            return Check(
                CheckCategory.CONTENT,
                "HTML Structure",
                CheckStatus.FAIL,
                0.0,
                "HTML structure is invalid",
                Severity.MEDIUM,
                "Fix HTML structure errors to improve email rendering",
                "; ".join(result.html_errors) or None,
            )
        return Check(
            CheckCategory.CONTENT,
            "HTML Structure",
            CheckStatus.PASS,
            _points(0.2),
            "HTML structure is valid",
            Severity.INFO,
            "Your HTML is well-formed",
        )

    def _links_check(self, result: ContentResults) -> Check:
        total = len(result.links)
        broken = len(result.broken_links)
        unverified = len(result.unverified_links)
        if broken:
            return Check(
                CheckCategory.CONTENT,
                "Links",
                CheckStatus.FAIL,
                0.0,
                f"Found {broken} broken link(s)",
                Severity.HIGH,
                "Fix or remove broken links to improve deliverability",
                f"Total links: {total}, Broken: {broken}",
            )
        if unverified:
            return Check(
                CheckCategory.CONTENT,
                "Links",
                CheckStatus.WARN,
                _points(0.4),
                f"Found {unverified} link(s) that could not be verified",
                Severity.LOW,
                "Review links that could not be verified",
                f"Total links: {total}, Unverified: {unverified}",
            )
        return Check(
            CheckCategory.CONTENT,
            "Links",
            CheckStatus.PASS,
            _points(0.4),
            f"All {total} link(s) are valid",
            Severity.INFO,
            "Your links are working properly",
        )

    def _images_check(self, result: ContentResults) -> Check:
        total = len(result.images)
        missing = len(result.images_without_alt)
        details = f"Images without alt: {missing}/{total}"
        if missing == total:
            return Check(
                CheckCategory.CONTENT,
                "Image Alt Attributes",
                CheckStatus.FAIL,
                0.0,
                "No images have alt attributes",
                Severity.MEDIUM,
                "Add alt text to all images for accessibility and deliverability",
                details,
            )
        if missing:
            return Check(
                CheckCategory.CONTENT,
                "Image Alt Attributes",
                CheckStatus.WARN,
                _points(0.15),
                f"{missing} image(s) missing alt attributes",
                Severity.LOW,
                "Add alt text to all images for better accessibility",
                details,
            )
        return Check(
            CheckCategory.CONTENT,
            "Image Alt Attributes",
            CheckStatus.PASS,
            _points(0.3),
            "All images have alt attributes",
            Severity.INFO,
            "Your images are properly tagged for accessibility",
        )

    def _unsubscribe_check(self, result: ContentResults) -> Check:
        if not result.has_unsubscribe:
            return Check(
                CheckCategory.CONTENT,
                "Unsubscribe Link",
                CheckStatus.WARN,
                0.0,
                "No unsubscribe link found",
                Severity.LOW,
                "Add an unsubscribe link for marketing emails (RFC 8058)",
            )
        return Check(
            CheckCategory.CONTENT,
            "Unsubscribe Link",
            CheckStatus.PASS,
            _points(0.3),
            f"Found {len(result.unsubscribe_links)} unsubscribe link(s)",
            Severity.INFO,
            "Your email includes an unsubscribe option",
        )

    def _consistency_check(self, result: ContentResults) -> Check:
        details = f"Consistency: {result.text_plain_ratio * 100:.0f}%"
        if result.text_plain_ratio < 0.3:
            return Check(
                CheckCategory.CONTENT,
                "Plain Text Consistency",
                CheckStatus.WARN,
                0.0,
                "Plain text and HTML versions differ significantly",
                Severity.LOW,
                "Ensure plain text and HTML versions convey the same content",
                details,
            )
        return Check(
            CheckCategory.CONTENT,
            "Plain Text Consistency",
            CheckStatus.PASS,
            _points(0.3),
            "Plain text and HTML versions are consistent",
            Severity.INFO,
            "Your multipart email is well-structured",
            details,
        )

    def _image_ratio_check(self, result: ContentResults) -> Check:
        ratio = result.image_text_ratio
        details = f"Images: {len(result.images)}, Ratio: {ratio:.2f} images per 1000 chars"
        if ratio > 10.0:
            return Check(
                CheckCategory.CONTENT,
                "Image-to-Text Ratio",
                CheckStatus.FAIL,
                0.0,
                "Email is excessively image-heavy",
                Severity.MEDIUM,
                "Reduce the number of images relative to text content",
                details,
            )
        if ratio > 5.0:
            return Check(
                CheckCategory.CONTENT,
                "Image-to-Text Ratio",
                CheckStatus.WARN,
                _points(0.15),
                "Email has high image-to-text ratio",
                Severity.LOW,
                "Consider adding more text content relative to images",
                details,
            )
        return Check(
            CheckCategory.CONTENT,
            "Image-to-Text Ratio",
            CheckStatus.PASS,
            _points(0.3),
            "Image-to-text ratio is reasonable",
            Severity.INFO,
            "Your content has a good balance of images and text",
            details,
        )

    def _suspicious_check(self, result: ContentResults) -> Check:
        urls = result.suspicious_urls
        details = ", ".join(urls[:MAX_SUSPICIOUS_URLS_DISPLAY])
        if len(urls) > MAX_SUSPICIOUS_URLS_DISPLAY:
            details += f", and {len(urls) - MAX_SUSPICIOUS_URLS_DISPLAY} more"
        return Check(
            CheckCategory.CONTENT,
            "Suspicious URLs",
            CheckStatus.WARN,
            _points(-min(0.5, 0.1 * len(urls))),
            f"Found {len(urls)} suspicious URL(s)",
            Severity.MEDIUM,
            "Avoid URL shorteners, IP addresses, and obfuscated URLs in emails",
            details,
        )

    # ========================================================================
    # Output
    # ========================================================================

    def describe_output(self, result: ContentResults) -> OutputDescriptor:
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"Content: {len(r.links)} links ({len(r.broken_links)} broken), "
            f"{len(r.images)} images"
        )

        descriptor.add_row(
            label="Links",
            value=len(result.links),
            style_class="error" if result.broken_links else "info",
            verbosity=VerbosityLevel.NORMAL,
        )
        descriptor.add_row(
            label="Images",
            value=len(result.images),
            style_class="info",
            verbosity=VerbosityLevel.NORMAL,
        )
        descriptor.add_row(
            label="Unsubscribe",
            value="found" if result.has_unsubscribe else "missing",
            style_class="success" if result.has_unsubscribe else "warning",
            icon="check" if result.has_unsubscribe else "warning",
            verbosity=VerbosityLevel.NORMAL,
        )
        if result.has_html and result.text_content:
            descriptor.add_row(
                label="Text/HTML consistency",
                value=f"{result.text_plain_ratio * 100:.0f}%",
                style_class="success" if result.text_plain_ratio >= 0.3 else "warning",
                verbosity=VerbosityLevel.VERBOSE,
            )

        for link in result.links:
            if link.error or link.warning:
                descriptor.add_row(
                    label=link.url,
                    value=link.error or link.warning,
                    style_class="error" if link.error else "warning",
                    section_name="Links",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        if result.suspicious_urls:
            descriptor.add_row(
                label="Suspicious URLs",
                value=result.suspicious_urls,
                section_type="list",
                style_class="warning",
                icon="warning",
                max_items=MAX_SUSPICIOUS_URLS_DISPLAY,
                verbosity=VerbosityLevel.NORMAL,
            )

        descriptor.add_checks(self.generate_checks(result))
        return descriptor

    def to_dict(self, result: ContentResults) -> dict:
        return {
            "html_valid": result.html_valid,
            "html_errors": result.html_errors,
            "links": [
                {
                    "url": link.url,
                    "valid": link.valid,
                    "status": link.status,
                    "error": link.error,
                    "is_safe": link.is_safe,
                    "warning": link.warning,
                }
                for link in result.links
            ],
            "images": [
                {
                    "src": image.src,
                    "has_alt": image.has_alt,
                    "alt_text": image.alt_text,
                    "valid": image.valid,
                    "error": image.error,
                }
                for image in result.images
            ],
            "has_unsubscribe": result.has_unsubscribe,
            "unsubscribe_links": result.unsubscribe_links,
            "text_content": result.text_content,
            "text_plain_ratio": result.text_plain_ratio,
            "image_text_ratio": result.image_text_ratio,
            "suspicious_urls": result.suspicious_urls,
            "errors": result.errors,
            "warnings": result.warnings,
        }
