"""Tests for the content analyzer."""

from unittest.mock import patch

import pytest

from deliverability_tool.analyzers.content_analyzer import (
    SUSPICIOUS_URL_WARNING,
    ContentAnalyzer,
    ContentConfig,
    ContentResults,
    ImageCheck,
    LinkCheck,
    image_text_ratio,
    is_suspicious_url,
    is_unsubscribe_link,
    text_html_consistency,
)
from deliverability_tool.analyzers.http_utils import HTTPResult
from deliverability_tool.analyzers.protocol import CheckStatus
from deliverability_tool.core.message import EmailMessage

from conftest import make_message

PARAGRAPH = (
    "Our spring collection has arrived and we picked the pieces we think you will like most. "
    "Every item ships free this week and returns stay free for thirty days. "
    "Browse the catalogue online or visit one of our stores to see the colours in person. "
    "Thank you for reading and for being part of our community of customers."
)

OFFLINE = ContentConfig(check_links=False)


def multipart(text: str, html: str) -> EmailMessage:
    raw = (
        "From: shop@example.com\r\n"
        "MIME-Version: 1.0\r\n"
        'Content-Type: multipart/alternative; boundary="XX"\r\n'
        "\r\n"
        "--XX\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "\r\n"
        f"{text}\r\n"
        "--XX\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        "\r\n"
        f"{html}\r\n"
        "--XX--\r\n"
    )
    return EmailMessage.from_bytes(raw.encode("utf-8"))


@pytest.fixture
def analyzer():
    return ContentAnalyzer()


class TestURLHelpers:
    """Test URL classification helpers."""

    @pytest.mark.parametrize(
        "url, host",
        [
            ("http://192.0.2.10/offer", "192.0.2.10"),
            ("https://bit.ly/abc", "bit.ly"),
            ("https://go.bit.ly/abc", "go.bit.ly"),
            ("https://a.b.c.d.example.com/", "a.b.c.d.example.com"),
            ("https://user@example.com/", "example.com"),
        ],
    )
    def test_suspicious(self, url, host):
        """Test IP hosts, shorteners, deep subdomains and userinfo are suspicious."""
        assert is_suspicious_url(url, host) is True

    @pytest.mark.parametrize(
        "url, host",
        [
            ("https://www.example.com/page", "www.example.com"),
            ("https://notbit.ly/x", "notbit.ly"),
            ("https://shop.example.co.uk/", "shop.example.co.uk"),
        ],
    )
    def test_not_suspicious(self, url, host):
        """Test ordinary URLs and look-alike shortener names pass."""
        assert is_suspicious_url(url, host) is False

    def test_unsubscribe_link_by_href_or_text(self):
        """Test keywords are matched in either the href or the anchor text."""
        assert is_unsubscribe_link("https://example.com/optout", "")
        assert is_unsubscribe_link("https://example.com/p", "Unsubscribe here")
        assert not is_unsubscribe_link("https://example.com/p", "Read more")


class TestTextMetrics:
    """Test text/HTML consistency and image ratio."""

    def test_identical_text_is_fully_consistent(self):
        """Test identical versions score 1.0."""
        assert text_html_consistency("Hello big world", "hello  big\nworld") == 1.0

    def test_empty_side_is_zero(self):
        """Test an empty version gives 0.0."""
        assert text_html_consistency("", "hello") == 0.0
        assert text_html_consistency("hello", "   ") == 0.0

    def test_divides_by_longer_version(self):
        """Test the ratio uses the longer word count."""
        assert text_html_consistency("one two", "one two three four") == 0.5

    def test_image_ratio_per_thousand_chars(self):
        """Test images are counted per 1000 characters."""
        assert image_text_ratio(2, 500) == 4.0
        assert image_text_ratio(3, 0) == 0.0


class TestContentAnalysis:
    """Test analysis of message bodies."""

    def test_perfect_message_scores_full(self, analyzer):
        """Test a clean multipart message reaches the 2.0 maximum."""
        html = (
            f"<html><body><p>{PARAGRAPH}</p>"
            '<img src="https://example.com/hero.png" alt="Spring collection">'
            '<a href="https://example.com/unsubscribe">Unsubscribe</a></body></html>'
        )
        result = analyzer.analyze(multipart(PARAGRAPH, html), OFFLINE)

        assert result.has_html and result.html_valid
        assert result.has_unsubscribe
        assert result.text_plain_ratio >= 0.3
        assert result.image_text_ratio <= 5.0
        assert result.suspicious_urls == []
        assert analyzer.get_score(result) == 2.0
        assert all(c.status == CheckStatus.PASS for c in analyzer.generate_checks(result))

    def test_links_and_images_collected(self, analyzer, simple_message):
        """Test anchors and images of the HTML part are collected."""
        result = analyzer.analyze(simple_message, OFFLINE)
        assert [link.url for link in result.links] == [
            "https://example.com/article",
            "https://example.com/unsub?id=1",
        ]
        # The body link and the List-Unsubscribe header targets, without repeats
        assert result.unsubscribe_links == [
            "https://example.com/unsub?id=1",
            "mailto:unsub@example.com",
        ]
        assert result.images[0].has_alt
        assert result.images[0].alt_text == "Logo"

    def test_script_text_ignored(self, analyzer):
        """Test script and style contents do not count as text."""
        html = "<html><head><style>p{color:red}</style></head><body><script>var x=1;</script><p>Hi</p></body></html>"
        result = analyzer.analyze(multipart("Hi", html), OFFLINE)
        assert "color" not in result.html_text
        assert "var x" not in result.html_text
        assert "Hi" in result.html_text

    def test_suspicious_links_penalized(self, analyzer):
        """Test suspicious URLs are listed and reduce the score."""
        html = f'<p>{PARAGRAPH}</p><a href="https://bit.ly/x">Deal</a><a href="http://192.0.2.1/">Go</a>'
        result = analyzer.analyze(multipart(PARAGRAPH, html), OFFLINE)
        assert result.suspicious_urls == ["https://bit.ly/x", "http://192.0.2.1/"]
        assert all(link.warning == SUSPICIOUS_URL_WARNING for link in result.links)
        names = [c.name for c in analyzer.generate_checks(result)]
        assert "Suspicious URLs" in names

    def test_plain_text_only(self, analyzer):
        """Test a text-only message reports the missing HTML part."""
        result = analyzer.analyze(make_message([("From", "a@example.com")], "Just text"), OFFLINE)
        assert not result.has_html
        checks = analyzer.generate_checks(result)
        assert checks[0].name == "HTML Content"
        assert checks[0].status == CheckStatus.INFO

    def test_images_without_alt(self, analyzer):
        """Test images all missing alt fail the alt check."""
        result = ContentResults(
            has_html=True,
            html_valid=True,
            images=[ImageCheck(src="a.png"), ImageCheck(src="b.png")],
        )
        check = next(c for c in analyzer.generate_checks(result) if c.name == "Image Alt Attributes")
        assert check.status == CheckStatus.FAIL

    def test_list_unsubscribe_header_counts(self, analyzer):
        """Test a List-Unsubscribe header alone satisfies the unsubscribe check."""
        message = make_message(
            [
                ("From", "a@example.com"),
                ("List-Unsubscribe", "<mailto:leave@example.com?subject=unsubscribe>"),
            ],
            "Just text",
        )
        result = analyzer.analyze(message, OFFLINE)
        assert result.has_unsubscribe
        assert result.unsubscribe_links == ["mailto:leave@example.com?subject=unsubscribe"]
        check = next(c for c in analyzer.generate_checks(result) if c.name == "Unsubscribe Link")
        assert check.status == CheckStatus.PASS

    def test_check_scores_add_up_to_category_score(self, analyzer):
        """Test check scores are on the same 0-2 scale as get_score."""
        html = (
            f"<p>{PARAGRAPH}</p>"
            '<img src="https://example.com/a.png" alt="A"><img src="https://example.com/b.png">'
            '<a href="https://bit.ly/x">Deal</a>'
        )
        result = analyzer.analyze(multipart(PARAGRAPH, html), OFFLINE)
        checks = {c.name: c for c in analyzer.generate_checks(result)}

        assert checks["Image Alt Attributes"].status == CheckStatus.WARN
        assert checks["Suspicious URLs"].score < 0
        assert sum(c.score for c in checks.values()) == pytest.approx(
            analyzer.get_score(result), abs=0.01
        )

    def test_full_score_checks_add_up(self, analyzer):
        html = (
            f"<html><body><p>{PARAGRAPH}</p>"
            '<img src="https://example.com/hero.png" alt="Spring collection">'
            '<a href="https://example.com/unsubscribe">Unsubscribe</a></body></html>'
        )
        result = analyzer.analyze(multipart(PARAGRAPH, html), OFFLINE)
        total = sum(c.score for c in analyzer.generate_checks(result))
        assert total == pytest.approx(2.0, abs=0.01)


class TestLinkValidation:
    """Test HTTP link probing with a patched HEAD request."""

    def test_broken_link(self, analyzer):
        """Test a 404 marks the link broken but keeps it valid."""
        with patch(
            "deliverability_tool.analyzers.content_analyzer.safe_http_head",
            return_value=HTTPResult(success=True, status_code=404),
        ):
            result = analyzer.analyze(
                multipart("x", '<a href="https://example.com/gone">x</a>'), ContentConfig()
            )

        link = result.links[0]
        assert link.valid
        assert link.status == 404
        assert link.error == "Link returns 404 status"
        assert result.broken_links == [link]
        check = next(c for c in analyzer.generate_checks(result) if c.name == "Links")
        assert check.status == CheckStatus.FAIL

    def test_unreachable_link_is_unverified(self, analyzer):
        """Test a network failure leaves a valid link with a warning."""
        with patch(
            "deliverability_tool.analyzers.content_analyzer.safe_http_head",
            return_value=HTTPResult(success=False, error="Connection refused"),
        ):
            result = analyzer.analyze(
                multipart("x", '<a href="https://example.com/a">x</a>'), ContentConfig()
            )

        link = result.links[0]
        assert link.valid
        assert link.status == 0
        assert link.warning == "Could not verify link: Connection refused"
        assert result.unverified_links == [link]
        assert result.broken_links == []

    def test_non_http_links_not_requested(self, analyzer):
        """Test mailto links are never requested."""
        with patch("deliverability_tool.analyzers.content_analyzer.safe_http_head") as head:
            result = analyzer.analyze(
                multipart("x", '<a href="mailto:help@example.com">Mail us</a>'), ContentConfig()
            )
        head.assert_not_called()
        assert result.links[0].status == 0

    def test_score_with_broken_link(self, analyzer):
        """Test broken links lose the link points."""
        clean = ContentResults(html_valid=True, links=[LinkCheck(url="https://a", status=200)])
        broken = ContentResults(html_valid=True, links=[LinkCheck(url="https://a", status=500)])
        assert analyzer.get_score(broken) < analyzer.get_score(clean)
