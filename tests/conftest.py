"""Shared fixtures: sample messages and DNS fakes."""

from unittest.mock import MagicMock

import dns.resolver
import pytest

from deliverability_tool.core.message import EmailMessage

SIMPLE_MESSAGE = b"""\
Return-Path: <bounce@mail.example.com>
Received: from mail.example.com (mail.example.com [203.0.113.5])
 by mx.receiver.org (Postfix) with ESMTPS id 4ABC123
 for <user@receiver.org>; Mon, 13 Jan 2025 10:00:00 +0000 (UTC)
Authentication-Results: mx.receiver.org; spf=pass smtp.mailfrom=bounce@mail.example.com;
 dkim=pass header.d=example.com header.s=sel1; dmarc=pass header.from=example.com
DKIM-Signature: v=1; a=rsa-sha256; d=example.com; s=sel1; h=from:to; bh=abc; b=def
From: Example News <news@example.com>
To: user@receiver.org
Reply-To: support@example.com
Subject: Monthly update
Date: Mon, 13 Jan 2025 10:00:00 +0000
Message-ID: <abc123@example.com>
List-Unsubscribe: <https://example.com/unsub?id=1>, <mailto:unsub@example.com>
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="BOUNDARY"

--BOUNDARY
Content-Type: text/plain; charset=utf-8

Hello reader, here is the monthly update. Unsubscribe at https://example.com/unsub
--BOUNDARY
Content-Type: text/html; charset=utf-8

<html><body><p>Hello reader, here is the monthly update.</p>
<a href="https://example.com/article">Read more</a>
<img src="https://example.com/logo.png" alt="Logo">
<a href="https://example.com/unsub?id=1">Unsubscribe</a>
</body></html>
--BOUNDARY--
"""


@pytest.fixture
def simple_message() -> EmailMessage:
    return EmailMessage.from_bytes(SIMPLE_MESSAGE)


def make_message(headers: list[tuple[str, str]], body: str = "Hello") -> EmailMessage:
    """Build a single-part text message from header pairs."""
    lines = [f"{name}: {value}" for name, value in headers]
    raw = "\r\n".join(lines) + "\r\n\r\n" + body + "\r\n"
    return EmailMessage.from_bytes(raw.encode("utf-8"))


class FakeTXT:
    """Stand-in for a dnspython TXT rdata."""

    def __init__(self, *strings: str):
        self.strings = [s.encode() for s in strings]


class FakeMX:
    """Stand-in for a dnspython MX rdata."""

    def __init__(self, host: str, preference: int):
        self.exchange = host + "."
        self.preference = preference


class FakePTR:
    """Stand-in for a dnspython PTR rdata."""

    def __init__(self, host: str):
        self.target = host + "."


class FakeA:
    """Stand-in for a dnspython A or AAAA rdata."""

    def __init__(self, address: str):
        self.address = address


def make_resolver(answers: dict[tuple[str, str], object]) -> MagicMock:
    """
    Mock resolver answering from a {(name, rdtype): answer} table.

    An answer that is an exception instance is raised; a missing entry
    raises NXDOMAIN.
    """
    resolver = MagicMock()

    def resolve(name, rdtype="A", *args, **kwargs):
        answer = answers.get((str(name).rstrip("."), rdtype))
        if answer is None:
            raise dns.resolver.NXDOMAIN()
        if isinstance(answer, Exception):
            raise answer
        return answer

    resolver.resolve.side_effect = resolve
    return resolver
