"""rspamd analyzer - reads the verdict rspamd stamped on the message.

Like the SpamAssassin analyzer this only parses headers: X-Spamd-Result
carries the score, threshold and triggered symbols, X-Rspamd-Score
overrides the score and X-Rspamd-Action/X-Rspamd-Server are recorded.
The result shares the 0-2 Spam category with SpamAssassin.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..constants import (
    DEFAULT_RSPAMD_THRESHOLD,
    MAX_SPAM_SCORE,
    MAX_SPAM_TESTS_DISPLAY,
    RSPAMD_REJECT_THRESHOLD,
    SIGNIFICANT_SPAM_TEST_SCORE,
)
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

_SCORE_THRESHOLD_RE = re.compile(r"\[\s*(-?\d+\.?\d*)\s*/\s*(-?\d+\.?\d*)\s*\]")
_SYMBOL_RE = re.compile(r"(\w+)\((-?\d+\.?\d*)\)(?:\[([^\]]*)\])?")


# ============================================================================
# Configuration
# ============================================================================


class RspamdConfig(AnalyzerConfig):
    """rspamd analyzer configuration."""

    pass


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class RspamdSymbol:
    name: str
    score: float
    params: str = ""


@dataclass
class RspamdResult:
    """
    Parsed rspamd verdict.

    threshold is the second number of the "[score / threshold]" pair,
    falling back to the add-header score when the header has none.
    """

    is_spam: bool = False
    score: float = 0.0
    threshold: float = DEFAULT_RSPAMD_THRESHOLD
    action: str | None = None
    server: str | None = None
    symbols: dict[str, RspamdSymbol] = field(default_factory=dict)
    raw_result: str | None = None


# ============================================================================
# Parsing
# ============================================================================


def parse_spamd_result(header: str, result: RspamdResult) -> None:
    """
    Parse X-Spamd-Result into result.

    Format: "default: False [1.20 / 15.00]; SYMBOL(0.10)[params]; ..."
    """
    segments = header.split(";")
    first = segments[0]

    match = _SCORE_THRESHOLD_RE.search(first)
    if match:
        result.score = float(match.group(1))
        threshold = float(match.group(2))
        result.threshold = threshold if threshold > 0 else DEFAULT_RSPAMD_THRESHOLD

    result.is_spam = ": true" in first.lower()

    for segment in segments[1:]:
        match = _SYMBOL_RE.search(segment)
        if not match:
            continue
        name = match.group(1)
        result.symbols[name] = RspamdSymbol(
            name=name,
            score=float(match.group(2)),
            params=(match.group(3) or "").strip(),
        )


def get_rspamd_score(result: RspamdResult | None) -> float:
    """
    Map the rspamd score onto the 0-2 Spam category.

    Linear from 2.0 at score 0 down to 0.0 at twice the threshold;
    negative scores keep the full 2.0.
    """
    if result is None:
        return 0.0
    ratio = 1.0 - result.score / (2.0 * result.threshold)
    return round(MAX_SPAM_SCORE * min(max(ratio, 0.0), 1.0), 3)


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class RspamdAnalyzer:
    """Extracts the rspamd verdict from message headers."""

    analyzer_id = "rspamd"
    name = "rspamd"
    description = "Spam filter verdict from X-Spamd-Result and X-Rspamd-* headers"
    category = "spam"
    icon = "shield"
    check_category = CheckCategory.SPAM
    config_class = RspamdConfig
    depends_on: list[str] = []

    def analyze(
        self,
        message: EmailMessage,
        config: RspamdConfig,
        context: dict[str, Any] | None = None,
    ) -> RspamdResult | None:
        headers = message.rspamd_headers
        if not headers:
            logger.debug("No rspamd headers found")
            return None

        result = RspamdResult()

        spamd_result = headers.get("X-Spamd-Result")
        if spamd_result:
            result.raw_result = spamd_result
            parse_spamd_result(spamd_result, result)

        score_header = headers.get("X-Rspamd-Score")
        if score_header:
            try:
                result.score = float(score_header.strip())
            except ValueError:
                logger.debug(f"Ignoring malformed X-Rspamd-Score: {score_header}")

        action = headers.get("X-Rspamd-Action")
        if action:
            result.action = action.strip()

        server = headers.get("X-Rspamd-Server")
        if server:
            result.server = server.strip()

        if result.score >= result.threshold:
            result.is_spam = True

        logger.debug(
            f"rspamd score {result.score} (threshold {result.threshold}), "
            f"{len(result.symbols)} symbols"
        )
        return result

    def get_score(self, result: RspamdResult | None) -> float:
        return get_rspamd_score(result)

    def generate_checks(self, result: RspamdResult | None) -> list[Check]:
        if result is None:
            return [
                Check(
                    CheckCategory.SPAM,
                    "rspamd Analysis",
                    CheckStatus.INFO,
                    0.0,
                    "No rspamd headers found",
                    Severity.LOW,
                    "rspamd is optional; SpamAssassin headers are used when present",
                )
            ]

        checks = [self._main_check(result)]
        for symbol in result.symbols.values():
            if abs(symbol.score) > SIGNIFICANT_SPAM_TEST_SCORE:
                checks.append(self._symbol_check(symbol))
        return checks

    def _main_check(self, result: RspamdResult) -> Check:
        score = result.score
        threshold = result.threshold
        points = self.get_score(result)

        details = None
        if result.symbols:
            names = list(result.symbols)
            details = f"Triggered {len(names)} symbols: {', '.join(names[:MAX_SPAM_TESTS_DISPLAY])}"
            if len(names) > MAX_SPAM_TESTS_DISPLAY:
                details += f" and {len(names) - MAX_SPAM_TESTS_DISPLAY} more"

        summary = f"{score:.1f} (threshold: {threshold:.1f})"
        if score >= RSPAMD_REJECT_THRESHOLD:
            status, severity = CheckStatus.FAIL, Severity.CRITICAL
            message = f"rspamd would reject this message: {summary}"
            advice = "Your email will be rejected by rspamd. Urgently address the symbols below"
        elif result.is_spam:
            status, severity = CheckStatus.FAIL, Severity.HIGH
            message = f"rspamd marks this message as spam: {summary}"
            advice = "Your email is likely to land in the spam folder. Review the symbols below"
        elif score >= threshold / 2:
            status, severity = CheckStatus.WARN, Severity.MEDIUM
            message = f"Borderline rspamd score: {summary}"
            advice = "Your email is close to the rspamd spam threshold"
        else:
            status, severity = CheckStatus.PASS, Severity.INFO
            message = f"Good rspamd score: {summary}"
            advice = "Your email passes rspamd"

        return Check(
            CheckCategory.SPAM, "rspamd Score", status, points, message, severity, advice, details
        )

    def _symbol_check(self, symbol: RspamdSymbol) -> Check:
        name = f"rspamd Symbol: {symbol.name}"
        if symbol.score > 0:
            return Check(
                CheckCategory.SPAM,
                name,
                CheckStatus.FAIL if symbol.score > 2.0 else CheckStatus.WARN,
                0.0,
                f"Symbol adds +{symbol.score:.1f}",
                Severity.HIGH if symbol.score > 2.0 else Severity.MEDIUM,
                f"This symbol adds {symbol.score:.1f} to your rspamd score",
                symbol.params or None,
            )
        return Check(
            CheckCategory.SPAM,
            name,
            CheckStatus.PASS,
            0.0,
            f"Symbol reduces the score by {-symbol.score:.1f}",
            Severity.INFO,
            None,
            symbol.params or None,
        )

    def describe_output(self, result: RspamdResult | None) -> OutputDescriptor:
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"rspamd: {r.score:.1f}/{r.threshold:.1f}" if r else "rspamd: n/a"
        )

        if result is not None:
            descriptor.add_row(
                label="Score",
                value=f"{result.score:.1f} / {result.threshold:.1f}",
                style_class="error" if result.is_spam else "success",
                icon="cross" if result.is_spam else "check",
                verbosity=VerbosityLevel.NORMAL,
            )
            if result.action:
                descriptor.add_row(
                    label="Action",
                    value=result.action,
                    style_class="info",
                    verbosity=VerbosityLevel.VERBOSE,
                )
            if result.server:
                descriptor.add_row(
                    label="Server",
                    value=result.server,
                    style_class="muted",
                    verbosity=VerbosityLevel.DEBUG,
                )
            if result.symbols:
                descriptor.add_row(
                    label="Symbols",
                    value=[f"{s.name} ({s.score:+.2f})" for s in result.symbols.values()],
                    section_type="list",
                    style_class="info",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        descriptor.add_checks(self.generate_checks(result))
        return descriptor

    def to_dict(self, result: RspamdResult | None) -> dict:
        if result is None:
            return {}
        return {
            "is_spam": result.is_spam,
            "score": result.score,
            "threshold": result.threshold,
            "action": result.action,
            "server": result.server,
            "symbols": {
                name: {"name": symbol.name, "score": symbol.score, "params": symbol.params}
                for name, symbol in result.symbols.items()
            },
            "raw_result": result.raw_result,
        }
