"""SpamAssassin analyzer - reads the verdict an upstream spam filter stamped on the message.

No scanning is done here: X-Spam-Status, X-Spam-Score, X-Spam-Flag,
X-Spam-Report and X-Spam-Checker-Version are parsed into a score that
feeds the 0-2 Spam category.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..constants import (
    DEFAULT_SPAM_REQUIRED_SCORE,
    MAX_SPAM_SCORE,
    MAX_SPAM_TESTS_DISPLAY,
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

_SCORE_RE = re.compile(r"score=(-?\d+\.?\d*)")
_REQUIRED_RE = re.compile(r"required=(-?\d+\.?\d*)")
_TESTS_RE = re.compile(r"tests=(\S+)")
_REPORT_LINE_RE = re.compile(r"^\s*(-?\d+\.?\d*)\s+(\S+)\s+(.*)$")


# ============================================================================
# Configuration
# ============================================================================


class SpamAssassinConfig(AnalyzerConfig):
    """SpamAssassin analyzer configuration."""

    pass


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class SpamTestDetail:
    name: str
    score: float
    description: str


@dataclass
class SpamAssassinResult:
    """
    Parsed SpamAssassin verdict.

    required_score is 0.0 when the header did not carry one; use
    effective_required for comparisons.
    """

    is_spam: bool = False
    score: float = 0.0
    required_score: float = 0.0
    tests: list[str] = field(default_factory=list)
    test_details: dict[str, SpamTestDetail] = field(default_factory=dict)
    version: str | None = None
    raw_report: str | None = None

    @property
    def effective_required(self) -> float:
        return self.required_score or DEFAULT_SPAM_REQUIRED_SCORE


# ============================================================================
# Parsing
# ============================================================================


def _to_float(value: str) -> float | None:
    try:
        return float(value.strip())
    except ValueError:
        return None


def parse_spam_status(header: str, result: SpamAssassinResult) -> None:
    """
    Parse X-Spam-Status into result.

    Format: "Yes, score=5.5 required=5.0 tests=TEST1,TEST2 autolearn=no"
    """
    result.is_spam = header.split(",", 1)[0].strip().lower() == "yes"

    match = _SCORE_RE.search(header)
    if match:
        result.score = float(match.group(1))

    match = _REQUIRED_RE.search(header)
    if match:
        result.required_score = float(match.group(1))

    match = _TESTS_RE.search(header)
    if match:
        result.tests = [test for test in re.split(r"[,\s]+", match.group(1)) if test]


def parse_spam_report(report: str, result: SpamAssassinResult) -> None:
    """
    Parse X-Spam-Report test lines ("* 1.5 TEST_NAME Description").

    Folded headers arrive joined on one line, so the report is split on "*".
    """
    for segment in report.split("*"):
        segment = segment.strip()
        if not segment:
            continue
        match = _REPORT_LINE_RE.match(segment)
        if not match:
            continue
        name = match.group(2)
        result.test_details[name] = SpamTestDetail(
            name=name,
            score=float(match.group(1)),
            description=match.group(3).strip(),
        )


def get_spam_score(result: SpamAssassinResult | None) -> float:
    """
    Map the spam score onto the 0-2 Spam category.

    Scoring:
    - score <= 0: 2.0
    - score < required: 1.5 to 2.0, linear in score/required
    - score < 2x required: 1.0
    - score < 3x required: 0.5
    - above that: 0.0
    """
    if result is None:
        return 0.0

    score = result.score
    required = result.effective_required

    if score <= 0:
        return MAX_SPAM_SCORE
    if score < required:
        return round(1.5 + 0.5 * (1.0 - score / required), 3)
    if score < required * 2:
        return 1.0
    if score < required * 3:
        return 0.5
    return 0.0


# ============================================================================
# Analyzer Implementation
# ============================================================================


@registry.register
class SpamAssassinAnalyzer:
    """Extracts the SpamAssassin verdict from message headers."""

    analyzer_id = "spam"
    name = "SpamAssassin"
    description = "Spam filter verdict from X-Spam-* headers"
    category = "spam"
    icon = "shield"
    check_category = CheckCategory.SPAM
    config_class = SpamAssassinConfig
    depends_on: list[str] = []

    def analyze(
        self,
        message: EmailMessage,
        config: SpamAssassinConfig,
        context: dict[str, Any] | None = None,
    ) -> SpamAssassinResult | None:
        headers = message.spam_headers
        if not headers:
            logger.debug("No X-Spam-* headers found")
            return None

        result = SpamAssassinResult()

        status = headers.get("X-Spam-Status")
        if status:
            parse_spam_status(status, result)

        score_header = headers.get("X-Spam-Score")
        if score_header and result.score == 0:
            score = _to_float(score_header)
            if score is not None:
                result.score = score

        flag = headers.get("X-Spam-Flag")
        if flag:
            result.is_spam = flag.strip().upper() == "YES"

        report = headers.get("X-Spam-Report")
        if report:
            result.raw_report = report.replace(" *  ", "\n *  ")
            parse_spam_report(report, result)

        version = headers.get("X-Spam-Checker-Version")
        if version:
            result.version = version.strip()

        logger.debug(
            f"SpamAssassin score {result.score} (required {result.effective_required}), "
            f"{len(result.tests)} tests"
        )
        return result

    def get_score(self, result: SpamAssassinResult | None) -> float:
        return get_spam_score(result)

    def generate_checks(self, result: SpamAssassinResult | None) -> list[Check]:
        if result is None:
            return [
                Check(
                    CheckCategory.SPAM,
                    "SpamAssassin Analysis",
                    CheckStatus.WARN,
                    0.0,
                    "No SpamAssassin headers found",
                    Severity.MEDIUM,
                    "Ensure your MTA is configured to run SpamAssassin checks",
                )
            ]

        checks = [self._main_check(result)]
        for test in result.tests:
            detail = result.test_details.get(test)
            if detail and abs(detail.score) > SIGNIFICANT_SPAM_TEST_SCORE:
                checks.append(self._test_check(detail))
        return checks

    def _main_check(self, result: SpamAssassinResult) -> Check:
        score = result.score
        required = result.effective_required
        points = self.get_score(result)

        details = None
        if result.tests:
            shown = result.tests[:MAX_SPAM_TESTS_DISPLAY]
            details = f"Triggered {len(result.tests)} tests: {', '.join(shown)}"
            if len(result.tests) > MAX_SPAM_TESTS_DISPLAY:
                details += f" and {len(result.tests) - MAX_SPAM_TESTS_DISPLAY} more"

        threshold = f"{score:.1f} (threshold: {required:.1f})"
        if score <= 0:
            status, severity = CheckStatus.PASS, Severity.INFO
            message = f"Excellent spam score: {threshold}"
            advice = "Your email has a negative spam score, indicating good email practices"
        elif score < required:
            status, severity = CheckStatus.PASS, Severity.INFO
            message = f"Good spam score: {threshold}"
            advice = "Your email passes spam filters"
        elif score < required * 1.5:
            status, severity = CheckStatus.WARN, Severity.MEDIUM
            message = f"Borderline spam score: {threshold}"
            advice = (
                "Your email is close to being marked as spam. "
                "Review the triggered spam tests below"
            )
        elif score < required * 2:
            status, severity = CheckStatus.WARN, Severity.HIGH
            message = f"High spam score: {threshold}"
            advice = (
                "Your email is likely to be marked as spam. "
                "Address the issues identified in spam tests"
            )
        else:
            status, severity = CheckStatus.FAIL, Severity.CRITICAL
            message = f"Very high spam score: {threshold}"
            advice = (
                "Your email will almost certainly be marked as spam. "
                "Urgently address the spam test failures"
            )

        return Check(
            CheckCategory.SPAM, "SpamAssassin Score", status, points, message, severity, advice, details
        )

    def _test_check(self, detail: SpamTestDetail) -> Check:
        name = f"Spam Test: {detail.name}"
        if detail.score > 0:
            return Check(
                CheckCategory.SPAM,
                name,
                CheckStatus.FAIL if detail.score > 2.0 else CheckStatus.WARN,
                0.0,
                f"Test failed with score +{detail.score:.1f}",
                Severity.HIGH if detail.score > 2.0 else Severity.MEDIUM,
                f"{detail.description}. This test adds {detail.score:.1f} to your spam score",
                detail.description,
            )
        return Check(
            CheckCategory.SPAM,
            name,
            CheckStatus.PASS,
            0.1,
            f"Test passed with score {detail.score:.1f}",
            Severity.INFO,
            f"{detail.description}. This test reduces your spam score by {-detail.score:.1f}",
            detail.description,
        )

    def describe_output(self, result: SpamAssassinResult | None) -> OutputDescriptor:
        descriptor = OutputDescriptor(title=self.name, category=self.category)

        descriptor.quiet_summary = lambda r: (
            f"SpamAssassin: {r.score:.1f}/{r.effective_required:.1f}" if r else "SpamAssassin: n/a"
        )

        if result is not None:
            descriptor.add_row(
                label="Score",
                value=f"{result.score:.1f} / {result.effective_required:.1f}",
                style_class="error" if result.is_spam else "success",
                icon="cross" if result.is_spam else "check",
                verbosity=VerbosityLevel.NORMAL,
            )
            descriptor.add_row(
                label="Spam",
                value="yes" if result.is_spam else "no",
                style_class="error" if result.is_spam else "success",
                verbosity=VerbosityLevel.VERBOSE,
            )
            if result.version:
                descriptor.add_row(
                    label="Checker",
                    value=result.version,
                    style_class="muted",
                    verbosity=VerbosityLevel.DEBUG,
                )
            if result.tests:
                descriptor.add_row(
                    label="Tests",
                    value=result.tests,
                    section_type="list",
                    style_class="info",
                    verbosity=VerbosityLevel.VERBOSE,
                )

        descriptor.add_checks(self.generate_checks(result))
        return descriptor

    def to_dict(self, result: SpamAssassinResult | None) -> dict:
        if result is None:
            return {}
        return {
            "is_spam": result.is_spam,
            "score": result.score,
            "required_score": result.required_score,
            "tests": result.tests,
            "test_details": {
                name: {
                    "name": detail.name,
                    "score": detail.score,
                    "description": detail.description,
                }
                for name, detail in result.test_details.items()
            },
            "version": result.version,
            "report": result.raw_report,
        }
