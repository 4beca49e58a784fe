"""Protocol definitions for deliverability analyzers.

This module defines the shared vocabulary of the analyzer plugin system:
the plugin protocol every analyzer implements, the renderer-agnostic
output description, and the Check record every analyzer emits into the
final report.
"""

from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from ..core.message import EmailMessage


class VerbosityLevel(Enum):
    """Output verbosity levels."""

    QUIET = "quiet"
    NORMAL = "normal"
    VERBOSE = "verbose"
    DEBUG = "debug"

    def _rank(self) -> int:
        return list(VerbosityLevel).index(self)

    def __ge__(self, other):
        """Allow >= comparison for verbosity filtering."""
        if not isinstance(other, VerbosityLevel):
            return NotImplemented
        return self._rank() >= other._rank()

    def __gt__(self, other):
        """Allow > comparison for verbosity filtering."""
        if not isinstance(other, VerbosityLevel):
            return NotImplemented
        return self._rank() > other._rank()


# ============================================================================
# Checks
# ============================================================================


class CheckCategory(Enum):
    """Report category a check belongs to."""

    DNS = "dns"
    AUTHENTICATION = "authentication"
    BLACKLIST = "blacklist"
    CONTENT = "content"
    SPAM = "spam"
    HEADERS = "headers"


class CheckStatus(Enum):
    """Outcome of a single check."""

    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    INFO = "info"


class Severity(Enum):
    """How much a failing check matters."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Check:
    """
    One human-readable finding surfaced in the report.

    Checks are produced by analyzers and never mutated afterwards; the
    report simply concatenates them.
    """

    category: CheckCategory
    name: str
    status: CheckStatus
    score: float
    message: str
    severity: Severity | None = None
    advice: str | None = None
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize check to JSON-compatible dictionary."""
        return {
            "category": self.category.value,
            "name": self.name,
            "status": self.status.value,
            "score": self.score,
            "message": self.message,
            "severity": self.severity.value if self.severity else None,
            "advice": self.advice,
            "details": self.details,
        }


# ============================================================================
# Output Description
# ============================================================================


@dataclass
class OutputRow:
    """
    Renderer-agnostic output row.

    Describes WHAT to display, not HOW. Uses semantic styling that
    renderers interpret based on their theme.

    Example:
        OutputRow(
            label="SPF",
            value="pass",
            style_class="success",
            icon="check",
        )
    """

    label: str | None = None
    value: Any = None

    # Semantic presentation hints (NOT specific colors/styles)
    style_class: str = "neutral"  # success, error, warning, info, highlight, muted, neutral
    severity: str = "info"  # critical, error, warning, info, debug

    section_type: str = "key_value"  # key_value, list, text, heading
    section_name: str | None = None

    verbosity: VerbosityLevel = VerbosityLevel.NORMAL

    show_if_empty: bool = True
    max_items: int | None = None  # For lists: max items to show

    icon: str | None = None  # check, cross, warning, info, envelope, shield


@dataclass
class OutputDescriptor:
    """
    Describes how to render analyzer results at different verbosity levels.

    Analyzers describe their output structure, renderers interpret it.
    """

    rows: list[OutputRow] = field(default_factory=list)

    title: str = ""
    category: str = "general"

    # Summary for quiet mode
    quiet_summary: Callable[[Any], str] | None = None

    def add_row(self, label: str | None = None, value: Any = None, **kwargs) -> "OutputDescriptor":
        """
        Builder pattern for adding rows.

        Args:
            label: Row label
            value: Row value
            **kwargs: Additional OutputRow parameters

        Returns:
            Self for chaining
        """
        self.rows.append(OutputRow(label=label, value=value, **kwargs))
        return self

    def add_checks(self, checks: list[Check]) -> "OutputDescriptor":
        """Append one text row per check, styled by its status."""
        style = {
            CheckStatus.PASS: ("success", "info", "check"),
            CheckStatus.WARN: ("warning", "warning", "warning"),
            CheckStatus.FAIL: ("error", "error", "cross"),
            CheckStatus.INFO: ("info", "info", "info"),
        }
        for check in checks:
            style_class, severity, icon = style[check.status]
            self.add_row(
                label=check.name,
                value=check.message,
                style_class=style_class,
                severity=severity,
                icon=icon,
                section_name="Checks",
                verbosity=(
                    VerbosityLevel.VERBOSE
                    if check.status == CheckStatus.PASS
                    else VerbosityLevel.NORMAL
                ),
            )
            if check.details:
                self.add_row(
                    label="  Details",
                    value=check.details,
                    style_class="muted",
                    section_name="Checks",
                    verbosity=VerbosityLevel.VERBOSE,
                )
            if check.advice and check.status in (CheckStatus.FAIL, CheckStatus.WARN):
                self.add_row(
                    label="  Advice",
                    value=check.advice,
                    style_class="muted",
                    section_name="Checks",
                    verbosity=VerbosityLevel.VERBOSE,
                )
        return self

    def filter_by_verbosity(self, verbosity: VerbosityLevel) -> list[OutputRow]:
        """
        Return only rows that should be shown at this verbosity level.

        Args:
            verbosity: Current verbosity level

        Returns:
            Filtered list of rows
        """
        return [row for row in self.rows if verbosity >= row.verbosity]


# ============================================================================
# Plugin Protocol
# ============================================================================


class AnalyzerConfig(BaseModel):
    """
    Base configuration for all analyzers.

    Each analyzer extends this with its own fields using Pydantic.

    Example:
        class RBLConfig(AnalyzerConfig):
            rbl_servers: list[str] = Field(default_factory=list)
            check_all_ips: bool = Field(default=True)
    """

    model_config = ConfigDict(extra="allow")

    enabled: bool = True
    timeout: float = 10.0


TConfig = TypeVar("TConfig", bound=AnalyzerConfig)
TResult = TypeVar("TResult")


@runtime_checkable
class AnalyzerPlugin(Protocol[TConfig, TResult]):
    """
    Protocol that all analyzer plugins must implement.

    Example:
        @registry.register
        class RBLChecker:
            analyzer_id = "rbl"
            name = "RBL Blacklist Check"
            check_category = CheckCategory.BLACKLIST
            config_class = RBLConfig
            depends_on = []

            def analyze(self, message, config, context=None) -> RBLResults: ...
            def generate_checks(self, result) -> list[Check]: ...
            def get_score(self, result) -> float: ...
            def describe_output(self, result) -> OutputDescriptor: ...
            def to_dict(self, result) -> dict: ...
    """

    analyzer_id: str  # Unique ID: "dns", "rbl", "content"
    name: str  # Display name: "DNS Records"
    description: str
    category: str  # Display grouping: "authentication", "reputation", "content"
    icon: str  # Semantic icon name
    check_category: CheckCategory
    config_class: type[TConfig]
    depends_on: list[str]  # Analyzer IDs whose results arrive in `context`

    @abstractmethod
    def analyze(
        self,
        message: "EmailMessage",
        config: TConfig,
        context: dict[str, Any] | None = None,
    ) -> TResult:
        """
        Perform analysis of one message.

        Args:
            message: Parsed email message
            config: This analyzer's configuration
            context: Results of the analyzers listed in depends_on

        Returns:
            Result object
        """
        ...

    @abstractmethod
    def generate_checks(self, result: TResult) -> list[Check]:
        """Turn a result into report checks."""
        ...

    @abstractmethod
    def get_score(self, result: TResult) -> float:
        """Category score contribution of a result."""
        ...

    @abstractmethod
    def describe_output(self, result: TResult) -> OutputDescriptor:
        """Describe how to render results (semantic, theme-agnostic)."""
        ...

    @abstractmethod
    def to_dict(self, result: TResult) -> dict[str, Any]:
        """Serialize result to JSON-compatible dictionary."""
        ...
