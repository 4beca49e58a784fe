"""Report generation: runs the analyzers and folds their results into one Report.

This is the single entry point both the CLI and library users call.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .. import analyzers  # noqa: F401  # Triggers analyzer registration
from ..analyzers.protocol import Check, CheckCategory, OutputDescriptor
from .config_manager import ConfigManager
from .message import EmailMessage
from .registry import AnalyzerRegistry, registry
from .scoring import CATEGORY_MAX_SCORES, ScoreSummary, calculate_summary

logger = logging.getLogger(__name__)

# Analyzer ID -> Report attribute / serialized key
REPORT_FIELDS = {
    "authentication": "authentication",
    "dns": "dns_results",
    "rbl": "blacklists",
    "content": "content_analysis",
    "headers": "header_analysis",
    "spam": "spamassassin",
    "rspamd": "rspamd",
}


@dataclass
class Report:
    """
    Complete deliverability report for one message.

    Analyzer results are kept as returned by the analyzers; serialized
    holds their to_dict() output keyed by report field name.
    """

    summary: ScoreSummary
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    test_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    authentication: Any = None
    dns_results: Any = None
    blacklists: Any = None
    content_analysis: Any = None
    header_analysis: Any = None
    spamassassin: Any = None
    rspamd: Any = None

    checks: list[Check] = field(default_factory=list)
    raw_headers: str = ""
    errors: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    serialized: dict[str, Any] = field(default_factory=dict, repr=False)
    descriptors: dict[str, OutputDescriptor] = field(default_factory=dict, repr=False)

    @property
    def score(self) -> float:
        return self.summary.overall_score

    @property
    def grade(self) -> str:
        return self.summary.grade

    @property
    def rating(self) -> str:
        return self.summary.rating

    @property
    def recommendations(self) -> list[str]:
        return self.summary.recommendations

    def to_dict(self) -> dict[str, Any]:
        """Serialize report to JSON-compatible dictionary."""
        data: dict[str, Any] = {
            "id": self.id,
            "test_id": self.test_id,
            "created_at": self.created_at.isoformat(),
            "score": self.score,
            "grade": self.grade,
            "rating": self.rating,
            "summary": self.summary.to_dict(),
            "recommendations": self.recommendations,
        }
        for report_field in REPORT_FIELDS.values():
            data[report_field] = self.serialized.get(report_field)
        data["checks"] = [check.to_dict() for check in self.checks]
        data["raw_headers"] = self.raw_headers
        data["errors"] = self.errors
        data["skipped_analyzers"] = self.skipped
        return data


class ReportGenerator:
    """
    Runs analyzers over a message and builds the Report.

    Analyzers run in dependency waves: everything inside one wave is
    independent and runs on a thread pool when the global `parallel`
    option is on. Each analyzer only sees the results of the analyzers
    it declares in depends_on. An analyzer that raises is logged and
    recorded in Report.errors; its category scores 0.

    Example:
        >>> generator = ReportGenerator(config_manager)
        >>> report = generator.generate(EmailMessage.from_bytes(raw), skip={"rbl"})
        >>> report.grade
        'B'
    """

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        analyzer_registry: AnalyzerRegistry | None = None,
    ):
        self.config_manager = config_manager or ConfigManager()
        self.registry = analyzer_registry or registry

    def select_analyzers(
        self, skip: set[str] | None = None, only: set[str] | None = None
    ) -> tuple[list[str], set[str]]:
        """
        Work out which analyzers run.

        Args:
            skip: Analyzer IDs to leave out
            only: If given, run just these (skip is then ignored)

        Returns:
            Tuple of (execution order, skipped analyzer IDs)

        Raises:
            ValueError: On unknown analyzer IDs or circular dependencies
        """
        all_ids = self.registry.get_all_ids()

        if only:
            _, unknown = self.registry.validate_skip_list(sorted(only))
            if unknown:
                raise ValueError(f"Unknown analyzer(s): {', '.join(unknown)}")
            skip_set = set(all_ids) - set(only)
        else:
            skip_set = set(skip or ())
            _, unknown = self.registry.validate_skip_list(sorted(skip_set))
            if unknown:
                raise ValueError(f"Unknown analyzer(s): {', '.join(unknown)}")

        for analyzer_id in all_ids:
            if not self.config_manager.get_analyzer_config(analyzer_id).enabled:
                skip_set.add(analyzer_id)

        requested = [aid for aid in all_ids if aid not in skip_set]
        return self.registry.resolve_dependencies(requested, skip_set), skip_set

    def generate(
        self,
        message: EmailMessage,
        skip: set[str] | None = None,
        only: set[str] | None = None,
        test_id: str | None = None,
    ) -> Report:
        """
        Analyze one message.

        Args:
            message: Parsed email
            skip: Analyzer IDs to leave out
            only: Run just these analyzer IDs
            test_id: Caller's identifier, copied into the report

        Returns:
            Report; analyzer failures never propagate out of here
        """
        order, skipped = self.select_analyzers(skip, only)
        results, errors = self._run(message, order)
        return self._build_report(message, order, skipped, results, errors, test_id)

    # ========================================================================
    # Execution
    # ========================================================================

    def _run(
        self, message: EmailMessage, order: list[str]
    ) -> tuple[dict[str, tuple[Any, Any]], dict[str, str]]:
        results: dict[str, tuple[Any, Any]] = {}
        errors: dict[str, str] = {}
        parallel = self.config_manager.global_config.parallel

        for wave in self.registry.execution_waves(order):
            logger.info(f"Running analyzers: {', '.join(wave)}")
            if parallel and len(wave) > 1:
                with ThreadPoolExecutor(max_workers=len(wave)) as executor:
                    futures = {
                        analyzer_id: executor.submit(
                            self._run_analyzer, analyzer_id, message, results
                        )
                        for analyzer_id in wave
                    }
                    outcomes = {aid: self._collect(aid, future) for aid, future in futures.items()}
            else:
                outcomes = {}
                for analyzer_id in wave:
                    try:
                        outcomes[analyzer_id] = (self._run_analyzer(analyzer_id, message, results), None)
                    except Exception as e:
                        outcomes[analyzer_id] = (None, self._log_failure(analyzer_id, e))

            for analyzer_id in wave:
                outcome, error = outcomes[analyzer_id]
                if error is not None:
                    errors[analyzer_id] = error
                else:
                    results[analyzer_id] = outcome

        return results, errors

    def _collect(self, analyzer_id: str, future) -> tuple[Any, str | None]:
        try:
            return future.result(), None
        except Exception as e:
            return None, self._log_failure(analyzer_id, e)

    @staticmethod
    def _log_failure(analyzer_id: str, error: Exception) -> str:
        logger.error(f"Analyzer '{analyzer_id}' failed: {error}", exc_info=True)
        return f"{type(error).__name__}: {error}"

    def _run_analyzer(
        self, analyzer_id: str, message: EmailMessage, finished: dict[str, tuple[Any, Any]]
    ) -> tuple[Any, Any]:
        metadata = self.registry.get(analyzer_id)
        config = self.config_manager.get_analyzer_config(analyzer_id)
        context = {dep: finished[dep][1] for dep in metadata.depends_on if dep in finished}

        analyzer = metadata.plugin_class()
        result = analyzer.analyze(message, config, context=context)
        logger.debug(f"Analyzer '{analyzer_id}' finished")
        return analyzer, result

    # ========================================================================
    # Aggregation
    # ========================================================================

    @staticmethod
    def _merge_scores(entries: list[tuple[float, bool]]) -> float:
        """
        Combine the scores of analyzers sharing one category.

        Analyzers that found something to judge are averaged; when none
        did (e.g. no spam filter headers at all) the best score stands.
        """
        found = [score for score, has_result in entries if has_result]
        if found:
            return sum(found) / len(found)
        return max(score for score, _ in entries)

    def _build_report(
        self,
        message: EmailMessage,
        order: list[str],
        skipped: set[str],
        results: dict[str, tuple[Any, Any]],
        errors: dict[str, str],
        test_id: str | None,
    ) -> Report:
        checks: list[Check] = []
        # category -> [(score, analyzer produced a result)]
        category_scores: dict[CheckCategory, list[tuple[float, bool]]] = {}
        report_values: dict[str, Any] = {}
        serialized: dict[str, Any] = {}
        descriptors: dict[str, OutputDescriptor] = {}

        for analyzer_id in order:
            if analyzer_id not in results:
                continue
            analyzer, result = results[analyzer_id]
            metadata = self.registry.get(analyzer_id)
            try:
                analyzer_checks = analyzer.generate_checks(result)
                score = analyzer.get_score(result)
                data = analyzer.to_dict(result)
                descriptor = analyzer.describe_output(result)
            except Exception as e:
                errors[analyzer_id] = self._log_failure(analyzer_id, e)
                continue

            checks.extend(analyzer_checks)
            if metadata.check_category in CATEGORY_MAX_SCORES:
                category_scores.setdefault(metadata.check_category, []).append(
                    (score, result is not None)
                )
            descriptors[analyzer_id] = descriptor

            report_field = REPORT_FIELDS.get(analyzer_id)
            if report_field:
                report_values[report_field] = result
                serialized[report_field] = data

        scores = {
            category: self._merge_scores(entries) for category, entries in category_scores.items()
        }
        # A category shared by several analyzers is skipped only when none of them ran
        ran_categories = {self.registry.get(aid).check_category for aid in order}
        skipped_categories = {
            self.registry.get(aid).check_category
            for aid in skipped
            if self.registry.get(aid)
        } - ran_categories
        summary = calculate_summary(scores, skipped_categories)

        report = Report(
            summary=summary,
            test_id=test_id,
            checks=checks,
            raw_headers=message.raw_headers,
            errors=errors,
            skipped=sorted(skipped),
            serialized=serialized,
            descriptors=descriptors,
            **report_values,
        )
        logger.info(f"Report {report.id}: score {report.score} ({report.grade})")
        return report
