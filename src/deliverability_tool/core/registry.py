"""Analyzer registry with auto-discovery and dependency resolution.

This module provides the central registry for all analyzer plugins.
Analyzers register themselves using the @registry.register decorator.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..analyzers.protocol import AnalyzerConfig, AnalyzerPlugin, CheckCategory

logger = logging.getLogger(__name__)


@dataclass
class AnalyzerMetadata:
    """Metadata about a registered analyzer."""

    analyzer_id: str
    name: str
    description: str
    category: str
    icon: str
    check_category: "CheckCategory"
    config_class: "type[AnalyzerConfig]"
    plugin_class: "type[AnalyzerPlugin]"
    depends_on: list[str]


class AnalyzerRegistry:
    """
    Central registry for all analyzer plugins.

    Provides:
    - Auto-discovery via @registry.register decorator
    - Dependency resolution (topological sort)
    - Grouping into waves that can run concurrently

    Example:
        @registry.register
        class RBLChecker:
            analyzer_id = "rbl"
            name = "RBL Blacklist Check"
            ...

        # Later:
        metadata = registry.get("rbl")
        instance = metadata.plugin_class()
    """

    def __init__(self):
        self._plugins: dict[str, AnalyzerMetadata] = {}

    def register(self, plugin_class: "type[AnalyzerPlugin]") -> "type[AnalyzerPlugin]":
        """
        Register an analyzer plugin.

        Can be used as decorator or called directly.

        Args:
            plugin_class: Analyzer class to register

        Returns:
            Plugin class (for decorator usage)

        Raises:
            ValueError: If plugin is missing required attributes
        """
        required_attrs = [
            "analyzer_id",
            "name",
            "description",
            "category",
            "icon",
            "check_category",
            "config_class",
        ]
        for attr in required_attrs:
            if not hasattr(plugin_class, attr):
                raise ValueError(
                    f"Analyzer {plugin_class.__name__} missing required attribute: {attr}"
                )

        analyzer_id = plugin_class.analyzer_id

        if analyzer_id in self._plugins:
            logger.warning(f"Analyzer '{analyzer_id}' already registered, overwriting")

        metadata = AnalyzerMetadata(
            analyzer_id=analyzer_id,
            name=plugin_class.name,
            description=plugin_class.description,
            category=plugin_class.category,
            icon=plugin_class.icon,
            check_category=plugin_class.check_category,
            config_class=plugin_class.config_class,
            plugin_class=plugin_class,
            depends_on=list(getattr(plugin_class, "depends_on", [])),
        )

        self._plugins[analyzer_id] = metadata
        logger.debug(f"Registered analyzer: {analyzer_id}")

        return plugin_class

    def get(self, analyzer_id: str) -> AnalyzerMetadata | None:
        """
        Get analyzer metadata by ID.

        Args:
            analyzer_id: Analyzer ID

        Returns:
            Metadata if found, None otherwise
        """
        return self._plugins.get(analyzer_id)

    def get_all(self) -> dict[str, AnalyzerMetadata]:
        """Get all registered analyzers as analyzer_id -> metadata."""
        return self._plugins.copy()

    def get_all_ids(self) -> list[str]:
        return list(self._plugins.keys())

    def resolve_dependencies(self, requested: list[str], skip: set[str] | None = None) -> list[str]:
        """
        Resolve analyzer dependencies and return execution order.

        Uses topological sort to ensure dependencies run before dependents.
        Skipped analyzers are left out even when something depends on them;
        their dependents then run without that context entry.

        Args:
            requested: List of requested analyzer IDs
            skip: Set of analyzer IDs to skip

        Returns:
            Ordered list of analyzer IDs (dependencies first)

        Raises:
            ValueError: If unknown analyzer or circular dependency detected

        Example:
            # DNS depends on authentication
            registry.resolve_dependencies(["dns"])
            # Returns: ["authentication", "dns"]
        """
        skip = skip or set()
        resolved: list[str] = []
        visited: set[str] = set()
        visiting: set[str] = set()  # For cycle detection

        def visit(analyzer_id: str):
            """Visit node in dependency graph."""
            if analyzer_id in skip:
                return

            if analyzer_id in visiting:
                raise ValueError(f"Circular dependency detected: {analyzer_id} is part of a cycle")

            if analyzer_id in visited:
                return

            metadata = self._plugins.get(analyzer_id)
            if not metadata:
                raise ValueError(f"Unknown analyzer: {analyzer_id}")

            visiting.add(analyzer_id)

            for dep in metadata.depends_on:
                visit(dep)

            visiting.remove(analyzer_id)
            visited.add(analyzer_id)
            resolved.append(analyzer_id)

        for analyzer_id in requested:
            visit(analyzer_id)

        return resolved

    def execution_waves(self, ordered: list[str]) -> list[list[str]]:
        """
        Split a resolved order into waves of mutually independent analyzers.

        Every analyzer lands in the first wave after all of its (present)
        dependencies; order inside a wave follows the resolved order.

        Example:
            registry.execution_waves(["authentication", "dns", "rbl"])
            # Returns: [["authentication", "rbl"], ["dns"]]
        """
        level: dict[str, int] = {}
        for analyzer_id in ordered:
            deps = [d for d in self._plugins[analyzer_id].depends_on if d in level]
            level[analyzer_id] = max((level[d] + 1 for d in deps), default=0)

        waves: list[list[str]] = []
        for analyzer_id in ordered:
            while len(waves) <= level[analyzer_id]:
                waves.append([])
            waves[level[analyzer_id]].append(analyzer_id)
        return waves

    def validate_skip_list(self, skip_list: list[str]) -> tuple[bool, list[str]]:
        """
        Validate that all skip entries are known analyzers.

        Args:
            skip_list: List of analyzer IDs to validate

        Returns:
            Tuple of (all_valid, unknown_analyzers)
        """
        unknown = [aid for aid in skip_list if aid not in self._plugins]
        return len(unknown) == 0, unknown


# Global registry instance
registry = AnalyzerRegistry()
