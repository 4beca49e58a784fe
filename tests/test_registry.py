"""Test registry's dependency resolution and execution waves.

This module tests:
- Circular dependency detection
- Topological sort correctness
- Skip propagation
- Grouping into concurrent waves
"""

import pytest

from deliverability_tool import analyzers  # noqa: F401
from deliverability_tool.analyzers.protocol import AnalyzerConfig, CheckCategory
from deliverability_tool.core.registry import AnalyzerRegistry, registry

# ============================================================================
# Mock Analyzer Classes for Testing
# ============================================================================


def make_analyzer(analyzer_id: str, depends_on: list[str] | None = None) -> type:
    """Build a minimal analyzer class with the given dependencies."""
    return type(
        f"Mock_{analyzer_id}",
        (),
        {
            "analyzer_id": analyzer_id,
            "name": analyzer_id.title(),
            "description": "Mock analyzer",
            "category": "test",
            "icon": "info",
            "check_category": CheckCategory.CONTENT,
            "config_class": AnalyzerConfig,
            "depends_on": depends_on or [],
        },
    )


@pytest.fixture
def chain_registry():
    """Registry with c -> b -> a and an independent d."""
    reg = AnalyzerRegistry()
    reg.register(make_analyzer("a"))
    reg.register(make_analyzer("b", ["a"]))
    reg.register(make_analyzer("c", ["b"]))
    reg.register(make_analyzer("d"))
    return reg


# ============================================================================
# Test Cases
# ============================================================================


class TestRegistration:
    """Test registering analyzers."""

    def test_missing_attribute_rejected(self):
        """Test a class without check_category cannot register."""

        class Incomplete:
            analyzer_id = "x"
            name = "X"
            description = "X"
            category = "test"
            icon = "info"
            config_class = AnalyzerConfig

        with pytest.raises(ValueError, match="check_category"):
            AnalyzerRegistry().register(Incomplete)

    def test_lookup(self, chain_registry):
        """Test unknown ids return None and get_all hands out a copy."""
        assert chain_registry.get("does-not-exist") is None
        plugins = chain_registry.get_all()
        plugins.pop("d")
        assert chain_registry.get("d") is not None
        assert sorted(chain_registry.get_all_ids()) == ["a", "b", "c", "d"]

    def test_builtin_analyzers_registered(self):
        """Test the seven built-in analyzers are discovered."""
        assert set(registry.get_all_ids()) == {
            "authentication",
            "dns",
            "rbl",
            "content",
            "headers",
            "spam",
            "rspamd",
        }
        assert registry.get("dns").depends_on == ["authentication"]
        assert registry.get("spam").check_category == CheckCategory.SPAM


class TestDependencyResolution:
    """Test topological ordering."""

    def test_dependencies_first(self, chain_registry):
        """Test dependencies are pulled in and ordered first."""
        assert chain_registry.resolve_dependencies(["c"]) == ["a", "b", "c"]
        assert chain_registry.resolve_dependencies(["b", "d"]) == ["a", "b", "d"]

    def test_no_duplicates(self, chain_registry):
        """Test a shared dependency appears once."""
        assert chain_registry.resolve_dependencies(["c", "b", "a"]) == ["a", "b", "c"]

    def test_skip_removes_dependency(self, chain_registry):
        """Test a skipped dependency is left out without failing."""
        assert chain_registry.resolve_dependencies(["c"], skip={"b"}) == ["c"]

    def test_unknown_analyzer(self, chain_registry):
        """Test an unknown ID raises."""
        with pytest.raises(ValueError, match="Unknown analyzer: nope"):
            chain_registry.resolve_dependencies(["nope"])

    def test_circular_dependency(self):
        """Test a cycle x -> y -> z -> x is detected."""
        reg = AnalyzerRegistry()
        reg.register(make_analyzer("x", ["y"]))
        reg.register(make_analyzer("y", ["z"]))
        reg.register(make_analyzer("z", ["x"]))
        with pytest.raises(ValueError, match="Circular dependency detected"):
            reg.resolve_dependencies(["x"])

    def test_validate_skip_list(self, chain_registry):
        """Test unknown skip entries are reported."""
        assert chain_registry.validate_skip_list(["a", "d"]) == (True, [])
        assert chain_registry.validate_skip_list(["a", "zzz"]) == (False, ["zzz"])


class TestExecutionWaves:
    """Test grouping into waves of independent analyzers."""

    def test_chain_and_independent(self, chain_registry):
        """Test independent analyzers share the first wave."""
        order = chain_registry.resolve_dependencies(["c", "d"])
        assert chain_registry.execution_waves(order) == [["a", "d"], ["b"], ["c"]]

    def test_builtin_waves(self):
        """Test DNS waits for authentication while RBL does not."""
        order = registry.resolve_dependencies(["authentication", "dns", "rbl"])
        assert registry.execution_waves(order) == [["authentication", "rbl"], ["dns"]]

    def test_skipped_dependency_not_waited_for(self, chain_registry):
        """Test an analyzer whose dependency is skipped runs in the first wave."""
        order = chain_registry.resolve_dependencies(["c"], skip={"b"})
        assert chain_registry.execution_waves(order) == [["c"]]
