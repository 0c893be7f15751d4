"""
Unit tests for statecascade/resolution.py

Tests clean planning, ordering, deduplication, and execution.
"""

import pytest
from unittest.mock import Mock

from statecascade.errors import NoSuchNodeError
from statecascade.graph import create
from statecascade.resolution import CleanPlan, clean, run_plan, to_clean


class TestCleanPlan:
    """Test CleanPlan dataclass."""

    def test_empty_plan(self):
        """Test the default plan is empty."""
        plan = CleanPlan()
        assert plan.actions == ()
        assert plan.nodes == frozenset()
        assert plan.is_empty

    def test_to_dict(self):
        """Test plan serialization."""
        def redraw():
            pass

        plan = CleanPlan(actions=(redraw,), nodes=frozenset({"b", "a"}))
        data = plan.to_dict()
        assert data["nodes"] == ["a", "b"]
        assert data["actions"][0].endswith("redraw")


class TestToClean:
    """Test to_clean() resolution."""

    def test_cleaning_list(self, diamond, diamond_cleaners):
        """Test the diamond resolves to three distinct cleaners over four nodes."""
        plan = to_clean(diamond, "l3")
        c = diamond_cleaners

        assert len(plan.actions) == 3
        assert all(a is not None for a in plan.actions)
        assert c["l0"] not in plan.actions
        assert c["l1"] in plan.actions
        assert c["l3"] in plan.actions
        assert len(set(map(id, plan.actions))) == len(plan.actions)

        assert plan.nodes == {"l1", "l2a", "l2b", "l3"}
        assert "l0" not in plan.nodes

    def test_dependency_order(self, diamond, diamond_cleaners):
        """Test every dependency's cleaner precedes its dependant's."""
        c = diamond_cleaners
        plan = to_clean(diamond, "l3")
        assert plan.actions == (c["l1"], c["l2b"], c["l3"])

    def test_declaration_order(self):
        """Test sibling dependencies are cleaned in declaration order."""
        order = []
        a = lambda: order.append("a")
        b = lambda: order.append("b")
        z = lambda: order.append("z")
        cascade = create(
            "a", a, False,
            "b", b, False,
            "z", z, ["b", "a"],
        )
        assert to_clean(cascade, "z").actions == (b, a, z)

    def test_clean_node_gives_empty_plan(self, diamond):
        """Test a clean node needs nothing."""
        plan = to_clean(diamond, "l0")
        assert plan.is_empty
        assert plan.actions == ()

    def test_clean_dependencies_not_included(self):
        """Test only dirty dependencies are resolved."""
        cascade = create(
            "clean", Mock(), True,
            "stale", Mock(), False,
            "top", Mock(), ["clean", "stale"],
        )
        assert to_clean(cascade, "top").nodes == {"stale", "top"}

    def test_shared_cleaner_runs_once(self):
        """Test a callable shared by two nodes is deduplicated by identity."""
        shared = Mock()
        cascade = create(
            "a", shared, False,
            "b", shared, ["a"],
        )
        assert to_clean(cascade, "b").actions == (shared,)

    def test_deep_chain(self):
        """Test long chains resolve without recursion limits."""
        args = ["n0", None, False]
        for i in range(1, 3000):
            args += [f"n{i}", None, [f"n{i - 1}"]]
        cascade = create(*args)
        plan = to_clean(cascade, "n2999")
        assert len(plan.nodes) == 3000

    def test_unknown_node(self, diamond):
        """Test planning for an absent node."""
        with pytest.raises(NoSuchNodeError):
            to_clean(diamond, "albert")


class TestClean:
    """Test clean()."""

    def test_total_cleanup(self, diamond, diamond_cleaners):
        """Test each cleaner runs at most once across the diamond."""
        c = diamond_cleaners
        result = clean(diamond, "l3")

        assert c["l0"].call_count == 0
        assert c["l1"].call_count == 1
        assert c["l3"].call_count == 1
        assert result.is_clean("l3")
        assert result.is_clean("l1")

    def test_clean_marks_only_affected(self, diamond):
        """Test nodes outside the affected set keep their state."""
        result = diamond.clean("l2a")
        assert result.is_clean("l1") is True
        assert result.is_clean("l2a") is True
        assert result.is_clean("l2b") is False
        assert result.is_clean("l3") is False

    def test_clean_on_clean_cascade(self):
        """Test cleaning a freshly built, fully clean cascade does nothing."""
        cleaner = Mock()
        cascade = create("a", cleaner, True, "b", cleaner, ["a"])
        result = clean(cascade, "b")
        cleaner.assert_not_called()
        assert result is cascade

    def test_clean_keeps_original(self, diamond):
        """Test the input cascade is not modified."""
        clean(diamond, "l3")
        assert diamond.is_clean("l3") is False

    def test_clean_then_clean_again(self, diamond, diamond_cleaners):
        """Test a second clean of the result is a no-op."""
        result = clean(diamond, "l3")
        clean(result, "l3")
        assert diamond_cleaners["l1"].call_count == 1

    def test_cleaner_failure_propagates(self, diamond, diamond_cleaners):
        """Test a raising cleaner propagates and later cleaners do not run."""
        diamond_cleaners["l2b"].side_effect = RuntimeError("canvas gone")

        with pytest.raises(RuntimeError, match="canvas gone"):
            clean(diamond, "l3")

        assert diamond_cleaners["l1"].call_count == 1
        assert diamond_cleaners["l3"].call_count == 0
        assert diamond.is_clean("l1") is False

    def test_retry_after_failure_reruns_cleaners(self, diamond, diamond_cleaners):
        """Test retrying from the prior snapshot re-runs earlier cleaners."""
        diamond_cleaners["l2b"].side_effect = [RuntimeError("once"), None]

        with pytest.raises(RuntimeError):
            clean(diamond, "l3")
        result = clean(diamond, "l3")

        assert diamond_cleaners["l1"].call_count == 2
        assert diamond_cleaners["l3"].call_count == 1
        assert result.dirty_nodes() == frozenset()

    def test_bad_clean(self, diamond):
        """Test cleaning an absent node."""
        with pytest.raises(NoSuchNodeError, match="does not contain.*albert"):
            clean(diamond, "albert")

    def test_run_plan_empty(self, diamond):
        """Test an empty plan returns the cascade itself."""
        assert run_plan(diamond, CleanPlan()) is diamond
