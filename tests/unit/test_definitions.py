"""
Unit tests for statecascade/definitions.py

Tests declarative cascade construction.
"""

import json

import pytest
from unittest.mock import Mock

from statecascade.definitions import (
    CascadeDefinition,
    NodeDefinition,
    build_from_definitions,
    load_definitions,
)
from statecascade.errors import (
    AmbiguousInitialStateError,
    DuplicateNodeError,
    MalformedConstructionArgumentsError,
    UnknownDependencyError,
)


EDITOR_DEFINITION = {
    "nodes": [
        {"id": "dim", "initial": True, "cleaner": "redraw"},
        {"id": "pose", "initial": False},
        {"id": "xform", "depends_on": ["pose", "dim"], "cleaner": "update_xform"},
    ]
}


class TestNodeDefinition:
    """Test NodeDefinition model."""

    def test_create_node_definition(self):
        """Test a minimal node definition."""
        node = NodeDefinition(id="dim", initial=True)
        assert node.id == "dim"
        assert node.depends_on == []
        assert node.cleaner is None

    def test_integer_ids(self):
        """Test integer identifiers are kept as integers."""
        node = NodeDefinition(id=3, depends_on=[1, 2])
        assert node.id == 3
        assert node.depends_on == [1, 2]

    def test_both_deps_and_state_rejected(self):
        """Test giving both dependencies and a state is invalid."""
        with pytest.raises(ValueError):
            NodeDefinition(id="x", depends_on=["a"], initial=True)

    def test_extra_fields_rejected(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ValueError):
            NodeDefinition(id="x", initial=True, colour="red")


class TestBuildFromDefinitions:
    """Test build_from_definitions()."""

    def test_build(self):
        """Test building resolves cleaners and states."""
        redraw, update = Mock(), Mock()
        cascade = build_from_definitions(
            EDITOR_DEFINITION, {"redraw": redraw, "update_xform": update}
        )
        assert cascade.node_ids() == {"dim", "pose", "xform"}
        assert cascade.cleaner("dim") is redraw
        assert cascade.cleaner("pose") is None
        assert cascade.is_clean("xform") is False
        assert cascade["xform"].dependencies == ("pose", "dim")

    def test_build_from_model(self):
        """Test building from an already validated model."""
        definition = CascadeDefinition(nodes=[NodeDefinition(id="a", initial=True)])
        assert build_from_definitions(definition).is_clean("a")

    def test_build_then_clean(self):
        """Test a built cascade cleans in dependency order."""
        order = []
        cleaners = {
            "redraw": lambda: order.append("redraw"),
            "update_xform": lambda: order.append("xform"),
        }
        cascade = build_from_definitions(EDITOR_DEFINITION, cleaners)
        cascade.dirty("dim").clean("xform")
        assert order == ["redraw", "xform"]

    def test_unknown_cleaner(self):
        """Test naming a cleaner that was not supplied."""
        with pytest.raises(MalformedConstructionArgumentsError, match="redraw"):
            build_from_definitions(EDITOR_DEFINITION, {})

    def test_invalid_shape(self):
        """Test pydantic validation failures are wrapped."""
        with pytest.raises(MalformedConstructionArgumentsError):
            build_from_definitions({"nodes": [{"depends_on": ["a"]}]})

    def test_not_a_mapping(self):
        """Test a non-mapping definition is rejected."""
        with pytest.raises(MalformedConstructionArgumentsError):
            build_from_definitions(["dim", None, True])

    def test_missing_state(self):
        """Test a node with neither dependencies nor state."""
        with pytest.raises(AmbiguousInitialStateError):
            build_from_definitions({"nodes": [{"id": "a"}]})

    def test_forward_reference(self):
        """Test dependencies must be declared earlier in the list."""
        with pytest.raises(UnknownDependencyError):
            build_from_definitions({"nodes": [
                {"id": "b", "depends_on": ["a"]},
                {"id": "a", "initial": True},
            ]})

    def test_duplicate(self):
        """Test duplicate node ids."""
        with pytest.raises(DuplicateNodeError):
            build_from_definitions({"nodes": [
                {"id": "a", "initial": True},
                {"id": "a", "initial": False},
            ]})


class TestLoadDefinitions:
    """Test load_definitions()."""

    def test_load_json(self, tmp_path):
        """Test loading a definition file."""
        path = tmp_path / "cascade.json"
        path.write_text(json.dumps(EDITOR_DEFINITION))

        cascade = load_definitions(path, {"redraw": Mock(), "update_xform": Mock()})
        assert len(cascade) == 3
        assert cascade.direct_dependants("dim") == {"xform"}
