"""
statecascade/definitions.py - Declarative cascade definitions

Builds a cascade from a plain mapping (or a JSON file) describing the
nodes in construction order, e.g.::

    {
        "nodes": [
            {"id": "dim", "initial": true, "cleaner": "redraw_dims"},
            {"id": "pose", "initial": true},
            {"id": "xform", "depends_on": ["pose", "dim"], "cleaner": "update_xform"}
        ]
    }

Cleaner names are resolved through a mapping supplied by the caller.
The definition is validated with pydantic; graph-level errors
(duplicates, unknown dependencies, missing initial state) come from
Cascade.add exactly as with create().
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import MalformedConstructionArgumentsError
from .graph import Cascade, Cleaner, from_triples

logger = logging.getLogger(__name__)


NodeKey = Union[int, str]


# =============================================================================
# Definition Schemas
# =============================================================================


class NodeDefinition(BaseModel):
    """One node of a declarative cascade definition."""

    model_config = ConfigDict(extra="forbid")

    id: NodeKey = Field(..., description="Node identifier")
    depends_on: List[NodeKey] = Field(
        default_factory=list, description="Direct dependencies, in order"
    )
    initial: Optional[bool] = Field(
        None, description="Explicit initial state for a node without dependencies"
    )
    cleaner: Optional[str] = Field(None, description="Name of the cleaner callback")

    @model_validator(mode="after")
    def _deps_or_state(self) -> "NodeDefinition":
        if self.depends_on and self.initial is not None:
            raise ValueError(
                f"Node {self.id!r}: give either depends_on or initial, not both"
            )
        return self


class CascadeDefinition(BaseModel):
    """A whole cascade, nodes listed in construction order."""

    model_config = ConfigDict(extra="forbid")

    nodes: List[NodeDefinition] = Field(default_factory=list)


# =============================================================================
# Builders
# =============================================================================


def build_from_definitions(
    data: Union[Mapping[str, Any], CascadeDefinition],
    cleaners: Optional[Mapping[str, Cleaner]] = None,
) -> Cascade:
    """
    Build a cascade from a definition.

    Args:
        data: A CascadeDefinition or a mapping in its shape
        cleaners: Cleaner callbacks by name

    Raises:
        MalformedConstructionArgumentsError: the definition does not
            validate, or names a cleaner that was not supplied.
    """
    cleaners = cleaners or {}

    if isinstance(data, CascadeDefinition):
        definition = data
    else:
        try:
            definition = CascadeDefinition.model_validate(data)
        except ValidationError as e:
            raise MalformedConstructionArgumentsError(
                f"Invalid cascade definition: {e}"
            ) from e

    triples = []
    for node in definition.nodes:
        cleaner = None
        if node.cleaner is not None:
            if node.cleaner not in cleaners:
                raise MalformedConstructionArgumentsError(
                    f"Unknown cleaner {node.cleaner!r} for node {node.id!r}"
                )
            cleaner = cleaners[node.cleaner]

        deps_or_state = node.initial if node.initial is not None else node.depends_on
        triples.append((node.id, cleaner, deps_or_state))

    cascade = from_triples(triples)
    logger.debug(f"Built cascade from definitions: {len(cascade)} nodes")
    return cascade


def load_definitions(
    path: Union[str, Path],
    cleaners: Optional[Mapping[str, Cleaner]] = None,
) -> Cascade:
    """Build a cascade from a JSON definition file."""
    with open(path) as f:
        data = json.load(f)

    logger.info(f"Loaded cascade definition from {path}")
    return build_from_definitions(data, cleaners)
