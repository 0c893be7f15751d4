"""
statecascade/graph.py - Cascade graph

Defines the immutable Cascade value: a directed acyclic graph of named
state nodes, each clean or dirty, each with an optional cleaner.

Edges point from dependency to dependant. A node may only name
dependencies that already exist when it is added, so the graph can never
contain a cycle. Dirtiness is closed under the dependant relation: a
clean node never has a dirty ancestor.

Every operation that changes state returns a new Cascade. Node records
are immutable and shared between snapshots; only the top-level mapping
is copied.

Recommended usage: create() the cascade with all nodes at once and hold
it in a CascadeRef. Call dirty() whenever a piece of program state
changes and clean() on a node to bring it (and its dirty dependencies)
up to date. clean() is cheap on clean nodes.
"""

from __future__ import annotations
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import (
    Any, Callable, Dict, FrozenSet, Hashable, Iterator, List, Optional,
    Tuple, Union, TYPE_CHECKING,
)
import logging

from .errors import (
    AmbiguousInitialStateError,
    DuplicateNodeError,
    MalformedConstructionArgumentsError,
    NoSuchNodeError,
    UnknownDependencyError,
)

if TYPE_CHECKING:
    from .resolution import CleanPlan

logger = logging.getLogger(__name__)


NodeId = Hashable
Cleaner = Callable[[], Any]
DepsOrState = Union[bool, Iterable]


# =============================================================================
# NODE RECORD
# =============================================================================

@dataclass(frozen=True)
class NodeRecord:
    """
    One node of the cascade.

    Attributes:
        clean: Whether the node's external state is up to date.
        dependencies: Direct dependencies, in declaration order.
        cleaner: Nullary, idempotent callback that resynchronizes the
            node's external state. None for a no-op node.
    """
    clean: bool
    dependencies: Tuple[NodeId, ...] = ()
    cleaner: Optional[Cleaner] = None


def _json_key(node_id: NodeId) -> Any:
    if isinstance(node_id, (str, int, float, bool)) or node_id is None:
        return node_id
    return str(node_id)


# =============================================================================
# CASCADE
# =============================================================================

class Cascade(Mapping):
    """
    Immutable snapshot of the whole graph and every node's state.

    Behaves as a read-only mapping from node identifier to NodeRecord.
    """

    __slots__ = ("_nodes",)

    def __init__(self) -> None:
        self._nodes: Dict[NodeId, NodeRecord] = {}

    @classmethod
    def _from_nodes(cls, nodes: Dict[NodeId, NodeRecord]) -> "Cascade":
        cascade = cls.__new__(cls)
        cascade._nodes = nodes
        return cascade

    # ==================== Mapping ====================

    def __getitem__(self, node_id: NodeId) -> NodeRecord:
        return self._nodes[node_id]

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{n!r}: {'clean' if r.clean else 'dirty'}" for n, r in self._nodes.items()
        )
        return f"Cascade({{{inner}}})"

    # ==================== Construction ====================

    def add(
        self,
        node_id: NodeId,
        cleaner: Optional[Cleaner],
        deps_or_state: DepsOrState,
    ) -> "Cascade":
        """
        Return a new cascade extended with one node.

        Args:
            node_id: Identifier of the new node; must not exist yet.
            cleaner: Nullary callback, or None. Stored, never called here.
            deps_or_state: Either an explicit boolean initial state (the
                node then has no dependencies), or a non-empty collection
                of existing node identifiers. In the latter case the node
                starts clean only if every dependency is clean.

        Raises:
            DuplicateNodeError: node_id already present.
            AmbiguousInitialStateError: empty dependency collection.
            UnknownDependencyError: a dependency is not in the cascade.
        """
        if node_id in self._nodes:
            raise DuplicateNodeError(node_id)

        if isinstance(deps_or_state, bool):
            record = NodeRecord(clean=deps_or_state, cleaner=cleaner)
        else:
            deps = self._normalize_dependencies(node_id, deps_or_state)
            missing = [d for d in deps if d not in self._nodes]
            if missing:
                raise UnknownDependencyError(node_id, missing)
            record = NodeRecord(
                clean=all(self._nodes[d].clean for d in deps),
                dependencies=deps,
                cleaner=cleaner,
            )

        nodes = dict(self._nodes)
        nodes[node_id] = record
        return Cascade._from_nodes(nodes)

    @staticmethod
    def _normalize_dependencies(node_id: NodeId, deps: Any) -> Tuple[NodeId, ...]:
        if deps is None:
            raise AmbiguousInitialStateError(node_id)
        if isinstance(deps, (str, bytes)) or not isinstance(deps, Iterable):
            raise TypeError(
                f"Dependencies of {node_id!r} must be a collection of node "
                f"identifiers or a boolean initial state, got {type(deps).__name__}"
            )
        # dict.fromkeys keeps declaration order and drops repeats
        ordered = tuple(dict.fromkeys(deps))
        if not ordered:
            raise AmbiguousInitialStateError(node_id)
        return ordered

    # ==================== Queries ====================

    def _record(self, node_id: NodeId) -> NodeRecord:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NoSuchNodeError(node_id) from None

    def is_clean(self, node_id: NodeId) -> bool:
        """Check if a node is clean."""
        return self._record(node_id).clean

    def node_ids(self) -> FrozenSet[NodeId]:
        """Return the set of node identifiers."""
        return frozenset(self._nodes)

    def states(self) -> Dict[NodeId, bool]:
        """Return a map of node identifiers to clean states."""
        return {n: r.clean for n, r in self._nodes.items()}

    def dirty_nodes(self) -> FrozenSet[NodeId]:
        """Return the identifiers of all dirty nodes."""
        return frozenset(n for n, r in self._nodes.items() if not r.clean)

    def cleaner(self, node_id: NodeId) -> Optional[Cleaner]:
        """Get the callback that cleans this node's program state."""
        return self._record(node_id).cleaner

    def direct_dependencies(self, node_id: NodeId) -> FrozenSet[NodeId]:
        """Return the nodes this node depends on immediately."""
        return frozenset(self._record(node_id).dependencies)

    def dependencies(self, node_id: NodeId) -> FrozenSet[NodeId]:
        """Return every node this node depends on, transitively."""
        result = set()
        to_process = list(self._record(node_id).dependencies)

        while to_process:
            current = to_process.pop()
            if current not in result:
                result.add(current)
                to_process.extend(self._nodes[current].dependencies)

        return frozenset(result)

    def direct_dependants(self, node_id: NodeId) -> FrozenSet[NodeId]:
        """Return the nodes that name this node as a direct dependency."""
        self._record(node_id)
        return frozenset(
            n for n, r in self._nodes.items() if node_id in r.dependencies
        )

    def dependants(self, node_id: NodeId) -> FrozenSet[NodeId]:
        """
        Return every eventual dependant of a node.

        Breadth-first: each layer is the union of the direct dependants of
        the previous layer, until a layer comes up empty.
        """
        self._record(node_id)
        accum = set()
        layer = {node_id}

        while layer:
            next_layer = set()
            for n in layer:
                next_layer |= self.direct_dependants(n)
            accum |= next_layer
            layer = next_layer

        return frozenset(accum)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph shape and states for debugging."""
        return {
            "nodes": {
                _json_key(n): {
                    "clean": r.clean,
                    "dependencies": [_json_key(d) for d in r.dependencies],
                    "has_cleaner": r.cleaner is not None,
                }
                for n, r in self._nodes.items()
            },
        }

    # ==================== State changes ====================

    def set_all(self, state: bool) -> "Cascade":
        """
        Set every node to the given state without running cleaners.

        Useful in initialization. Dependency-derived invariants are not
        checked; anything but an all-clean or all-dirty reset is the
        caller's responsibility.
        """
        return Cascade._from_nodes(
            {n: replace(r, clean=state) for n, r in self._nodes.items()}
        )

    def _with_states(self, node_ids: Iterable[NodeId], state: bool) -> "Cascade":
        """Set the given nodes to a state *without* propagating."""
        nodes = dict(self._nodes)
        for n in node_ids:
            if nodes[n].clean != state:
                nodes[n] = replace(nodes[n], clean=state)
        return Cascade._from_nodes(nodes)

    def dirty(self, *node_ids: NodeId) -> "Cascade":
        """Mark these nodes and all their dependants dirty."""
        from .propagation import dirty
        return dirty(self, *node_ids)

    def to_clean(self, node_id: NodeId) -> "CleanPlan":
        """Compute the cleaners and nodes involved in cleaning a node."""
        from .resolution import to_clean
        return to_clean(self, node_id)

    def clean(self, node_id: NodeId) -> "Cascade":
        """Run every cleaner needed to get a node clean; return the new cascade."""
        from .resolution import clean
        return clean(self, node_id)


# =============================================================================
# CONSTRUCTION HELPERS
# =============================================================================

def create(*adds: Any) -> Cascade:
    """
    Create a cascade by adding each triplet of arguments in order.

    Example:
        create("dim", redraw_dims, True,
               "pose", None, True,
               "xform", update_xform, ["pose", "dim"])

    See Cascade.add for the meaning of each triplet.

    Raises:
        MalformedConstructionArgumentsError: argument count not a multiple of 3.
    """
    if len(adds) % 3 != 0:
        raise MalformedConstructionArgumentsError(count=len(adds))

    cascade = Cascade()
    for i in range(0, len(adds), 3):
        cascade = cascade.add(adds[i], adds[i + 1], adds[i + 2])

    logger.debug(f"Cascade created with {len(cascade)} nodes")
    return cascade


def from_triples(triples: Iterable[Tuple[NodeId, Optional[Cleaner], DepsOrState]]) -> Cascade:
    """Create a cascade from an iterable of (node, cleaner, deps-or-state) tuples."""
    flat: List[Any] = []
    for triple in triples:
        if len(triple) != 3:
            raise MalformedConstructionArgumentsError(
                f"Expected (node, cleaner, dependencies-or-state), got {triple!r}"
            )
        flat.extend(triple)
    return create(*flat)
