"""
statecascade/resolution.py - Clean resolution

Works out which dirty ancestors of a node must be cleaned, in which
order their cleaners run, and commits the new states.

Order is a post-order over the dependency DAG: every dependency's
cleaner runs before its dependant's, and dependencies are visited in
the order they were declared. Each cleaner runs at most once per
clean() call, even across diamond-shaped dependencies. Cleaners must
still be idempotent: a failed clean() is retried from the unchanged
prior snapshot, re-running cleaners that already succeeded.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple, TYPE_CHECKING
import logging

from .errors import NoSuchNodeError

if TYPE_CHECKING:
    from .graph import Cascade, Cleaner, NodeId

logger = logging.getLogger(__name__)


# =============================================================================
# CLEAN PLAN
# =============================================================================

@dataclass(frozen=True)
class CleanPlan:
    """
    Result of resolving a clean.

    Attributes:
        actions: Cleaners that must all be called successfully, in order.
            No None entries, no repeated callables.
        nodes: Nodes that become clean once the actions have run.
    """
    actions: Tuple["Cleaner", ...] = ()
    nodes: FrozenSet["NodeId"] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actions": [getattr(a, "__qualname__", repr(a)) for a in self.actions],
            "nodes": sorted(str(n) for n in self.nodes),
        }


def _resolve(cascade: "Cascade", node_id: "NodeId") -> Tuple[List[Optional["Cleaner"]], Set["NodeId"]]:
    """Post-order walk over dirty ancestors; may yield None cleaners."""
    actions: List[Optional["Cleaner"]] = []
    affected: Set["NodeId"] = set()

    if cascade[node_id].clean:
        return actions, affected

    # (node, expanded) pairs; a node's cleaner is emitted when it is
    # popped the second time, after all of its dirty dependencies.
    stack: List[Tuple["NodeId", bool]] = [(node_id, False)]

    while stack:
        current, expanded = stack.pop()
        record = cascade[current]

        if expanded:
            actions.append(record.cleaner)
            continue
        if current in affected:
            continue

        affected.add(current)
        stack.append((current, True))

        dirty_deps = [d for d in record.dependencies if not cascade[d].clean]
        for dep in reversed(dirty_deps):
            if dep not in affected:
                stack.append((dep, False))

    return actions, affected


def _distinct_actions(actions: List[Optional["Cleaner"]]) -> Tuple["Cleaner", ...]:
    """Drop None and repeated callables, keeping first occurrences."""
    seen: Set[int] = set()
    result: List["Cleaner"] = []
    for action in actions:
        if action is None or id(action) in seen:
            continue
        seen.add(id(action))
        result.append(action)
    return tuple(result)


def to_clean(cascade: "Cascade", node_id: "NodeId") -> CleanPlan:
    """
    Return the plan for cleaning a node: the nullary cleaners that must be
    called to clean the node and its dependencies, and the set of nodes
    that will change.

    Raises:
        NoSuchNodeError: node_id is not in the cascade.
    """
    if node_id not in cascade:
        raise NoSuchNodeError(node_id)

    actions, affected = _resolve(cascade, node_id)
    return CleanPlan(actions=_distinct_actions(actions), nodes=frozenset(affected))


# =============================================================================
# CLEAN
# =============================================================================

def clean(cascade: "Cascade", node_id: "NodeId") -> "Cascade":
    """
    Run all cleaners necessary to get the node clean and return the
    updated cascade.

    The new cascade is computed before any cleaner runs. If a cleaner
    raises, the exception propagates and the new cascade is discarded;
    keep using the cascade that was passed in.

    Raises:
        NoSuchNodeError: node_id is not in the cascade.
    """
    return run_plan(cascade, to_clean(cascade, node_id), node_id)


def run_plan(cascade: "Cascade", plan: CleanPlan, node_id: "NodeId" = None) -> "Cascade":
    """
    Commit a resolved plan: mark its nodes clean, then call its actions
    in order. The plan must have been resolved against this cascade.
    """
    if plan.is_empty:
        return cascade

    success = cascade._with_states(plan.nodes, True)

    logger.debug(
        f"Cleaning {node_id!r}: {len(plan.nodes)} nodes, {len(plan.actions)} cleaners"
    )

    for action in plan.actions:
        try:
            action()
        except Exception as e:
            logger.error(f"Cleaner {action!r} failed while cleaning {node_id!r}: {e}")
            raise

    return success
