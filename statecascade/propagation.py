"""
statecascade/propagation.py - Dirty propagation

Forward flood-fill from the requested nodes along dependant edges.
No cleaners are run.
"""

from __future__ import annotations
from collections import deque
from dataclasses import replace
from typing import Dict, List, Set, TYPE_CHECKING
import logging

from .errors import UnknownNodeError

if TYPE_CHECKING:
    from .graph import Cascade, NodeId, NodeRecord

logger = logging.getLogger(__name__)


def dependants_index(cascade: "Cascade") -> Dict["NodeId", List["NodeId"]]:
    """Build a node -> direct dependants map for one traversal."""
    index: Dict["NodeId", List["NodeId"]] = {n: [] for n in cascade}
    for node_id, record in cascade.items():
        for dep in record.dependencies:
            index[dep].append(node_id)
    return index


def dirty(cascade: "Cascade", *node_ids: "NodeId") -> "Cascade":
    """
    Mark these nodes and all of their dependants dirty.

    A node that is already dirty is not expanded again: its dependants
    are dirty already.

    Raises:
        UnknownNodeError: naming every requested identifier that is absent.
    """
    missing = [n for n in dict.fromkeys(node_ids) if n not in cascade]
    if missing:
        raise UnknownNodeError(missing)

    if not node_ids:
        return cascade

    from .graph import Cascade

    nodes: Dict["NodeId", "NodeRecord"] = dict(cascade.items())
    index = dependants_index(cascade)
    worklist = deque(node_ids)
    dirtied: Set["NodeId"] = set()

    while worklist:
        current = worklist.popleft()
        record = nodes[current]
        if not record.clean:
            continue
        nodes[current] = replace(record, clean=False)
        dirtied.add(current)
        worklist.extend(index[current])

    if not dirtied:
        return cascade

    logger.debug(f"Dirtied {len(dirtied)} nodes from {list(node_ids)}")
    return Cascade._from_nodes(nodes)
