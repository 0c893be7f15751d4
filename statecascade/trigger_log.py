"""
statecascade/trigger_log.py - Trigger log

In-memory audit trail of transitions published through a CascadeRef:
which nodes were dirtied or cleaned, at which version, and which
attempts failed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Set
import logging
import uuid

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# TRIGGER TYPES
# =============================================================================

class TriggerType(Enum):
    """Type of trigger event."""
    DIRTY = "dirty"                        # Nodes were marked dirty
    CLEAN = "clean"                        # Nodes were cleaned
    SET_ALL = "set_all"                    # Every node was set to one state
    RESET = "reset"                        # Cascade replaced outright
    SWAP_CONFLICT = "swap_conflict"        # Publish lost a compare-and-swap race
    CLEANER_FAILED = "cleaner_failed"      # A cleaner raised; nothing published


# =============================================================================
# TRIGGER ENTRY
# =============================================================================

@dataclass
class TriggerEntry:
    """A single entry in the trigger log."""
    entry_id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    timestamp: datetime = field(default_factory=_utcnow)

    trigger_type: TriggerType = TriggerType.DIRTY

    # Subject
    nodes: List[Hashable] = field(default_factory=list)
    target: Optional[Hashable] = None

    # Publication
    version: Optional[int] = None
    source: str = "unknown"

    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize entry to dict."""
        return {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "trigger_type": self.trigger_type.value,
            "nodes": [_serialize_node(n) for n in self.nodes],
            "target": _serialize_node(self.target),
            "version": self.version,
            "source": self.source,
            "error": self.error,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TriggerEntry":
        """Load entry from dict."""
        return cls(
            entry_id=data.get("entry_id", str(uuid.uuid4())[:12]),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else _utcnow(),
            trigger_type=TriggerType(data.get("trigger_type", "dirty")),
            nodes=list(data.get("nodes", [])),
            target=data.get("target"),
            version=data.get("version"),
            source=data.get("source", "unknown"),
            error=data.get("error"),
            metadata=data.get("metadata", {}),
        )


def _serialize_node(node_id: Any) -> Any:
    if node_id is None or isinstance(node_id, (str, int, float, bool)):
        return node_id
    return str(node_id)


# =============================================================================
# TRIGGER LOG
# =============================================================================

class TriggerLog:
    """Bounded, queryable audit trail of cascade transitions."""

    DEFAULT_MAX_ENTRIES = 1000

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self._entries: List[TriggerEntry] = []
        self._max_entries = max_entries

        # Index for fast lookup by node
        self._by_node: Dict[Hashable, List[TriggerEntry]] = {}

    def log(self, entry: TriggerEntry) -> str:
        """
        Add an entry to the log.

        Returns:
            Entry ID
        """
        self._entries.append(entry)
        self._index(entry)

        if len(self._entries) > self._max_entries:
            self._trim_entries()

        return entry.entry_id

    def _index(self, entry: TriggerEntry) -> None:
        subjects = list(entry.nodes)
        if entry.target is not None and entry.target not in subjects:
            subjects.append(entry.target)
        for node_id in subjects:
            self._by_node.setdefault(node_id, []).append(entry)

    def query(
        self,
        node: Optional[Hashable] = None,
        trigger_types: Optional[Set[TriggerType]] = None,
        since: Optional[datetime] = None,
        source: Optional[str] = None,
        limit: int = 100,
    ) -> List[TriggerEntry]:
        """
        Query the trigger log.

        Args:
            node: Only entries touching this node
            trigger_types: Filter by trigger type(s)
            since: Only entries at or after this time
            source: Filter by source
            limit: Maximum entries to return

        Returns:
            List of matching entries (newest first)
        """
        if node is not None:
            entries = self._by_node.get(node, [])
        else:
            entries = self._entries

        filtered = []
        for entry in reversed(entries):
            if trigger_types and entry.trigger_type not in trigger_types:
                continue
            if since and entry.timestamp < since:
                continue
            if source and entry.source != source:
                continue

            filtered.append(entry)
            if len(filtered) >= limit:
                break

        return filtered

    def get_recent(self, count: int = 100) -> List[TriggerEntry]:
        """Get most recent entries, newest first."""
        return list(reversed(self._entries[-count:]))

    def get_for_node(self, node: Hashable, limit: int = 100) -> List[TriggerEntry]:
        """Get entries touching a node, newest first."""
        entries = self._by_node.get(node, [])
        return list(reversed(entries[-limit:]))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize entries for inspection."""
        return {
            "entries": [e.to_dict() for e in self._entries],
            "max_entries": self._max_entries,
        }

    def _trim_entries(self) -> None:
        """Trim to max entries."""
        trim_count = len(self._entries) - self._max_entries
        self._entries = self._entries[trim_count:]

        self._by_node.clear()
        for entry in self._entries:
            self._index(entry)

        logger.debug(f"Trimmed {trim_count} trigger log entries")

    def clear(self) -> None:
        """Clear all entries."""
        self._entries.clear()
        self._by_node.clear()

    def __len__(self) -> int:
        return len(self._entries)
