"""
statecascade/reference.py - Cascade reference

The single mutable cell holding "the current cascade". Updates follow a
read-compute-publish cycle: read the published snapshot, compute the
next one with a pure cascade operation, then publish it with a
compare-and-swap. On conflict the whole cycle is retried.

Because clean() runs its cleaners during the compute step, a lost race
runs them again on the retry. Cleaners must be idempotent.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple, TYPE_CHECKING
import logging
import threading

from .errors import ReentrantUpdateError, StaleCascadeError
from .graph import Cascade
from .resolution import CleanPlan, run_plan, to_clean
from .trigger_log import TriggerEntry, TriggerLog, TriggerType

if TYPE_CHECKING:
    from .config import CascadeConfig
    from .graph import NodeId

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# CLEAN RESULT
# =============================================================================

@dataclass
class CleanResult:
    """Result of cleaning a node through a CascadeRef."""
    cascade: Cascade
    node_id: Any
    started_at: datetime
    completed_at: Optional[datetime] = None

    cleaned_nodes: FrozenSet[Any] = field(default_factory=frozenset)
    actions_run: int = 0

    # Publication
    attempts: int = 1
    version: int = 0

    total_time_ms: int = 0

    @property
    def was_noop(self) -> bool:
        return not self.cleaned_nodes

    def get_summary(self) -> Dict[str, Any]:
        return {
            "node_id": str(self.node_id),
            "cleaned": len(self.cleaned_nodes),
            "actions_run": self.actions_run,
            "attempts": self.attempts,
            "version": self.version,
            "total_time_ms": self.total_time_ms,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": str(self.node_id),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cleaned_nodes": sorted(str(n) for n in self.cleaned_nodes),
            "actions_run": self.actions_run,
            "attempts": self.attempts,
            "version": self.version,
            "total_time_ms": self.total_time_ms,
        }


# =============================================================================
# CASCADE REFERENCE
# =============================================================================

class CascadeRef:
    """
    Mutable cell publishing successive Cascade snapshots.

    Snapshots are compared by identity. The version counts successful
    publications that changed the value.
    """

    def __init__(
        self,
        cascade: Optional[Cascade] = None,
        max_retries: Optional[int] = None,
        trigger_log: Optional[TriggerLog] = None,
        config: Optional["CascadeConfig"] = None,
    ):
        if config is None:
            from .config import get_config
            config = get_config()
        settings = config.reference

        self._value: Cascade = cascade if cascade is not None else Cascade()
        self._version = 0
        self._lock = threading.Lock()
        self._local = threading.local()

        self._max_retries = max_retries if max_retries is not None else settings.max_swap_retries
        if self._max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self._max_retries}")

        if trigger_log is None and settings.record_triggers:
            trigger_log = TriggerLog(max_entries=settings.trigger_log_size)
        self._trigger_log = trigger_log

    # ==================== Reading ====================

    @property
    def value(self) -> Cascade:
        """The currently published cascade."""
        return self._value

    @property
    def version(self) -> int:
        return self._version

    @property
    def trigger_log(self) -> Optional[TriggerLog]:
        return self._trigger_log

    def snapshot(self) -> Tuple[Cascade, int]:
        """Return the published cascade together with its version."""
        with self._lock:
            return self._value, self._version

    # ==================== Publishing ====================

    def _check_reentry(self) -> None:
        if getattr(self._local, "computing", False):
            raise ReentrantUpdateError()

    def _record(self, entry: TriggerEntry) -> None:
        if self._trigger_log is not None:
            self._trigger_log.log(entry)

    def compare_and_set(self, expected: Cascade, new: Cascade) -> bool:
        """
        Publish new only if expected is still the published cascade.

        Returns:
            True if published (or already equal by identity)
        """
        self._check_reentry()
        with self._lock:
            if self._value is not expected:
                return False
            if new is not expected:
                self._value = new
                self._version += 1
            return True

    def reset(self, cascade: Cascade) -> Cascade:
        """Publish a cascade unconditionally (initialization)."""
        self._check_reentry()
        with self._lock:
            self._value = cascade
            self._version += 1
            self._record(TriggerEntry(
                trigger_type=TriggerType.RESET,
                version=self._version,
                source="CascadeRef.reset",
            ))
        logger.info(f"Cascade reset: {len(cascade)} nodes, version {self._version}")
        return cascade

    def _update(
        self,
        fn: Callable[..., Cascade],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
        source: str,
    ) -> Tuple[Cascade, Cascade, int, int]:
        """Read-compute-publish loop. Returns (old, new, attempts, version)."""
        self._check_reentry()
        attempts = 0

        while True:
            attempts += 1
            with self._lock:
                current = self._value

            self._local.computing = True
            try:
                new = fn(current, *args, **kwargs)
            finally:
                self._local.computing = False

            with self._lock:
                if self._value is current:
                    if new is not current:
                        self._value = new
                        self._version += 1
                    return current, new, attempts, self._version

                self._record(TriggerEntry(
                    trigger_type=TriggerType.SWAP_CONFLICT,
                    version=self._version,
                    source=source,
                    metadata={"attempt": attempts},
                ))

            logger.warning(f"{source}: cascade changed concurrently (attempt {attempts})")
            if attempts >= self._max_retries:
                raise StaleCascadeError(attempts)

    def swap(self, fn: Callable[..., Cascade], *args: Any, **kwargs: Any) -> Cascade:
        """
        Publish fn(current, *args, **kwargs), retrying on conflict.

        fn may be called more than once and must not touch this reference.

        Raises:
            StaleCascadeError: still conflicting after max_retries attempts.
            ReentrantUpdateError: called from inside another update's fn.
        """
        _, new, _, _ = self._update(fn, args, kwargs, "CascadeRef.swap")
        return new

    # ==================== Cascade operations ====================

    def dirty(self, *node_ids: "NodeId") -> Cascade:
        """Mark nodes and their dependants dirty in the published cascade."""
        old, new, _, version = self._update(
            lambda c: c.dirty(*node_ids), (), {}, "CascadeRef.dirty"
        )
        if new is not old:
            dirtied = new.dirty_nodes() - old.dirty_nodes()
            with self._lock:
                self._record(TriggerEntry(
                    trigger_type=TriggerType.DIRTY,
                    nodes=list(dirtied),
                    version=version,
                    source="CascadeRef.dirty",
                    metadata={"requested": [str(n) for n in node_ids]},
                ))
            logger.debug(f"Published dirty of {len(dirtied)} nodes at version {version}")
        return new

    def set_all(self, state: bool) -> Cascade:
        """Set every node of the published cascade to one state."""
        _, new, _, version = self._update(
            lambda c: c.set_all(state), (), {}, "CascadeRef.set_all"
        )
        with self._lock:
            self._record(TriggerEntry(
                trigger_type=TriggerType.SET_ALL,
                nodes=list(new),
                version=version,
                source="CascadeRef.set_all",
                metadata={"state": state},
            ))
        return new

    def clean(self, node_id: "NodeId") -> CleanResult:
        """
        Clean a node of the published cascade and publish the result.

        If a cleaner raises, nothing is published and the exception
        propagates; the previous cascade stays current.
        """
        started_at = _utcnow()
        last_plan = [CleanPlan()]

        def attempt(current: Cascade) -> Cascade:
            plan = to_clean(current, node_id)
            last_plan[0] = plan
            try:
                return run_plan(current, plan, node_id)
            except Exception as e:
                with self._lock:
                    self._record(TriggerEntry(
                        trigger_type=TriggerType.CLEANER_FAILED,
                        nodes=list(plan.nodes),
                        target=node_id,
                        version=self._version,
                        source="CascadeRef.clean",
                        error=str(e),
                    ))
                raise

        _, new, attempts, version = self._update(attempt, (), {}, "CascadeRef.clean")
        plan = last_plan[0]

        completed_at = _utcnow()
        result = CleanResult(
            cascade=new,
            node_id=node_id,
            started_at=started_at,
            completed_at=completed_at,
            cleaned_nodes=plan.nodes,
            actions_run=len(plan.actions),
            attempts=attempts,
            version=version,
            total_time_ms=int((completed_at - started_at).total_seconds() * 1000),
        )

        if not plan.is_empty:
            with self._lock:
                self._record(TriggerEntry(
                    trigger_type=TriggerType.CLEAN,
                    nodes=list(plan.nodes),
                    target=node_id,
                    version=version,
                    source="CascadeRef.clean",
                    metadata={"actions_run": result.actions_run, "attempts": attempts},
                ))
            logger.debug(
                f"Published clean of {node_id!r}: {len(plan.nodes)} nodes, "
                f"{result.actions_run} cleaners, version {version}"
            )

        return result

    def __repr__(self) -> str:
        return f"CascadeRef(version={self._version}, nodes={len(self._value)})"
