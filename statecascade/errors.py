"""
statecascade/errors.py - Cascade exceptions

Raised synchronously by construction, dirtying, cleaning and by the
reference cell. The cascade passed in is never modified when one of
these is raised.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Tuple


class CascadeError(Exception):
    """Base exception for cascade operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# =============================================================================
# CONSTRUCTION
# =============================================================================

class DuplicateNodeError(CascadeError, ValueError):
    """Raised when adding a node whose identifier already exists."""

    def __init__(self, node_id: Any):
        super().__init__(f"Node already exists in cascade: {node_id!r}")
        self.node_id = node_id


class UnknownDependencyError(CascadeError, ValueError):
    """Raised when a new node names dependencies not yet in the cascade."""

    def __init__(self, node_id: Any, missing: Iterable[Any]):
        self.node_id = node_id
        self.missing: Tuple[Any, ...] = tuple(missing)
        names = ", ".join(repr(m) for m in self.missing)
        super().__init__(
            f"Dependency does not exist in cascade: {names} (adding {node_id!r})"
        )


class AmbiguousInitialStateError(CascadeError, ValueError):
    """Raised when a node has neither dependencies nor an explicit state."""

    def __init__(self, node_id: Any):
        super().__init__(
            f"Must provide initial state or non-empty dependencies for {node_id!r}"
        )
        self.node_id = node_id


class MalformedConstructionArgumentsError(CascadeError, ValueError):
    """Raised when construction arguments cannot be read as node triples."""

    def __init__(self, message: Optional[str] = None, count: Optional[int] = None):
        if message is None:
            message = (
                f"Must provide (node, cleaner, dependencies-or-state) triplets, "
                f"got {count} arguments"
            )
        super().__init__(message)
        self.count = count


# =============================================================================
# LOOKUP
# =============================================================================

class UnknownNodeError(CascadeError, LookupError):
    """Raised by dirty() naming every requested identifier that is absent."""

    def __init__(self, node_ids: Iterable[Any]):
        self.node_ids: Tuple[Any, ...] = tuple(node_ids)
        names = ", ".join(repr(n) for n in self.node_ids)
        super().__init__(f"Nodes do not exist in cascade: {names}")


class NoSuchNodeError(CascadeError, LookupError):
    """Raised when a single target identifier is absent."""

    def __init__(self, node_id: Any):
        super().__init__(f"Cascade does not contain node {node_id!r}")
        self.node_id = node_id


# =============================================================================
# PUBLICATION
# =============================================================================

class StaleCascadeError(CascadeError):
    """
    Raised when a reference update keeps losing compare-and-swap races.

    The published cascade changed between read and publish on every
    attempt; the caller may retry later.
    """

    def __init__(self, attempts: int):
        super().__init__(
            f"Cascade changed concurrently; gave up after {attempts} attempts"
        )
        self.attempts = attempts


class ReentrantUpdateError(CascadeError):
    """
    Raised when a cleaner tries to update the reference it was run from.

    Wanting to do this means the cascade is missing a node.
    """

    def __init__(self, message: str = "Cleaners must not modify the cascade they were called from"):
        super().__init__(message)
