"""
statecascade - State dirtiness cascades

Tracks which pieces of program state are stale across a DAG of named
nodes, and brings them up to date by calling each node's cleaner in
dependency order.

Provides:
- Cascade: immutable graph snapshot (construction, queries, set_all)
- dirty: forward dirty propagation
- to_clean / clean: dependency-ordered clean resolution
- CascadeRef: compare-and-swap reference holding the current cascade
- TriggerLog: audit trail of published transitions
- build_from_definitions: declarative construction
"""

from .errors import (
    CascadeError,
    DuplicateNodeError,
    UnknownDependencyError,
    AmbiguousInitialStateError,
    MalformedConstructionArgumentsError,
    UnknownNodeError,
    NoSuchNodeError,
    StaleCascadeError,
    ReentrantUpdateError,
)
from .graph import (
    Cascade,
    NodeRecord,
    create,
    from_triples,
)
from .propagation import dirty
from .resolution import (
    CleanPlan,
    to_clean,
    clean,
    run_plan,
)
from .reference import (
    CascadeRef,
    CleanResult,
)
from .trigger_log import (
    TriggerLog,
    TriggerEntry,
    TriggerType,
)
from .definitions import (
    NodeDefinition,
    CascadeDefinition,
    build_from_definitions,
    load_definitions,
)
from .config import (
    CascadeConfig,
    LoggingConfig,
    ReferenceConfig,
    get_config,
    load_config,
    setup_logging,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "CascadeError",
    "DuplicateNodeError",
    "UnknownDependencyError",
    "AmbiguousInitialStateError",
    "MalformedConstructionArgumentsError",
    "UnknownNodeError",
    "NoSuchNodeError",
    "StaleCascadeError",
    "ReentrantUpdateError",
    # Graph
    "Cascade",
    "NodeRecord",
    "create",
    "from_triples",
    # Propagation
    "dirty",
    # Resolution
    "CleanPlan",
    "to_clean",
    "clean",
    "run_plan",
    # Reference
    "CascadeRef",
    "CleanResult",
    # Trigger Log
    "TriggerLog",
    "TriggerEntry",
    "TriggerType",
    # Definitions
    "NodeDefinition",
    "CascadeDefinition",
    "build_from_definitions",
    "load_definitions",
    # Config
    "CascadeConfig",
    "LoggingConfig",
    "ReferenceConfig",
    "get_config",
    "load_config",
    "setup_logging",
]
