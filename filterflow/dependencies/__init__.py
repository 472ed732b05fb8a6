"""
filterflow Dependency & Propagation Engine

Provides:
- DependencyGraph: DAG of source, derived and effect nodes
- InvalidationEngine: Stale marking on source changes
- CascadeExecutor: Ordered recomputation with failure isolation
- PropagationScheduler: FIFO of source changes, one pass per batch
- TriggerLog: Audit trail for reactive activity
"""

from .graph import (
    DependencyGraph,
    ReactiveNode,
    NodeKind,
    DependencyGraphError,
    DuplicateKeyError,
    UnknownUpstreamError,
    EffectUpstreamError,
    CycleError,
    UnknownNodeError,
    NotASourceError,
)
from .invalidation import (
    InvalidationEngine,
    InvalidationEvent,
    InvalidationReason,
)
from .cascade import (
    CascadeExecutor,
    ComputeError,
    NodeOutcome,
    NodeResult,
    PassResult,
    values_equal,
)
from .scheduler import (
    PropagationScheduler,
    SourceChange,
)
from .trigger_log import (
    TriggerLog,
    TriggerEntry,
    TriggerType,
)

__all__ = [
    # Graph
    "DependencyGraph",
    "ReactiveNode",
    "NodeKind",
    "DependencyGraphError",
    "DuplicateKeyError",
    "UnknownUpstreamError",
    "EffectUpstreamError",
    "CycleError",
    "UnknownNodeError",
    "NotASourceError",
    # Invalidation
    "InvalidationEngine",
    "InvalidationEvent",
    "InvalidationReason",
    # Cascade
    "CascadeExecutor",
    "ComputeError",
    "NodeOutcome",
    "NodeResult",
    "PassResult",
    "values_equal",
    # Scheduler
    "PropagationScheduler",
    "SourceChange",
    # Trigger Log
    "TriggerLog",
    "TriggerEntry",
    "TriggerType",
]
