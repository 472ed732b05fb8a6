"""
filterflow - Reactive cascading filters

A small reactive computation graph (sources, derived values, effects) with
an explicit scheduler, and the region -> locality -> records dropdown chain
built on top of it.

Quick start::

    from filterflow import create_session
    from filterflow.selection import RecordCollection, RecordingSurface, build_cascading_filter

    session = create_session()
    records = RecordCollection([...])
    cascading = build_cascading_filter(session, records, RecordingSurface())
    cascading.select_region("CA")
"""

from .dependencies import (
    DependencyGraph,
    NodeKind,
    DependencyGraphError,
    DuplicateKeyError,
    UnknownUpstreamError,
    CycleError,
    ComputeError,
    PassResult,
)
from .session import (
    Session,
    SessionStatus,
    SessionClosedError,
    create_session,
    teardown_session,
)

__version__ = "0.1.0"

__all__ = [
    "DependencyGraph",
    "NodeKind",
    "DependencyGraphError",
    "DuplicateKeyError",
    "UnknownUpstreamError",
    "CycleError",
    "ComputeError",
    "PassResult",
    "Session",
    "SessionStatus",
    "SessionClosedError",
    "create_session",
    "teardown_session",
    "__version__",
]
