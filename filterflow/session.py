"""
session.py - Reactive session lifecycle.

A session owns one dependency graph together with the engine that keeps it
up to date. Selection state lives in the session's source nodes rather than
in module globals, and everything cached is released on teardown.
"""

from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, TYPE_CHECKING
import logging
import uuid

from .bootstrap.config import FilterFlowConfig, get_config
from .dependencies.cascade import CascadeExecutor
from .dependencies.graph import ComputeFunc, DependencyGraph, DependencyGraphError, ReactiveNode
from .dependencies.invalidation import InvalidationEngine
from .dependencies.scheduler import PropagationScheduler
from .dependencies.trigger_log import TriggerLog

if TYPE_CHECKING:
    from .dependencies.cascade import PassResult

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Reactive session status."""
    ACTIVE = "active"
    TORN_DOWN = "torn_down"


class SessionClosedError(DependencyGraphError):
    """Raised when a torn-down session is used."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has been torn down")


class Session:
    """
    A reactive graph with its invalidation, cascade and scheduling engine.

    Args:
        config: Configuration; the process-wide config is used when omitted
    """

    def __init__(self, config: Optional[FilterFlowConfig] = None):
        self.config = config or get_config()
        self.session_id = str(uuid.uuid4())
        self.created_at = datetime.now(timezone.utc)
        self.status = SessionStatus.ACTIVE

        propagation = self.config.propagation
        self.graph = DependencyGraph()
        self.trigger_log = TriggerLog(max_entries=propagation.trigger_log_max_entries)
        self.invalidation = InvalidationEngine(
            self.graph, max_events=propagation.invalidation_history
        )
        self.executor = CascadeExecutor(
            self.graph,
            self.invalidation,
            skip_unchanged=propagation.skip_unchanged,
            trigger_log=self.trigger_log,
        )
        self.scheduler = PropagationScheduler(
            self.graph,
            self.executor,
            trigger_log=self.trigger_log,
            max_passes=propagation.max_passes_per_flush,
        )

    # -------------------------------------------------------------------------
    # Graph construction
    # -------------------------------------------------------------------------

    def register_source(self, key: str, initial_value: Any = None) -> ReactiveNode:
        self._check_open()
        return self.graph.register_source(key, initial_value)

    def register_derived(self, key: str, upstream_keys: Sequence[str], compute: ComputeFunc) -> ReactiveNode:
        self._check_open()
        return self.graph.register_derived(key, upstream_keys, compute)

    def register_effect(self, key: str, upstream_keys: Sequence[str], run: ComputeFunc) -> ReactiveNode:
        self._check_open()
        return self.graph.register_effect(key, upstream_keys, run)

    # -------------------------------------------------------------------------
    # Propagation
    # -------------------------------------------------------------------------

    def prime(self) -> List["PassResult"]:
        """Evaluate every node once (initial render)."""
        self._check_open()
        return self.scheduler.prime()

    def set(self, key: str, value: Any, triggered_by: str = "external") -> List["PassResult"]:
        """Set a source and propagate. Deferred when called from an effect."""
        self._check_open()
        return self.scheduler.set(key, value, triggered_by=triggered_by)

    def set_many(self, changes: Mapping[str, Any], triggered_by: str = "external") -> List["PassResult"]:
        self._check_open()
        return self.scheduler.set_many(changes, triggered_by=triggered_by)

    def queue_change(self, key: str, value: Any, triggered_by: str = "external") -> bool:
        self._check_open()
        return self.scheduler.queue_change(key, value, triggered_by=triggered_by)

    def flush(self) -> List["PassResult"]:
        self._check_open()
        return self.scheduler.flush()

    def get(self, key: str) -> Any:
        """Current value of a source or derived node."""
        self._check_open()
        return self.graph.get_value(key)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def teardown(self) -> None:
        """Release cached values and pending work. Safe to call twice."""
        if not self.is_active:
            return

        dropped = self.scheduler.clear_queue()
        released = self.graph.release()
        self.trigger_log.clear()
        self.invalidation.clear_events()
        self.status = SessionStatus.TORN_DOWN

        logger.info(
            f"Session {self.session_id[:8]} torn down: "
            f"{released} values released, {dropped} pending changes dropped"
        )

    def _check_open(self) -> None:
        if not self.is_active:
            raise SessionClosedError(self.session_id)

    def get_summary(self) -> Dict[str, Any]:
        """Get session summary."""
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "node_count": len(self.graph),
            "stale_nodes": sorted(self.invalidation.get_stale_keys()),
            "scheduler": self.scheduler.get_stats(),
            "trigger_log": self.trigger_log.get_stats(),
        }


def create_session(config: Optional[FilterFlowConfig] = None) -> Session:
    """Start a new reactive session."""
    session = Session(config)
    logger.info(f"Session {session.session_id[:8]} created")
    return session


def teardown_session(session: Session) -> None:
    """End a session and release everything it cached."""
    session.teardown()
