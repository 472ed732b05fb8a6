"""
filterflow Invalidation Engine

Marks nodes stale when their upstream values change.

The affected set of a change is found by breadth-first traversal over
``dependents_of`` starting from the changed sources. Every reached node gets
its dirty flag set; the cascade executor clears it again once the node has
been recomputed successfully.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, TYPE_CHECKING
from collections import deque
import logging
import uuid

if TYPE_CHECKING:
    from .graph import DependencyGraph

logger = logging.getLogger(__name__)


# =============================================================================
# INVALIDATION TYPES
# =============================================================================

class InvalidationReason(Enum):
    """Why invalidation occurred."""
    SOURCE_CHANGED = "source_changed"                  # A source value was set
    DEPENDENCY_INVALIDATED = "dependency_invalidated"  # Upstream was invalidated
    COMPUTE_FAILED = "compute_failed"                  # Recompute raised
    MANUAL_INVALIDATION = "manual_invalidation"        # Caller forced it
    SESSION_PRIMED = "session_primed"                  # Initial evaluation


# =============================================================================
# INVALIDATION EVENT
# =============================================================================

@dataclass
class InvalidationEvent:
    """Record of an invalidation occurrence."""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    trigger_keys: List[str] = field(default_factory=list)
    reason: InvalidationReason = InvalidationReason.SOURCE_CHANGED

    # Nodes marked stale, in discovery order (breadth first)
    invalidated_keys: List[str] = field(default_factory=list)

    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for persistence/logging."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "trigger_keys": self.trigger_keys,
            "reason": self.reason.value,
            "invalidated_keys": self.invalidated_keys,
            "metadata": self.metadata,
        }


# =============================================================================
# INVALIDATION ENGINE
# =============================================================================

class InvalidationEngine:
    """
    Handles cascade invalidation of reactive nodes.

    The dirty flag lives on each node; this engine decides which nodes get it
    and keeps a bounded history of why.
    """

    DEFAULT_MAX_EVENTS = 1000

    def __init__(self, dependency_graph: "DependencyGraph", max_events: int = DEFAULT_MAX_EVENTS):
        self._graph = dependency_graph
        self._events: List[InvalidationEvent] = []
        self._max_events = max_events
        self._on_invalidate_callbacks: List[Callable[[InvalidationEvent], None]] = []

    def affected_by(self, changed: Iterable[str]) -> List[str]:
        """
        Transitive dependents of the changed keys, breadth first.

        The changed keys themselves are not part of the result.
        """
        changed = list(changed)
        seen: Set[str] = set(changed)
        affected: List[str] = []
        queue = deque(changed)

        while queue:
            current = queue.popleft()
            for dependent in sorted(self._graph.dependents_of(current)):
                if dependent not in seen:
                    seen.add(dependent)
                    affected.append(dependent)
                    queue.append(dependent)

        return affected

    def invalidate_sources(
        self,
        keys: Iterable[str],
        reason: InvalidationReason = InvalidationReason.SOURCE_CHANGED,
    ) -> InvalidationEvent:
        """
        Mark every node downstream of the changed sources as stale.

        Returns:
            InvalidationEvent whose ``invalidated_keys`` is the affected set
        """
        keys = list(keys)
        event = InvalidationEvent(trigger_keys=keys, reason=reason)

        for key in self.affected_by(keys):
            self._graph.get_node(key).dirty = True
            event.invalidated_keys.append(key)

        self._record_event(event)
        self._notify_callbacks(event)

        logger.debug(
            f"Invalidated {len(event.invalidated_keys)} nodes due to "
            f"{', '.join(keys) or 'nothing'}"
        )
        return event

    def invalidate_node(
        self,
        key: str,
        reason: InvalidationReason = InvalidationReason.MANUAL_INVALIDATION,
        cascade: bool = False,
    ) -> InvalidationEvent:
        """Mark a single node stale, optionally together with its downstream."""
        node = self._graph.get_node(key)
        if node is None:
            from .graph import UnknownNodeError
            raise UnknownNodeError(key)

        event = InvalidationEvent(trigger_keys=[key], reason=reason)
        if not node.is_source:
            node.dirty = True
            event.invalidated_keys.append(key)

        if cascade:
            for downstream in self.affected_by([key]):
                self._graph.get_node(downstream).dirty = True
                event.invalidated_keys.append(downstream)

        self._record_event(event)
        self._notify_callbacks(event)
        return event

    def invalidate_all(
        self,
        reason: InvalidationReason = InvalidationReason.MANUAL_INVALIDATION,
    ) -> InvalidationEvent:
        """Mark every non-source node stale."""
        event = InvalidationEvent(reason=reason)
        for key in self._graph.keys():
            node = self._graph.get_node(key)
            if not node.is_source:
                node.dirty = True
                event.invalidated_keys.append(key)

        self._record_event(event)
        self._notify_callbacks(event)

        logger.info(f"Full invalidation: {len(event.invalidated_keys)} nodes")
        return event

    def mark_valid(self, key: str) -> None:
        """Clear a node's dirty flag after a successful recompute."""
        node = self._graph.get_node(key)
        if node is not None:
            node.dirty = False

    def is_stale(self, key: str) -> bool:
        """Check if a node is stale."""
        node = self._graph.get_node(key)
        return bool(node and node.dirty)

    def get_stale_keys(self) -> Set[str]:
        """Get all stale node keys."""
        return {k for k in self._graph.keys() if self._graph.get_node(k).dirty}

    def _record_event(self, event: InvalidationEvent) -> None:
        self._events.append(event)
        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

    def _notify_callbacks(self, event: InvalidationEvent) -> None:
        for callback in self._on_invalidate_callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Invalidation callback error: {e}")

    def on_invalidate(self, callback: Callable[[InvalidationEvent], None]) -> None:
        """Register a callback for invalidation events."""
        self._on_invalidate_callbacks.append(callback)

    def get_events(
        self,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[InvalidationEvent]:
        """Get invalidation events, optionally filtered."""
        events = self._events
        if since:
            events = [e for e in events if e.timestamp >= since]
        return events[-limit:]

    def clear_events(self) -> int:
        """Drop the event history. Returns count cleared."""
        count = len(self._events)
        self._events.clear()
        return count
