"""
filterflow Propagation Scheduler

Serializes source changes into propagation passes.

External input events are queued in FIFO order. Changes to the same source
made before the queue is drained coalesce into one pending entry (the latest
value wins, the original queue position is kept). Each drain of the queue
becomes one pass.

A change queued from inside an effect while a pass is running is never
applied to the running pass; it waits in the queue and becomes the next pass.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING
import logging
import uuid

from .cascade import values_equal
from .graph import NotASourceError, UnknownNodeError
from .trigger_log import TriggerType

if TYPE_CHECKING:
    from .cascade import CascadeExecutor, PassResult
    from .graph import DependencyGraph
    from .trigger_log import TriggerLog

logger = logging.getLogger(__name__)


# =============================================================================
# SOURCE CHANGE
# =============================================================================

@dataclass
class SourceChange:
    """A pending assignment to a source node."""
    key: str
    value: Any
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    triggered_by: str = "external"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value if isinstance(self.value, (str, int, float, bool)) else str(self.value),
            "queued_at": self.queued_at.isoformat(),
            "triggered_by": self.triggered_by,
        }


# =============================================================================
# PROPAGATION SCHEDULER
# =============================================================================

class PropagationScheduler:
    """
    Drains pending source changes one coalesced batch per pass.

    Single threaded and cooperative: a pass always runs to completion before
    the next batch is taken from the queue.
    """

    DEFAULT_MAX_PASSES = 100

    def __init__(
        self,
        dependency_graph: "DependencyGraph",
        executor: "CascadeExecutor",
        trigger_log: Optional["TriggerLog"] = None,
        max_passes: int = DEFAULT_MAX_PASSES,
    ):
        self._graph = dependency_graph
        self._executor = executor
        self._trigger_log = trigger_log
        self._max_passes = max_passes

        # Insertion-ordered: re-queuing a key keeps its position
        self._pending: Dict[str, SourceChange] = {}
        self._running = False
        self._pass_count = 0
        self._callbacks: List[Callable[["PassResult"], None]] = []

    def queue_change(self, key: str, value: Any, triggered_by: str = "external") -> bool:
        """
        Queue a source change without propagating it.

        Returns True if the change opened a new queue entry, False if it was
        coalesced into an entry already pending for the same key.

        Raises:
            UnknownNodeError: key is not registered
            NotASourceError: key is a derived or effect node
        """
        node = self._graph.get_node(key)
        if node is None:
            raise UnknownNodeError(key)
        if not node.is_source:
            raise NotASourceError(key, node.kind)

        if key in self._pending:
            pending = self._pending[key]
            pending.value = value
            pending.triggered_by = triggered_by
            logger.debug(f"Coalesced pending change to {key}")
            return False

        self._pending[key] = SourceChange(key=key, value=value, triggered_by=triggered_by)
        logger.debug(f"Queued change to {key} (triggered by {triggered_by})")
        return True

    def set(self, key: str, value: Any, triggered_by: str = "external") -> List["PassResult"]:
        """
        Queue a source change and propagate it.

        Called from inside a running pass (an effect), the change is only
        queued; the outer flush processes it as the next pass.
        """
        self.queue_change(key, value, triggered_by=triggered_by)
        return self.flush()

    def set_many(self, changes: Mapping[str, Any], triggered_by: str = "external") -> List["PassResult"]:
        """Queue several changes as one batch and propagate them together."""
        for key, value in changes.items():
            self.queue_change(key, value, triggered_by=triggered_by)
        return self.flush()

    def prime(self) -> List["PassResult"]:
        """
        Evaluate the whole graph once, then drain anything its effects queued.

        The initial evaluation counts as a pass, so effects that set sources
        while it runs are deferred exactly like in any other pass.
        """
        if self._running:
            raise RuntimeError("Cannot prime while a pass is running")

        self._running = True
        try:
            self._pass_count += 1
            result = self._executor.prime()
            result.pass_number = self._pass_count
            self._notify(result)
            results = [result]
        finally:
            self._running = False

        results.extend(self.flush())
        return results

    def flush(self) -> List["PassResult"]:
        """
        Run passes until the queue is empty.

        Returns:
            One PassResult per pass, in execution order. Empty when called
            re-entrantly or when every pending change was a no-op.
        """
        if self._running:
            return []

        results: List["PassResult"] = []
        self._running = True
        try:
            while self._pending:
                if len(results) >= self._max_passes:
                    logger.error(
                        f"Stopped after {self._max_passes} passes with "
                        f"{len(self._pending)} changes still queued"
                    )
                    break

                batch = list(self._pending.values())
                self._pending.clear()

                result = self._run_batch(batch)
                if result is not None:
                    results.append(result)
        finally:
            self._running = False

        return results

    def _run_batch(self, batch: List[SourceChange]) -> Optional["PassResult"]:
        """Apply one batch to the source nodes and propagate it."""
        pass_id = str(uuid.uuid4())[:8]
        changed: List[str] = []

        for change in batch:
            node = self._graph.get_node(change.key)
            if (
                node.has_value
                and values_equal(node.value, change.value)
                and not self._has_stale_downstream(change.key)
            ):
                logger.debug(f"Dropped no-op change to {change.key}")
                continue

            old_value = node.value
            node.store(change.value)
            changed.append(change.key)

            if self._trigger_log is not None:
                self._trigger_log.log_source_set(
                    change.key, old_value, change.value,
                    source=change.triggered_by, pass_id=pass_id,
                )

        if not changed:
            return None

        self._pass_count += 1
        triggered_by = batch[0].triggered_by

        if self._trigger_log is not None:
            self._trigger_log.log_pass(
                pass_id, TriggerType.PASS_START,
                pass_number=self._pass_count, changed_sources=changed,
            )

        result = self._executor.run_pass(
            changed,
            pass_number=self._pass_count,
            triggered_by=triggered_by,
            pass_id=pass_id,
        )

        if self._trigger_log is not None:
            self._trigger_log.log_pass(
                pass_id, TriggerType.INVALIDATION, affected=result.affected,
            )
            summary = result.get_summary()
            summary.pop("pass_id")
            self._trigger_log.log_pass(pass_id, TriggerType.PASS_COMPLETE, **summary)

        self._notify(result)
        return result

    def _has_stale_downstream(self, key: str) -> bool:
        """True if re-applying ``key`` would retry a node left stale by a failure."""
        return any(
            self._graph.get_node(k).dirty
            for k in self._graph.get_all_downstream(key)
        )

    def _notify(self, result: "PassResult") -> None:
        for callback in self._callbacks:
            try:
                callback(result)
            except Exception as e:
                logger.error(f"Pass callback error: {e}")

    def pending_changes(self) -> List[SourceChange]:
        """Pending changes in queue order (without removing them)."""
        return list(self._pending.values())

    def clear_queue(self) -> int:
        """Drop all pending changes. Returns count cleared."""
        count = len(self._pending)
        self._pending.clear()
        return count

    def add_callback(self, callback: Callable[["PassResult"], None]) -> None:
        """Add a callback invoked with each completed PassResult."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[["PassResult"], None]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def is_running(self) -> bool:
        """True while a flush is in progress."""
        return self._running

    @property
    def pass_count(self) -> int:
        """Total passes run by this scheduler."""
        return self._pass_count

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "pending_count": len(self._pending),
            "pending_keys": list(self._pending),
            "pass_count": self._pass_count,
            "is_running": self._running,
            "max_passes": self._max_passes,
        }
