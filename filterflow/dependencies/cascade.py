"""
filterflow Cascade Executor

Recomputes stale nodes in dependency order after a batch of source changes.

One call to ``run_pass`` is one propagation pass:

1. The affected set is the breadth-first closure of the changed sources.
2. The affected subgraph is ordered with Kahn's algorithm.
3. Derived nodes are recomputed in that order, each exactly once.
4. Effects run afterwards, also in order.

A failing compute or run never escapes the pass. It is recorded as a
ComputeError, the failing node keeps its last good value and stays stale,
and everything downstream of it in this pass is skipped. Nodes that do not
depend on the failure still complete.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, TYPE_CHECKING
import logging
import time
import traceback
import uuid

from .graph import DependencyGraphError, NodeKind
from .invalidation import InvalidationReason

if TYPE_CHECKING:
    from .graph import DependencyGraph
    from .invalidation import InvalidationEngine
    from .trigger_log import TriggerLog

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class ComputeError(DependencyGraphError):
    """A compute or run function raised during a pass."""

    def __init__(self, node_key: str, cause: BaseException):
        self.node_key = node_key
        self.cause = cause
        super().__init__(f"{node_key}: {type(cause).__name__}: {cause}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_key": self.node_key,
            "error_type": type(self.cause).__name__,
            "error": str(self.cause),
        }


# =============================================================================
# NODE RESULT
# =============================================================================

class NodeOutcome(Enum):
    """What happened to a node during a pass."""
    RECOMPUTED = "recomputed"   # Derived node stored a new value
    RAN = "ran"                 # Effect node ran
    FAILED = "failed"           # compute/run raised
    SKIPPED = "skipped"         # Not evaluated this pass


@dataclass
class NodeResult:
    """Result of evaluating a single node."""
    key: str
    kind: NodeKind
    outcome: NodeOutcome
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    value_changed: bool = False

    execution_time_ms: float = 0.0
    skip_reason: Optional[str] = None
    error: Optional[ComputeError] = None
    error_traceback: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (NodeOutcome.RECOMPUTED, NodeOutcome.RAN)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "outcome": self.outcome.value,
            "started_at": self.started_at.isoformat(),
            "value_changed": self.value_changed,
            "execution_time_ms": self.execution_time_ms,
            "skip_reason": self.skip_reason,
            "error": self.error.to_dict() if self.error else None,
        }


# =============================================================================
# PASS RESULT
# =============================================================================

@dataclass
class PassResult:
    """Result of one propagation pass."""
    pass_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    pass_number: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    changed_sources: List[str] = field(default_factory=list)
    affected: List[str] = field(default_factory=list)

    # Evaluation order actually followed (skipped nodes included)
    order: List[str] = field(default_factory=list)
    results: Dict[str, NodeResult] = field(default_factory=dict)
    errors: List[ComputeError] = field(default_factory=list)

    total_time_ms: float = 0.0
    triggered_by: str = "system"

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def recomputed_keys(self) -> List[str]:
        """Keys evaluated successfully, in evaluation order."""
        return [k for k in self.order if self.results[k].success]

    @property
    def skipped_keys(self) -> List[str]:
        return [k for k in self.order if self.results[k].outcome is NodeOutcome.SKIPPED]

    @property
    def failed_keys(self) -> List[str]:
        return [e.node_key for e in self.errors]

    def count(self, outcome: NodeOutcome) -> int:
        return sum(1 for r in self.results.values() if r.outcome is outcome)

    def get_summary(self) -> Dict[str, Any]:
        return {
            "pass_id": self.pass_id,
            "pass_number": self.pass_number,
            "success": self.success,
            "changed_sources": self.changed_sources,
            "recomputed": self.count(NodeOutcome.RECOMPUTED),
            "effects_run": self.count(NodeOutcome.RAN),
            "failed": self.count(NodeOutcome.FAILED),
            "skipped": self.count(NodeOutcome.SKIPPED),
            "total_time_ms": self.total_time_ms,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.get_summary(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "affected": self.affected,
            "order": self.order,
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "errors": [e.to_dict() for e in self.errors],
            "triggered_by": self.triggered_by,
        }


def values_equal(old: Any, new: Any) -> bool:
    """Structural equality that tolerates values without a boolean ``==``."""
    if old is new:
        return True
    try:
        return bool(old == new)
    except (TypeError, ValueError):
        # e.g. pandas objects raise on truthiness of elementwise comparison
        return False


# =============================================================================
# CASCADE EXECUTOR
# =============================================================================

class CascadeExecutor:
    """
    Executes node recomputation in dependency order.

    Evaluation is sequential: compute and run functions are never called
    concurrently, and one pass always finishes before the next starts.
    """

    def __init__(
        self,
        dependency_graph: "DependencyGraph",
        invalidation_engine: "InvalidationEngine",
        skip_unchanged: bool = False,
        trigger_log: Optional["TriggerLog"] = None,
    ):
        self._graph = dependency_graph
        self._invalidation = invalidation_engine
        self._skip_unchanged = skip_unchanged
        self._trigger_log = trigger_log
        self._progress_callbacks: List[Callable[[str, NodeResult], None]] = []

    @property
    def skip_unchanged(self) -> bool:
        return self._skip_unchanged

    def run_pass(
        self,
        changed_sources: Iterable[str],
        pass_number: int = 0,
        triggered_by: str = "system",
        pass_id: Optional[str] = None,
    ) -> PassResult:
        """
        Propagate a batch of already-applied source changes.

        Args:
            changed_sources: Source keys whose values changed
            pass_number: Sequence number assigned by the scheduler
            triggered_by: Who triggered this pass
            pass_id: Identifier to use instead of a generated one

        Returns:
            PassResult; compute failures are reported in ``errors``
        """
        changed_sources = list(changed_sources)
        result = PassResult(
            pass_number=pass_number,
            changed_sources=changed_sources,
            triggered_by=triggered_by,
        )
        if pass_id is not None:
            result.pass_id = pass_id
        start = time.perf_counter()

        # Nodes that were already stale before this pass must be recomputed
        # even when their inputs look unchanged.
        previously_stale = self._invalidation.get_stale_keys()
        event = self._invalidation.invalidate_sources(changed_sources)
        result.affected = list(event.invalidated_keys)

        self._evaluate(
            result,
            affected=set(result.affected),
            changed=set(changed_sources),
            force=previously_stale,
        )
        return self._finish(result, start)

    def prime(self, triggered_by: str = "session") -> PassResult:
        """Evaluate every derived and effect node once, in full topological order."""
        result = PassResult(triggered_by=triggered_by)
        start = time.perf_counter()

        event = self._invalidation.invalidate_all(InvalidationReason.SESSION_PRIMED)
        result.affected = list(event.invalidated_keys)

        self._evaluate(
            result,
            affected=set(result.affected),
            changed=set(),
            force=set(result.affected),
        )
        return self._finish(result, start)

    def _evaluate(
        self,
        result: PassResult,
        affected: Set[str],
        changed: Set[str],
        force: Set[str],
    ) -> None:
        """Evaluate the affected subgraph: derived nodes first, then effects."""
        ordered = self._graph.topological_order(affected)
        derived = [k for k in ordered if self._graph.get_node(k).kind is NodeKind.DERIVED]
        effects = [k for k in ordered if self._graph.get_node(k).kind is NodeKind.EFFECT]

        # key -> failed ancestor that blocks it
        blocked: Dict[str, str] = {}

        for key in derived + effects:
            node = self._graph.get_node(key)
            result.order.append(key)

            failed_upstream = [u for u in node.upstream if u in blocked]
            if failed_upstream:
                blocked[key] = blocked[failed_upstream[0]]
                node_result = NodeResult(
                    key=key,
                    kind=node.kind,
                    outcome=NodeOutcome.SKIPPED,
                    old_value=node.value,
                    skip_reason=f"upstream {blocked[key]} failed",
                )
            elif (
                self._skip_unchanged
                and key not in force
                and not any(u in changed for u in node.upstream)
            ):
                self._invalidation.mark_valid(key)
                node_result = NodeResult(
                    key=key,
                    kind=node.kind,
                    outcome=NodeOutcome.SKIPPED,
                    old_value=node.value,
                    new_value=node.value,
                    skip_reason="upstream unchanged",
                )
            else:
                node_result = self._execute_single(key, result.pass_id)
                if node_result.outcome is NodeOutcome.FAILED:
                    blocked[key] = key
                    result.errors.append(node_result.error)
                elif node_result.value_changed:
                    changed.add(key)

            result.results[key] = node_result
            self._notify_progress(key, node_result)

    def _execute_single(self, key: str, pass_id: str) -> NodeResult:
        """Evaluate one node with the current values of its upstream keys."""
        node = self._graph.get_node(key)
        node_result = NodeResult(
            key=key,
            kind=node.kind,
            outcome=NodeOutcome.FAILED,
            old_value=node.value,
        )
        had_value = node.has_value

        try:
            start = time.perf_counter()
            output = node.func(*self._graph.upstream_values(key))
            node_result.execution_time_ms = (time.perf_counter() - start) * 1000
        except Exception as e:
            error = ComputeError(key, e)
            node_result.error = error
            node_result.error_traceback = traceback.format_exc()
            # Last good value stays cached; the node is retried next time
            self._invalidation.invalidate_node(key, reason=InvalidationReason.COMPUTE_FAILED)
            logger.error(f"Compute error for {key}: {e}")
            if self._trigger_log is not None:
                self._trigger_log.log_failure(key, error, pass_id=pass_id)
            return node_result

        node.recompute_count += 1

        if node.kind is NodeKind.EFFECT:
            node_result.outcome = NodeOutcome.RAN
            node.dirty = False
            if self._trigger_log is not None:
                self._trigger_log.log_effect(key, pass_id=pass_id)
            return node_result

        node_result.outcome = NodeOutcome.RECOMPUTED
        node_result.new_value = output
        node_result.value_changed = not had_value or not values_equal(node.value, output)
        node.store(output)

        if self._trigger_log is not None:
            self._trigger_log.log_recompute(
                key, node_result.old_value, output, pass_id=pass_id
            )

        logger.debug(
            f"Recomputed {key} in {node_result.execution_time_ms:.2f}ms "
            f"(changed={node_result.value_changed})"
        )
        return node_result

    def _finish(self, result: PassResult, start: float) -> PassResult:
        result.completed_at = datetime.now(timezone.utc)
        result.total_time_ms = (time.perf_counter() - start) * 1000

        log = logger.warning if result.errors else logger.info
        log(
            f"Pass {result.pass_id} complete: "
            f"{result.count(NodeOutcome.RECOMPUTED)} recomputed, "
            f"{result.count(NodeOutcome.RAN)} effects, "
            f"{result.count(NodeOutcome.FAILED)} failed, "
            f"{result.count(NodeOutcome.SKIPPED)} skipped "
            f"in {result.total_time_ms:.1f}ms"
        )
        return result

    def _notify_progress(self, key: str, node_result: NodeResult) -> None:
        for callback in self._progress_callbacks:
            try:
                callback(key, node_result)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")

    def on_progress(self, callback: Callable[[str, NodeResult], None]) -> None:
        """Register a per-node progress callback."""
        self._progress_callbacks.append(callback)
