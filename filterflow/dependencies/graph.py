"""
filterflow Dependency Graph

Defines the directed acyclic graph of reactive nodes.

Three node kinds live in the graph:
- SOURCE: externally set values with no upstream
- DERIVED: values computed purely from upstream nodes
- EFFECT: terminal side-effecting consumers, never read by other nodes

Edges are validated at registration time, so a graph can never hold a cycle.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from collections import deque
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# NODE KINDS
# =============================================================================

class NodeKind(Enum):
    """Kind of reactive node."""
    SOURCE = "source"      # Set from outside the graph
    DERIVED = "derived"    # Pure function of upstream values
    EFFECT = "effect"      # Side effect, output not watched


ComputeFunc = Callable[..., Any]


# =============================================================================
# ERRORS
# =============================================================================

class DependencyGraphError(Exception):
    """Base exception for dependency graph errors."""
    pass


class DuplicateKeyError(DependencyGraphError):
    """Raised when a node key is registered twice."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Node already registered: {key}")


class UnknownUpstreamError(DependencyGraphError):
    """Raised when a node reads from a key that is not registered."""

    def __init__(self, key: str, upstream: str):
        self.key = key
        self.upstream = upstream
        super().__init__(f"Node {key} reads unknown upstream {upstream}")


class EffectUpstreamError(UnknownUpstreamError):
    """Raised when a node tries to read from an effect."""

    def __init__(self, key: str, upstream: str):
        super().__init__(key, upstream)
        self.args = (f"Node {key} cannot read effect {upstream}",)


class CycleError(DependencyGraphError):
    """Raised when a registration would close a dependency cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Cyclic dependency detected: {' -> '.join(cycle)}")


class UnknownNodeError(DependencyGraphError, KeyError):
    """Raised when a lookup names a key that is not in the graph."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Unknown node: {key}")

    def __str__(self) -> str:
        return str(self.args[0])


class NotASourceError(DependencyGraphError):
    """Raised when a value is pushed into a derived or effect node."""

    def __init__(self, key: str, kind: NodeKind):
        self.key = key
        self.kind = kind
        super().__init__(f"Node {key} is a {kind.value} node, not a source")


# =============================================================================
# REACTIVE NODE
# =============================================================================

@dataclass
class ReactiveNode:
    """A node in the reactive graph."""
    key: str
    kind: NodeKind

    # Cached value (sources and derived nodes only)
    value: Any = None
    has_value: bool = False

    # Derived: compute(*upstream_values) -> value
    # Effect:  run(*upstream_values), return discarded
    func: Optional[ComputeFunc] = None

    # Edges
    upstream: Tuple[str, ...] = ()
    dependents: Set[str] = field(default_factory=set)

    # Bookkeeping
    dirty: bool = False
    registration_order: int = 0
    recompute_count: int = 0
    last_computed: Optional[datetime] = None

    def __hash__(self):
        return hash(self.key)

    @property
    def is_source(self) -> bool:
        return self.kind is NodeKind.SOURCE

    @property
    def is_effect(self) -> bool:
        return self.kind is NodeKind.EFFECT

    def store(self, value: Any) -> None:
        """Store a freshly computed or assigned value and clear the dirty flag."""
        self.value = value
        self.has_value = True
        self.dirty = False
        self.last_computed = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "upstream": list(self.upstream),
            "dependents": sorted(self.dependents),
            "dirty": self.dirty,
            "has_value": self.has_value,
            "recompute_count": self.recompute_count,
            "last_computed": self.last_computed.isoformat() if self.last_computed else None,
        }


# =============================================================================
# DEPENDENCY GRAPH
# =============================================================================

class DependencyGraph:
    """
    Directed acyclic graph of reactive nodes.

    Nodes are created once and never change structurally; only their cached
    value and dirty flag mutate over the graph's lifetime.
    """

    def __init__(self):
        self._nodes: Dict[str, ReactiveNode] = {}
        self._counter: int = 0

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_source(self, key: str, initial_value: Any = None) -> ReactiveNode:
        """Create a source node holding ``initial_value``."""
        if key in self._nodes:
            raise DuplicateKeyError(key)

        node = ReactiveNode(key=key, kind=NodeKind.SOURCE)
        node.store(initial_value)
        self._add(node)

        logger.debug(f"Registered source {key}")
        return node

    def register_derived(
        self,
        key: str,
        upstream_keys: Sequence[str],
        compute: ComputeFunc,
    ) -> ReactiveNode:
        """
        Create a derived node.

        Args:
            key: Unique node key
            upstream_keys: Keys whose values are passed to ``compute``, in order
            compute: Pure function of the upstream values

        Raises:
            DuplicateKeyError: key already registered
            UnknownUpstreamError: an upstream key is not registered
            CycleError: the new edges would close a cycle
        """
        return self._register(key, NodeKind.DERIVED, upstream_keys, compute)

    def register_effect(
        self,
        key: str,
        upstream_keys: Sequence[str],
        run: ComputeFunc,
    ) -> ReactiveNode:
        """Create an effect node. Validation is the same as for derived nodes."""
        return self._register(key, NodeKind.EFFECT, upstream_keys, run)

    def _register(
        self,
        key: str,
        kind: NodeKind,
        upstream_keys: Sequence[str],
        func: ComputeFunc,
    ) -> ReactiveNode:
        if not callable(func):
            raise TypeError(f"{kind.value} node {key} needs a callable, got {type(func).__name__}")

        upstream = tuple(upstream_keys)
        self._validate_edges(key, upstream)

        node = ReactiveNode(
            key=key,
            kind=kind,
            func=func,
            upstream=upstream,
            dirty=True,
        )
        self._add(node)

        # Only wire reverse edges once every check has passed
        for dep in upstream:
            self._nodes[dep].dependents.add(key)

        logger.debug(f"Registered {kind.value} {key} <- {list(upstream)}")
        return node

    def _validate_edges(self, key: str, upstream: Tuple[str, ...]) -> None:
        """Check a prospective node's edges without touching the graph."""
        if key in upstream:
            raise CycleError([key, key])

        if key in self._nodes:
            raise DuplicateKeyError(key)

        for dep in upstream:
            dep_node = self._nodes.get(dep)
            if dep_node is None:
                raise UnknownUpstreamError(key, dep)
            if dep_node.is_effect:
                raise EffectUpstreamError(key, dep)

        # A new key has no dependents yet, so any path back to it would have
        # to run through an upstream that already reads it.
        for dep in upstream:
            path = self._find_path(dep, key)
            if path:
                raise CycleError(path + [dep])

    def _find_path(self, start: str, target: str) -> Optional[List[str]]:
        """Return a dependents-path from ``start`` to ``target`` if one exists."""
        parents: Dict[str, Optional[str]] = {start: None}
        queue = deque([start])

        while queue:
            current = queue.popleft()
            if current == target:
                path = []
                step: Optional[str] = current
                while step is not None:
                    path.append(step)
                    step = parents[step]
                return list(reversed(path))

            node = self._nodes.get(current)
            if node is None:
                continue
            for dependent in sorted(node.dependents):
                if dependent not in parents:
                    parents[dependent] = current
                    queue.append(dependent)

        return None

    def _add(self, node: ReactiveNode) -> None:
        node.registration_order = self._counter
        self._counter += 1
        self._nodes[node.key] = node

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def dependents_of(self, key: str) -> Set[str]:
        """Keys that list ``key`` among their upstream keys (one hop)."""
        return self._require(key).dependents.copy()

    def upstream_of(self, key: str) -> Tuple[str, ...]:
        """Upstream keys of ``key`` in registration order."""
        return self._require(key).upstream

    def get_all_downstream(self, key: str) -> Set[str]:
        """Get all downstream dependents (transitive closure)."""
        result = set()
        to_process = [key]

        while to_process:
            current = to_process.pop()
            for dependent in self._require(current).dependents:
                if dependent not in result:
                    result.add(dependent)
                    to_process.append(dependent)

        return result

    def get_all_upstream(self, key: str) -> Set[str]:
        """Get all upstream dependencies (transitive closure)."""
        result = set()
        to_process = [key]

        while to_process:
            current = to_process.pop()
            for dep in self._require(current).upstream:
                if dep not in result:
                    result.add(dep)
                    to_process.append(dep)

        return result

    def topological_order(self, keys: Optional[Iterable[str]] = None) -> List[str]:
        """
        Order keys so every node follows its upstream nodes (Kahn's algorithm).

        When ``keys`` is given, only edges inside that subset are considered.
        Ties are broken by registration order so the result is deterministic.
        """
        subset = set(self._nodes) if keys is None else set(keys)
        for key in subset:
            self._require(key)

        in_degree = {
            k: sum(1 for dep in self._nodes[k].upstream if dep in subset)
            for k in subset
        }
        ready = sorted(
            (k for k, d in in_degree.items() if d == 0),
            key=self._order_key,
        )
        queue = deque(ready)
        order: List[str] = []

        while queue:
            key = queue.popleft()
            order.append(key)

            released = []
            for dependent in self._nodes[key].dependents:
                if dependent not in subset:
                    continue
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    released.append(dependent)
            queue.extend(sorted(released, key=self._order_key))

        if len(order) != len(subset):
            # Unreachable while registration rejects cycles
            remaining = sorted(subset - set(order))
            raise CycleError(remaining)

        return order

    def _order_key(self, key: str) -> int:
        return self._nodes[key].registration_order

    def get_node(self, key: str) -> Optional[ReactiveNode]:
        """Get a node by key."""
        return self._nodes.get(key)

    def has_node(self, key: str) -> bool:
        """Check if a key is registered."""
        return key in self._nodes

    def get_value(self, key: str) -> Any:
        """Current cached value of a source or derived node."""
        node = self._require(key)
        if node.is_effect:
            raise TypeError(f"Effect node {key} has no value")
        return node.value

    def upstream_values(self, key: str) -> List[Any]:
        """Current values of a node's upstream keys, in declared order."""
        return [self._nodes[dep].value for dep in self._require(key).upstream]

    def keys(self, kind: Optional[NodeKind] = None) -> List[str]:
        """Registered keys in registration order, optionally filtered by kind."""
        nodes = sorted(self._nodes.values(), key=lambda n: n.registration_order)
        return [n.key for n in nodes if kind is None or n.kind is kind]

    def _require(self, key: str) -> ReactiveNode:
        node = self._nodes.get(key)
        if node is None:
            raise UnknownNodeError(key)
        return node

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def release(self) -> int:
        """
        Drop every cached value.

        Returns:
            Number of nodes whose value was released
        """
        released = 0
        for node in self._nodes.values():
            if node.has_value:
                released += 1
            node.value = None
            node.has_value = False
            node.dirty = not node.is_source

        logger.info(f"Released cached values for {released} nodes")
        return released

    def to_dict(self) -> Dict[str, Any]:
        """Serialize graph structure for diagnostics (values excluded)."""
        return {
            "nodes": {key: self._nodes[key].to_dict() for key in self.keys()},
            "edges": [
                {"source": dep, "target": key}
                for key in self.keys()
                for dep in self._nodes[key].upstream
            ],
        }
