"""
Unit tests for dependencies/scheduler.py

Tests FIFO queuing, coalescing, re-entrant sets and the pass guard.
"""

import pytest
from unittest.mock import Mock

from filterflow.dependencies.cascade import CascadeExecutor
from filterflow.dependencies.graph import DependencyGraph, NotASourceError, UnknownNodeError
from filterflow.dependencies.invalidation import InvalidationEngine
from filterflow.dependencies.scheduler import PropagationScheduler, SourceChange
from filterflow.dependencies.trigger_log import TriggerLog, TriggerType


def make_scheduler(graph, max_passes=100, trigger_log=None):
    executor = CascadeExecutor(graph, InvalidationEngine(graph), trigger_log=trigger_log)
    return PropagationScheduler(graph, executor, trigger_log=trigger_log, max_passes=max_passes)


@pytest.fixture
def graph():
    graph = DependencyGraph()
    graph.register_source("x", 0)
    graph.register_source("y", 0)
    graph.register_derived("total", ["x", "y"], lambda x, y: x + y)
    return graph


class TestSourceChange:
    """Test SourceChange dataclass."""

    def test_to_dict(self):
        change = SourceChange(key="region", value="CA", triggered_by="user")
        data = change.to_dict()
        assert data["key"] == "region"
        assert data["value"] == "CA"
        assert data["triggered_by"] == "user"

    def test_non_scalar_value_stringified(self):
        data = SourceChange(key="k", value={"a": 1}).to_dict()
        assert data["value"] == "{'a': 1}"


class TestQueueChange:
    """Test queue_change."""

    def test_new_entry(self, graph):
        scheduler = make_scheduler(graph)
        assert scheduler.queue_change("x", 1) is True
        assert [c.key for c in scheduler.pending_changes()] == ["x"]

    def test_coalesce_keeps_position_latest_value_wins(self, graph):
        scheduler = make_scheduler(graph)
        scheduler.queue_change("x", 1)
        scheduler.queue_change("y", 2)
        assert scheduler.queue_change("x", 5) is False

        pending = scheduler.pending_changes()
        assert [c.key for c in pending] == ["x", "y"]
        assert pending[0].value == 5

    def test_unknown_key(self, graph):
        with pytest.raises(UnknownNodeError):
            make_scheduler(graph).queue_change("missing", 1)

    def test_not_a_source(self, graph):
        with pytest.raises(NotASourceError):
            make_scheduler(graph).queue_change("total", 1)

    def test_queue_does_not_propagate(self, graph):
        scheduler = make_scheduler(graph)
        scheduler.prime()
        scheduler.queue_change("x", 4)
        assert graph.get_value("x") == 0
        assert graph.get_value("total") == 0

    def test_clear_queue(self, graph):
        scheduler = make_scheduler(graph)
        scheduler.queue_change("x", 1)
        scheduler.queue_change("y", 1)
        assert scheduler.clear_queue() == 2
        assert scheduler.flush() == []


class TestFlush:
    """Test flush and set."""

    def test_set_runs_one_pass(self, graph):
        scheduler = make_scheduler(graph)
        scheduler.prime()
        results = scheduler.set("x", 3)
        assert len(results) == 1
        assert results[0].changed_sources == ["x"]
        assert graph.get_value("total") == 3

    def test_batch_is_one_pass(self, graph):
        scheduler = make_scheduler(graph)
        scheduler.prime()
        results = scheduler.set_many({"x": 1, "y": 2})
        assert len(results) == 1
        assert results[0].changed_sources == ["x", "y"]
        assert graph.get_value("total") == 3

    def test_no_op_change_dropped(self, graph):
        scheduler = make_scheduler(graph)
        scheduler.prime()
        before = scheduler.pass_count
        assert scheduler.set("x", 0) == []
        assert scheduler.pass_count == before

    def test_same_value_retries_after_failure(self):
        """Re-queuing the identical value re-runs nodes a failed pass left stale."""
        graph = DependencyGraph()
        graph.register_source("a", 1)
        backend = {"up": True}

        def scaled(a):
            if not backend["up"]:
                raise ConnectionError("backend unavailable")
            return a * 10

        graph.register_derived("scaled", ["a"], scaled)
        scheduler = make_scheduler(graph)
        scheduler.prime()

        backend["up"] = False
        failed = scheduler.set("a", 2)
        assert failed[0].failed_keys == ["scaled"]
        assert graph.get_value("scaled") == 10
        assert graph.get_node("scaled").dirty is True

        backend["up"] = True
        retried = scheduler.set("a", 2)
        assert len(retried) == 1
        assert retried[0].success
        assert graph.get_value("scaled") == 20
        assert graph.get_node("scaled").dirty is False

        # Nothing stale any more, so the same value is a no-op again
        assert scheduler.set("a", 2) == []

    def test_pass_numbers_increase(self, graph):
        scheduler = make_scheduler(graph)
        prime_results = scheduler.prime()
        first = scheduler.set("x", 1)[0]
        second = scheduler.set("x", 2)[0]
        assert prime_results[0].pass_number == 1
        assert (first.pass_number, second.pass_number) == (2, 3)

    def test_callbacks(self, graph):
        scheduler = make_scheduler(graph)
        callback = Mock()
        scheduler.add_callback(callback)
        scheduler.prime()
        scheduler.set("x", 1)
        assert callback.call_count == 2

        scheduler.remove_callback(callback)
        scheduler.set("x", 2)
        assert callback.call_count == 2

    def test_stats(self, graph):
        scheduler = make_scheduler(graph, max_passes=7)
        scheduler.queue_change("y", 9)
        stats = scheduler.get_stats()
        assert stats["pending_keys"] == ["y"]
        assert stats["max_passes"] == 7
        assert stats["is_running"] is False


class TestReentrantSets:
    """Test source changes issued by effects during a pass."""

    @pytest.fixture
    def clamped(self):
        """An effect that clamps x back into range by setting it again."""
        graph = DependencyGraph()
        graph.register_source("x", 0)
        graph.register_derived("doubled", ["x"], lambda x: x * 2)
        scheduler = None
        seen = []

        def clamp(doubled):
            seen.append((graph.get_value("x"), scheduler.is_running))
            if doubled > 10:
                scheduler.set("x", 5, triggered_by="clamp")

        graph.register_effect("clamp", ["doubled"], clamp)
        scheduler = make_scheduler(graph)
        return graph, scheduler, seen

    def test_deferred_to_next_pass(self, clamped):
        graph, scheduler, seen = clamped
        scheduler.prime()

        results = scheduler.set("x", 50)
        assert len(results) == 2
        assert results[0].changed_sources == ["x"]
        assert results[1].changed_sources == ["x"]
        assert results[1].triggered_by == "clamp"
        assert graph.get_value("x") == 5
        assert graph.get_value("doubled") == 10

    def test_running_pass_sees_old_value(self, clamped):
        graph, scheduler, seen = clamped
        scheduler.prime()
        seen.clear()

        scheduler.set("x", 50)
        # The clamp effect saw x=50 in the first pass, not its own reset
        assert seen == [(50, True), (5, True)]

    def test_prime_defers_effect_sets(self):
        graph = DependencyGraph()
        graph.register_source("x", 99)
        scheduler = None

        def reset(x):
            if x != 0:
                scheduler.set("x", 0)

        graph.register_effect("reset", ["x"], reset)
        scheduler = make_scheduler(graph)

        results = scheduler.prime()
        assert len(results) == 2
        assert graph.get_value("x") == 0

    def test_prime_while_running(self, graph):
        scheduler = make_scheduler(graph)
        scheduler._running = True
        with pytest.raises(RuntimeError):
            scheduler.prime()

    def test_max_passes_guard(self):
        graph = DependencyGraph()
        graph.register_source("n", 0)
        scheduler = None

        def runaway(n):
            scheduler.set("n", n + 1)

        graph.register_effect("runaway", ["n"], runaway)
        scheduler = make_scheduler(graph, max_passes=5)
        scheduler.prime()  # prime + 5 passes, one change left behind

        results = scheduler.set("n", 100)
        assert len(results) == 5
        assert len(scheduler.pending_changes()) == 1
        assert scheduler.is_running is False


class TestTriggerLogging:
    """Test scheduler entries in the trigger log."""

    def test_pass_entries_share_pass_id(self, graph):
        trigger_log = TriggerLog()
        scheduler = make_scheduler(graph, trigger_log=trigger_log)
        scheduler.prime()

        result = scheduler.set("x", 4, triggered_by="user")[0]
        types = [e.trigger_type for e in trigger_log.get_for_pass(result.pass_id)]
        assert types == [
            TriggerType.SOURCE_SET,
            TriggerType.PASS_START,
            TriggerType.RECOMPUTE,
            TriggerType.INVALIDATION,
            TriggerType.PASS_COMPLETE,
        ]

    def test_source_set_entry(self, graph):
        trigger_log = TriggerLog()
        scheduler = make_scheduler(graph, trigger_log=trigger_log)
        scheduler.set("y", 7, triggered_by="user")

        entry = trigger_log.query(trigger_types={TriggerType.SOURCE_SET})[0]
        assert entry.node_key == "y"
        assert entry.old_value == 0
        assert entry.new_value == 7
        assert entry.source == "user"
