"""
Unit tests for dependencies/trigger_log.py

Tests entry logging, indexed queries, trimming and JSON export.
"""

import json
import pytest
from datetime import datetime, timedelta, timezone

from filterflow.dependencies.trigger_log import (
    TriggerLog,
    TriggerEntry,
    TriggerType,
    _serialize_value,
)


class TestTriggerEntry:
    """Test TriggerEntry dataclass."""

    def test_defaults(self):
        entry = TriggerEntry(node_key="region")
        assert entry.trigger_type == TriggerType.SOURCE_SET
        assert entry.source == "unknown"
        assert len(entry.entry_id) == 12

    def test_dict_roundtrip(self):
        entry = TriggerEntry(
            trigger_type=TriggerType.RECOMPUTE,
            node_key="locality_choices",
            pass_id="abc",
            old_value=["All"],
            new_value=["All", "LA"],
            metadata={"n": 1},
        )
        restored = TriggerEntry.from_dict(entry.to_dict())
        assert restored.trigger_type == TriggerType.RECOMPUTE
        assert restored.node_key == "locality_choices"
        assert restored.new_value == ["All", "LA"]
        assert restored.timestamp == entry.timestamp


class TestSerializeValue:
    """Test value serialization for storage."""

    def test_scalars_pass_through(self):
        assert _serialize_value("CA") == "CA"
        assert _serialize_value(3) == 3
        assert _serialize_value(None) is None

    def test_long_sequences_summarized(self):
        assert _serialize_value(list(range(50))) == "<list of 50 items>"

    def test_unserializable_stringified(self):
        assert _serialize_value({"a": object}).startswith("{'a':")
        assert _serialize_value({1, 2}) == "{1, 2}"


class TestTriggerLog:
    """Test TriggerLog logging and queries."""

    def test_convenience_methods(self):
        log = TriggerLog()
        log.log_source_set("region", "CA", "TX", source="user", pass_id="p1")
        log.log_recompute("locality_choices", ["All"], ["All", "Austin"], pass_id="p1")
        log.log_effect("push_locality_choices", pass_id="p1")
        log.log_failure("filtered_records", ValueError("boom"), pass_id="p1")
        log.log_pass("p1", TriggerType.PASS_COMPLETE, recomputed=1)

        assert len(log) == 5
        stats = log.get_stats()
        assert stats["by_type"]["recompute"] == 1
        assert stats["by_type"]["compute_failed"] == 1

    def test_failure_metadata(self):
        log = TriggerLog()
        log.log_failure("x", ValueError("boom"))
        assert log.get_for_node("x")[0].metadata["error"] == "boom"

    def test_query_newest_first(self):
        log = TriggerLog()
        log.log_source_set("a", 0, 1)
        log.log_source_set("b", 0, 1)
        assert [e.node_key for e in log.query()] == ["b", "a"]

    def test_query_by_node_and_type(self):
        log = TriggerLog()
        log.log_source_set("a", 0, 1)
        log.log_recompute("a", 1, 2)
        log.log_recompute("b", 1, 2)

        entries = log.query(node_key="a", trigger_types={TriggerType.RECOMPUTE})
        assert len(entries) == 1
        assert entries[0].node_key == "a"

    def test_query_time_window(self):
        log = TriggerLog()
        log.log_source_set("a", 0, 1)
        future = datetime.now(timezone.utc) + timedelta(minutes=5)
        assert log.query(since=future) == []
        assert len(log.query(until=future)) == 1

    def test_query_by_source_and_limit(self):
        log = TriggerLog()
        for i in range(5):
            log.log_source_set("a", i, i + 1, source="user")
        log.log_source_set("a", 5, 6, source="push_locality_choices")

        assert len(log.query(source="user", limit=3)) == 3
        assert len(log.query(source="push_locality_choices")) == 1

    def test_get_for_pass_in_logged_order(self):
        log = TriggerLog()
        log.log_pass("p1", TriggerType.PASS_START)
        log.log_recompute("a", 0, 1, pass_id="p1")
        log.log_pass("p1", TriggerType.PASS_COMPLETE)
        log.log_pass("p2", TriggerType.PASS_START)

        types = [e.trigger_type for e in log.get_for_pass("p1")]
        assert types == [TriggerType.PASS_START, TriggerType.RECOMPUTE, TriggerType.PASS_COMPLETE]

    def test_trim_rebuilds_indexes(self):
        log = TriggerLog(max_entries=3)
        for key in ["a", "b", "c", "d"]:
            log.log_source_set(key, 0, 1)

        assert len(log) == 3
        assert log.get_for_node("a") == []
        assert len(log.get_for_node("d")) == 1

    def test_get_recent(self):
        log = TriggerLog()
        for key in ["a", "b", "c"]:
            log.log_source_set(key, 0, 1)
        assert [e.node_key for e in log.get_recent(2)] == ["c", "b"]

    def test_clear(self):
        log = TriggerLog()
        log.log_source_set("a", 0, 1, pass_id="p")
        log.clear()
        assert len(log) == 0
        assert log.get_for_pass("p") == []

    def test_export_to_json(self, tmp_path):
        log = TriggerLog()
        log.log_source_set("region", "CA", "TX")
        log.log_effect("render_filtered_records")

        path = tmp_path / "triggers.json"
        assert log.export_to_json(path) == 2

        data = json.loads(path.read_text())
        assert data["entry_count"] == 2
        assert data["entries"][0]["trigger_type"] == "effect_run"
