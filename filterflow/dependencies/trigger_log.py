"""
filterflow Trigger Log

Audit trail of reactive activity: source sets, recomputes, effect runs,
failures and pass boundaries. Queryable by node and by pass, exportable to
JSON for debugging.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from pathlib import Path
import json
import logging
import uuid

logger = logging.getLogger(__name__)


# =============================================================================
# TRIGGER TYPES
# =============================================================================

class TriggerType(Enum):
    """Type of trigger event."""
    SOURCE_SET = "source_set"          # A source value was applied
    INVALIDATION = "invalidation"      # Nodes were marked stale
    RECOMPUTE = "recompute"            # A derived node was recomputed
    EFFECT_RUN = "effect_run"          # An effect ran
    COMPUTE_FAILED = "compute_failed"  # compute/run raised
    PASS_START = "pass_start"          # Propagation pass began
    PASS_COMPLETE = "pass_complete"    # Propagation pass finished


# =============================================================================
# TRIGGER ENTRY
# =============================================================================

@dataclass
class TriggerEntry:
    """A single entry in the trigger log."""
    entry_id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    trigger_type: TriggerType = TriggerType.SOURCE_SET
    node_key: Optional[str] = None
    pass_id: Optional[str] = None

    old_value: Optional[Any] = None
    new_value: Optional[Any] = None

    source: str = "unknown"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize entry to dict."""
        return {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "trigger_type": self.trigger_type.value,
            "node_key": self.node_key,
            "pass_id": self.pass_id,
            "old_value": _serialize_value(self.old_value),
            "new_value": _serialize_value(self.new_value),
            "source": self.source,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TriggerEntry":
        """Load entry from dict."""
        return cls(
            entry_id=data.get("entry_id", str(uuid.uuid4())[:12]),
            timestamp=(
                datetime.fromisoformat(data["timestamp"])
                if data.get("timestamp") else datetime.now(timezone.utc)
            ),
            trigger_type=TriggerType(data.get("trigger_type", "source_set")),
            node_key=data.get("node_key"),
            pass_id=data.get("pass_id"),
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            source=data.get("source", "unknown"),
            metadata=data.get("metadata", {}),
        )


def _serialize_value(value: Any) -> Any:
    """Serialize a value for JSON storage."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)) and len(value) > 20:
        return f"<{type(value).__name__} of {len(value)} items>"
    if isinstance(value, (list, dict)):
        try:
            json.dumps(value)
            return value
        except (TypeError, ValueError):
            return str(value)
    return str(value)


# =============================================================================
# TRIGGER LOG
# =============================================================================

class TriggerLog:
    """Bounded audit trail of reactive activity."""

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self._entries: List[TriggerEntry] = []
        self._max_entries = max_entries

        # Indexes for fast lookup
        self._by_node: Dict[str, List[TriggerEntry]] = {}
        self._by_pass: Dict[str, List[TriggerEntry]] = {}

    def log(self, entry: TriggerEntry) -> str:
        """
        Add an entry to the log.

        Returns:
            Entry ID
        """
        self._entries.append(entry)
        self._index(entry)

        if len(self._entries) > self._max_entries:
            self._trim_entries()

        return entry.entry_id

    def log_source_set(
        self,
        key: str,
        old_value: Any,
        new_value: Any,
        source: str = "external",
        pass_id: Optional[str] = None,
    ) -> str:
        """Convenience method to log a source assignment."""
        return self.log(TriggerEntry(
            trigger_type=TriggerType.SOURCE_SET,
            node_key=key,
            pass_id=pass_id,
            old_value=old_value,
            new_value=new_value,
            source=source,
        ))

    def log_recompute(
        self,
        key: str,
        old_value: Any,
        new_value: Any,
        pass_id: Optional[str] = None,
    ) -> str:
        """Convenience method to log a derived recompute."""
        return self.log(TriggerEntry(
            trigger_type=TriggerType.RECOMPUTE,
            node_key=key,
            pass_id=pass_id,
            old_value=old_value,
            new_value=new_value,
            source="CascadeExecutor",
        ))

    def log_effect(self, key: str, pass_id: Optional[str] = None) -> str:
        """Convenience method to log an effect run."""
        return self.log(TriggerEntry(
            trigger_type=TriggerType.EFFECT_RUN,
            node_key=key,
            pass_id=pass_id,
            source="CascadeExecutor",
        ))

    def log_failure(self, key: str, error: Exception, pass_id: Optional[str] = None) -> str:
        """Convenience method to log a failed compute or run."""
        return self.log(TriggerEntry(
            trigger_type=TriggerType.COMPUTE_FAILED,
            node_key=key,
            pass_id=pass_id,
            source="CascadeExecutor",
            metadata={"error": str(error)},
        ))

    def log_pass(
        self,
        pass_id: str,
        trigger_type: TriggerType,
        source: str = "PropagationScheduler",
        **metadata: Any,
    ) -> str:
        """Convenience method to log a pass boundary."""
        return self.log(TriggerEntry(
            trigger_type=trigger_type,
            pass_id=pass_id,
            source=source,
            metadata=metadata,
        ))

    def query(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        node_key: Optional[str] = None,
        pass_id: Optional[str] = None,
        trigger_types: Optional[Set[TriggerType]] = None,
        source: Optional[str] = None,
        limit: int = 100,
    ) -> List[TriggerEntry]:
        """
        Query the trigger log.

        Args:
            since: Only entries after this time
            until: Only entries before this time
            node_key: Filter by node
            pass_id: Filter by pass
            trigger_types: Filter by trigger type(s)
            source: Filter by source
            limit: Maximum entries to return

        Returns:
            List of matching entries (newest first)
        """
        if node_key is not None:
            entries = self._by_node.get(node_key, [])
        elif pass_id is not None:
            entries = self._by_pass.get(pass_id, [])
        else:
            entries = self._entries

        filtered = []
        for entry in reversed(entries):
            if since and entry.timestamp < since:
                continue
            if until and entry.timestamp > until:
                continue
            if node_key is not None and entry.node_key != node_key:
                continue
            if pass_id is not None and entry.pass_id != pass_id:
                continue
            if trigger_types and entry.trigger_type not in trigger_types:
                continue
            if source and entry.source != source:
                continue

            filtered.append(entry)
            if len(filtered) >= limit:
                break

        return filtered

    def get_recent(self, count: int = 100) -> List[TriggerEntry]:
        """Get most recent entries, newest first."""
        return list(reversed(self._entries[-count:]))

    def get_for_node(self, key: str, limit: int = 100) -> List[TriggerEntry]:
        """Get entries for a specific node, newest first."""
        entries = self._by_node.get(key, [])
        return list(reversed(entries[-limit:]))

    def get_for_pass(self, pass_id: str) -> List[TriggerEntry]:
        """Get all entries for a pass in the order they were logged."""
        return list(self._by_pass.get(pass_id, []))

    def export_to_json(self, path: Path, limit: int = 10000) -> int:
        """
        Export log entries to a JSON file.

        Returns:
            Number of entries exported
        """
        entries = self.query(limit=limit)
        data = {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "entry_count": len(entries),
            "entries": [e.to_dict() for e in entries],
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2)

        logger.info(f"Exported {len(entries)} trigger log entries to {path}")
        return len(entries)

    def get_stats(self) -> Dict[str, Any]:
        """Counts of entries by trigger type."""
        by_type: Dict[str, int] = {}
        for entry in self._entries:
            name = entry.trigger_type.value
            by_type[name] = by_type.get(name, 0) + 1
        return {
            "total": len(self._entries),
            "max_entries": self._max_entries,
            "by_type": by_type,
        }

    def _index(self, entry: TriggerEntry) -> None:
        if entry.node_key:
            self._by_node.setdefault(entry.node_key, []).append(entry)
        if entry.pass_id:
            self._by_pass.setdefault(entry.pass_id, []).append(entry)

    def _trim_entries(self) -> None:
        """Trim to max entries."""
        trim_count = len(self._entries) - self._max_entries
        self._entries = self._entries[trim_count:]

        self._by_node.clear()
        self._by_pass.clear()
        for entry in self._entries:
            self._index(entry)

        logger.debug(f"Trimmed {trim_count} trigger log entries")

    def clear(self) -> None:
        """Clear all entries."""
        self._entries.clear()
        self._by_node.clear()
        self._by_pass.clear()

    def __len__(self) -> int:
        return len(self._entries)
