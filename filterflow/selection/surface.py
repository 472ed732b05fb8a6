"""
selection/surface.py - Rendering surface contract

The graph never reads from the rendering surface; effects only push view
models to it. Actual widgets, charts and tables live outside this package.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
import logging

from pydantic import BaseModel, Field

logger = logging.getLogger("selection.surface")


# =============================================================================
# VIEW MODELS
# =============================================================================

class ChoiceList(BaseModel):
    """Choices for a selection control."""
    control: str = Field(..., description="Control the choices belong to")
    choices: List[Any] = Field(default_factory=list)
    selected: Optional[Any] = Field(None, description="Currently selected value")


class RecordView(BaseModel):
    """Records to render as a chart or table."""
    target: str = Field(..., description="Chart or table receiving the records")
    records: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    filters: Dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class RenderingSurface(Protocol):
    """Write-only sink for view models."""

    def push_choices(self, view: ChoiceList) -> None:
        ...

    def push_records(self, view: RecordView) -> None:
        ...


# =============================================================================
# RECORDING SURFACE
# =============================================================================

class RecordingSurface:
    """In-memory surface that keeps every push, newest last."""

    def __init__(self):
        self._history: List[Dict[str, Any]] = []

    def push_choices(self, view: ChoiceList) -> None:
        self._record("choices", view)

    def push_records(self, view: RecordView) -> None:
        self._record("records", view)

    def _record(self, kind: str, view: BaseModel) -> None:
        self._history.append({
            "kind": kind,
            "view": view,
            "pushed_at": datetime.now(timezone.utc),
        })
        logger.debug(f"Surface received {kind} push")

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def choice_pushes(self, control: Optional[str] = None) -> List[ChoiceList]:
        return [
            h["view"] for h in self._history
            if h["kind"] == "choices" and (control is None or h["view"].control == control)
        ]

    def record_pushes(self, target: Optional[str] = None) -> List[RecordView]:
        return [
            h["view"] for h in self._history
            if h["kind"] == "records" and (target is None or h["view"].target == target)
        ]

    def latest_choices(self, control: str) -> Optional[ChoiceList]:
        pushes = self.choice_pushes(control)
        return pushes[-1] if pushes else None

    def latest_records(self, target: str) -> Optional[RecordView]:
        pushes = self.record_pushes(target)
        return pushes[-1] if pushes else None

    def clear(self) -> None:
        self._history.clear()
