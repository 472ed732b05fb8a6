"""
Unit tests for selection/surface.py

Tests view models and the in-memory recording surface.
"""

import pytest
from pydantic import ValidationError

from filterflow.selection.surface import (
    ChoiceList,
    RecordView,
    RecordingSurface,
    RenderingSurface,
)


class TestViewModels:
    """Test ChoiceList and RecordView."""

    def test_choice_list(self):
        view = ChoiceList(control="locality", choices=["All", "LA"], selected="All")
        assert view.model_dump() == {
            "control": "locality",
            "choices": ["All", "LA"],
            "selected": "All",
        }

    def test_control_required(self):
        with pytest.raises(ValidationError):
            ChoiceList(choices=["All"])

    def test_record_view_defaults(self):
        view = RecordView(target="records_table")
        assert view.records == []
        assert view.row_count == 0
        assert view.filters == {}


class TestRecordingSurface:
    """Test RecordingSurface."""

    def test_protocol(self):
        assert isinstance(RecordingSurface(), RenderingSurface)

    def test_keeps_pushes_in_order(self):
        surface = RecordingSurface()
        surface.push_choices(ChoiceList(control="locality", choices=["All"]))
        surface.push_records(RecordView(target="records_table", row_count=2))
        surface.push_choices(ChoiceList(control="locality", choices=["All", "LA"]))

        assert [h["kind"] for h in surface.history] == ["choices", "records", "choices"]
        assert surface.latest_choices("locality").choices == ["All", "LA"]
        assert surface.latest_records("records_table").row_count == 2

    def test_filter_by_control_and_target(self):
        surface = RecordingSurface()
        surface.push_choices(ChoiceList(control="locality", choices=["All"]))
        surface.push_choices(ChoiceList(control="style", choices=["IPA"]))
        surface.push_records(RecordView(target="chart"))

        assert len(surface.choice_pushes()) == 2
        assert len(surface.choice_pushes("style")) == 1
        assert surface.record_pushes("records_table") == []
        assert surface.latest_records("records_table") is None

    def test_clear(self):
        surface = RecordingSurface()
        surface.push_records(RecordView(target="chart"))
        surface.clear()
        assert surface.history == []
        assert surface.latest_choices("locality") is None
