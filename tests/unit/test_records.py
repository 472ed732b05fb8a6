"""
Unit tests for selection/records.py

Tests the in-memory collection and the pandas-backed record source.
"""

import pytest
import pandas as pd

from filterflow.selection.records import (
    DataFrameRecordSource,
    RecordCollection,
    RecordError,
    RecordSource,
    SelectionError,
    is_missing,
    regions,
)


class TestRecordCollection:
    """Test RecordCollection."""

    def test_protocol(self, records):
        assert isinstance(records, RecordSource)

    def test_filter_preserves_order(self, records):
        rows = records.filter(lambda r: r["region"] == "TX")
        assert [r["locality"] for r in rows] == ["Austin", "Houston", "Austin"]

    def test_distinct(self, records):
        assert records.distinct("region") == {"CA", "TX", "OR"}

    def test_distinct_skips_missing(self):
        collection = RecordCollection([
            {"region": "CA", "locality": "LA", "brewery": "Golden Road"},
            {"region": "CA", "locality": "SF"},
        ])
        assert collection.distinct("brewery") == {"Golden Road"}

    def test_records_are_read_only(self, records):
        with pytest.raises(TypeError):
            records.records[0]["region"] = "TX"

    def test_input_is_copied(self):
        raw = [{"region": "CA", "locality": "LA"}]
        collection = RecordCollection(raw)
        raw[0]["region"] = "TX"
        assert collection.records[0]["region"] == "CA"

    def test_missing_required_field(self):
        with pytest.raises(RecordError) as exc_info:
            RecordCollection([{"region": "CA"}])
        assert "locality" in str(exc_info.value)
        assert isinstance(exc_info.value, SelectionError)

    def test_custom_required_fields(self):
        collection = RecordCollection([{"state": "CA"}], required_fields=("state",))
        assert len(collection) == 1

    def test_iter_and_repr(self, records):
        assert len(list(records)) == len(records) == 8
        assert repr(records) == "RecordCollection(8 records)"


class TestDataFrameRecordSource:
    """Test DataFrameRecordSource."""

    @pytest.fixture
    def frame(self):
        return pd.DataFrame({
            "region": ["CA", "CA", "TX", "TX", None],
            "locality": ["LA", "SF", "Austin", None, "Nowhere"],
            "abv": [5.5, 4.9, 6.2, 7.0, 4.0],
        })

    def test_protocol(self, frame):
        assert isinstance(DataFrameRecordSource(frame), RecordSource)

    def test_distinct_drops_nulls(self, frame):
        source = DataFrameRecordSource(frame)
        assert source.distinct("region") == {"CA", "TX"}
        assert source.distinct("locality") == {"LA", "SF", "Austin", "Nowhere"}

    def test_distinct_unknown_column(self, frame):
        with pytest.raises(RecordError):
            DataFrameRecordSource(frame).distinct("brewery")

    def test_filter_returns_mappings(self, frame):
        rows = DataFrameRecordSource(frame).filter(lambda r: r["region"] == "CA")
        assert [r["locality"] for r in rows] == ["LA", "SF"]
        assert rows[0]["abv"] == 5.5

    def test_blank_cells_are_missing(self, frame):
        rows = DataFrameRecordSource(frame).filter(lambda r: r["region"] == "TX")
        assert [is_missing(r["locality"]) for r in rows] == [False, True]

    def test_frame_is_copied(self, frame):
        source = DataFrameRecordSource(frame)
        frame.loc[0, "region"] = "OR"
        source.frame.loc[1, "region"] = "OR"
        assert source.distinct("region") == {"CA", "TX"}

    def test_missing_columns(self):
        with pytest.raises(RecordError):
            DataFrameRecordSource(pd.DataFrame({"region": ["CA"]}))

    def test_custom_field_names(self):
        frame = pd.DataFrame({"state": ["CA"], "city": ["LA"]})
        source = DataFrameRecordSource(frame, region_field="state", locality_field="city")
        assert regions(source, "state") == ["CA"]

    def test_from_csv(self, tmp_path):
        path = tmp_path / "beers.csv"
        path.write_text("region,locality,name\nTX,Austin,Fire Eater\nCA,LA,Wolf Pup\n")
        source = DataFrameRecordSource.from_csv(str(path))
        assert len(source) == 2
        assert repr(source) == "DataFrameRecordSource(2 rows)"

    def test_from_csv_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            DataFrameRecordSource.from_csv(str(tmp_path / "missing.csv"))


class TestIsMissing:
    """Test is_missing."""

    def test_nulls(self):
        assert is_missing(None)
        assert is_missing(float("nan"))
        assert is_missing(pd.NA)

    def test_values(self):
        assert not is_missing("LA")
        assert not is_missing(0)
        assert not is_missing("")
        assert not is_missing(["LA"])

    def test_collection_distinct_skips_nan(self):
        collection = RecordCollection([
            {"region": "CA", "locality": "LA"},
            {"region": "CA", "locality": float("nan")},
        ])
        assert collection.distinct("locality") == {"LA"}


class TestRegions:
    """Test regions helper."""

    def test_sorted(self, records):
        assert regions(records) == ["CA", "OR", "TX"]
