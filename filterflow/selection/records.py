"""
selection/records.py - Read-only record sources

The reactive graph only ever reads from a record source. Two sources are
provided: an in-memory collection of mappings and a pandas DataFrame
adapter. Neither hands out anything that would let a node mutate the
backing data.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Any, Callable, Iterable, List, Mapping, Protocol, Sequence, Set, Tuple, runtime_checkable
import logging

import pandas as pd

logger = logging.getLogger("selection.records")


Record = Mapping[str, Any]
Predicate = Callable[[Record], bool]


class SelectionError(Exception):
    """Base exception for the selection layer."""
    pass


class RecordError(SelectionError):
    """Raised when backing records do not have the required shape."""
    pass


@runtime_checkable
class RecordSource(Protocol):
    """What the cascading filter needs from its data."""

    def filter(self, predicate: Predicate) -> Sequence[Record]:
        ...

    def distinct(self, field: str) -> Set[Any]:
        ...

    def __len__(self) -> int:
        ...


def _freeze(records: Iterable[Mapping[str, Any]]) -> Tuple[Record, ...]:
    return tuple(MappingProxyType(dict(r)) for r in records)


def is_missing(value: Any) -> bool:
    """True for None and scalar nulls such as the NaN pandas uses for blank cells."""
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def _check_fields(records: Sequence[Record], fields: Sequence[str]) -> None:
    for index, record in enumerate(records):
        missing = [f for f in fields if f not in record]
        if missing:
            raise RecordError(f"Record {index} is missing field(s): {', '.join(missing)}")


# =============================================================================
# IN-MEMORY COLLECTION
# =============================================================================

class RecordCollection:
    """
    Immutable in-memory record collection.

    Records are copied on construction and exposed as read-only mappings.
    """

    def __init__(
        self,
        records: Iterable[Mapping[str, Any]],
        required_fields: Sequence[str] = ("region", "locality"),
    ):
        self._records = _freeze(records)
        _check_fields(self._records, required_fields)
        self._required_fields = tuple(required_fields)

    def filter(self, predicate: Predicate) -> List[Record]:
        """Records for which ``predicate`` is true, in original order."""
        return [r for r in self._records if predicate(r)]

    def distinct(self, field: str) -> Set[Any]:
        """Distinct non-null values of ``field``."""
        return {r[field] for r in self._records if not is_missing(r.get(field))}

    @property
    def records(self) -> Tuple[Record, ...]:
        return self._records

    def __iter__(self):
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"RecordCollection({len(self._records)} records)"


# =============================================================================
# DATAFRAME SOURCE
# =============================================================================

class DataFrameRecordSource:
    """
    Record source backed by a pandas DataFrame.

    The frame is copied on construction. ``filter`` evaluates the predicate
    row by row and returns plain dicts; ``distinct`` drops nulls.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        region_field: str = "region",
        locality_field: str = "locality",
    ):
        missing = [c for c in (region_field, locality_field) if c not in frame.columns]
        if missing:
            raise RecordError(f"DataFrame is missing column(s): {', '.join(missing)}")

        self._frame = frame.copy()
        self._region_field = region_field
        self._locality_field = locality_field
        self._records = _freeze(self._frame.to_dict(orient="records"))

    @classmethod
    def from_csv(cls, path: str, **kwargs: Any) -> "DataFrameRecordSource":
        """Read a CSV into a record source. Extra kwargs go to the constructor."""
        frame = pd.read_csv(path)
        logger.info(f"Loaded {len(frame)} rows from {path}")
        return cls(frame, **kwargs)

    def filter(self, predicate: Predicate) -> List[Record]:
        return [r for r in self._records if predicate(r)]

    def distinct(self, field: str) -> Set[Any]:
        if field not in self._frame.columns:
            raise RecordError(f"Unknown column: {field}")
        return set(self._frame[field].dropna().unique().tolist())

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the backing frame."""
        return self._frame.copy()

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"DataFrameRecordSource({len(self._frame)} rows)"


def regions(source: RecordSource, field: str = "region") -> List[Any]:
    """Enumerated region set of a source, sorted."""
    return sorted(source.distinct(field))
