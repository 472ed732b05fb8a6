"""
selection/ - Cascading filter over a record source

Region -> locality -> filtered records, wired onto a reactive session.
"""

from .records import (
    Record,
    RecordSource,
    RecordCollection,
    DataFrameRecordSource,
    SelectionError,
    RecordError,
    is_missing,
    regions,
)

from .surface import (
    ChoiceList,
    RecordView,
    RenderingSurface,
    RecordingSurface,
)

from .cascading import (
    ALL,
    REGION,
    LOCALITY,
    LOCALITY_CHOICES,
    PUSH_LOCALITY_CHOICES,
    FILTERED_RECORDS,
    RENDER_FILTERED_RECORDS,
    CascadingFilter,
    InvalidSelectionError,
    build_cascading_filter,
    filter_records,
    locality_choices_for,
)


__all__ = [
    # Records
    "Record",
    "RecordSource",
    "RecordCollection",
    "DataFrameRecordSource",
    "SelectionError",
    "RecordError",
    "is_missing",
    "regions",
    # Surface
    "ChoiceList",
    "RecordView",
    "RenderingSurface",
    "RecordingSurface",
    # Cascading filter
    "ALL",
    "REGION",
    "LOCALITY",
    "LOCALITY_CHOICES",
    "PUSH_LOCALITY_CHOICES",
    "FILTERED_RECORDS",
    "RENDER_FILTERED_RECORDS",
    "CascadingFilter",
    "InvalidSelectionError",
    "build_cascading_filter",
    "filter_records",
    "locality_choices_for",
]
