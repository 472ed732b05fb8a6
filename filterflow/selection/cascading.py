"""
selection/cascading.py - Cascading region -> locality -> records filter

Wires the dropdown chain onto a session's reactive graph:

    region ──────► locality_choices ──► push_locality_choices (effect)
       │                                   │ resets locality to "All"
       ▼                                   ▼ when it is no longer offered
    filtered_records ◄──────────────── locality
       │
       ▼
    render_filtered_records (effect)

The locality reset is an ordinary source change issued from inside an
effect, so it is processed as the pass after the one that noticed it.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING
import logging

from .records import (
    Record,
    RecordError,
    RecordSource,
    SelectionError,
    is_missing,
    regions as list_regions,
)
from .surface import ChoiceList, RecordView, RenderingSurface

if TYPE_CHECKING:
    from filterflow.bootstrap.config import SelectionConfig
    from filterflow.dependencies.cascade import PassResult
    from filterflow.session import Session

logger = logging.getLogger("selection.cascading")


ALL = "All"

# Node keys
REGION = "region"
LOCALITY = "locality"
LOCALITY_CHOICES = "locality_choices"
PUSH_LOCALITY_CHOICES = "push_locality_choices"
FILTERED_RECORDS = "filtered_records"
RENDER_FILTERED_RECORDS = "render_filtered_records"


class InvalidSelectionError(SelectionError):
    """Raised when a selection is not among the offered choices."""

    def __init__(self, control: str, value: Any, choices: Sequence[Any]):
        self.control = control
        self.value = value
        self.choices = list(choices)
        super().__init__(f"{value!r} is not a valid {control}; choose from {self.choices}")


def locality_choices_for(
    records: RecordSource,
    region: Any,
    region_field: str = "region",
    locality_field: str = "locality",
    all_label: str = ALL,
) -> List[Any]:
    """``all_label`` followed by the sorted localities seen in ``region``."""
    in_region = records.filter(lambda r: r[region_field] == region)
    localities = {r[locality_field] for r in in_region if not is_missing(r.get(locality_field))}
    localities.discard(all_label)
    return [all_label] + sorted(localities, key=str)


def filter_records(
    records: RecordSource,
    region: Any,
    locality: Any,
    region_field: str = "region",
    locality_field: str = "locality",
    all_label: str = ALL,
) -> List[Record]:
    """Records in ``region``, narrowed to ``locality`` unless it is ``all_label``."""
    if locality == all_label:
        return list(records.filter(lambda r: r[region_field] == region))
    return list(records.filter(
        lambda r: r[region_field] == region and r[locality_field] == locality
    ))


class CascadingFilter:
    """
    Region/locality dropdown chain over a record source.

    Args:
        session: Session whose graph receives the nodes
        records: Read-only record source
        surface: Where choice lists and record views are pushed
        region: Initial region (first region of the source when omitted)
        locality: Initial locality (defaults to the "All" label)
        selection_config: Field names and labels; session config when omitted
        records_target: Name of the chart/table receiving filtered records
    """

    def __init__(
        self,
        session: "Session",
        records: RecordSource,
        surface: RenderingSurface,
        region: Optional[Any] = None,
        locality: Optional[Any] = None,
        selection_config: Optional["SelectionConfig"] = None,
        records_target: str = "records_table",
    ):
        self._session = session
        self._records = records
        self._surface = surface
        self._config = selection_config or session.config.selection
        self._records_target = records_target
        self.last_results: List["PassResult"] = []

        self._regions = list_regions(records, self._config.region_field)
        if not self._regions:
            raise RecordError("Record source has no regions")

        if region is None:
            region = self._regions[0]
        elif region not in self._regions:
            raise InvalidSelectionError(REGION, region, self._regions)

        self._initial_region = region
        self._initial_locality = self._config.all_label if locality is None else locality

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def build(self) -> List["PassResult"]:
        """Register every node and prime the graph."""
        session = self._session
        session.register_source(REGION, self._initial_region)
        session.register_source(LOCALITY, self._initial_locality)

        session.register_derived(LOCALITY_CHOICES, [REGION], self._compute_choices)
        session.register_effect(PUSH_LOCALITY_CHOICES, [LOCALITY_CHOICES], self._push_choices)
        session.register_derived(FILTERED_RECORDS, [REGION, LOCALITY], self._compute_records)
        session.register_effect(RENDER_FILTERED_RECORDS, [FILTERED_RECORDS], self._render_records)

        self.last_results = session.prime()
        logger.info(
            f"Cascading filter built over {len(self._records)} records, "
            f"{len(self._regions)} regions"
        )
        return self.last_results

    def _compute_choices(self, region: Any) -> List[Any]:
        return locality_choices_for(
            self._records, region,
            region_field=self._config.region_field,
            locality_field=self._config.locality_field,
            all_label=self._config.all_label,
        )

    def _compute_records(self, region: Any, locality: Any) -> List[Record]:
        return filter_records(
            self._records, region, locality,
            region_field=self._config.region_field,
            locality_field=self._config.locality_field,
            all_label=self._config.all_label,
        )

    def _push_choices(self, choices: List[Any]) -> None:
        # locality is read, not declared upstream: this effect reacts to new
        # choices only, not to every locality pick.
        current = self._session.get(LOCALITY)
        stale = current not in choices
        self._surface.push_choices(ChoiceList(
            control=LOCALITY,
            choices=list(choices),
            selected=self._config.all_label if stale else current,
        ))

        if stale:
            logger.info(
                f"Locality {current!r} not offered for region "
                f"{self._session.get(REGION)!r}, resetting to {self._config.all_label!r}"
            )
            self._session.set(
                LOCALITY, self._config.all_label, triggered_by=PUSH_LOCALITY_CHOICES
            )

    def _render_records(self, records: List[Record]) -> None:
        self._surface.push_records(RecordView(
            target=self._records_target,
            records=[dict(r) for r in records],
            row_count=len(records),
            filters={
                REGION: self._session.get(REGION),
                LOCALITY: self._session.get(LOCALITY),
            },
        ))

    # -------------------------------------------------------------------------
    # User selections
    # -------------------------------------------------------------------------

    def select_region(self, region: Any) -> List["PassResult"]:
        """Select a region; the locality is reset if the region does not offer it."""
        if region not in self._regions:
            raise InvalidSelectionError(REGION, region, self._regions)
        self.last_results = self._session.set(REGION, region, triggered_by="user")
        return self.last_results

    def select_locality(self, locality: Any) -> List["PassResult"]:
        """Select a locality from the current choices."""
        choices = self.choices
        if locality not in choices:
            raise InvalidSelectionError(LOCALITY, locality, choices)
        self.last_results = self._session.set(LOCALITY, locality, triggered_by="user")
        return self.last_results

    # -------------------------------------------------------------------------
    # Current state
    # -------------------------------------------------------------------------

    @property
    def regions(self) -> List[Any]:
        return list(self._regions)

    @property
    def region(self) -> Any:
        return self._session.get(REGION)

    @property
    def locality(self) -> Any:
        return self._session.get(LOCALITY)

    @property
    def choices(self) -> List[Any]:
        return list(self._session.get(LOCALITY_CHOICES) or [])

    @property
    def records(self) -> List[Record]:
        return list(self._session.get(FILTERED_RECORDS) or [])

    def state(self) -> Dict[str, Any]:
        """Snapshot of the selection for display or logging."""
        return {
            REGION: self.region,
            LOCALITY: self.locality,
            "choices": self.choices,
            "row_count": len(self.records),
        }


def build_cascading_filter(
    session: "Session",
    records: RecordSource,
    surface: RenderingSurface,
    region: Optional[Any] = None,
    locality: Optional[Any] = None,
    **kwargs: Any,
) -> CascadingFilter:
    """Create a CascadingFilter, register its nodes and prime the session."""
    cascading = CascadingFilter(session, records, surface, region=region, locality=locality, **kwargs)
    cascading.build()
    return cascading
