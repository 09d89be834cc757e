"""Filtering and sorting of output rows."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import gazetteer
from .models import (
    ManufacturerResult,
    ManufacturerType,
    ManufacturerTypeFilter,
    SearchFilters,
    SortField,
    SortOrder,
)

logger = logging.getLogger(__name__)

TYPE_FILTER_TO_TYPE = {
    ManufacturerTypeFilter.FACTORY: ManufacturerType.FACTORY,
    ManufacturerTypeFilter.TRADING: ManufacturerType.TRADING,
}


@dataclass(frozen=True)
class FilterCriteria:
    """
    Row filters. ``min_confidence`` is a fraction in [0, 1] compared against
    the 0-100 row confidence; a row matches ``locations`` when any of them
    matches its address.
    """

    min_confidence: Optional[float] = None
    manufacturer_type: Optional[ManufacturerTypeFilter] = None
    locations: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_filters(cls, filters: Optional[SearchFilters]) -> "FilterCriteria":
        if filters is None:
            return cls()
        return cls(
            min_confidence=filters.min_confidence,
            manufacturer_type=filters.manufacturer_type,
            locations=tuple(loc for loc in (filters.location or []) if loc and loc.strip()),
        )

    def describe(self) -> Dict[str, Any]:
        """Active filters, for observability output."""
        applied: Dict[str, Any] = {}
        if self.min_confidence is not None:
            applied["minConfidence"] = self.min_confidence
        if self.manufacturer_type is not None:
            applied["manufacturerType"] = self.manufacturer_type.value
        if self.locations:
            applied["location"] = list(self.locations)
        return applied


def matches(result: ManufacturerResult, criteria: FilterCriteria) -> bool:
    if criteria.min_confidence is not None and result.confidence / 100 < criteria.min_confidence:
        return False

    wanted_type = TYPE_FILTER_TO_TYPE.get(criteria.manufacturer_type) if criteria.manufacturer_type else None
    if wanted_type is not None and result.type != wanted_type:
        return False

    if criteria.locations and not any(
        gazetteer.location_matches(result.address, location) for location in criteria.locations
    ):
        return False
    return True


def sort_results(
    results: Sequence[ManufacturerResult],
    sort_by: SortField = SortField.CONFIDENCE,
    order: SortOrder = SortOrder.DESC,
) -> List[ManufacturerResult]:
    """
    Stable sort; rows with equal keys keep their relative order.

    Only NAME has its own key. Every other field ranks by confidence.
    """
    sort_by = SortField(sort_by)
    reverse = SortOrder(order) == SortOrder.DESC
    if sort_by == SortField.NAME:
        return sorted(results, key=lambda r: r.name.lower(), reverse=reverse)
    return sorted(results, key=lambda r: r.confidence, reverse=reverse)


def apply_filters(
    results: Sequence[ManufacturerResult],
    criteria: FilterCriteria,
    limit: Optional[int] = None,
    sort_by: SortField = SortField.CONFIDENCE,
    order: SortOrder = SortOrder.DESC,
) -> List[ManufacturerResult]:
    """Filter, sort, then truncate to ``limit`` (no truncation when None)."""
    kept = [r for r in results if matches(r, criteria)]
    logger.debug("Filters %s kept %d of %d rows", criteria.describe(), len(kept), len(results))
    ordered = sort_results(kept, sort_by, order)
    if limit is not None:
        ordered = ordered[: max(0, limit)]
    return ordered
