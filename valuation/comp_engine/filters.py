"""
Comparable Selection Filters

Selects comparables for a subject from a pre-fetched candidate pool:
- Hard filters (own listing, status, property type group, price, date)
- Optional attribute tolerances (beds, baths, sqft, year built)
- Progressive radius widening (0.5 -> 1 -> 3 miles -> citywide)
- Deterministic ordering and truncation to the maximum count
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import (
    ComparableCandidate,
    ListingStatus,
    SubjectProperty,
    compatible_property_types,
    has_distress_signal,
)
from ..errors import ValidationError
from ..policy import SelectionPolicy
from .models import CompSelectionResult


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

# Earth radius in miles
EARTH_RADIUS_MILES = 3959.0

# Days per month used for date windows
DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class SelectionFilters:
    """
    Caller-supplied narrowing of the candidate pool.

    Attributes left as None fall back to the selection policy.
    """
    property_type: Optional[str] = None
    match_property_type: bool = True
    radius_miles: Optional[float] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    months_back: Optional[int] = None
    statuses: Tuple[ListingStatus, ...] = (ListingStatus.CLOSED,)
    apply_tolerances: bool = False
    exclude_distressed: bool = False
    min_comps: Optional[int] = None
    max_comps: Optional[int] = None

    def __post_init__(self):
        for name in ("min_comps", "max_comps"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValidationError(f"{name} must be at least 1: {value}", field=name)
        if self.min_comps is not None and self.max_comps is not None and self.max_comps < self.min_comps:
            raise ValidationError("max_comps must not be below min_comps", field="max_comps")

    def to_dict(self) -> dict:
        return {
            "property_type": self.property_type,
            "match_property_type": self.match_property_type,
            "radius_miles": self.radius_miles,
            "min_price": str(self.min_price) if self.min_price is not None else None,
            "max_price": str(self.max_price) if self.max_price is not None else None,
            "months_back": self.months_back,
            "statuses": [s.value for s in self.statuses],
            "apply_tolerances": self.apply_tolerances,
            "exclude_distressed": self.exclude_distressed,
            "min_comps": self.min_comps,
            "max_comps": self.max_comps,
        }


def haversine_miles(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """
    Calculate distance between two points in miles using Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in miles
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return EARTH_RADIUS_MILES * c


def distance_between(subject: SubjectProperty, candidate: ComparableCandidate) -> Optional[float]:
    """Distance in miles, or None when either record lacks coordinates."""
    if not (subject.has_coordinates and candidate.has_coordinates):
        return None
    return haversine_miles(
        subject.latitude, subject.longitude,
        candidate.latitude, candidate.longitude,
    )


class ComparableSelector:
    """
    Selects comparables from a candidate pool with progressive fallback.

    Pure selection: the pool is supplied by the caller and never mutated.
    """

    def __init__(self, policy: SelectionPolicy = None, reference_date: date = None):
        """
        Initialize selector.

        Args:
            policy: Selection limits (default: SelectionPolicy())
            reference_date: Date to calculate sale age from (default: today)
        """
        self._policy = policy or SelectionPolicy()
        self._reference_date = reference_date or date.today()

    def select(
        self,
        subject: SubjectProperty,
        pool: Sequence[ComparableCandidate],
        filters: SelectionFilters = None,
    ) -> CompSelectionResult:
        """
        Select comparables for a subject.

        Applies, in order:
        1. Hard filters (see _passes_hard_filters)
        2. Radius tiers, stopping at the first tier with min_comps
        3. Citywide tier when no radius tier suffices

        Args:
            subject: The property being valued (overrides already applied)
            pool: Candidate listings for the subject's market area
            filters: Optional caller narrowing

        Returns:
            CompSelectionResult (empty when the pool is empty)
        """
        filters = filters or SelectionFilters()
        min_comps = filters.min_comps if filters.min_comps is not None else self._policy.min_comps
        max_comps = filters.max_comps if filters.max_comps is not None else self._policy.max_comps

        eligible = [c for c in pool if self._passes_hard_filters(c, subject, filters)]
        distances = {c.listing_id: distance_between(subject, c) for c in eligible}

        if not eligible:
            logger.debug("No eligible comparables for %s (pool=%d)", subject.listing_id, len(pool))
            return CompSelectionResult(
                comparables=[],
                distances={},
                radius_miles=None,
                fallback_used=False,
                pool_size=len(pool),
                eligible_count=0,
                min_comps=min_comps,
            )

        tiers = (filters.radius_miles,) if filters.radius_miles else self._policy.radius_tiers

        for radius in tiers:
            within = [
                c for c in eligible
                if distances[c.listing_id] is not None and distances[c.listing_id] <= radius
            ]
            logger.debug("Radius %.2f mi: %d comparables", radius, len(within))

            if len(within) >= min_comps:
                return self._build_result(
                    within, subject, distances, radius, False, len(pool), len(eligible),
                    min_comps, max_comps,
                )

        widest = tiers[-1]
        if self._policy.citywide_fallback:
            selected = [
                c for c in eligible
                if self._same_city(c, subject)
                or (distances[c.listing_id] is not None and distances[c.listing_id] <= widest)
            ]
            radius_used = None
        else:
            selected = [
                c for c in eligible
                if distances[c.listing_id] is not None and distances[c.listing_id] <= widest
            ]
            radius_used = widest

        if len(selected) < min_comps:
            logger.warning(
                "Only %d comparables for %s after widening to %s",
                len(selected), subject.listing_id,
                "citywide" if radius_used is None else f"{radius_used} mi",
            )

        return self._build_result(
            selected, subject, distances, radius_used, True, len(pool), len(eligible),
            min_comps, max_comps,
        )

    def _build_result(
        self,
        comps: List[ComparableCandidate],
        subject: SubjectProperty,
        distances: Dict[str, Optional[float]],
        radius: Optional[float],
        fallback_used: bool,
        pool_size: int,
        eligible_count: int,
        min_comps: int,
        max_comps: int,
    ) -> CompSelectionResult:
        ranked = sorted(comps, key=lambda c: self._sort_key(c, subject, distances))[:max_comps]
        return CompSelectionResult(
            comparables=ranked,
            distances={c.listing_id: distances[c.listing_id] for c in ranked},
            radius_miles=radius,
            fallback_used=fallback_used,
            pool_size=pool_size,
            eligible_count=eligible_count,
            min_comps=min_comps,
        )

    @staticmethod
    def _sort_key(
        candidate: ComparableCandidate,
        subject: SubjectProperty,
        distances: Dict[str, Optional[float]],
    ) -> tuple:
        """
        Ordering: distance asc, sale date desc, |sqft delta| asc, listing id.

        Unknown distance, date or size sort last within their key.
        """
        distance = distances.get(candidate.listing_id)
        sale_date = candidate.sale_date
        if subject.living_area is not None and candidate.living_area is not None:
            sqft_delta = abs(subject.living_area - candidate.living_area)
        else:
            sqft_delta = math.inf
        return (
            distance is None,
            distance if distance is not None else 0.0,
            -sale_date.toordinal() if sale_date else 0,
            sqft_delta,
            candidate.listing_id,
        )

    def _passes_hard_filters(
        self,
        candidate: ComparableCandidate,
        subject: SubjectProperty,
        filters: SelectionFilters,
    ) -> bool:
        """Apply non-negotiable filters."""
        if candidate.listing_id == subject.listing_id:
            return False

        if candidate.status not in filters.statuses:
            return False

        price = candidate.sale_price
        if price is None or price <= 0:
            return False

        # Property type must fall in the compatible group
        if filters.property_type:
            if candidate.property_type not in compatible_property_types(filters.property_type):
                return False
        elif filters.match_property_type and subject.property_type:
            if candidate.property_type not in compatible_property_types(subject.property_type):
                return False

        if filters.min_price is not None and price < filters.min_price:
            return False
        if filters.max_price is not None and price > filters.max_price:
            return False

        months_back = filters.months_back if filters.months_back is not None else self._policy.months_back
        if months_back and candidate.sale_date is not None:
            if not self._is_within_date_range(candidate.sale_date, months_back):
                return False

        if filters.exclude_distressed and has_distress_signal(candidate.remarks):
            return False

        if filters.apply_tolerances and not self._within_tolerances(candidate, subject):
            return False

        return True

    def _within_tolerances(self, candidate: ComparableCandidate, subject: SubjectProperty) -> bool:
        """Attribute tolerances. A missing value on either side passes."""
        p = self._policy

        if _both(subject.bedrooms, candidate.bedrooms):
            if abs(subject.bedrooms - candidate.bedrooms) > p.bedroom_tolerance:
                return False

        if _both(subject.bathrooms, candidate.bathrooms):
            if abs(subject.bathrooms - candidate.bathrooms) > p.bathroom_tolerance:
                return False

        if _both(subject.living_area, candidate.living_area) and subject.living_area > 0:
            delta = abs(subject.living_area - candidate.living_area) / subject.living_area
            if delta > p.sqft_tolerance_pct:
                return False

        if _both(subject.year_built, candidate.year_built):
            if abs(subject.year_built - candidate.year_built) > p.year_built_tolerance:
                return False

        return True

    def _is_within_date_range(self, sale_date: date, max_months: int) -> bool:
        """Check if sale date is within allowed range."""
        cutoff = self._reference_date - timedelta(days=max_months * DAYS_PER_MONTH)
        return sale_date >= cutoff

    @staticmethod
    def _same_city(candidate: ComparableCandidate, subject: SubjectProperty) -> bool:
        if not subject.city:
            return True
        return candidate.city.strip().lower() == subject.city.strip().lower()


def _both(a, b) -> bool:
    return a is not None and b is not None
