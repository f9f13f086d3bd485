"""
Request models for JSON input.

Validated with pydantic and converted to the engine's frozen records
with to_record().
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .comp_engine import SelectionFilters
from .errors import ValidationError
from .models import (
    SINGLE_FAMILY,
    ComparableCandidate,
    ListingStatus,
    MarketSnapshot,
    MarketTrend,
    SubjectProperty,
)
from .policy import EnginePolicy


class PropertyInput(BaseModel):
    """Attributes shared by subjects and comparables."""
    listing_id: str
    city: str = ""
    zip_code: str = ""
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    property_type: str = SINGLE_FAMILY
    property_sub_type: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    living_area: Optional[int] = None
    lot_size_acres: Optional[float] = None
    year_built: Optional[int] = None
    garage_spaces: Optional[int] = None
    list_price: Optional[Decimal] = None
    original_list_price: Optional[Decimal] = None
    days_on_market: Optional[int] = None
    remarks: str = ""


class SubjectInput(PropertyInput):
    """Subject property with optional user overrides."""
    tax_rate: Optional[float] = None
    overrides: Dict[str, Any] = {}

    def to_record(self) -> SubjectProperty:
        return SubjectProperty(**self.model_dump())


class ComparableInput(PropertyInput):
    """A sold (or listed) property considered as a comparable."""
    status: str = ListingStatus.CLOSED.value
    close_price: Optional[Decimal] = None
    close_date: Optional[date] = None
    list_date: Optional[date] = None

    def to_record(self) -> ComparableCandidate:
        status = ListingStatus.from_string(self.status)
        if status is None:
            raise ValidationError(f"Unknown listing status: {self.status}", field="status")
        data = self.model_dump()
        data["status"] = status
        return ComparableCandidate(**data)


class FiltersInput(BaseModel):
    """Comparable selection narrowing."""
    property_type: Optional[str] = None
    match_property_type: bool = True
    radius_miles: Optional[float] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    months_back: Optional[int] = None
    statuses: List[str] = [ListingStatus.CLOSED.value]
    apply_tolerances: bool = False
    exclude_distressed: bool = False
    min_comps: Optional[int] = None
    max_comps: Optional[int] = None

    def to_record(self) -> SelectionFilters:
        statuses = []
        for value in self.statuses:
            status = ListingStatus.from_string(value)
            if status is None:
                raise ValidationError(f"Unknown listing status: {value}", field="statuses")
            statuses.append(status)

        data = self.model_dump()
        data["statuses"] = tuple(statuses)
        return SelectionFilters(**data)


class MarketInput(BaseModel):
    """Market snapshot supplied by the caller."""
    city: str
    property_type: str = "all"
    active_listings: int = 0
    closed_sales_6mo: int = 0
    median_price: Optional[Decimal] = None
    avg_price: Optional[Decimal] = None
    median_dom: Optional[float] = None
    months_supply: Optional[float] = None
    trend: Optional[str] = None
    school_rating: Optional[float] = None
    as_of: Optional[date] = None

    def to_record(self) -> MarketSnapshot:
        data = self.model_dump()
        if self.trend is None:
            data["trend"] = MarketTrend.from_months_supply(self.months_supply)
        else:
            trend = MarketTrend.from_string(self.trend)
            if trend is None:
                raise ValidationError(f"Unknown market trend: {self.trend}", field="trend")
            data["trend"] = trend
        return MarketSnapshot(**data)


class ValuationRequest(BaseModel):
    """Fields shared by CMA and flip requests."""
    subject: SubjectInput
    comparables: List[ComparableInput] = []
    filters: Optional[FiltersInput] = None
    reference_date: Optional[date] = None
    policy: Dict[str, Any] = {}

    def subject_record(self) -> SubjectProperty:
        return self.subject.to_record()

    def pool(self) -> List[ComparableCandidate]:
        return [c.to_record() for c in self.comparables]

    def filters_record(self) -> Optional[SelectionFilters]:
        return self.filters.to_record() if self.filters else None

    def policy_record(self, base: EnginePolicy = None) -> EnginePolicy:
        """Policy overrides layered over base (or the defaults)."""
        if not self.policy:
            return base or EnginePolicy()
        if base is None:
            return EnginePolicy.from_dict(self.policy)
        merged = base.to_dict()
        _deep_update(merged, self.policy)
        return EnginePolicy.from_dict(merged)


class CmaRequest(ValuationRequest):
    """Input for a comparative market analysis."""
    arv_mode: bool = False


class FlipRequest(ValuationRequest):
    """Input for a flip analysis."""
    market: Optional[MarketInput] = None
    rehab_cost: Optional[Decimal] = None
    hold_months: Optional[int] = None

    def market_record(self) -> Optional[MarketSnapshot]:
        return self.market.to_record() if self.market else None


def _deep_update(target: dict, updates: dict) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_update(target[key], value)
        else:
            target[key] = value
