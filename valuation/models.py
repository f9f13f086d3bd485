"""
Core data models for the valuation engine.

Defines the input records consumed by every component:
- SubjectProperty: the listing being valued (with user overrides)
- ComparableCandidate: a sold or active listing from the market-area pool
- MarketSnapshot: aggregate market conditions for the subject's city

Records are immutable. Malformed numeric input (negative areas, prices,
counts) is rejected at construction with a ValidationError.
"""

import re
from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional

from .errors import ValidationError
from .money import to_money


# =============================================================================
# Property Type Groups
# =============================================================================

SINGLE_FAMILY = "Single Family Residence"
CONDOMINIUM = "Condominium"
TOWNHOUSE = "Townhouse"
MULTI_FAMILY = "Multi Family"

_MULTI_FAMILY_GROUP = frozenset({MULTI_FAMILY, "Two Family", "Three Family"})

# Types a subject of the given type may be compared against
PROPERTY_TYPE_GROUPS: Dict[str, FrozenSet[str]] = {
    SINGLE_FAMILY: frozenset({SINGLE_FAMILY}),
    CONDOMINIUM: frozenset({CONDOMINIUM}),
    MULTI_FAMILY: _MULTI_FAMILY_GROUP,
    "Two Family": _MULTI_FAMILY_GROUP,
    "Three Family": _MULTI_FAMILY_GROUP,
    TOWNHOUSE: frozenset({TOWNHOUSE, CONDOMINIUM}),
}


def compatible_property_types(property_type: str) -> FrozenSet[str]:
    """Return the set of property types comparable to the given type."""
    return PROPERTY_TYPE_GROUPS.get(property_type, frozenset({property_type}))


# =============================================================================
# Remarks Signals
# =============================================================================

RENOVATION_KEYWORDS = ("renovated", "updated", "remodeled")
DISTRESS_KEYWORDS = ("foreclosure", "short sale", "bank owned", "reo")
VALUE_ADD_KEYWORDS = ("needs work", "handyman", "tlc", "fixer", "as-is", "as is", "estate sale")
STRUCTURAL_RED_FLAGS = ("foundation", "structural", "fire damage", "mold", "water damage", "condemned")


def _mentions(remarks: str, keywords) -> bool:
    if not remarks:
        return False
    text = remarks.lower()
    return any(re.search(r"\b" + re.escape(word) + r"\b", text) for word in keywords)


def has_renovation_signal(remarks: str) -> bool:
    """Whether listing remarks describe a renovated/updated property."""
    return _mentions(remarks, RENOVATION_KEYWORDS)


def has_distress_signal(remarks: str) -> bool:
    """Whether listing remarks describe a foreclosure, short sale or REO."""
    return _mentions(remarks, DISTRESS_KEYWORDS)


def has_value_add_signal(remarks: str) -> bool:
    return _mentions(remarks, VALUE_ADD_KEYWORDS)


def has_structural_red_flag(remarks: str) -> bool:
    return _mentions(remarks, STRUCTURAL_RED_FLAGS)


# =============================================================================
# Enums
# =============================================================================

class ListingStatus(Enum):
    """MLS standard status of a candidate listing."""
    CLOSED = "Closed"
    ACTIVE = "Active"
    PENDING = "Pending"

    @classmethod
    def from_string(cls, value: str) -> Optional["ListingStatus"]:
        """Convert string to ListingStatus, case-insensitive."""
        normalised = value.lower().strip()
        for member in cls:
            if member.value.lower() == normalised:
                return member
        return None


class MarketTrend(Enum):
    """
    Market direction derived from months of supply.

    Sellers: < 4 months
    Balanced: 4-6 months
    Buyers: > 6 months
    """
    SELLERS = "sellers"
    BALANCED = "balanced"
    BUYERS = "buyers"

    @classmethod
    def from_string(cls, value: str) -> Optional["MarketTrend"]:
        """Convert string to MarketTrend, case-insensitive."""
        normalised = value.lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None

    @classmethod
    def from_months_supply(cls, months_supply: Optional[float]) -> "MarketTrend":
        if months_supply is None:
            return cls.BALANCED
        if months_supply < 4:
            return cls.SELLERS
        if months_supply > 6:
            return cls.BUYERS
        return cls.BALANCED


# =============================================================================
# Property Records
# =============================================================================

# Attributes that feed the adjustment calculator and may be overridden
ADJUSTABLE_ATTRIBUTES = (
    "bedrooms",
    "bathrooms",
    "living_area",
    "lot_size_acres",
    "year_built",
    "garage_spaces",
)

_NON_NEGATIVE_FIELDS = (
    "bedrooms",
    "bathrooms",
    "living_area",
    "lot_size_acres",
    "year_built",
    "garage_spaces",
    "list_price",
    "original_list_price",
    "days_on_market",
    "tax_rate",
    "close_price",
)

_MONEY_FIELDS = ("list_price", "original_list_price", "close_price")


@dataclass(frozen=True)
class PropertyRecord:
    """
    Attributes shared by subjects and comparables.

    Every physical attribute is optional: a missing value means
    "unknown", never zero.
    """
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
    living_area: Optional[int] = None  # Square feet
    lot_size_acres: Optional[float] = None
    year_built: Optional[int] = None
    garage_spaces: Optional[int] = None

    list_price: Optional[Decimal] = None
    original_list_price: Optional[Decimal] = None
    days_on_market: Optional[int] = None
    remarks: str = ""

    def __post_init__(self):
        if not self.listing_id:
            raise ValidationError("listing_id is required", field="listing_id")

        for name in _NON_NEGATIVE_FIELDS:
            value = getattr(self, name, None)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
                raise ValidationError(
                    f"{name} must be numeric, got {type(value).__name__}", field=name
                )
            if value < 0:
                raise ValidationError(f"{name} must not be negative: {value}", field=name)

        for name in _MONEY_FIELDS:
            value = getattr(self, name, None)
            if value is not None:
                object.__setattr__(self, name, to_money(value))

        if self.latitude is not None and not -90 <= self.latitude <= 90:
            raise ValidationError(f"latitude out of range: {self.latitude}", field="latitude")
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            raise ValidationError(f"longitude out of range: {self.longitude}", field="longitude")

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def price_per_sqft(self) -> Optional[Decimal]:
        """Sale (or list) price divided by living area."""
        price = getattr(self, "sale_price", None) or self.list_price
        if price is None or not self.living_area:
            return None
        return to_money(price / Decimal(self.living_area))


@dataclass(frozen=True)
class SubjectProperty(PropertyRecord):
    """
    The property being valued.

    Overrides let a user correct MLS attributes (e.g. a finished basement
    not counted in living area). They are applied by effective().
    """
    tax_rate: Optional[float] = None  # Annual property tax rate (0-1)
    overrides: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self):
        super().__post_init__()
        for key in self.overrides:
            if key not in ADJUSTABLE_ATTRIBUTES:
                raise ValidationError(f"Cannot override attribute: {key}", field=key)

    def effective(self) -> "SubjectProperty":
        """Return a copy with overrides applied (and cleared)."""
        if not self.overrides:
            return self
        return replace(self, overrides={}, **dict(self.overrides))

    def with_overrides(self, overrides: Mapping[str, object]) -> "SubjectProperty":
        """Return a copy whose overrides are merged with the given values."""
        merged = dict(self.overrides)
        merged.update(overrides)
        return replace(self, overrides=merged)


@dataclass(frozen=True)
class ComparableCandidate(PropertyRecord):
    """
    A listing from the market-area candidate pool.

    Closed sales carry close_price/close_date. Active listings fall back
    to list_price/list_date when used as context.
    """
    status: ListingStatus = ListingStatus.CLOSED
    close_price: Optional[Decimal] = None
    close_date: Optional[date] = None
    list_date: Optional[date] = None

    @property
    def sale_price(self) -> Optional[Decimal]:
        """Close price, or list price when the listing has not closed."""
        if self.close_price is not None:
            return self.close_price
        return self.list_price

    @property
    def sale_date(self) -> Optional[date]:
        if self.close_date is not None:
            return self.close_date
        return self.list_date

    @property
    def is_closed(self) -> bool:
        return self.status == ListingStatus.CLOSED

    @property
    def is_renovated(self) -> bool:
        return has_renovation_signal(self.remarks)

    @property
    def is_distressed(self) -> bool:
        return has_distress_signal(self.remarks)


# =============================================================================
# Market Snapshot
# =============================================================================

@dataclass(frozen=True)
class MarketSnapshot:
    """
    Aggregate market conditions for a city and property type.

    Built by valuation.market.build_market_snapshot or supplied by the
    caller. school_rating is an optional 0-10 district rating.
    """
    city: str
    property_type: str = "all"
    active_listings: int = 0
    closed_sales_6mo: int = 0
    median_price: Optional[Decimal] = None
    avg_price: Optional[Decimal] = None
    median_dom: Optional[float] = None
    months_supply: Optional[float] = None
    trend: MarketTrend = MarketTrend.BALANCED
    school_rating: Optional[float] = None
    as_of: Optional[date] = None

    def __post_init__(self):
        for name in ("active_listings", "closed_sales_6mo"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must not be negative", field=name)
        if self.school_rating is not None and not 0 <= self.school_rating <= 10:
            raise ValidationError(
                f"school_rating must be between 0 and 10: {self.school_rating}",
                field="school_rating",
            )
        for name in ("median_price", "avg_price"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_money(value))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "city": self.city,
            "property_type": self.property_type,
            "active_listings": self.active_listings,
            "closed_sales_6mo": self.closed_sales_6mo,
            "median_price": _money_str(self.median_price),
            "avg_price": _money_str(self.avg_price),
            "median_dom": self.median_dom,
            "months_supply": self.months_supply,
            "trend": self.trend.value,
            "school_rating": self.school_rating,
            "as_of": self.as_of.isoformat() if self.as_of else None,
        }


def _money_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def record_to_dict(record: PropertyRecord) -> dict:
    """Serialise a property record to JSON-safe primitives."""
    result = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Mapping):
            value = dict(value)
        result[f.name] = value
    return result


__all__ = [
    "PropertyRecord",
    "SubjectProperty",
    "ComparableCandidate",
    "MarketSnapshot",
    "ListingStatus",
    "MarketTrend",
    "ADJUSTABLE_ATTRIBUTES",
    "PROPERTY_TYPE_GROUPS",
    "compatible_property_types",
    "has_renovation_signal",
    "has_distress_signal",
    "has_value_add_signal",
    "has_structural_red_flag",
    "record_to_dict",
]
