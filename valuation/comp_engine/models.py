"""
Data models for the comp engine.

Defines structures produced while turning a candidate pool into a
valuation: individual adjustments, scored comparables, the selection
result and the final value estimate.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from ..models import ComparableCandidate


Number = Union[int, float, Decimal]


class ConfidenceLevel(Enum):
    """
    Confidence rating for a valuation estimate.

    None: no comparables selected
    Low: score < 50, or fewer than 3 comparables
    Medium: score >= 50 (capped here when fewer than 5 comparables)
    High: score >= 75 with at least 5 comparables
    """
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_string(cls, value: str) -> Optional["ConfidenceLevel"]:
        """Convert string to ConfidenceLevel, case-insensitive."""
        normalised = value.lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    ConfidenceLevel.NONE: 0,
    ConfidenceLevel.LOW: 1,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.HIGH: 3,
}


@dataclass(frozen=True)
class Adjustment:
    """
    A signed dollar adjustment for one feature dimension.

    Positive when the subject is superior to the comparable.
    """
    feature: str
    value: Decimal
    rule: str
    subject_value: Optional[Number] = None
    comp_value: Optional[Number] = None
    difference: Optional[Number] = None
    clamped: bool = False

    def to_dict(self) -> dict:
        return {
            "feature": self.feature,
            "value": str(self.value),
            "rule": self.rule,
            "subject_value": _plain(self.subject_value),
            "comp_value": _plain(self.comp_value),
            "difference": _plain(self.difference),
            "clamped": self.clamped,
        }


@dataclass(frozen=True)
class DataQualityFlag:
    """A dimension skipped because an attribute was missing."""
    feature: str
    reason: str

    def to_dict(self) -> dict:
        return {"feature": self.feature, "reason": self.reason}


@dataclass(frozen=True)
class AdjustmentResult:
    """Output of the adjustment calculator for one comparable."""
    adjustments: Tuple[Adjustment, ...]
    data_quality_flags: Tuple[DataQualityFlag, ...]
    total: Decimal
    adjusted_price: Decimal
    gross_pct: float  # sum of |adjustments| / sale price


@dataclass(frozen=True)
class ScoredComparable:
    """
    A comparable candidate with its adjustments, score and weight.

    Computed once per valuation run. Only the selection, renovation and
    distress flags may change afterwards (via with_flags).
    """
    candidate: ComparableCandidate
    distance_miles: Optional[float]
    adjustments: Tuple[Adjustment, ...]
    data_quality_flags: Tuple[DataQualityFlag, ...]
    adjustment_total: Decimal
    adjusted_price: Decimal
    gross_adjustment_pct: float
    comparability_score: float
    comparability_grade: str
    weight: float
    is_selected: bool = True
    is_renovated: bool = False
    is_distressed: bool = False

    @property
    def listing_id(self) -> str:
        return self.candidate.listing_id

    @property
    def sale_price(self) -> Decimal:
        return self.candidate.sale_price

    def with_flags(
        self,
        is_selected: Optional[bool] = None,
        is_renovated: Optional[bool] = None,
        is_distressed: Optional[bool] = None,
    ) -> "ScoredComparable":
        """Return a copy with the given user-toggleable flags changed."""
        changes = {}
        if is_selected is not None:
            changes["is_selected"] = is_selected
        if is_renovated is not None:
            changes["is_renovated"] = is_renovated
        if is_distressed is not None:
            changes["is_distressed"] = is_distressed
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        c = self.candidate
        return {
            "listing_id": c.listing_id,
            "address": c.address,
            "city": c.city,
            "property_type": c.property_type,
            "property_sub_type": c.property_sub_type,
            "bedrooms": c.bedrooms,
            "bathrooms": c.bathrooms,
            "living_area": c.living_area,
            "year_built": c.year_built,
            "sale_price": str(c.sale_price) if c.sale_price is not None else None,
            "sale_date": c.sale_date.isoformat() if c.sale_date else None,
            "days_on_market": c.days_on_market,
            "distance_miles": (
                round(self.distance_miles, 2) if self.distance_miles is not None else None
            ),
            "adjustments": [a.to_dict() for a in self.adjustments],
            "data_quality_flags": [f.to_dict() for f in self.data_quality_flags],
            "adjustment_total": str(self.adjustment_total),
            "adjusted_price": str(self.adjusted_price),
            "gross_adjustment_pct": self.gross_adjustment_pct,
            "comparability_score": self.comparability_score,
            "comparability_grade": self.comparability_grade,
            "weight": round(self.weight, 4),
            "is_selected": self.is_selected,
            "is_renovated": self.is_renovated,
            "is_distressed": self.is_distressed,
        }


@dataclass(frozen=True)
class CompSelectionResult:
    """
    Result of comparable selection.

    radius_miles is None when the citywide tier was used.
    """
    comparables: List[ComparableCandidate]
    distances: Dict[str, Optional[float]] = field(default_factory=dict)
    radius_miles: Optional[float] = None
    fallback_used: bool = False
    pool_size: int = 0
    eligible_count: int = 0
    min_comps: int = 3

    @property
    def comp_count(self) -> int:
        """Number of comparables retained."""
        return len(self.comparables)

    @property
    def is_sufficient(self) -> bool:
        """Whether the minimum comparable count is met."""
        return self.comp_count >= self.min_comps

    def distance_for(self, candidate: ComparableCandidate) -> Optional[float]:
        return self.distances.get(candidate.listing_id)

    def to_dict(self) -> dict:
        return {
            "comp_count": self.comp_count,
            "radius_miles": self.radius_miles,
            "fallback_used": self.fallback_used,
            "pool_size": self.pool_size,
            "eligible_count": self.eligible_count,
        }


@dataclass(frozen=True)
class ValuationEstimate:
    """
    Value range produced by the aggregator.

    low/mid/high are None when no comparables were selected.
    confidence_factors holds the count, quality and dispersion terms
    that sum to confidence_score.
    """
    low: Optional[Decimal]
    mid: Optional[Decimal]
    high: Optional[Decimal]
    confidence_score: float
    confidence_level: ConfidenceLevel
    comparables_count: int
    avg_price_per_sqft: Optional[Decimal] = None
    price_cv: Optional[float] = None  # coefficient of variation of adjusted prices
    confidence_factors: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ValuationEstimate":
        """Degenerate estimate for zero comparables."""
        return cls(
            low=None,
            mid=None,
            high=None,
            confidence_score=0.0,
            confidence_level=ConfidenceLevel.NONE,
            comparables_count=0,
        )

    @property
    def has_value(self) -> bool:
        return self.mid is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "low": _plain(self.low),
            "mid": _plain(self.mid),
            "high": _plain(self.high),
            "confidence_score": self.confidence_score,
            "confidence_level": self.confidence_level.value,
            "comparables_count": self.comparables_count,
            "avg_price_per_sqft": _plain(self.avg_price_per_sqft),
            "price_cv": self.price_cv,
            "confidence_factors": dict(self.confidence_factors),
        }


def _plain(value):
    if isinstance(value, Decimal):
        return str(value)
    return value
