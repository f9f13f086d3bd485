"""
Comp Engine

Comparable selection, adjustment, scoring and aggregation pipeline that
turns a pool of sold listings into an adjusted value range with a
confidence rating.
"""

from .models import (
    Adjustment,
    AdjustmentResult,
    CompSelectionResult,
    ConfidenceLevel,
    DataQualityFlag,
    ScoredComparable,
    ValuationEstimate,
)
from .filters import ComparableSelector, SelectionFilters, haversine_miles
from .adjustments import AdjustmentCalculator
from .scoring import ComparabilityScorer, grade_for_score, weight_for_score
from .valuation import (
    CompValuationEngine,
    ValuationAggregator,
    ValuationRun,
    average_price_per_sqft,
)

__all__ = [
    # Models
    "Adjustment",
    "AdjustmentResult",
    "CompSelectionResult",
    "ConfidenceLevel",
    "DataQualityFlag",
    "ScoredComparable",
    "ValuationEstimate",
    # Components
    "ComparableSelector",
    "SelectionFilters",
    "haversine_miles",
    "AdjustmentCalculator",
    "ComparabilityScorer",
    "grade_for_score",
    "weight_for_score",
    "ValuationAggregator",
    # Engine
    "CompValuationEngine",
    "ValuationRun",
    "average_price_per_sqft",
]

__version__ = "1.0"
