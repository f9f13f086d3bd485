"""
BMN Valuation Engine

Comparable-sale valuation (CMA and ARV) and flip deal analysis for
residential listings.
"""

from .errors import ValidationError, ValuationError
from .models import (
    ComparableCandidate,
    ListingStatus,
    MarketSnapshot,
    MarketTrend,
    PropertyRecord,
    SubjectProperty,
)
from .policy import EnginePolicy
from .comp_engine import CompValuationEngine, SelectionFilters, ValuationEstimate
from .market import build_market_snapshot, neighborhood_ceiling
from .cma import CmaReport, CmaReportService
from .flip import CompositeScore, DealScorer, FlipAnalysis, FlipAnalyzer, Strategy

__all__ = [
    "ValuationError",
    "ValidationError",
    "ComparableCandidate",
    "ListingStatus",
    "MarketSnapshot",
    "MarketTrend",
    "PropertyRecord",
    "SubjectProperty",
    "EnginePolicy",
    "CompValuationEngine",
    "SelectionFilters",
    "ValuationEstimate",
    "build_market_snapshot",
    "neighborhood_ceiling",
    "CmaReport",
    "CmaReportService",
    "CompositeScore",
    "DealScorer",
    "FlipAnalysis",
    "FlipAnalyzer",
    "Strategy",
]

__version__ = "1.0.0"
