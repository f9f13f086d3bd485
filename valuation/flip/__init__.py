"""
Flip Analysis

ARV-driven flip financials, rental and BRRRR projections, risk factors
and composite deal scoring with disqualification.
"""

from .models import (
    BrrrrAnalysis,
    CompositeScore,
    FinancialModel,
    FlipAnalysis,
    RehabEstimate,
    RentalAnalysis,
    RiskAssessment,
    Strategy,
    StrategyScore,
)
from .financials import (
    analyze_brrrr,
    analyze_rental,
    assess_risk,
    compute_financials,
    estimate_hold_months,
    estimate_monthly_rent,
    estimate_rehab_cost,
)
from .scoring import DealScorer
from .analyzer import FlipAnalyzer

__all__ = [
    # Models
    "BrrrrAnalysis",
    "CompositeScore",
    "FinancialModel",
    "FlipAnalysis",
    "RehabEstimate",
    "RentalAnalysis",
    "RiskAssessment",
    "Strategy",
    "StrategyScore",
    # Financial model
    "analyze_brrrr",
    "analyze_rental",
    "assess_risk",
    "compute_financials",
    "estimate_hold_months",
    "estimate_monthly_rent",
    "estimate_rehab_cost",
    # Scoring
    "DealScorer",
    "FlipAnalyzer",
]

__version__ = "1.0"
