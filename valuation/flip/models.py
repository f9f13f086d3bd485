"""
Data models for flip analysis.

Financial results are Decimal dollar amounts quantized to cents. Ratios
(ROI, cap rate) are Decimal fractions rounded to 4 places.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from ..comp_engine import ValuationRun
from ..models import SubjectProperty, record_to_dict
from ..money import to_money


class Strategy(Enum):
    """Investment strategy evaluated for a deal."""
    FLIP = "flip"
    RENTAL = "rental"
    BRRRR = "brrrr"

    @classmethod
    def from_string(cls, value: str) -> Optional["Strategy"]:
        """Convert string to Strategy, case-insensitive."""
        normalised = value.lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None


def _plain(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _as_dict(instance, names) -> dict:
    return {name: _plain(getattr(instance, name)) for name in names}


@dataclass(frozen=True)
class RehabEstimate:
    """Age-based rehab cost estimate."""
    total: Decimal
    per_sqft: Decimal
    contingency_rate: Decimal
    lead_paint: Decimal
    base_cost: Decimal

    def to_dict(self) -> dict:
        return _as_dict(self, ("total", "per_sqft", "contingency_rate", "lead_paint", "base_cost"))


@dataclass(frozen=True)
class FinancialModel:
    """
    Flip financials for one purchase price / ARV / rehab / hold combination.

    Cash scenario: all-cash purchase.
    Financed scenario: hard-money loan on the purchase price.
    """
    purchase_price: Decimal
    arv: Decimal
    rehab_cost: Decimal
    hold_months: int

    # Costs
    purchase_closing_cost: Decimal
    sale_costs: Decimal
    holding_costs: Decimal

    # Cash scenario
    cash_profit: Decimal
    cash_investment: Decimal
    cash_roi: Decimal

    # Financed scenario
    loan_amount: Decimal
    financing_costs: Decimal
    financed_profit: Decimal
    cash_invested: Decimal
    cash_on_cash_roi: Decimal
    annualized_roi: Decimal

    # Offer limits
    mao_classic: Decimal
    mao_adjusted: Decimal
    breakeven_arv: Decimal

    @property
    def is_profitable(self) -> bool:
        return self.cash_profit > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return _as_dict(self, (
            "purchase_price", "arv", "rehab_cost", "hold_months",
            "purchase_closing_cost", "sale_costs", "holding_costs",
            "cash_profit", "cash_investment", "cash_roi",
            "loan_amount", "financing_costs", "financed_profit", "cash_invested",
            "cash_on_cash_roi", "annualized_roi",
            "mao_classic", "mao_adjusted", "breakeven_arv",
        ))


@dataclass(frozen=True)
class RentalAnalysis:
    """Buy-and-hold rental projection at the ARV."""
    monthly_rent: Decimal
    annual_gross: Decimal
    vacancy_loss: Decimal
    operating_expenses: Decimal
    noi: Decimal
    cap_rate: Decimal
    cash_on_cash: Decimal
    grm: Decimal
    annual_depreciation: Decimal
    tax_shelter: Decimal

    @property
    def monthly_cash_flow(self) -> Decimal:
        """Monthly NOI (no debt service on an all-cash hold)."""
        return to_money(self.noi / 12)

    def to_dict(self) -> dict:
        result = _as_dict(self, (
            "monthly_rent", "annual_gross", "vacancy_loss", "operating_expenses",
            "noi", "cap_rate", "cash_on_cash", "grm", "annual_depreciation", "tax_shelter",
        ))
        result["monthly_cash_flow"] = str(self.monthly_cash_flow)
        return result


@dataclass(frozen=True)
class BrrrrAnalysis:
    """Buy, Rehab, Rent, Refinance, Repeat projection."""
    refi_loan: Decimal
    monthly_payment: Decimal
    annual_debt_service: Decimal
    post_refi_cash_flow: Decimal
    dscr: Decimal
    cash_left: Decimal
    total_cash_in: Decimal

    def to_dict(self) -> dict:
        return _as_dict(self, (
            "refi_loan", "monthly_payment", "annual_debt_service",
            "post_refi_cash_flow", "dscr", "cash_left", "total_cash_in",
        ))


@dataclass(frozen=True)
class RiskAssessment:
    """Factor breakdown behind a deal's risk (each factor 0-100)."""
    score: float
    grade: str
    factors: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"score": self.score, "grade": self.grade, "factors": dict(self.factors)}


@dataclass(frozen=True)
class StrategyScore:
    """
    Score and viability for one strategy.

    score is None when the deal was disqualified before strategy scoring.
    """
    strategy: Strategy
    score: Optional[float]
    viable: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy.value,
            "score": self.score,
            "viable": self.viable,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CompositeScore:
    """Sub-scores, strategy scores and the deal verdict."""
    financial_score: float
    property_score: float
    location_score: float
    market_score: float
    total_score: float
    flip: StrategyScore
    rental: StrategyScore
    brrrr: StrategyScore
    best_strategy: Optional[Strategy]
    disqualified: bool
    reason: Optional[str]
    deal_risk_grade: str

    @property
    def flip_score(self) -> Optional[float]:
        return self.flip.score

    @property
    def rental_score(self) -> Optional[float]:
        return self.rental.score

    @property
    def brrrr_score(self) -> Optional[float]:
        return self.brrrr.score

    @property
    def strategies(self):
        return (self.flip, self.rental, self.brrrr)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "financial_score": self.financial_score,
            "property_score": self.property_score,
            "location_score": self.location_score,
            "market_score": self.market_score,
            "total_score": self.total_score,
            "flip": self.flip.to_dict(),
            "rental": self.rental.to_dict(),
            "brrrr": self.brrrr.to_dict(),
            "best_strategy": self.best_strategy.value if self.best_strategy else None,
            "disqualified": self.disqualified,
            "reason": self.reason,
            "deal_risk_grade": self.deal_risk_grade,
        }


@dataclass
class FlipAnalysis:
    """Complete flip analysis for one subject."""
    subject: SubjectProperty
    run: ValuationRun
    rehab: RehabEstimate
    financials: Optional[FinancialModel]
    rental: Optional[RentalAnalysis]
    brrrr: Optional[BrrrrAnalysis]
    risk: Optional[RiskAssessment]
    score: CompositeScore
    neighborhood_ceiling: Optional[Decimal]
    run_date: date

    @property
    def arv(self) -> Optional[Decimal]:
        return self.run.estimate.mid

    @property
    def disqualified(self) -> bool:
        return self.score.disqualified

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "subject": record_to_dict(self.subject),
            "run_date": self.run_date.isoformat(),
            "arv": _plain(self.arv),
            "estimate": self.run.estimate.to_dict(),
            "comparables": [c.to_dict() for c in self.run.comparables],
            "neighborhood_ceiling": _plain(self.neighborhood_ceiling),
            "rehab": self.rehab.to_dict(),
            "financials": self.financials.to_dict() if self.financials else None,
            "rental": self.rental.to_dict() if self.rental else None,
            "brrrr": self.brrrr.to_dict() if self.brrrr else None,
            "risk": self.risk.to_dict() if self.risk else None,
            "score": self.score.to_dict(),
        }
