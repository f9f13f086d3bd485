"""
Composite deal scoring and disqualification.

Scoring methodology (sub-scores 0-100):
- Financial: price-to-ARV ratio, cash ROI, MAO margin of safety, price reduction
- Property: lot, living area, age sweet spot, bedrooms, condition signals
- Location: school rating, ARV headroom under the neighborhood ceiling, trend
- Market: median days on market, months of supply, season

totalScore and each strategy score are weighted averages of the four
sub-scores using the DealPolicy weight rows.

Hard gates (zero comparables, no ARV confidence, negative cash profit,
list price or living area below minimum) disqualify the deal before
strategy scoring. A deal with no viable strategy is also disqualified.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from ..comp_engine import (
    ConfidenceLevel,
    ScoredComparable,
    ValuationAggregator,
    ValuationEstimate,
    grade_for_score,
)
from ..models import (
    MarketSnapshot,
    MarketTrend,
    SubjectProperty,
    has_structural_red_flag,
    has_value_add_signal,
)
from ..policy import EnginePolicy, SubScoreWeights
from .models import (
    BrrrrAnalysis,
    CompositeScore,
    FinancialModel,
    RentalAnalysis,
    Strategy,
    StrategyScore,
)


logger = logging.getLogger(__name__)


class DealScorer:
    """
    Scores a flip deal and decides disqualification and best strategy.

    Stateless apart from the injected policy and reference date.
    """

    def __init__(self, policy: EnginePolicy = None, reference_date: date = None):
        """
        Initialize scorer.

        Args:
            policy: Engine policy (default: EnginePolicy())
            reference_date: Date used for property age and season (default: today)
        """
        self._policy = policy or EnginePolicy()
        self._deal = self._policy.deal
        self._rubrics = self._policy.deal.rubrics
        self._reference_date = reference_date or date.today()

    def score_deal(
        self,
        financials: Optional[FinancialModel],
        subject: SubjectProperty,
        market: Optional[MarketSnapshot],
        comparables: Sequence[ScoredComparable],
        estimate: ValuationEstimate = None,
        rental: RentalAnalysis = None,
        brrrr: BrrrrAnalysis = None,
        neighborhood_ceiling: Optional[Decimal] = None,
    ) -> CompositeScore:
        """
        Produce the composite score for a deal.

        Args:
            financials: Flip financial model (None when ARV is unavailable)
            subject: Subject property
            market: Market snapshot for the subject's city
            comparables: Scored comparables from the ARV run
            estimate: ARV estimate (aggregated from comparables if omitted)
            rental: Rental projection for the rental strategy
            brrrr: BRRRR projection for the BRRRR strategy
            neighborhood_ceiling: P90 nearby closed price

        Returns:
            CompositeScore (disqualification is a normal result)
        """
        if estimate is None:
            estimate = ValuationAggregator(self._policy.confidence).aggregate(comparables)

        financial_score = round(self._financial_score(financials, subject), 1)
        property_score = round(self._property_score(subject, comparables), 1)
        location_score = round(self._location_score(market, estimate, neighborhood_ceiling), 1)
        market_score = round(self._market_score(market), 1)

        sub_scores = (financial_score, property_score, location_score, market_score)
        total_score = _weighted(sub_scores, self._deal.total_weights)
        risk_grade = grade_for_score(total_score, self._policy.scoring.grade_bands)

        reason = self._hard_gate(financials, subject, comparables, estimate)

        if reason is not None:
            logger.info("Deal %s disqualified: %s", subject.listing_id, reason)
            blocked = [
                StrategyScore(strategy=s, score=None, viable=False, reason=reason)
                for s in Strategy
            ]
            return CompositeScore(
                financial_score=financial_score,
                property_score=property_score,
                location_score=location_score,
                market_score=market_score,
                total_score=total_score,
                flip=blocked[0],
                rental=blocked[1],
                brrrr=blocked[2],
                best_strategy=None,
                disqualified=True,
                reason=reason,
                deal_risk_grade=risk_grade,
            )

        flip = self._flip_strategy(sub_scores, financials)
        rental_strategy = self._rental_strategy(sub_scores, rental)
        brrrr_strategy = self._brrrr_strategy(sub_scores, brrrr)

        viable = [s for s in (flip, rental_strategy, brrrr_strategy) if s.viable]
        best = max(viable, key=lambda s: s.score).strategy if viable else None

        disqualified = best is None
        reason = "No viable investment strategy" if disqualified else None
        if disqualified:
            logger.info("Deal %s disqualified: %s", subject.listing_id, reason)

        return CompositeScore(
            financial_score=financial_score,
            property_score=property_score,
            location_score=location_score,
            market_score=market_score,
            total_score=total_score,
            flip=flip,
            rental=rental_strategy,
            brrrr=brrrr_strategy,
            best_strategy=best,
            disqualified=disqualified,
            reason=reason,
            deal_risk_grade=risk_grade,
        )

    # =========================================================================
    # Disqualification
    # =========================================================================

    def _hard_gate(
        self,
        financials: Optional[FinancialModel],
        subject: SubjectProperty,
        comparables: Sequence[ScoredComparable],
        estimate: ValuationEstimate,
    ) -> Optional[str]:
        """Return the first failed hard gate, or None."""
        d = self._deal

        if not any(c.is_selected for c in comparables):
            return "No comparable sales selected"

        if estimate.confidence_level == ConfidenceLevel.NONE:
            return "ARV confidence is none"

        if financials is None:
            return "Financial model unavailable"

        if financials.cash_profit < 0:
            return "Negative cash profit"

        list_price = subject.list_price if subject.list_price is not None else financials.purchase_price
        if list_price < d.min_list_price:
            return f"List price below ${d.min_list_price:,.0f} minimum"

        if subject.living_area is None or subject.living_area < d.min_living_area:
            return f"Living area below {d.min_living_area} sqft minimum"

        return None

    # =========================================================================
    # Strategies
    # =========================================================================

    def _flip_strategy(self, sub_scores, financials: FinancialModel) -> StrategyScore:
        d = self._deal
        score = _weighted(sub_scores, d.flip_weights)

        if financials.cash_roi < d.min_flip_roi:
            return StrategyScore(Strategy.FLIP, score, False, f"Cash ROI below {d.min_flip_roi:.0%}")
        if financials.cash_profit < d.min_flip_profit:
            return StrategyScore(
                Strategy.FLIP, score, False, f"Cash profit below ${d.min_flip_profit:,.0f}"
            )
        return StrategyScore(Strategy.FLIP, score, True)

    def _rental_strategy(self, sub_scores, rental: Optional[RentalAnalysis]) -> StrategyScore:
        d = self._deal
        score = _weighted(sub_scores, d.rental_weights)

        if rental is None:
            return StrategyScore(Strategy.RENTAL, score, False, "No rental projection")
        if rental.cap_rate < d.min_cap_rate:
            return StrategyScore(Strategy.RENTAL, score, False, f"Cap rate below {d.min_cap_rate:.0%}")
        if rental.monthly_cash_flow <= d.min_monthly_cash_flow:
            return StrategyScore(Strategy.RENTAL, score, False, "Cash flow not positive")
        return StrategyScore(Strategy.RENTAL, score, True)

    def _brrrr_strategy(self, sub_scores, brrrr: Optional[BrrrrAnalysis]) -> StrategyScore:
        d = self._deal
        score = _weighted(sub_scores, d.brrrr_weights)

        if brrrr is None:
            return StrategyScore(Strategy.BRRRR, score, False, "No refinance projection")
        if brrrr.dscr < d.min_dscr:
            return StrategyScore(Strategy.BRRRR, score, False, f"DSCR below {d.min_dscr}")
        if brrrr.cash_left >= brrrr.total_cash_in * d.max_cash_left_multiple:
            return StrategyScore(Strategy.BRRRR, score, False, "Too much cash left in the deal")
        return StrategyScore(Strategy.BRRRR, score, True)

    # =========================================================================
    # Sub-scores
    # =========================================================================

    def _financial_score(self, financials: Optional[FinancialModel], subject: SubjectProperty) -> float:
        """
        Financial score (0-100).

        Price-to-ARV, cash ROI, MAO margin of safety and price reduction,
        weighted by the financial rubric.
        """
        if financials is None or financials.arv <= 0:
            return 0.0
        r = self._rubrics.financial

        price_ratio = float(financials.purchase_price / financials.arv)
        ratio_score = lower_is_better(price_ratio, r.price_ratio_bands, r.price_ratio_floor)

        roi = float(financials.cash_roi)
        if roi <= 0:
            roi_score = 0.0
        else:
            roi_score = higher_is_better(roi, r.roi_bands, r.roi_floor, strict=True)

        margin = float((financials.mao_adjusted - financials.purchase_price) / financials.purchase_price)
        margin_score = higher_is_better(margin, r.margin_bands, r.margin_floor)

        reduction_score = higher_is_better(
            _price_reduction(subject), r.reduction_bands, r.reduction_floor, strict=True
        )

        return (
            ratio_score * r.price_ratio_weight
            + roi_score * r.roi_weight
            + margin_score * r.margin_weight
            + reduction_score * r.reduction_weight
        )

    def _property_score(self, subject: SubjectProperty, comparables: Sequence[ScoredComparable]) -> float:
        """
        Property score (0-100).

        Condition starts at the rubric base; value-add remarks and renovated
        resale comparables raise it, structural red flags lower it.
        """
        r = self._rubrics.property

        lot_score = higher_is_better(subject.lot_size_acres or 0, r.lot_bands, r.lot_floor, strict=True)
        sqft_score = higher_is_better(subject.living_area or 0, r.size_bands, r.size_floor, strict=True)

        age_score = r.age_floor
        if subject.year_built:
            age = self._reference_date.year - subject.year_built
            for low, high, points in r.age_ranges:
                if low <= age <= high:
                    age_score = points
                    break

        bed_score = higher_is_better(subject.bedrooms or 0, r.bedroom_bands, r.bedroom_floor)

        condition = r.condition_base
        if has_value_add_signal(subject.remarks):
            condition += r.value_add_bonus
        if has_structural_red_flag(subject.remarks):
            condition -= r.structural_penalty
        if any(c.is_selected and c.is_renovated for c in comparables):
            condition += r.renovated_comps_bonus
        condition = max(0.0, min(100.0, condition))

        return (
            lot_score * r.lot_weight
            + sqft_score * r.size_weight
            + age_score * r.age_weight
            + bed_score * r.bedroom_weight
            + condition * r.condition_weight
        )

    def _location_score(
        self,
        market: Optional[MarketSnapshot],
        estimate: ValuationEstimate,
        ceiling: Optional[Decimal],
    ) -> float:
        """
        Location score (0-100).

        School rating, ARV headroom under the ceiling and market trend.
        Unknown inputs score neutral.
        """
        r = self._rubrics.location
        neutral = self._rubrics.neutral_score

        if market is not None and market.school_rating is not None:
            school_score = market.school_rating * r.school_points_per_rating
        else:
            school_score = neutral

        if ceiling and estimate.mid is not None and ceiling > 0:
            position = float(estimate.mid / ceiling)
            headroom_score = lower_is_better(position, r.headroom_bands, r.headroom_floor, inclusive=True)
        else:
            headroom_score = neutral

        if market is None:
            trend_score = neutral
        elif market.trend == MarketTrend.SELLERS:
            trend_score = r.sellers_market_points
        elif market.trend == MarketTrend.BUYERS:
            trend_score = r.buyers_market_points
        else:
            trend_score = r.balanced_market_points

        return (
            school_score * r.school_weight
            + headroom_score * r.headroom_weight
            + trend_score * r.trend_weight
        )

    def _market_score(self, market: Optional[MarketSnapshot]) -> float:
        """Market score (0-100): median DOM, months of supply and season."""
        r = self._rubrics.market
        neutral = self._rubrics.neutral_score

        if market is not None and market.median_dom is not None:
            dom_score = lower_is_better(market.median_dom, r.dom_bands, r.dom_floor, inclusive=True)
        else:
            dom_score = neutral

        if market is not None and market.months_supply is not None:
            supply_score = lower_is_better(market.months_supply, r.supply_bands, r.supply_floor)
        else:
            supply_score = neutral

        season_score = r.season_points[self._reference_date.month - 1]

        return dom_score * r.dom_weight + supply_score * r.supply_weight + season_score * r.season_weight


# =============================================================================
# Helpers
# =============================================================================

def _weighted(sub_scores, weights: SubScoreWeights) -> float:
    financial, prop, location, market = sub_scores
    return round(
        financial * weights.financial
        + prop * weights.property
        + location * weights.location
        + market * weights.market,
        1,
    )


def _price_reduction(subject: SubjectProperty) -> float:
    original = subject.original_list_price
    current = subject.list_price
    if not original or current is None or original <= current:
        return 0.0
    return float((original - current) / original)


def higher_is_better(value, bands, default, strict: bool = False) -> float:
    """Points for the first band whose threshold the value reaches."""
    for threshold, points in bands:
        if (value > threshold) if strict else (value >= threshold):
            return float(points)
    return float(default)


def lower_is_better(value, bands, default, inclusive: bool = False) -> float:
    """Points for the first band whose ceiling the value stays under."""
    for threshold, points in bands:
        if (value <= threshold) if inclusive else (value < threshold):
            return float(points)
    return float(default)
