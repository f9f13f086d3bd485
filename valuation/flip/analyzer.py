"""
Flip Analyzer

Orchestrates a complete flip analysis for a subject property:
1. ARV - Comp valuation in ARV mode
2. CEILING - P90 of nearby closed prices
3. REHAB / HOLD - Age-based estimates unless supplied
4. FINANCIALS - Cash and financed flip model
5. RENTAL / BRRRR - Alternative strategy projections
6. RISK / SCORE - Risk factors, composite score and disqualification
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from ..comp_engine import CompValuationEngine, SelectionFilters
from ..errors import ValidationError
from ..market import neighborhood_ceiling
from ..models import ComparableCandidate, MarketSnapshot, SubjectProperty
from ..money import ZERO, Number, to_money
from ..policy import EnginePolicy
from .financials import (
    analyze_brrrr,
    analyze_rental,
    assess_risk,
    compute_financials,
    estimate_hold_months,
    estimate_monthly_rent,
    estimate_rehab_cost,
)
from .models import FlipAnalysis, RehabEstimate
from .scoring import DealScorer


logger = logging.getLogger(__name__)


class FlipAnalyzer:
    """
    Runs the flip pipeline for one or many subjects.

    All components share one policy and reference date, so repeated
    runs over the same inputs give identical results.
    """

    def __init__(self, policy: EnginePolicy = None, reference_date: date = None):
        """
        Initialize analyzer.

        Args:
            policy: Engine policy (default: EnginePolicy())
            reference_date: Reference date for calculations (default: today)
        """
        self._policy = policy or EnginePolicy()
        self._reference_date = reference_date or date.today()
        self._engine = CompValuationEngine(self._policy, self._reference_date)
        self._scorer = DealScorer(self._policy, self._reference_date)

    def analyze(
        self,
        subject: SubjectProperty,
        pool: Sequence[ComparableCandidate],
        market: MarketSnapshot = None,
        rehab_cost: Optional[Number] = None,
        hold_months: Optional[int] = None,
        filters: SelectionFilters = None,
    ) -> FlipAnalysis:
        """
        Analyze a subject as a flip, rental and BRRRR candidate.

        Args:
            subject: Subject property (list price is the purchase price)
            pool: Candidate listings for the subject's market area
            market: Market snapshot for the subject's city
            rehab_cost: Rehab budget overriding the age-based estimate
            hold_months: Hold period overriding the estimate
            filters: Optional comparable selection narrowing

        Returns:
            FlipAnalysis (financials are None when no ARV could be derived)

        Raises:
            ValidationError: If an explicit rehab cost or hold period is
                not positive
        """
        if rehab_cost is not None and to_money(rehab_cost) <= 0:
            raise ValidationError(f"rehab_cost must be positive: {rehab_cost}", field="rehab_cost")
        if hold_months is not None and hold_months <= 0:
            raise ValidationError(f"hold_months must be positive: {hold_months}", field="hold_months")

        costs = self._policy.costs
        effective = subject.effective()

        run = self._engine.valuate(subject, pool, filters, arv_mode=True)
        arv = run.estimate.mid
        ceiling = neighborhood_ceiling(effective, pool, self._policy.selection, self._reference_date)

        if rehab_cost is not None:
            rehab = self._fixed_rehab(effective, to_money(rehab_cost))
        else:
            rehab = estimate_rehab_cost(effective, costs, self._reference_date.year)

        if hold_months is None:
            hold_months = estimate_hold_months(rehab.per_sqft, effective.days_on_market, costs)
        hold = hold_months
        purchase = effective.list_price

        financials = rental = brrrr = risk = None
        if arv is None:
            logger.warning("No ARV for %s: no comparables selected", subject.listing_id)
        elif not purchase:
            logger.warning("No list price for %s: skipping financials", subject.listing_id)
        elif rehab.total <= 0:
            logger.warning("No rehab estimate for %s: living area unknown", subject.listing_id)
        else:
            financials = compute_financials(
                purchase, arv, rehab.total, hold, costs, tax_rate=effective.tax_rate,
            )

            monthly_rent = estimate_monthly_rent(effective, costs)
            if monthly_rent > 0:
                rental = analyze_rental(
                    arv, monthly_rent, financials.cash_investment, costs, tax_rate=effective.tax_rate,
                )
                brrrr = analyze_brrrr(arv, rental.noi, financials.cash_investment, costs)

            risk = assess_risk(
                run.estimate.confidence_score,
                financials.breakeven_arv,
                arv,
                run.estimate.price_cv,
                effective.days_on_market,
                run.estimate.comparables_count,
                self._policy.deal.risk,
            )

        score = self._scorer.score_deal(
            financials,
            effective,
            market,
            run.comparables,
            estimate=run.estimate,
            rental=rental,
            brrrr=brrrr,
            neighborhood_ceiling=ceiling,
        )

        logger.info(
            "Analyzed %s: arv=%s score=%.1f best=%s",
            subject.listing_id, arv, score.total_score,
            score.best_strategy.value if score.best_strategy else "none",
        )

        return FlipAnalysis(
            subject=subject,
            run=run,
            rehab=rehab,
            financials=financials,
            rental=rental,
            brrrr=brrrr,
            risk=risk,
            score=score,
            neighborhood_ceiling=ceiling,
            run_date=self._reference_date,
        )

    def analyze_batch(
        self,
        subjects: Sequence[SubjectProperty],
        pool: Sequence[ComparableCandidate],
        markets: Mapping[str, MarketSnapshot] = None,
    ) -> List[FlipAnalysis]:
        """
        Analyze many subjects against one pool.

        Subjects that fail validation are logged and skipped.

        Args:
            subjects: Subject properties
            pool: Shared candidate pool
            markets: City -> market snapshot

        Returns:
            Analyses ordered with viable deals first, then by total score descending
        """
        markets = markets or {}
        results = []

        for subject in subjects:
            try:
                results.append(self.analyze(subject, pool, markets.get(subject.city)))
            except ValidationError as e:
                logger.warning("Skipping %s: %s", subject.listing_id, e)

        results.sort(key=lambda a: (a.disqualified, -a.score.total_score, a.subject.listing_id))
        return results

    @staticmethod
    def _fixed_rehab(subject: SubjectProperty, total: Decimal) -> RehabEstimate:
        per_sqft = to_money(total / subject.living_area) if subject.living_area else ZERO
        return RehabEstimate(
            total=total,
            per_sqft=per_sqft,
            contingency_rate=Decimal(0),
            lead_paint=ZERO,
            base_cost=total,
        )
