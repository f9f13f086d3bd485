"""
Valuation Engine for the comp engine.

Implements:
- Weighted aggregation of adjusted prices into low/mid/high
- Confidence scoring from count, comparability and price dispersion
- The full select -> adjust -> score -> aggregate pipeline
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from ..models import ComparableCandidate, SubjectProperty
from ..money import ZERO, sum_money, to_decimal, to_money
from ..policy import ConfidencePolicy, EnginePolicy
from .adjustments import AdjustmentCalculator
from .filters import ComparableSelector, SelectionFilters
from .models import (
    CompSelectionResult,
    ConfidenceLevel,
    ScoredComparable,
    ValuationEstimate,
)
from .scoring import ComparabilityScorer, weight_for_score


logger = logging.getLogger(__name__)


def average_price_per_sqft(candidates: Sequence[ComparableCandidate]) -> Optional[Decimal]:
    """Mean of sale price / living area over candidates with both values."""
    values = [
        c.sale_price / Decimal(c.living_area)
        for c in candidates
        if c.sale_price and c.living_area
    ]
    if not values:
        return None
    return to_money(sum(values) / len(values))


class ValuationAggregator:
    """
    Aggregates scored comparables into a ValuationEstimate.

    Only comparables flagged is_selected participate in the estimate and
    in weight normalization.
    """

    def __init__(self, policy: ConfidencePolicy = None):
        self._policy = policy or ConfidencePolicy()

    def aggregate(self, scored: Sequence[ScoredComparable]) -> ValuationEstimate:
        """
        Compute low/mid/high and confidence.

        mid: weighted mean of adjusted prices (plain mean if all weights are 0)
        spread: population stddev * (1 + small_sample_factor / n)
        low: mid - spread, floored at 0; high: mid + spread

        Args:
            scored: Scored comparables (selected and unselected)

        Returns:
            ValuationEstimate (degenerate with level "none" for zero comps)
        """
        selected = [s for s in scored if s.is_selected]
        n = len(selected)

        if n == 0:
            return ValuationEstimate.empty()

        prices = [s.adjusted_price for s in selected]
        mid = self._weighted_mid(selected)

        mean = sum_money(prices) / n
        variance = sum((p - mean) ** 2 for p in prices) / n
        stddev = variance.sqrt() if variance > 0 else Decimal(0)

        factor = to_decimal(1 + self._policy.small_sample_factor / n)
        spread = to_money(stddev * factor)

        low = mid - spread
        if low < 0 <= mid:
            low = ZERO
        high = mid + spread

        cv = float(stddev / mean) if mean > 0 else 0.0
        avg_score = sum(s.comparability_score for s in selected) / n
        factors = self._confidence_factors(n, avg_score, cv)
        score = round(sum(factors.values()), 1)
        factors = {name: round(term, 2) for name, term in factors.items()}
        level = self._confidence_level(score, n)

        return ValuationEstimate(
            low=low,
            mid=mid,
            high=high,
            confidence_score=score,
            confidence_level=level,
            comparables_count=n,
            avg_price_per_sqft=average_price_per_sqft([s.candidate for s in selected]),
            price_cv=round(cv, 4),
            confidence_factors=factors,
        )

    @staticmethod
    def _weighted_mid(selected: Sequence[ScoredComparable]) -> Decimal:
        if len(selected) == 1:
            return selected[0].adjusted_price

        total_weight = sum(to_decimal(s.weight) for s in selected)
        if total_weight <= 0:
            return to_money(sum_money(s.adjusted_price for s in selected) / len(selected))

        weighted = sum(s.adjusted_price * to_decimal(s.weight) for s in selected)
        return to_money(weighted / total_weight)

    def _confidence_factors(self, n: int, avg_score: float, cv: float) -> Dict[str, float]:
        """
        Confidence score terms (summing to 0-100).

        Each term is monotonic in its own input: count and average
        comparability raise confidence, coefficient of variation lowers it.
        A better comparable that also widens the price spread can therefore
        lower the total.
        """
        p = self._policy
        return {
            "count": p.count_points * min(n / p.target_count, 1.0),
            "quality": p.quality_points * max(0.0, min(avg_score, 100.0)) / 100.0,
            "dispersion": p.dispersion_points * (1.0 - min(cv / p.max_cv, 1.0)),
        }

    def _confidence_level(self, score: float, n: int) -> ConfidenceLevel:
        p = self._policy

        if score >= p.high_threshold:
            level = ConfidenceLevel.HIGH
        elif score >= p.medium_threshold:
            level = ConfidenceLevel.MEDIUM
        else:
            level = ConfidenceLevel.LOW

        # Caps based on comparable count
        if n < p.min_comps_medium:
            return ConfidenceLevel.LOW
        if n < p.min_comps_high and level == ConfidenceLevel.HIGH:
            return ConfidenceLevel.MEDIUM

        return level


@dataclass
class ValuationRun:
    """Everything produced by one pipeline run."""
    subject: SubjectProperty
    selection: CompSelectionResult
    comparables: List[ScoredComparable] = field(default_factory=list)
    estimate: ValuationEstimate = field(default_factory=ValuationEstimate.empty)
    arv_mode: bool = False

    @property
    def selected(self) -> List[ScoredComparable]:
        return [c for c in self.comparables if c.is_selected]

    def to_dict(self) -> dict:
        return {
            "subject_listing_id": self.subject.listing_id,
            "selection": self.selection.to_dict(),
            "comparables": [c.to_dict() for c in self.comparables],
            "estimate": self.estimate.to_dict(),
            "arv_mode": self.arv_mode,
        }


class CompValuationEngine:
    """
    Complete valuation pipeline for comparable sales analysis.

    Pipeline order:
    1. SELECT - Filter and rank comparables with radius fallback
    2. ADJUST - Per-dimension dollar adjustments
    3. SCORE - Comparability score, grade and weight
    4. AGGREGATE - Weighted estimate and confidence

    In ARV mode, comparables whose remarks show a renovation get a weight
    boost and distressed sales are deselected.
    """

    def __init__(self, policy: EnginePolicy = None, reference_date: date = None):
        """
        Initialize valuation engine.

        Args:
            policy: Engine policy (default: EnginePolicy())
            reference_date: Reference date for calculations (default: today)
        """
        self._policy = policy or EnginePolicy()
        self._reference_date = reference_date or date.today()
        self._selector = ComparableSelector(self._policy.selection, self._reference_date)
        self._calculator = AdjustmentCalculator(self._policy.adjustments)
        self._scorer = ComparabilityScorer(self._policy.scoring, self._reference_date)
        self._aggregator = ValuationAggregator(self._policy.confidence)

    @property
    def policy(self) -> EnginePolicy:
        return self._policy

    @property
    def reference_date(self) -> date:
        return self._reference_date

    @property
    def aggregator(self) -> ValuationAggregator:
        return self._aggregator

    def valuate(
        self,
        subject: SubjectProperty,
        pool: Sequence[ComparableCandidate],
        filters: SelectionFilters = None,
        arv_mode: bool = False,
    ) -> ValuationRun:
        """
        Perform complete valuation for a subject property.

        Args:
            subject: The property being valued (overrides are applied here)
            pool: Candidate listings for the subject's market area
            filters: Optional selection narrowing
            arv_mode: Value as after-repair (renovated comps preferred)

        Returns:
            ValuationRun with selection, scored comparables and estimate
        """
        effective = subject.effective()
        selection = self._selector.select(effective, pool, filters)
        scored = self.score_comparables(effective, selection, arv_mode=arv_mode)
        estimate = self._aggregator.aggregate(scored)

        logger.debug(
            "Valuated %s: %d comps, mid=%s, confidence=%s",
            subject.listing_id, estimate.comparables_count, estimate.mid,
            estimate.confidence_level.value,
        )

        return ValuationRun(
            subject=subject,
            selection=selection,
            comparables=scored,
            estimate=estimate,
            arv_mode=arv_mode,
        )

    def score_comparables(
        self,
        subject: SubjectProperty,
        selection: CompSelectionResult,
        arv_mode: bool = False,
        previous: Mapping[str, ScoredComparable] = None,
    ) -> List[ScoredComparable]:
        """
        Adjust and score every comparable in a selection.

        Args:
            subject: Subject with overrides applied
            selection: Selected comparables and their distances
            arv_mode: Apply ARV weighting rules
            previous: Earlier scored records whose user flags are carried over

        Returns:
            Scored comparables in selection order
        """
        avg_ppsf = average_price_per_sqft(selection.comparables)
        previous = previous or {}
        scored = []

        for candidate in selection.comparables:
            distance = selection.distance_for(candidate)
            adjustment = self._calculator.compute(subject, candidate, avg_ppsf)
            score, grade = self._scorer.score(subject, candidate, distance)

            prior = previous.get(candidate.listing_id)
            if prior is not None:
                is_renovated = prior.is_renovated
                is_distressed = prior.is_distressed
                is_selected = prior.is_selected
            else:
                is_renovated = candidate.is_renovated
                is_distressed = candidate.is_distressed
                is_selected = not (arv_mode and is_distressed)

            weight = weight_for_score(score)
            if arv_mode and is_renovated:
                weight *= self._policy.scoring.renovated_weight_boost

            scored.append(ScoredComparable(
                candidate=candidate,
                distance_miles=distance,
                adjustments=adjustment.adjustments,
                data_quality_flags=adjustment.data_quality_flags,
                adjustment_total=adjustment.total,
                adjusted_price=adjustment.adjusted_price,
                gross_adjustment_pct=adjustment.gross_pct,
                comparability_score=score,
                comparability_grade=grade,
                weight=weight,
                is_selected=is_selected,
                is_renovated=is_renovated,
                is_distressed=is_distressed,
            ))

        return scored
