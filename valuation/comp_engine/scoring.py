"""
Comparability Scoring

Scores how closely a comparable matches the subject (0-100) from four
weighted components:
- Distance: linear falloff to zero at distance_zero_miles
- Recency: exponential decay per month since sale
- Size: linear falloff to zero at size_zero_pct relative sqft delta
- Type: points for an exact sub-type, the same type or a compatible group

Grades: A >= 90, B >= 75, C >= 60, D >= 40, F < 40.
Aggregation weight: (score / 100) ** 2, emphasising the best comparables.
"""

import math
from datetime import date
from typing import Optional, Sequence, Tuple

from ..models import ComparableCandidate, SubjectProperty, compatible_property_types
from ..policy import GRADE_BANDS, LOWEST_GRADE, ScoringWeights


def grade_for_score(
    score: float,
    bands: Sequence[Tuple[float, str]] = GRADE_BANDS,
) -> str:
    """
    Map a 0-100 score to a letter grade.

    Bands are inclusive lower bounds: exactly 90 is an A, 89.9 is a B.
    """
    for threshold, grade in bands:
        if score >= threshold:
            return grade
    return LOWEST_GRADE


def weight_for_score(score: float) -> float:
    """Aggregation weight for a comparability score."""
    return (max(0.0, score) / 100.0) ** 2


class ComparabilityScorer:
    """Scores subject/comparable similarity with a tunable weight table."""

    def __init__(self, weights: ScoringWeights = None, reference_date: date = None):
        """
        Initialize scorer.

        Args:
            weights: Component weights and falloffs (default: ScoringWeights())
            reference_date: Date recency is measured against (default: today)
        """
        self._weights = weights or ScoringWeights()
        self._reference_date = reference_date or date.today()

    def score(
        self,
        subject: SubjectProperty,
        candidate: ComparableCandidate,
        distance_miles: Optional[float] = None,
    ) -> Tuple[float, str]:
        """
        Score a comparable.

        Args:
            subject: Subject property
            candidate: Comparable candidate
            distance_miles: Precomputed distance (None if unknown)

        Returns:
            Tuple of (score 0-100 rounded to 0.1, letter grade)
        """
        w = self._weights
        total = (
            self._distance_score(distance_miles) * w.distance
            + self._recency_score(candidate) * w.recency
            + self._size_score(subject, candidate) * w.size
            + self._type_score(subject, candidate) * w.property_type
        )
        total = round(min(100.0, max(0.0, total)), 1)
        return total, grade_for_score(total, w.grade_bands)

    def _distance_score(self, distance_miles: Optional[float]) -> float:
        if distance_miles is None:
            return self._weights.unknown_component_score
        return max(0.0, 1.0 - distance_miles / self._weights.distance_zero_miles) * 100.0

    def _recency_score(self, candidate: ComparableCandidate) -> float:
        sale_date = candidate.sale_date
        if sale_date is None:
            return self._weights.unknown_component_score
        months = max(0, (self._reference_date - sale_date).days) / 30.0
        return 100.0 * math.exp(-self._weights.recency_decay_per_month * months)

    def _size_score(self, subject: SubjectProperty, candidate: ComparableCandidate) -> float:
        if not subject.living_area or candidate.living_area is None:
            return self._weights.unknown_component_score
        delta = abs(subject.living_area - candidate.living_area) / subject.living_area
        return max(0.0, 1.0 - delta / self._weights.size_zero_pct) * 100.0

    def _type_score(self, subject: SubjectProperty, candidate: ComparableCandidate) -> float:
        w = self._weights
        if subject.property_sub_type and subject.property_sub_type == candidate.property_sub_type:
            return w.type_exact_points
        if subject.property_type == candidate.property_type:
            # Exact type match with no sub-type on either side counts as exact
            if not subject.property_sub_type and not candidate.property_sub_type:
                return w.type_exact_points
            return w.type_same_points
        if candidate.property_type in compatible_property_types(subject.property_type):
            return w.type_compatible_points
        return 0.0
