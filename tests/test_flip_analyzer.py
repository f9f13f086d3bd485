"""
Integration tests for the flip analyzer.

Runs the full pipeline (ARV valuation, ceiling, rehab, financials,
rental, BRRRR, scoring) over a small in-memory market.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from valuation.errors import ValidationError
from valuation.flip import FlipAnalyzer, Strategy
from valuation.models import ComparableCandidate, ListingStatus, MarketSnapshot, SubjectProperty


SUBJECT_LAT = 42.5000
SUBJECT_LON = -71.1000

ATTRIBUTES = dict(
    bedrooms=3,
    bathrooms=2.0,
    living_area=1800,
    lot_size_acres=0.25,
    year_built=2015,
    garage_spaces=1,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def reference_date():
    """Fixed reference date for deterministic tests."""
    return date(2024, 6, 1)


@pytest.fixture
def analyzer(reference_date):
    return FlipAnalyzer(reference_date=reference_date)


@pytest.fixture
def create_subject():
    """Factory fixture for subject properties."""
    def _create(listing_id: str = "SUBJ-1", list_price: int = 200000, **attrs) -> SubjectProperty:
        values = dict(ATTRIBUTES)
        values.update(attrs)
        return SubjectProperty(
            listing_id=listing_id,
            city="Reading",
            latitude=SUBJECT_LAT,
            longitude=SUBJECT_LON,
            list_price=list_price,
            days_on_market=30,
            **values,
        )
    return _create


@pytest.fixture
def pool(reference_date):
    """Five renovated closed sales at $320K near the subject."""
    return [
        ComparableCandidate(
            listing_id=f"COMP-{i}",
            city="Reading",
            latitude=SUBJECT_LAT + 0.001 * (i + 1),
            longitude=SUBJECT_LON,
            close_price=320000,
            close_date=reference_date - timedelta(days=20 + i * 10),
            remarks="Fully renovated kitchen and baths",
            **ATTRIBUTES,
        )
        for i in range(5)
    ]


@pytest.fixture
def market(reference_date):
    return MarketSnapshot(
        city="Reading",
        active_listings=10,
        closed_sales_6mo=30,
        median_dom=25,
        months_supply=2.0,
        school_rating=8.0,
        as_of=reference_date,
    )


# =============================================================================
# Test: Single Analysis
# =============================================================================

class TestAnalyze:
    """Tests for a single subject."""

    def test_arv_from_renovated_comps(self, analyzer, create_subject, pool):
        analysis = analyzer.analyze(create_subject(), pool, rehab_cost=40000, hold_months=6)

        assert analysis.arv == Decimal("320000")
        assert analysis.run.arv_mode
        assert all(c.is_renovated for c in analysis.run.comparables)

    def test_neighborhood_ceiling(self, analyzer, create_subject, pool):
        analysis = analyzer.analyze(create_subject(), pool, rehab_cost=40000, hold_months=6)

        assert analysis.neighborhood_ceiling == Decimal("320000")

    def test_profitable_flip(self, analyzer, create_subject, pool, market):
        analysis = analyzer.analyze(create_subject(), pool, market, rehab_cost=40000, hold_months=6)

        assert analysis.financials is not None
        assert analysis.financials.cash_profit > 0
        assert analysis.score.flip.viable
        assert not analysis.disqualified
        assert analysis.score.best_strategy is not None

    def test_explicit_rehab_cost(self, analyzer, create_subject, pool):
        analysis = analyzer.analyze(create_subject(), pool, rehab_cost=40000, hold_months=6)

        assert analysis.rehab.total == Decimal("40000")
        assert analysis.rehab.per_sqft == Decimal("22.22")
        assert analysis.financials.rehab_cost == Decimal("40000")
        assert analysis.financials.hold_months == 6

    def test_estimated_rehab_and_hold(self, analyzer, create_subject, pool):
        # Age 9: 16.30/sqft base * 0.30 condition = 4.89/sqft, 8% contingency
        analysis = analyzer.analyze(create_subject(), pool)

        assert analysis.rehab.per_sqft == Decimal("4.89")
        assert analysis.rehab.total == Decimal("9506.16")
        assert analysis.financials.hold_months == 2

    def test_rental_and_brrrr_projected(self, analyzer, create_subject, pool):
        analysis = analyzer.analyze(create_subject(), pool, rehab_cost=40000, hold_months=6)

        assert analysis.rental is not None
        assert analysis.rental.monthly_rent == Decimal("3240")
        assert analysis.brrrr is not None
        assert analysis.risk is not None

    def test_empty_pool_disqualifies(self, analyzer, create_subject):
        analysis = analyzer.analyze(create_subject(), [])

        assert analysis.arv is None
        assert analysis.financials is None
        assert analysis.neighborhood_ceiling is None
        assert analysis.disqualified
        assert analysis.score.reason == "No comparable sales selected"
        assert analysis.score.best_strategy is None

    def test_missing_list_price_skips_financials(self, analyzer, create_subject, pool):
        analysis = analyzer.analyze(create_subject(list_price=None), pool)

        assert analysis.arv is not None
        assert analysis.financials is None
        assert analysis.score.reason == "Financial model unavailable"

    def test_overpriced_subject_disqualified(self, analyzer, create_subject, pool):
        analysis = analyzer.analyze(create_subject(list_price=310000), pool, rehab_cost=40000, hold_months=6)

        assert analysis.financials.cash_profit < 0
        assert analysis.score.reason == "Negative cash profit"
        assert all(s.score is None for s in analysis.score.strategies)

    @pytest.mark.parametrize("kwargs", [
        {"rehab_cost": 0},
        {"rehab_cost": -5000},
        {"hold_months": 0},
        {"hold_months": -2},
    ])
    def test_invalid_overrides_raise(self, analyzer, create_subject, pool, kwargs):
        with pytest.raises(ValidationError):
            analyzer.analyze(create_subject(), pool, **kwargs)

    def test_deterministic(self, analyzer, create_subject, pool, market):
        first = analyzer.analyze(create_subject(), pool, market)
        second = analyzer.analyze(create_subject(), pool, market)

        assert first.to_dict() == second.to_dict()

    def test_to_dict(self, analyzer, create_subject, pool):
        result = analyzer.analyze(create_subject(), pool, rehab_cost=40000, hold_months=6).to_dict()

        assert result["arv"] == "320000.00"
        assert result["run_date"] == "2024-06-01"
        assert result["score"]["best_strategy"] in {s.value for s in Strategy}
        assert len(result["comparables"]) == 5


# =============================================================================
# Test: Batch Analysis
# =============================================================================

class TestAnalyzeBatch:
    """Tests for ranking many subjects."""

    def test_viable_deals_first(self, analyzer, create_subject, pool, market):
        subjects = [
            create_subject("SUBJ-EXPENSIVE", list_price=315000),
            create_subject("SUBJ-CHEAP", list_price=180000),
            create_subject("SUBJ-MID", list_price=220000),
        ]

        results = analyzer.analyze_batch(subjects, pool, {"Reading": market})

        assert len(results) == 3
        assert results[-1].subject.listing_id == "SUBJ-EXPENSIVE"
        assert results[-1].disqualified
        assert not results[0].disqualified

    def test_sorted_by_score_within_group(self, analyzer, create_subject, pool):
        subjects = [create_subject(f"SUBJ-{price}", list_price=price) for price in (230000, 170000, 200000)]

        results = analyzer.analyze_batch(subjects, pool)

        keys = [(a.disqualified, -a.score.total_score) for a in results]
        assert keys == sorted(keys)

    def test_market_matched_by_city(self, analyzer, create_subject, pool, market):
        results = analyzer.analyze_batch([create_subject()], pool, {"Reading": market})
        without = analyzer.analyze_batch([create_subject()], pool)

        assert results[0].score.location_score != without[0].score.location_score

    def test_empty_batch(self, analyzer, pool):
        assert analyzer.analyze_batch([], pool) == []
