"""
Tests for engine policy, configuration and core records.

Verifies:
- Partial policy overrides and validation
- Environment-driven Config and policy file loading
- Record validation, overrides and remarks signals
- Currency helpers
"""

import json
import logging
import pytest
from datetime import date
from decimal import Decimal
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.config import Config
from utils.formatting import format_currency, format_percent
from valuation.comp_engine import ComparabilityScorer
from valuation.errors import ValidationError, ValuationError
from valuation.flip import DealScorer
from valuation.models import (
    CONDOMINIUM,
    ComparableCandidate,
    ListingStatus,
    SubjectProperty,
    TOWNHOUSE,
    compatible_property_types,
    has_distress_signal,
    has_renovation_signal,
    has_structural_red_flag,
    has_value_add_signal,
    record_to_dict,
)
from valuation.money import ratio, to_money
from valuation.policy import CostRates, EnginePolicy, ScoringWeights, SubScoreWeights


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration variables from the environment."""
    for name in ("LOG_LEVEL", "DEBUG", "POLICY_FILE", "REPORTS_DIR"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def policy_file(tmp_path):
    """Factory fixture writing a policy JSON file."""
    def _write(content) -> Path:
        path = tmp_path / "policy.json"
        path.write_text(content if isinstance(content, str) else json.dumps(content))
        return path
    return _write


# =============================================================================
# Test: Engine Policy
# =============================================================================

class TestEnginePolicy:
    """Tests for policy defaults and overrides."""

    def test_defaults(self):
        policy = EnginePolicy()

        assert policy.selection.radius_tiers == (0.5, 1.0, 3.0)
        assert policy.selection.min_comps == 3
        assert policy.adjustments.bedroom_value == Decimal("15000")
        assert policy.deal.min_list_price == Decimal("100000")

    def test_partial_override(self):
        policy = EnginePolicy.from_dict({"costs": {"commission_rate": 0.05}})

        assert policy.costs.commission_rate == Decimal("0.05")
        assert policy.costs.closing_rate_buy == Decimal("0.015")
        assert policy.selection == EnginePolicy().selection

    def test_tuple_override(self):
        policy = EnginePolicy.from_dict({"selection": {"radius_tiers": [0.25, 2.0]}})

        assert policy.selection.radius_tiers == (0.25, 2.0)

    def test_nested_weights_override(self):
        policy = EnginePolicy.from_dict({
            "deal": {"total_weights": {"financial": 0.4, "property": 0.3}},
        })

        assert policy.deal.total_weights.financial == 0.4
        assert policy.deal.total_weights.market == 0.15

    def test_unknown_key_raises(self):
        with pytest.raises(ValidationError) as exc:
            EnginePolicy.from_dict({"costs": {"commision_rate": 0.05}})

        assert exc.value.field == "policy.costs"

    def test_bad_value_raises(self):
        with pytest.raises(ValidationError):
            EnginePolicy.from_dict({"selection": {"min_comps": "lots"}})

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            ScoringWeights(distance=0.5)
        with pytest.raises(ValidationError):
            SubScoreWeights(0.5, 0.5, 0.5, 0.5)

    def test_negative_rate_raises(self):
        with pytest.raises(ValidationError):
            CostRates(commission_rate=-0.01)

    def test_float_rates_coerced(self):
        rates = CostRates(commission_rate=0.05, monthly_utilities=200)

        assert rates.commission_rate == Decimal("0.05")
        assert rates.monthly_utilities == Decimal("200")

    def test_descending_radius_raises(self):
        with pytest.raises(ValidationError):
            EnginePolicy.from_dict({"selection": {"radius_tiers": [3.0, 1.0]}})

    def test_to_dict_roundtrip(self):
        policy = EnginePolicy.from_dict({"costs": {"commission_rate": 0.055}})

        assert EnginePolicy.from_dict(policy.to_dict()) == policy

    def test_table_overrides_are_normalised(self):
        policy = EnginePolicy.from_dict({
            "costs": {"rehab_tiers": [[25, 0.1, 2], [45, 0.15, 4]]},
            "deal": {"rubrics": {"market": {"supply_bands": [[5, 90]]}}},
        })

        assert policy.costs.rehab_tiers == ((Decimal("25"), Decimal("0.1"), 2), (Decimal("45"), Decimal("0.15"), 4))
        assert policy.deal.rubrics.market.supply_bands == ((5.0, 90.0),)

    @pytest.mark.parametrize("overrides", [
        {"costs": {"rehab_tiers": [[45, 0.15, 4], [25, 0.1, 2]]}},
        {"costs": {"rehab_tiers": [[25, 0.1]]}},
        {"deal": {"rubrics": {"market": {"season_points": [50] * 11}}}},
        {"deal": {"rubrics": {"location": {"school_weight": 0.9}}}},
        {"deal": {"risk": {"count_bands": [["many", 100]]}}},
    ])
    def test_bad_tables_raise(self, overrides):
        with pytest.raises(ValidationError):
            EnginePolicy.from_dict(overrides)

    def test_type_points_override_changes_comparability(self):
        subject = SubjectProperty(listing_id="TH-1", property_type=TOWNHOUSE, living_area=1800)
        condo = ComparableCandidate(
            listing_id="C-1", property_type=CONDOMINIUM, living_area=1800,
            close_price=400000, close_date=date(2024, 6, 1),
        )
        policy = EnginePolicy.from_dict({"scoring": {"type_compatible_points": 100}})

        default_score, _ = ComparabilityScorer(reference_date=date(2024, 6, 1)).score(subject, condo, 0.0)
        custom_score, _ = ComparabilityScorer(policy.scoring, date(2024, 6, 1)).score(subject, condo, 0.0)

        assert default_score == 91.0
        assert custom_score == 100.0

    def test_rubric_override_changes_deal_score(self):
        subject = SubjectProperty(listing_id="S", list_price=250000, living_area=1500)
        policy = EnginePolicy.from_dict({
            "deal": {"rubrics": {"market": {"season_points": [100] * 12}}},
        })

        default = DealScorer(reference_date=date(2024, 1, 15)).score_deal(None, subject, None, [])
        custom = DealScorer(policy, date(2024, 1, 15)).score_deal(None, subject, None, [])

        # 50 * 0.35 + 50 * 0.35 + January season points * 0.30
        assert default.market_score == 44.0
        assert custom.market_score == 65.0


# =============================================================================
# Test: Config
# =============================================================================

class TestConfig:
    """Tests for environment configuration."""

    def test_defaults(self, clean_env):
        config = Config.load()

        assert config.log_level == "INFO"
        assert config.debug is False
        assert config.policy_file is None
        assert config.reports_dir == "./reports"

    def test_environment(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "warning")
        clean_env.setenv("DEBUG", "true")
        clean_env.setenv("REPORTS_DIR", "/tmp/out")

        config = Config.load()

        assert config.log_level == "WARNING"
        assert config.debug is True
        assert config.to_dict()["reports_dir"] == "/tmp/out"

    def test_default_policy_without_file(self, clean_env):
        assert Config.load().load_policy() == EnginePolicy()

    def test_policy_file(self, clean_env, policy_file):
        path = policy_file({"deal": {"min_list_price": 150000}})
        clean_env.setenv("POLICY_FILE", str(path))

        policy = Config.load().load_policy()

        assert policy.deal.min_list_price == Decimal("150000")

    def test_missing_policy_file(self, tmp_path):
        config = Config(policy_file=str(tmp_path / "absent.json"))

        with pytest.raises(ValuationError, match="not found"):
            config.load_policy()

    def test_invalid_json(self, policy_file):
        config = Config(policy_file=str(policy_file("{not json")))

        with pytest.raises(ValuationError, match="Invalid JSON"):
            config.load_policy()

    def test_unknown_policy_key(self, policy_file):
        config = Config(policy_file=str(policy_file({"bogus": {}})))

        with pytest.raises(ValidationError):
            config.load_policy()

    def test_configure_logging(self, clean_env):
        calls = []
        clean_env.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        Config(log_level="ERROR").configure_logging()
        Config(log_level="ERROR", debug=True).configure_logging()

        assert calls[0]["level"] == logging.ERROR
        assert calls[1]["level"] == logging.DEBUG


# =============================================================================
# Test: Records
# =============================================================================

class TestRecords:
    """Tests for subject and comparable records."""

    def test_money_fields_quantized(self):
        subject = SubjectProperty(listing_id="S", list_price=399999.999)

        assert subject.list_price == Decimal("400000.00")

    @pytest.mark.parametrize("field,value", [
        ("living_area", -1),
        ("bedrooms", -2),
        ("list_price", -100),
        ("living_area", "big"),
        ("latitude", 95.0),
    ])
    def test_malformed_values_raise(self, field, value):
        with pytest.raises(ValidationError) as exc:
            SubjectProperty(listing_id="S", **{field: value})

        assert exc.value.field == field

    def test_listing_id_required(self):
        with pytest.raises(ValidationError):
            ComparableCandidate(listing_id="")

    def test_unknown_override_raises(self):
        with pytest.raises(ValidationError):
            SubjectProperty(listing_id="S", overrides={"pool": True})

    def test_effective_applies_overrides(self):
        subject = SubjectProperty(listing_id="S", living_area=1500, overrides={"living_area": 2100})

        effective = subject.effective()

        assert effective.living_area == 2100
        assert effective.overrides == {}
        assert subject.living_area == 1500

    def test_with_overrides_merges(self):
        subject = SubjectProperty(listing_id="S", overrides={"bedrooms": 4})

        updated = subject.with_overrides({"bathrooms": 2.5})

        assert updated.overrides == {"bedrooms": 4, "bathrooms": 2.5}

    def test_sale_price_falls_back_to_list(self):
        active = ComparableCandidate(listing_id="A", status=ListingStatus.ACTIVE, list_price=350000)

        assert active.sale_price == Decimal("350000")
        assert not active.is_closed

    def test_price_per_sqft(self):
        comp = ComparableCandidate(listing_id="C", close_price=360000, living_area=1800)

        assert comp.price_per_sqft == Decimal("200.00")

    def test_record_to_dict(self):
        comp = ComparableCandidate(listing_id="C", close_price=360000)

        result = record_to_dict(comp)

        assert result["close_price"] == "360000.00"
        assert result["status"] == "Closed"

    def test_status_from_string(self):
        assert ListingStatus.from_string(" closed ") == ListingStatus.CLOSED
        assert ListingStatus.from_string("Withdrawn") is None

    def test_compatible_property_types(self):
        assert "Condominium" in compatible_property_types("Townhouse")
        assert compatible_property_types("Land") == frozenset({"Land"})


class TestRemarksSignals:
    """Tests for keyword detection in listing remarks."""

    def test_renovation(self):
        assert has_renovation_signal("Beautifully RENOVATED colonial")
        assert not has_renovation_signal("Original condition")

    def test_distress(self):
        assert has_distress_signal("Bank owned, sold as-is")
        assert not has_distress_signal("Theoretical reorganisation")

    def test_value_add(self):
        assert has_value_add_signal("Needs work throughout")
        assert not has_value_add_signal("")

    def test_structural(self):
        assert has_structural_red_flag("Foundation cracks noted")


# =============================================================================
# Test: Money and Formatting
# =============================================================================

class TestMoney:
    """Tests for currency helpers."""

    def test_half_up_rounding(self):
        assert to_money("0.125") == Decimal("0.13")
        assert to_money(2.675) == Decimal("2.68")

    def test_ratio_zero_denominator(self):
        assert ratio(Decimal("5"), Decimal("0")) == Decimal(0)

    def test_ratio_places(self):
        assert ratio(Decimal("1"), Decimal("3")) == Decimal("0.3333")
        assert ratio(Decimal("2"), Decimal("3"), places=2) == Decimal("0.67")

    def test_format_currency(self):
        assert format_currency(Decimal("1234567.891")) == "$1,234,568"
        assert format_currency(Decimal("-2500"), cents=True) == "-$2,500.00"
        assert format_currency(None) == "-"

    def test_format_percent(self):
        assert format_percent(Decimal("0.1569"), fraction=True) == "15.7%"
        assert format_percent(None) == "-"
