"""
Tests for the flip financial model.

Verifies:
- Cash and financed profit, investment and ROI
- Maximum allowable offer and breakeven ARV
- Input validation
- Rehab, hold period and rent estimates
- Rental, BRRRR and risk projections
"""

import pytest
from decimal import Decimal
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from valuation.errors import ValidationError
from valuation.flip import (
    analyze_brrrr,
    analyze_rental,
    assess_risk,
    compute_financials,
    estimate_hold_months,
    estimate_monthly_rent,
    estimate_rehab_cost,
)
from valuation.models import SubjectProperty
from valuation.policy import CostRates, RiskRubric


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def simple_rates():
    """Cost table with round numbers: 6% sale, 2% buy closing, $1000/month carry."""
    return CostRates(
        commission_rate=0.06,
        closing_rate_buy=0.02,
        closing_rate_sell=0,
        transfer_tax_rate=0,
        insurance_rate=0,
        property_tax_rate=0,
        monthly_utilities=1000,
    )


@pytest.fixture
def scenario(simple_rates):
    """Purchase 200K, ARV 320K, rehab 50K, 6 month hold."""
    return compute_financials(200000, 320000, 50000, 6, simple_rates)


@pytest.fixture
def create_subject():
    """Factory fixture for subject properties."""
    def _create(**attrs) -> SubjectProperty:
        values = dict(listing_id="SUBJ-1", living_area=1800, year_built=1960)
        values.update(attrs)
        return SubjectProperty(**values)
    return _create


# =============================================================================
# Test: Cash Scenario
# =============================================================================

class TestCashScenario:
    """Tests for the all-cash flip model."""

    def test_cash_profit(self, scenario):
        # 320000 - 200000 - 50000 - 19200 - 6000 - 4000
        assert scenario.cash_profit == Decimal("40800")

    def test_cash_investment(self, scenario):
        assert scenario.cash_investment == Decimal("260000")

    def test_cash_roi(self, scenario):
        assert scenario.cash_roi == Decimal("0.1569")

    def test_cost_components(self, scenario):
        assert scenario.purchase_closing_cost == Decimal("4000.00")
        assert scenario.sale_costs == Decimal("19200.00")
        assert scenario.holding_costs == Decimal("6000.00")

    def test_is_profitable(self, scenario):
        assert scenario.is_profitable

    def test_loss_is_reported_not_raised(self, simple_rates):
        model = compute_financials(300000, 320000, 50000, 6, simple_rates)

        assert model.cash_profit < 0
        assert not model.is_profitable

    def test_tax_rate_override_raises_holding(self, simple_rates):
        base = compute_financials(200000, 320000, 50000, 6, simple_rates)
        taxed = compute_financials(200000, 320000, 50000, 6, simple_rates, tax_rate=0.012)

        # 200000 * 1.2% / 12 * 6
        assert taxed.holding_costs - base.holding_costs == Decimal("1200.00")

    def test_tax_exempt_subject_pays_no_property_tax(self):
        default = compute_financials(200000, 320000, 50000, 6)
        exempt = compute_financials(200000, 320000, 50000, 6, tax_rate=0)

        # (200000 * 0.5% / 12 + 350) * 6 without the 1.3% default tax
        assert exempt.holding_costs == Decimal("2600.00")
        assert default.holding_costs == Decimal("3900.00")


# =============================================================================
# Test: Financed Scenario
# =============================================================================

class TestFinancedScenario:
    """Tests for the hard-money financed model."""

    def test_loan_and_financing_costs(self, scenario):
        assert scenario.loan_amount == Decimal("160000.00")
        # 2 points + 10.5% for 6 months
        assert scenario.financing_costs == Decimal("11600.00")

    def test_financed_profit(self, scenario):
        assert scenario.financed_profit == Decimal("29200.00")

    def test_cash_on_cash(self, scenario):
        assert scenario.cash_invested == Decimal("94000.00")
        assert scenario.cash_on_cash_roi == Decimal("0.3106")

    def test_annualized_roi(self, scenario):
        assert scenario.annualized_roi == Decimal("0.7177")


# =============================================================================
# Test: Offer Limits
# =============================================================================

class TestOfferLimits:
    """Tests for MAO and breakeven ARV."""

    def test_mao_classic(self):
        model = compute_financials(150000, 300000, 40000, 6)

        assert model.mao_classic == Decimal("170000")

    def test_mao_adjusted(self, scenario):
        # (320000 * 0.84 - 50000 - 6000 - 11600) / 1.02
        assert scenario.mao_adjusted == Decimal("197254.90")

    def test_breakeven_arv(self, scenario):
        assert scenario.breakeven_arv == Decimal("276595.74")

    def test_breakeven_leaves_zero_profit(self, simple_rates, scenario):
        at_breakeven = compute_financials(200000, scenario.breakeven_arv, 50000, 6, simple_rates)

        assert abs(at_breakeven.cash_profit) <= Decimal("0.01")


# =============================================================================
# Test: Validation
# =============================================================================

class TestValidation:
    """Tests for rejected inputs."""

    @pytest.mark.parametrize("purchase,arv,rehab,hold", [
        (0, 300000, 40000, 6),
        (-1, 300000, 40000, 6),
        (150000, -1, 40000, 6),
        (150000, 300000, 0, 6),
        (150000, 300000, -5000, 6),
        (150000, 300000, 40000, 0),
        (150000, 300000, 40000, -3),
        (150000, 300000, 40000, 2.5),
        (None, 300000, 40000, 6),
    ])
    def test_invalid_inputs_raise(self, purchase, arv, rehab, hold):
        with pytest.raises(ValidationError):
            compute_financials(purchase, arv, rehab, hold)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            compute_financials(150000, 300000, 0, 6)

    def test_field_is_reported(self):
        with pytest.raises(ValidationError) as excinfo:
            compute_financials(150000, 300000, 40000, 0)

        assert excinfo.value.field == "hold_months"

    @pytest.mark.parametrize("bad", [[200000], object(), "lots", {"price": 1}])
    def test_non_numeric_money_raises_validation_error(self, bad):
        with pytest.raises(ValidationError) as excinfo:
            compute_financials(bad, 300000, 40000, 6)

        assert excinfo.value.field == "purchase_price"

    def test_zero_arv_allowed(self):
        model = compute_financials(150000, 0, 40000, 6)

        assert model.cash_profit < 0


# =============================================================================
# Test: Estimates
# =============================================================================

class TestRehabEstimate:
    """Tests for age-based rehab estimates."""

    def test_old_house(self, create_subject):
        rehab = estimate_rehab_cost(create_subject(), reference_year=2024)

        # age 64: 10 + 0.7 * 64 = 54.80/sqft, heavy tier 20% contingency, lead paint
        assert rehab.per_sqft == Decimal("54.80")
        assert rehab.base_cost == Decimal("98640.00")
        assert rehab.contingency_rate == Decimal("0.20")
        assert rehab.lead_paint == Decimal("8000.00")
        assert rehab.total == Decimal("126368.00")

    def test_new_house_uses_floor(self, create_subject):
        rehab = estimate_rehab_cost(create_subject(year_built=2021), reference_year=2024)

        assert rehab.per_sqft == Decimal("2.00")
        assert rehab.lead_paint == Decimal("0.00")
        assert rehab.total == Decimal("3888.00")

    def test_unknown_living_area(self, create_subject):
        rehab = estimate_rehab_cost(create_subject(living_area=None), reference_year=2024)

        assert rehab.total == Decimal("0")

    def test_custom_rehab_tiers(self, create_subject):
        rates = CostRates(rehab_tiers=((60, 0.05, 3),))

        rehab = estimate_rehab_cost(create_subject(), rates, reference_year=2024)

        # 98640 + 5% contingency + lead paint
        assert rehab.contingency_rate == Decimal("0.05")
        assert rehab.total == Decimal("111572.00")

    def test_unknown_year_uses_default_age(self, create_subject):
        rates = CostRates(default_building_age=10)

        rehab = estimate_rehab_cost(create_subject(year_built=None), rates, reference_year=2024)

        # (10 + 0.7 * 10) * 0.30 condition multiplier
        assert rehab.per_sqft == Decimal("5.10")
        assert rehab.lead_paint == Decimal("0.00")


class TestHoldMonths:
    """Tests for hold period estimates."""

    @pytest.mark.parametrize("ppsf,dom,expected", [
        (10, None, 2),
        (30, 0, 3),
        (54.8, 45, 9),
        (45, 95, 9),
    ])
    def test_hold_months(self, ppsf, dom, expected):
        assert estimate_hold_months(ppsf, dom) == expected

    def test_policy_tiers_and_permit_buffer(self):
        rates = CostRates(rehab_tiers=((60, 0.05, 3),), permit_buffer_ppsf=60)

        # 3 rehab months + 2 selling months, no permitting month
        assert estimate_hold_months(54.8, 45, rates) == 5


class TestRent:
    """Tests for rent estimates."""

    def test_rent_from_living_area(self, create_subject):
        assert estimate_monthly_rent(create_subject()) == Decimal("3240.00")

    def test_unknown_living_area(self, create_subject):
        assert estimate_monthly_rent(create_subject(living_area=None)) == Decimal("0")


# =============================================================================
# Test: Rental and BRRRR
# =============================================================================

class TestRental:
    """Tests for the buy-and-hold projection."""

    @pytest.fixture
    def rental(self):
        return analyze_rental(400000, 3240, 300000)

    def test_noi(self, rental):
        assert rental.annual_gross == Decimal("38880.00")
        assert rental.operating_expenses == Decimal("18598.40")
        assert rental.noi == Decimal("20281.60")

    def test_ratios(self, rental):
        assert rental.cap_rate == Decimal("0.0507")
        assert rental.cash_on_cash == Decimal("0.0676")
        assert rental.grm == Decimal("7.72")

    def test_monthly_cash_flow(self, rental):
        assert rental.monthly_cash_flow == Decimal("1690.13")

    def test_tax_exempt(self):
        exempt = analyze_rental(400000, 3240, 300000, tax_rate=0)

        # 18598.40 less 1.3% of 400000
        assert exempt.operating_expenses == Decimal("13398.40")

    def test_depreciation(self, rental):
        assert rental.annual_depreciation == Decimal("11636.36")
        assert rental.tax_shelter == Decimal("3723.64")


class TestBrrrr:
    """Tests for the refinance projection."""

    @pytest.fixture
    def brrrr(self):
        return analyze_brrrr(400000, Decimal("20281.60"), 300000)

    def test_refi_loan(self, brrrr):
        assert brrrr.refi_loan == Decimal("300000.00")
        assert brrrr.cash_left == Decimal("0.00")

    def test_payment_is_amortised(self, brrrr):
        assert Decimal("2000") < brrrr.monthly_payment < Decimal("2100")
        assert brrrr.annual_debt_service == brrrr.monthly_payment * 12

    def test_cash_flow_after_refi(self, brrrr):
        assert brrrr.post_refi_cash_flow == Decimal("20281.60") - brrrr.annual_debt_service
        assert brrrr.dscr < 1


# =============================================================================
# Test: Risk
# =============================================================================

class TestRisk:
    """Tests for risk factor assessment."""

    def test_strong_deal(self):
        risk = assess_risk(80.0, Decimal("276595.74"), Decimal("320000"), 0.05, 20, 6)

        assert risk.factors["arv_confidence"] == 100.0
        assert risk.factors["margin_cushion"] == 60.0
        assert risk.factors["comp_count"] == 80.0
        assert risk.score == 88.0
        assert risk.grade == "B"

    def test_weak_deal(self):
        risk = assess_risk(10.0, Decimal("330000"), Decimal("320000"), None, 120, 1)

        assert risk.factors["market_velocity"] == 30.0
        assert risk.grade == "F"

    def test_custom_rubric(self):
        rubric = RiskRubric(count_bands=((5, 50),))

        risk = assess_risk(80.0, Decimal("276595.74"), Decimal("320000"), 0.05, 20, 6, rubric)

        assert risk.factors["comp_count"] == 50.0
        assert risk.score == 85.0
