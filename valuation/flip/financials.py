"""
Flip financial model.

Pure arithmetic over a CostRates table:
- Transaction, holding and financing costs
- Cash and hard-money financed profit/ROI
- Maximum allowable offer (70% rule and cost-adjusted)
- Breakeven ARV
- Rehab cost and hold period estimates
- Rental and BRRRR projections
- Risk factor assessment
"""

import math
from datetime import date
from decimal import Decimal
from typing import Optional

from ..errors import ValidationError
from ..models import SubjectProperty
from ..money import ZERO, Number, ratio, to_decimal, to_money
from ..comp_engine.scoring import grade_for_score
from ..policy import CostRates, RiskRubric
from .models import (
    BrrrrAnalysis,
    FinancialModel,
    RehabEstimate,
    RentalAnalysis,
    RiskAssessment,
)
from .scoring import higher_is_better, lower_is_better


# The 70% rule is an industry formula, not a tunable rate
MAO_CLASSIC_RATE = Decimal("0.70")


def compute_financials(
    purchase_price: Number,
    arv: Number,
    rehab_cost: Number,
    hold_months: int,
    cost_rates: CostRates = None,
    tax_rate: Optional[Number] = None,
) -> FinancialModel:
    """
    Compute the full flip financial model.

    cash_profit = arv - purchase - rehab - sale costs - holding - purchase closing
    cash_investment = purchase + rehab + purchase closing + holding
    mao_classic = arv * 0.70 - rehab
    breakeven_arv = (purchase + rehab + purchase closing + holding) / (1 - sale cost rate)

    Args:
        purchase_price: Price paid (usually list price)
        arv: After-repair value
        rehab_cost: Total rehab budget (must be > 0)
        hold_months: Months from purchase to sale (must be > 0)
        cost_rates: Cost assumptions (default: CostRates())
        tax_rate: Annual property tax rate overriding the default

    Returns:
        FinancialModel

    Raises:
        ValidationError: On non-positive purchase price, rehab or hold
            months, or a negative ARV
    """
    rates = cost_rates or CostRates()
    purchase = _money_input(purchase_price, "purchase_price")
    arv = _money_input(arv, "arv")
    rehab = _money_input(rehab_cost, "rehab_cost")

    if purchase <= 0:
        raise ValidationError(f"purchase_price must be positive: {purchase}", field="purchase_price")
    if arv < 0:
        raise ValidationError(f"arv must not be negative: {arv}", field="arv")
    if rehab <= 0:
        raise ValidationError(f"rehab_cost must be positive: {rehab}", field="rehab_cost")
    if isinstance(hold_months, bool) or not isinstance(hold_months, int) or hold_months <= 0:
        raise ValidationError(f"hold_months must be a positive integer: {hold_months}", field="hold_months")

    effective_tax = _tax_rate(tax_rate, rates)
    if effective_tax < 0:
        raise ValidationError(f"tax_rate must not be negative: {tax_rate}", field="tax_rate")

    # Transaction and holding costs
    purchase_closing = to_money(purchase * rates.purchase_closing_rate)
    sale_costs = to_money(arv * rates.sale_cost_rate)
    monthly_carry = purchase * (effective_tax + rates.insurance_rate) / 12 + rates.monthly_utilities
    holding = to_money(monthly_carry * hold_months)

    # Cash scenario
    cash_profit = arv - purchase - rehab - sale_costs - holding - purchase_closing
    cash_investment = purchase + rehab + purchase_closing + holding
    cash_roi = ratio(cash_profit, cash_investment)

    # Financed scenario
    loan = to_money(purchase * rates.hard_money_ltv)
    financing = to_money(
        loan * rates.hard_money_points + loan * rates.hard_money_rate / 12 * hold_months
    )
    financed_profit = cash_profit - financing
    cash_invested = purchase - loan + rehab + purchase_closing
    cash_on_cash = ratio(financed_profit, cash_invested)
    annualized = _annualize(cash_on_cash, hold_months)

    # Offer limits
    mao_classic = arv * MAO_CLASSIC_RATE - rehab
    mao_adjusted = to_money(
        (arv * (1 - rates.sale_cost_rate - rates.min_profit_margin) - rehab - holding - financing)
        / (1 + rates.purchase_closing_rate)
    )
    breakeven = to_money(cash_investment / (1 - rates.sale_cost_rate))

    return FinancialModel(
        purchase_price=purchase,
        arv=arv,
        rehab_cost=rehab,
        hold_months=hold_months,
        purchase_closing_cost=purchase_closing,
        sale_costs=sale_costs,
        holding_costs=holding,
        cash_profit=cash_profit,
        cash_investment=cash_investment,
        cash_roi=cash_roi,
        loan_amount=loan,
        financing_costs=financing,
        financed_profit=financed_profit,
        cash_invested=cash_invested,
        cash_on_cash_roi=cash_on_cash,
        annualized_roi=annualized,
        mao_classic=to_money(mao_classic),
        mao_adjusted=mao_adjusted,
        breakeven_arv=breakeven,
    )


def estimate_rehab_cost(
    subject: SubjectProperty,
    cost_rates: CostRates = None,
    reference_year: int = None,
) -> RehabEstimate:
    """
    Estimate rehab cost from building age and living area.

    base $/sqft = clamp(rehab_base_ppsf + rehab_ppsf_per_year * age,
    rehab_floor_ppsf, max_rehab_ppsf), scaled by an age-condition
    multiplier, then contingency and lead-paint allowance are added.

    Returns an all-zero estimate when living area is unknown.
    """
    rates = cost_rates or CostRates()
    reference_year = reference_year or date.today().year

    if not subject.living_area:
        return RehabEstimate(ZERO, ZERO, Decimal(0), ZERO, ZERO)

    if subject.year_built:
        age = max(0, reference_year - subject.year_built)
    else:
        age = rates.default_building_age

    base_ppsf = min(
        rates.max_rehab_ppsf,
        max(rates.rehab_floor_ppsf, rates.rehab_base_ppsf + Decimal(age) * rates.rehab_ppsf_per_year),
    )
    multiplier = Decimal(1)
    for max_age, mult in rates.age_condition_multipliers:
        if age <= max_age:
            multiplier = mult
            break

    per_sqft = to_money(max(rates.min_rehab_ppsf, base_ppsf * multiplier))
    base_cost = to_money(per_sqft * subject.living_area)
    contingency_rate = _rehab_tier(per_sqft, rates)[0]
    lead_paint = ZERO
    if subject.year_built and subject.year_built < rates.lead_paint_cutoff_year:
        lead_paint = to_money(rates.lead_paint_allowance)

    total = to_money(base_cost + base_cost * contingency_rate + lead_paint)

    return RehabEstimate(
        total=total,
        per_sqft=per_sqft,
        contingency_rate=contingency_rate,
        lead_paint=lead_paint,
        base_cost=base_cost,
    )


def estimate_hold_months(
    rehab_per_sqft: Number,
    days_on_market: Optional[int],
    cost_rates: CostRates = None,
) -> int:
    """
    Estimate hold period: rehab months + months to sell + permit buffer.

    Months to sell is ceil(DOM / 30), at least 1.
    """
    rates = cost_rates or CostRates()
    per_sqft = to_decimal(rehab_per_sqft)
    rehab_months = _rehab_tier(per_sqft, rates)[1]
    sale_months = max(1, math.ceil((days_on_market or 0) / 30))
    permit_buffer = 1 if per_sqft > rates.permit_buffer_ppsf else 0
    return rehab_months + sale_months + permit_buffer


def estimate_monthly_rent(subject: SubjectProperty, cost_rates: CostRates = None) -> Decimal:
    """Monthly rent estimate from living area."""
    rates = cost_rates or CostRates()
    if not subject.living_area:
        return ZERO
    return to_money(rates.rent_per_sqft * subject.living_area)


def analyze_rental(
    arv: Number,
    monthly_rent: Number,
    total_investment: Number,
    cost_rates: CostRates = None,
    tax_rate: Optional[Number] = None,
) -> RentalAnalysis:
    """
    Project a buy-and-hold rental at the ARV.

    Operating expenses: vacancy, management, maintenance, insurance,
    capex and property tax. cap_rate and cash_on_cash are fractions.
    """
    rates = cost_rates or CostRates()
    arv = to_money(arv)
    rent = to_money(monthly_rent)
    investment = to_money(total_investment)
    effective_tax = _tax_rate(tax_rate, rates)

    annual_gross = rent * 12
    vacancy = annual_gross * rates.vacancy_rate
    management = annual_gross * rates.management_rate
    maintenance = arv * rates.maintenance_rate
    insurance = arv * rates.rental_insurance_rate
    capex = annual_gross * rates.capex_rate
    property_tax = arv * effective_tax

    operating = to_money(vacancy + management + maintenance + insurance + capex + property_tax)
    noi = annual_gross - operating

    depreciation = to_money(arv * (1 - rates.land_value_pct) / rates.depreciation_years)

    return RentalAnalysis(
        monthly_rent=rent,
        annual_gross=annual_gross,
        vacancy_loss=to_money(vacancy),
        operating_expenses=operating,
        noi=noi,
        cap_rate=ratio(noi, arv),
        cash_on_cash=ratio(noi, investment),
        grm=ratio(investment, annual_gross, places=2),
        annual_depreciation=depreciation,
        tax_shelter=to_money(depreciation * rates.tax_bracket),
    )


def analyze_brrrr(
    arv: Number,
    noi: Number,
    total_cash_in: Number,
    cost_rates: CostRates = None,
) -> BrrrrAnalysis:
    """
    Project a cash-out refinance at the ARV.

    Uses a fully amortising loan at refi_ltv of ARV.
    """
    rates = cost_rates or CostRates()
    arv = to_money(arv)
    noi = to_money(noi)
    cash_in = to_money(total_cash_in)

    refi_loan = to_money(arv * rates.refi_ltv)
    monthly_rate = rates.refi_rate / 12
    payments = rates.refi_term_years * 12

    if refi_loan <= 0:
        monthly_payment = ZERO
    elif monthly_rate == 0:
        monthly_payment = to_money(refi_loan / payments)
    else:
        growth = (1 + monthly_rate) ** payments
        monthly_payment = to_money(refi_loan * monthly_rate * growth / (growth - 1))

    debt_service = monthly_payment * 12

    return BrrrrAnalysis(
        refi_loan=refi_loan,
        monthly_payment=monthly_payment,
        annual_debt_service=debt_service,
        post_refi_cash_flow=noi - debt_service,
        dscr=ratio(noi, debt_service, places=2),
        cash_left=cash_in - refi_loan,
        total_cash_in=cash_in,
    )


def assess_risk(
    confidence_score: float,
    breakeven_arv: Decimal,
    arv: Decimal,
    price_cv: Optional[float],
    days_on_market: Optional[int],
    comp_count: int,
    rubric: RiskRubric = None,
) -> RiskAssessment:
    """
    Break deal risk into weighted factors.

    ARV confidence, margin cushion above breakeven, comp price
    consistency, market velocity and comp count, each scored by the
    risk rubric's bands.
    """
    r = rubric or RiskRubric()

    cushion = None
    if arv and arv > 0 and breakeven_arv and breakeven_arv > 0:
        cushion = float((arv - breakeven_arv) / arv)

    factors = {
        "arv_confidence": higher_is_better(confidence_score, r.confidence_bands, r.confidence_floor),
        "margin_cushion": (
            higher_is_better(cushion, r.cushion_bands, r.cushion_floor)
            if cushion is not None else float(r.cushion_floor)
        ),
        "comp_consistency": (
            lower_is_better(price_cv, r.consistency_bands, r.consistency_floor)
            if price_cv is not None else float(r.consistency_floor)
        ),
        "market_velocity": lower_is_better(
            days_on_market or 0, r.velocity_bands, r.velocity_floor, inclusive=True
        ),
        "comp_count": higher_is_better(comp_count, r.count_bands, r.count_floor),
    }

    score = round(
        factors["arv_confidence"] * r.arv_confidence_weight
        + factors["margin_cushion"] * r.margin_cushion_weight
        + factors["comp_consistency"] * r.comp_consistency_weight
        + factors["market_velocity"] * r.market_velocity_weight
        + factors["comp_count"] * r.comp_count_weight,
        1,
    )

    return RiskAssessment(score=score, grade=grade_for_score(score), factors=factors)


# =============================================================================
# Helpers
# =============================================================================

def _money_input(value: Number, name: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{name} is required", field=name)
    try:
        return to_money(value)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ValidationError(f"{name} is not a number: {value!r}", field=name) from e


def _tax_rate(tax_rate: Optional[Number], rates: CostRates) -> Decimal:
    """Subject tax rate when given (0 means exempt), else the policy default."""
    if tax_rate is None:
        return rates.property_tax_rate
    return to_decimal(tax_rate)


def _annualize(period_return: Decimal, hold_months: int) -> Decimal:
    """Compound a holding-period return to an annual rate."""
    base = 1 + float(period_return)
    if base <= 0:
        return Decimal("-1.0000")
    annual = base ** (12 / hold_months) - 1
    return to_decimal(round(annual, 4))


def _rehab_tier(per_sqft: Decimal, rates: CostRates):
    """(contingency rate, rehab months) for a rehab intensity."""
    for max_ppsf, contingency, months in rates.rehab_tiers:
        if per_sqft <= max_ppsf:
            return contingency, months
    return rates.heavy_rehab_contingency, rates.heavy_rehab_months
