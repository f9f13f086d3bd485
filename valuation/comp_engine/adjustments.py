"""
Adjustment Calculator

Converts feature differences between a subject and a comparable into
signed dollar adjustments:
- Bedrooms, bathrooms: flat value per unit
- Living area: pool price/sqft scaled, or flat value per 100 sqft
- Year built: percentage of sale price per year
- Garage: tiered value (first space, each additional)
- Lot size: percentage of sale price per quarter acre

Each dimension is clamped to a maximum share of the comparable's sale
price. Amounts are quantized to cents before summing so that
adjusted_price == sale_price + sum(adjustments) holds exactly.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from ..errors import ValidationError
from ..models import ComparableCandidate, SubjectProperty
from ..money import ZERO, sum_money, to_decimal, to_money
from ..policy import AdjustmentRates
from .models import Adjustment, AdjustmentResult, DataQualityFlag


logger = logging.getLogger(__name__)

QUARTER_ACRE = Decimal("0.25")


class AdjustmentCalculator:
    """
    Computes per-dimension adjustments for one comparable at a time.

    Stateless apart from the injected rate table.
    """

    def __init__(self, rates: AdjustmentRates = None):
        self._rates = rates or AdjustmentRates()

    def compute(
        self,
        subject: SubjectProperty,
        candidate: ComparableCandidate,
        avg_ppsf: Optional[Decimal] = None,
    ) -> AdjustmentResult:
        """
        Compute adjustments and the adjusted price for a comparable.

        Args:
            subject: Subject property (overrides already applied)
            candidate: Comparable with a positive sale price
            avg_ppsf: Average price per sqft across the selected pool

        Returns:
            AdjustmentResult with adjustments, flags and adjusted price
        """
        sale_price = candidate.sale_price
        if sale_price is None or sale_price <= 0:
            raise ValidationError(
                f"Comparable {candidate.listing_id} has no positive sale price",
                field="close_price",
            )

        cap = to_money(sale_price * self._rates.max_dimension_pct)
        adjustments: List[Adjustment] = []
        flags: List[DataQualityFlag] = []

        dimensions = (
            ("bedrooms", self._bedrooms),
            ("bathrooms", self._bathrooms),
            ("living_area", self._living_area),
            ("year_built", self._year_built),
            ("garage_spaces", self._garage),
            ("lot_size_acres", self._lot_size),
        )

        for feature, rule_fn in dimensions:
            subject_value = getattr(subject, feature)
            comp_value = getattr(candidate, feature)

            if subject_value is None or comp_value is None:
                side = "subject" if subject_value is None else "comparable"
                flags.append(DataQualityFlag(feature=feature, reason=f"missing on {side}"))
                logger.debug(
                    "Skipping %s for %s: missing on %s", feature, candidate.listing_id, side
                )
                continue

            if subject_value == comp_value:
                continue

            raw, rule = rule_fn(
                to_decimal(subject_value), to_decimal(comp_value), sale_price, avg_ppsf
            )
            value, clamped = _clamp(to_money(raw), cap)
            if value == ZERO:
                continue

            adjustments.append(Adjustment(
                feature=feature,
                value=value,
                rule=rule,
                subject_value=subject_value,
                comp_value=comp_value,
                difference=_difference(subject_value, comp_value),
                clamped=clamped,
            ))

        total = sum_money(a.value for a in adjustments)
        gross = sum_money(abs(a.value) for a in adjustments)

        return AdjustmentResult(
            adjustments=tuple(adjustments),
            data_quality_flags=tuple(flags),
            total=total,
            adjusted_price=sale_price + total,
            gross_pct=round(float(gross / sale_price), 4),
        )

    # =========================================================================
    # Dimension Rules
    # =========================================================================

    def _bedrooms(self, s: Decimal, c: Decimal, sale_price: Decimal, avg_ppsf):
        value = self._rates.bedroom_value
        return (s - c) * value, f"${value:,.0f} per bedroom"

    def _bathrooms(self, s: Decimal, c: Decimal, sale_price: Decimal, avg_ppsf):
        value = self._rates.bathroom_value
        return (s - c) * value, f"${value:,.0f} per bathroom"

    def _living_area(self, s: Decimal, c: Decimal, sale_price: Decimal, avg_ppsf):
        if self._rates.use_pool_price_per_sqft and avg_ppsf and avg_ppsf > 0:
            per_sqft = avg_ppsf * self._rates.sqft_ppsf_factor
            return (s - c) * per_sqft, f"${per_sqft:,.2f} per sqft ({self._rates.sqft_ppsf_factor:%} of avg $/sqft)"
        value = self._rates.sqft_value_per_100
        return (s - c) / 100 * value, f"${value:,.0f} per 100 sqft"

    def _year_built(self, s: Decimal, c: Decimal, sale_price: Decimal, avg_ppsf):
        pct = self._rates.year_built_pct
        return (s - c) * sale_price * pct, f"{pct:%} of sale price per year"

    def _garage(self, s: Decimal, c: Decimal, sale_price: Decimal, avg_ppsf):
        r = self._rates
        return (
            self._garage_value(s) - self._garage_value(c),
            f"${r.garage_first_value:,.0f} first space, ${r.garage_additional_value:,.0f} each additional",
        )

    def _lot_size(self, s: Decimal, c: Decimal, sale_price: Decimal, avg_ppsf):
        pct = self._rates.lot_pct_per_quarter_acre
        return (s - c) / QUARTER_ACRE * sale_price * pct, f"{pct:%} of sale price per 0.25 acre"

    def _garage_value(self, spaces: Decimal) -> Decimal:
        if spaces <= 0:
            return ZERO
        r = self._rates
        return r.garage_first_value + (spaces - 1) * r.garage_additional_value


def _clamp(value: Decimal, cap: Decimal):
    """Clamp to +/- cap, preserving sign."""
    if value > cap:
        return cap, True
    if value < -cap:
        return -cap, True
    return value, False


def _difference(subject_value, comp_value):
    diff = subject_value - comp_value
    if isinstance(diff, float):
        return round(diff, 4)
    return diff
