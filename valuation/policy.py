"""
Engine policy: every tunable business constant in one place.

The policy is an immutable tree of dataclasses injected into each
component at construction. Nothing in the engine reads module-level
rates directly; the module constants below are only defaults.

Band tables are tuples of (threshold, points) rows checked in order;
the first matching row wins and the matching *_floor applies otherwise.
Whether a row matches at, above or below its threshold is fixed by the
component that reads the table.

The one fixed constant outside the policy is the 70% rule used for the
classic maximum allowable offer, which is an industry formula.

Load a partial override from JSON-like data with EnginePolicy.from_dict.
"""

from dataclasses import dataclass, field, fields, is_dataclass, replace
from decimal import Decimal
from typing import Any, Mapping, Tuple

from .errors import ValidationError
from .money import to_decimal


# =============================================================================
# Configuration Constants
# =============================================================================

# Comparable selection
RADIUS_TIERS_MILES = (0.5, 1.0, 3.0)
MIN_COMPS = 3
MAX_COMPS = 15
LOOKBACK_MONTHS = 12

# Per-dimension clamp (fraction of comparable sale price)
MAX_DIMENSION_PCT = Decimal("0.15")

# Grade bands shared by comparability grading and deal risk grading
GRADE_BANDS = ((90.0, "A"), (75.0, "B"), (60.0, "C"), (40.0, "D"))
LOWEST_GRADE = "F"

# Rehab intensity tiers: (max $/sqft, contingency rate, rehab months)
REHAB_TIERS = (
    (Decimal("20"), Decimal("0.08"), 1),
    (Decimal("35"), Decimal("0.12"), 2),
    (Decimal("50"), Decimal("0.15"), 4),
)

# Building age -> condition multiplier on base rehab $/sqft
AGE_CONDITION_MULTIPLIERS = (
    (5, Decimal("0.10")),
    (10, Decimal("0.30")),
    (15, Decimal("0.50")),
    (20, Decimal("0.75")),
)

Bands = Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class SelectionPolicy:
    """Comparable selection limits."""
    radius_tiers: Tuple[float, ...] = RADIUS_TIERS_MILES
    citywide_fallback: bool = True
    min_comps: int = MIN_COMPS
    max_comps: int = MAX_COMPS
    months_back: int = LOOKBACK_MONTHS

    # Attribute tolerances (applied when filters request them)
    bedroom_tolerance: int = 2
    bathroom_tolerance: float = 2.0
    sqft_tolerance_pct: float = 0.30
    year_built_tolerance: int = 15

    # Neighborhood ceiling (P90 of nearby closed sales)
    ceiling_radius_miles: float = 0.5
    ceiling_percentile: float = 0.90

    def __post_init__(self):
        if not self.radius_tiers or any(r <= 0 for r in self.radius_tiers):
            raise ValidationError("radius_tiers must be positive", field="radius_tiers")
        if list(self.radius_tiers) != sorted(self.radius_tiers):
            raise ValidationError("radius_tiers must be ascending", field="radius_tiers")
        if self.min_comps < 1 or self.max_comps < self.min_comps:
            raise ValidationError("require 1 <= min_comps <= max_comps", field="min_comps")


@dataclass(frozen=True)
class AdjustmentRates:
    """
    Per-unit dollar values for each adjustment dimension.

    Living area uses the pool's average price per sqft scaled by
    sqft_ppsf_factor when it is known, otherwise sqft_value_per_100.
    """
    bedroom_value: Decimal = Decimal("15000")
    bathroom_value: Decimal = Decimal("7500")
    sqft_value_per_100: Decimal = Decimal("5000")
    sqft_ppsf_factor: Decimal = Decimal("0.5")
    use_pool_price_per_sqft: bool = True
    year_built_pct: Decimal = Decimal("0.004")  # of sale price, per year
    garage_first_value: Decimal = Decimal("10000")
    garage_additional_value: Decimal = Decimal("6000")
    lot_pct_per_quarter_acre: Decimal = Decimal("0.02")  # of sale price
    max_dimension_pct: Decimal = MAX_DIMENSION_PCT

    def __post_init__(self):
        _coerce_decimals(self)
        _require_non_negative(self)
        if self.max_dimension_pct > 1:
            raise ValidationError("max_dimension_pct must be <= 1", field="max_dimension_pct")


@dataclass(frozen=True)
class ScoringWeights:
    """
    Comparability score weights and falloff curves.

    Weights must sum to 1.0.
    """
    distance: float = 0.35
    recency: float = 0.25
    size: float = 0.25
    property_type: float = 0.15

    distance_zero_miles: float = 3.0  # distance score reaches 0 here
    recency_decay_per_month: float = 0.115
    size_zero_pct: float = 0.30  # size score reaches 0 at this relative delta
    unknown_component_score: float = 50.0

    # Property type component points
    type_exact_points: float = 100.0
    type_same_points: float = 70.0
    type_compatible_points: float = 40.0

    # ARV mode: weight multiplier for comps whose remarks show a renovation
    renovated_weight_boost: float = 1.3

    grade_bands: Tuple[Tuple[float, str], ...] = GRADE_BANDS

    def __post_init__(self):
        _require_non_negative(self, skip=("grade_bands",))
        total = self.distance + self.recency + self.size + self.property_type
        if abs(total - 1.0) > 1e-6:
            raise ValidationError(f"scoring weights must sum to 1.0, got {total}", field="distance")
        if self.distance_zero_miles <= 0 or self.size_zero_pct <= 0:
            raise ValidationError("falloff limits must be positive", field="distance_zero_miles")


@dataclass(frozen=True)
class ConfidencePolicy:
    """
    Confidence score formula.

    score = count_points * min(n / target_count, 1)
          + quality_points * avg_comparability / 100
          + dispersion_points * (1 - min(cv / max_cv, 1))
    """
    count_points: float = 35.0
    quality_points: float = 35.0
    dispersion_points: float = 30.0
    target_count: int = 10
    max_cv: float = 0.30

    high_threshold: float = 75.0
    medium_threshold: float = 50.0
    min_comps_medium: int = 3
    min_comps_high: int = 5

    # Spread = stddev * (1 + small_sample_factor / n)
    small_sample_factor: float = 1.0

    def __post_init__(self):
        _require_non_negative(self)
        if self.target_count < 1 or self.max_cv <= 0:
            raise ValidationError("target_count and max_cv must be positive", field="target_count")


@dataclass(frozen=True)
class CostRates:
    """
    Transaction, holding, financing and rental cost assumptions.

    All rates are decimals (0.045 == 4.5%).
    """
    # Transaction
    commission_rate: Decimal = Decimal("0.045")
    closing_rate_buy: Decimal = Decimal("0.015")
    closing_rate_sell: Decimal = Decimal("0.01")
    transfer_tax_rate: Decimal = Decimal("0.00456")

    # Holding
    insurance_rate: Decimal = Decimal("0.005")  # annual, of purchase price
    property_tax_rate: Decimal = Decimal("0.013")  # annual, of purchase price
    monthly_utilities: Decimal = Decimal("350")

    # Hard money financing
    hard_money_rate: Decimal = Decimal("0.105")
    hard_money_points: Decimal = Decimal("0.02")
    hard_money_ltv: Decimal = Decimal("0.80")

    # Desired margin for the adjusted maximum allowable offer
    min_profit_margin: Decimal = Decimal("0.10")

    # Rehab estimation
    lead_paint_allowance: Decimal = Decimal("8000")
    lead_paint_cutoff_year: int = 1978
    min_rehab_ppsf: Decimal = Decimal("2")
    max_rehab_ppsf: Decimal = Decimal("65")
    # base $/sqft = clamp(rehab_base_ppsf + rehab_ppsf_per_year * age, rehab_floor_ppsf, max_rehab_ppsf)
    rehab_base_ppsf: Decimal = Decimal("10")
    rehab_ppsf_per_year: Decimal = Decimal("0.7")
    rehab_floor_ppsf: Decimal = Decimal("5")
    default_building_age: int = 30
    # (max age, multiplier); older buildings use the full base rate
    age_condition_multipliers: Tuple[Tuple[int, Decimal], ...] = AGE_CONDITION_MULTIPLIERS
    rehab_tiers: Tuple[Tuple[Decimal, Decimal, int], ...] = REHAB_TIERS
    heavy_rehab_contingency: Decimal = Decimal("0.20")
    heavy_rehab_months: int = 6
    permit_buffer_ppsf: Decimal = Decimal("35")  # above this a month of permitting is added

    # Rental hold
    rent_per_sqft: Decimal = Decimal("1.80")
    vacancy_rate: Decimal = Decimal("0.05")
    management_rate: Decimal = Decimal("0.08")
    maintenance_rate: Decimal = Decimal("0.01")  # annual, of ARV
    capex_rate: Decimal = Decimal("0.05")
    rental_insurance_rate: Decimal = Decimal("0.006")  # annual, of ARV
    depreciation_years: Decimal = Decimal("27.5")
    land_value_pct: Decimal = Decimal("0.20")
    tax_bracket: Decimal = Decimal("0.32")

    # BRRRR refinance
    refi_ltv: Decimal = Decimal("0.75")
    refi_rate: Decimal = Decimal("0.072")
    refi_term_years: int = 30

    def __post_init__(self):
        _coerce_decimals(self)
        _require_non_negative(self)
        _set_table(self, "age_condition_multipliers", (int, to_decimal), ascending=True)
        _set_table(self, "rehab_tiers", (to_decimal, to_decimal, int), ascending=True)
        if self.sale_cost_rate + self.min_profit_margin >= 1:
            raise ValidationError(
                "sale costs plus profit margin must be below 100% of ARV",
                field="min_profit_margin",
            )
        if self.hard_money_ltv > 1 or self.refi_ltv > 1:
            raise ValidationError("loan-to-value must be <= 1", field="hard_money_ltv")

    @property
    def sale_cost_rate(self) -> Decimal:
        """Commission + seller closing + transfer tax, as a share of ARV."""
        return self.commission_rate + self.closing_rate_sell + self.transfer_tax_rate

    @property
    def purchase_closing_rate(self) -> Decimal:
        """Buyer closing + transfer tax, as a share of purchase price."""
        return self.closing_rate_buy + self.transfer_tax_rate


@dataclass(frozen=True)
class SubScoreWeights:
    """Weights applied to the four deal sub-scores."""
    financial: float = 0.50
    property: float = 0.20
    location: float = 0.15
    market: float = 0.15

    def __post_init__(self):
        _require_non_negative(self)
        total = self.financial + self.property + self.location + self.market
        if abs(total - 1.0) > 1e-6:
            raise ValidationError(f"sub-score weights must sum to 1.0, got {total}", field="financial")


@dataclass(frozen=True)
class FinancialRubric:
    """
    Financial sub-score: price-to-ARV 35%, cash ROI 25%, MAO margin of
    safety 25%, price reduction 15%.

    price_ratio_bands are upper limits (lower ratio is better); the
    other bands are lower limits.
    """
    price_ratio_weight: float = 0.35
    roi_weight: float = 0.25
    margin_weight: float = 0.25
    reduction_weight: float = 0.15

    price_ratio_bands: Bands = ((0.65, 100), (0.70, 80), (0.75, 60), (0.80, 40))
    price_ratio_floor: float = 20.0
    roi_bands: Bands = ((0.30, 100), (0.20, 80), (0.15, 60), (0.10, 40))
    roi_floor: float = 20.0
    margin_bands: Bands = ((0.10, 100), (0.05, 80), (0.0, 60), (-0.05, 40), (-0.10, 20))
    margin_floor: float = 0.0
    reduction_bands: Bands = ((0.15, 100), (0.10, 80), (0.05, 60), (0.01, 40))
    reduction_floor: float = 20.0

    def __post_init__(self):
        _normalise_rubric(self)


@dataclass(frozen=True)
class PropertyRubric:
    """
    Property sub-score: lot 25%, living area 20%, age 25%, bedrooms 10%,
    condition 20%.

    age_ranges rows are (min age, max age, points), both ends inclusive.
    Condition starts at condition_base and moves with remarks signals.
    """
    lot_weight: float = 0.25
    size_weight: float = 0.20
    age_weight: float = 0.25
    bedroom_weight: float = 0.10
    condition_weight: float = 0.20

    lot_bands: Bands = ((0.5, 100), (0.25, 80), (0.15, 60), (0.10, 40))
    lot_floor: float = 20.0
    size_bands: Bands = ((2500, 100), (2000, 80), (1500, 60), (1000, 40))
    size_floor: float = 20.0
    age_ranges: Tuple[Tuple[float, float, float], ...] = (
        (41, 70, 100), (21, 40, 80), (16, 20, 60), (6, 15, 40),
    )
    age_floor: float = 20.0
    bedroom_bands: Bands = ((4, 100), (3, 80), (2, 60))
    bedroom_floor: float = 40.0

    condition_base: float = 50.0
    value_add_bonus: float = 30.0
    structural_penalty: float = 40.0
    renovated_comps_bonus: float = 10.0

    def __post_init__(self):
        _normalise_rubric(self)
        _set_table(self, "age_ranges", (float, float, float))


@dataclass(frozen=True)
class LocationRubric:
    """
    Location sub-score: school rating 40%, ARV headroom under the
    neighborhood ceiling 35%, market trend 25%.

    headroom_bands are upper limits on ARV / ceiling.
    """
    school_weight: float = 0.40
    headroom_weight: float = 0.35
    trend_weight: float = 0.25

    school_points_per_rating: float = 10.0
    headroom_bands: Bands = ((0.90, 100), (1.0, 70), (1.10, 40))
    headroom_floor: float = 10.0

    sellers_market_points: float = 100.0
    balanced_market_points: float = 60.0
    buyers_market_points: float = 30.0

    def __post_init__(self):
        _normalise_rubric(self)


@dataclass(frozen=True)
class MarketRubric:
    """
    Market sub-score: median days on market 35%, months of supply 35%,
    season 30%.

    dom_bands and supply_bands are upper limits. season_points holds one
    value per calendar month, January first.
    """
    dom_weight: float = 0.35
    supply_weight: float = 0.35
    season_weight: float = 0.30

    dom_bands: Bands = ((30, 100), (60, 70), (90, 40))
    dom_floor: float = 20.0
    supply_bands: Bands = ((3, 100), (4, 85), (6, 60), (9, 35))
    supply_floor: float = 15.0
    season_points: Tuple[float, ...] = (30, 30, 30, 80, 80, 80, 100, 100, 100, 60, 60, 60)

    def __post_init__(self):
        _normalise_rubric(self)
        try:
            points = tuple(float(p) for p in self.season_points)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"season_points must be numeric: {e}", field="season_points") from e
        if len(points) != 12:
            raise ValidationError("season_points needs one value per month", field="season_points")
        object.__setattr__(self, "season_points", points)


@dataclass(frozen=True)
class ScoreRubrics:
    """Band tables and internal weights behind the four deal sub-scores."""
    financial: FinancialRubric = field(default_factory=FinancialRubric)
    property: PropertyRubric = field(default_factory=PropertyRubric)
    location: LocationRubric = field(default_factory=LocationRubric)
    market: MarketRubric = field(default_factory=MarketRubric)

    # Score for an input the caller did not supply
    neutral_score: float = 50.0

    def __post_init__(self):
        _require_non_negative(self)


@dataclass(frozen=True)
class RiskRubric:
    """
    Deal risk factors: ARV confidence 35%, margin cushion 25%, comp
    consistency 20%, market velocity 10%, comp count 10%.

    consistency_bands (price CV, exclusive) and velocity_bands (days on
    market, inclusive) are upper limits; the rest are lower limits.
    """
    arv_confidence_weight: float = 0.35
    margin_cushion_weight: float = 0.25
    comp_consistency_weight: float = 0.20
    market_velocity_weight: float = 0.10
    comp_count_weight: float = 0.10

    confidence_bands: Bands = ((75, 100), (50, 70), (20, 40))
    confidence_floor: float = 10.0
    cushion_bands: Bands = ((0.30, 100), (0.20, 80), (0.10, 60), (0.0, 40))
    cushion_floor: float = 10.0
    consistency_bands: Bands = ((0.10, 100), (0.20, 70), (0.30, 40))
    consistency_floor: float = 15.0
    velocity_bands: Bands = ((30, 100), (60, 70), (90, 50))
    velocity_floor: float = 30.0
    count_bands: Bands = ((8, 100), (5, 80), (3, 60), (1, 30))
    count_floor: float = 0.0

    def __post_init__(self):
        _normalise_rubric(self)


@dataclass(frozen=True)
class DealPolicy:
    """Composite deal scoring weights and disqualification gates."""
    total_weights: SubScoreWeights = field(default_factory=SubScoreWeights)
    flip_weights: SubScoreWeights = field(
        default_factory=lambda: SubScoreWeights(0.60, 0.20, 0.05, 0.15)
    )
    rental_weights: SubScoreWeights = field(
        default_factory=lambda: SubScoreWeights(0.45, 0.25, 0.20, 0.10)
    )
    brrrr_weights: SubScoreWeights = field(
        default_factory=lambda: SubScoreWeights(0.50, 0.25, 0.15, 0.10)
    )
    rubrics: ScoreRubrics = field(default_factory=ScoreRubrics)
    risk: RiskRubric = field(default_factory=RiskRubric)

    # Universal gates
    min_list_price: Decimal = Decimal("100000")
    min_living_area: int = 600

    # Strategy viability
    min_flip_profit: Decimal = Decimal("25000")
    min_flip_roi: Decimal = Decimal("0.15")
    min_cap_rate: Decimal = Decimal("0.03")
    min_monthly_cash_flow: Decimal = Decimal("0")
    min_dscr: Decimal = Decimal("0.9")
    max_cash_left_multiple: Decimal = Decimal("2")

    def __post_init__(self):
        _coerce_decimals(self)
        _require_non_negative(self)


@dataclass(frozen=True)
class EnginePolicy:
    """Complete policy injected into every engine component."""
    selection: SelectionPolicy = field(default_factory=SelectionPolicy)
    adjustments: AdjustmentRates = field(default_factory=AdjustmentRates)
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    confidence: ConfidencePolicy = field(default_factory=ConfidencePolicy)
    costs: CostRates = field(default_factory=CostRates)
    deal: DealPolicy = field(default_factory=DealPolicy)

    @classmethod
    def default(cls) -> "EnginePolicy":
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnginePolicy":
        """
        Build a policy from a (possibly partial) nested mapping.

        Missing keys keep their defaults. Unknown keys raise ValidationError.

        Args:
            data: e.g. {"costs": {"commission_rate": 0.05}}

        Returns:
            EnginePolicy with the overrides applied
        """
        return _merge(cls(), data or {}, path="policy")

    def to_dict(self) -> dict:
        """Convert to nested dictionary of JSON-safe values."""
        return _to_plain(self)


# =============================================================================
# Helpers
# =============================================================================

def _coerce_decimals(instance) -> None:
    """Store Decimal-typed rates as Decimal even when given ints or floats."""
    for f in fields(instance):
        if isinstance(f.default, Decimal):
            value = getattr(instance, f.name)
            if not isinstance(value, Decimal):
                try:
                    object.__setattr__(instance, f.name, to_decimal(value))
                except (TypeError, ValueError, ArithmeticError) as e:
                    raise ValidationError(f"{f.name} must be numeric: {value!r}", field=f.name) from e


def _require_non_negative(instance, skip: Tuple[str, ...] = ()) -> None:
    for f in fields(instance):
        if f.name in skip:
            continue
        value = getattr(instance, f.name)
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            continue
        if value < 0:
            raise ValidationError(f"{f.name} must not be negative: {value}", field=f.name)


def _set_table(instance, name: str, converters, ascending: bool = False) -> None:
    """Convert every row of a table field with one converter per column."""
    rows = getattr(instance, name)
    try:
        table = tuple(tuple(row) for row in rows)
        if any(len(row) != len(converters) for row in table):
            raise ValueError(f"rows need {len(converters)} columns")
        table = tuple(
            tuple(convert(value) for convert, value in zip(converters, row))
            for row in table
        )
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ValidationError(f"Invalid {name}: {e}", field=name) from e
    if ascending and [row[0] for row in table] != sorted(row[0] for row in table):
        raise ValidationError(f"{name} must be ascending", field=name)
    object.__setattr__(instance, name, table)


def _normalise_rubric(instance) -> None:
    """Normalise band tables and check that the *_weight fields sum to 1.0."""
    for f in fields(instance):
        if f.name.endswith("_bands"):
            _set_table(instance, f.name, (float, float))
    _require_non_negative(instance)
    weights = [f.name for f in fields(instance) if f.name.endswith("_weight")]
    total = sum(getattr(instance, name) for name in weights)
    if abs(total - 1.0) > 1e-6:
        raise ValidationError(f"rubric weights must sum to 1.0, got {total}", field=weights[0])


def _coerce(current: Any, value: Any, path: str) -> Any:
    """Convert a raw override value to the type of the current default."""
    try:
        if isinstance(current, bool):
            if not isinstance(value, bool):
                raise TypeError("expected a boolean")
            return value
        if isinstance(current, Decimal):
            return to_decimal(value)
        if isinstance(current, int):
            if isinstance(value, float) and not value.is_integer():
                raise TypeError("expected an integer")
            return int(value)
        if isinstance(current, float):
            return float(value)
        if isinstance(current, tuple):
            return tuple(tuple(v) if isinstance(v, list) else v for v in value)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ValidationError(f"Invalid value for {path}: {value!r} ({e})", field=path) from e
    return value


def _merge(instance, data: Mapping[str, Any], path: str):
    if not isinstance(data, Mapping):
        raise ValidationError(f"{path} must be a mapping", field=path)

    known = {f.name for f in fields(instance)}
    unknown = set(data) - known
    if unknown:
        raise ValidationError(
            f"Unknown policy keys under {path}: {', '.join(sorted(unknown))}", field=path
        )

    changes = {}
    for name, value in data.items():
        current = getattr(instance, name)
        key_path = f"{path}.{name}"
        if is_dataclass(current):
            changes[name] = _merge(current, value, key_path)
        else:
            changes[name] = _coerce(current, value, key_path)
    return replace(instance, **changes)


def _to_plain(value: Any) -> Any:
    if is_dataclass(value):
        return {f.name: _to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, tuple):
        return [_to_plain(v) for v in value]
    return value
