"""
Currency arithmetic helpers.

All dollar amounts in the engine are Decimal values quantized to cents.
Rates and ratios stay as Decimal until they are reported.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union


CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def to_money(value: Number) -> Decimal:
    """Convert a number to Decimal rounded half-up to cents."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum cent amounts, returning 0.00 for an empty iterable."""
    total = ZERO
    for value in values:
        total += value
    return total


def ratio(numerator: Decimal, denominator: Decimal, places: int = 4) -> Decimal:
    """
    Divide two amounts and round the result.

    Returns 0 when the denominator is zero.
    """
    if denominator == 0:
        return Decimal(0)
    quantum = Decimal(1).scaleb(-places)
    return (numerator / denominator).quantize(quantum, rounding=ROUND_HALF_UP)
