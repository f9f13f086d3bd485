"""
Formatting utilities.
"""

from decimal import Decimal
from typing import Optional, Union


def format_currency(
    amount: Optional[Union[Decimal, int, float]],
    currency: str = "USD",
    cents: bool = False,
) -> str:
    """
    Format an amount as currency.

    Args:
        amount: The amount in dollars (None renders as a dash).
        currency: Currency code (default USD).
        cents: Show two decimal places.

    Returns:
        Formatted currency string.
    """
    if amount is None:
        return "-"

    symbols = {
        "USD": "$",
        "GBP": "£",
        "EUR": "€",
    }
    symbol = symbols.get(currency, currency + " ")
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if cents:
        return f"{sign}{symbol}{value:,.2f}"
    return f"{sign}{symbol}{value:,.0f}"


def format_percent(value: Optional[Union[Decimal, float]], decimals: int = 1, fraction: bool = False) -> str:
    """
    Format a number as a percentage.

    Args:
        value: The percentage value (or a fraction when fraction=True).
        decimals: Number of decimal places.
        fraction: Treat value as a fraction (0.15 -> 15.0%).

    Returns:
        Formatted percentage string.
    """
    if value is None:
        return "-"
    if fraction:
        value = float(value) * 100
    return f"{value:.{decimals}f}%"
