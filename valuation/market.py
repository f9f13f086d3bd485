"""
Market conditions.

Derives a MarketSnapshot (inventory, absorption, trend) and the
neighborhood price ceiling from listings already loaded by the caller.
"""

import math
import statistics
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from .comp_engine.filters import DAYS_PER_MONTH, distance_between
from .models import (
    ComparableCandidate,
    ListingStatus,
    MarketSnapshot,
    MarketTrend,
    SubjectProperty,
    compatible_property_types,
)
from .money import to_money
from .policy import SelectionPolicy


# Closed-sale window used for absorption rate
ABSORPTION_MONTHS = 6


def build_market_snapshot(
    city: str,
    listings: Sequence[ComparableCandidate],
    property_type: str = "all",
    reference_date: date = None,
    school_rating: Optional[float] = None,
) -> MarketSnapshot:
    """
    Summarise market conditions for a city.

    months_supply = active listings / (closed sales in last 6 months / 6)

    Args:
        city: City to summarise (case-insensitive match)
        listings: Active and closed listings for the area
        property_type: "all" or a property type (compatible group applies)
        reference_date: Date the 6 month window ends (default: today)
        school_rating: Optional 0-10 district rating carried on the snapshot

    Returns:
        MarketSnapshot
    """
    reference_date = reference_date or date.today()
    cutoff = reference_date - timedelta(days=ABSORPTION_MONTHS * DAYS_PER_MONTH)
    city_key = city.strip().lower()

    def in_scope(listing: ComparableCandidate) -> bool:
        if city_key and listing.city.strip().lower() != city_key:
            return False
        if property_type != "all":
            return listing.property_type in compatible_property_types(property_type)
        return True

    scoped = [l for l in listings if in_scope(l)]
    active = [l for l in scoped if l.status == ListingStatus.ACTIVE]
    closed = [
        l for l in scoped
        if l.status == ListingStatus.CLOSED
        and l.close_price
        and l.close_date is not None
        and cutoff <= l.close_date <= reference_date
    ]

    prices = [l.close_price for l in closed]
    doms = [l.days_on_market for l in closed if l.days_on_market is not None]

    months_supply = None
    if closed:
        monthly_sales = len(closed) / ABSORPTION_MONTHS
        months_supply = round(len(active) / monthly_sales, 1)

    return MarketSnapshot(
        city=city,
        property_type=property_type,
        active_listings=len(active),
        closed_sales_6mo=len(closed),
        median_price=to_money(statistics.median(prices)) if prices else None,
        avg_price=to_money(sum(prices) / len(prices)) if prices else None,
        median_dom=float(statistics.median(doms)) if doms else None,
        months_supply=months_supply,
        trend=MarketTrend.from_months_supply(months_supply),
        school_rating=school_rating,
        as_of=reference_date,
    )


def neighborhood_ceiling(
    subject: SubjectProperty,
    pool: Sequence[ComparableCandidate],
    policy: SelectionPolicy = None,
    reference_date: date = None,
) -> Optional[Decimal]:
    """
    90th percentile closed price near the subject.

    Considers closed sales of the same property type within the ceiling
    radius and lookback window. Returns None when the subject has no
    coordinates or nothing qualifies.
    """
    policy = policy or SelectionPolicy()
    reference_date = reference_date or date.today()

    if not subject.has_coordinates:
        return None

    cutoff = reference_date - timedelta(days=policy.months_back * DAYS_PER_MONTH)
    prices = []
    for candidate in pool:
        if candidate.status != ListingStatus.CLOSED or not candidate.close_price:
            continue
        if candidate.property_type != subject.property_type:
            continue
        if candidate.close_date is not None and candidate.close_date < cutoff:
            continue
        distance = distance_between(subject, candidate)
        if distance is None or distance > policy.ceiling_radius_miles:
            continue
        prices.append(candidate.close_price)

    if not prices:
        return None

    prices.sort()
    index = math.ceil(policy.ceiling_percentile * len(prices)) - 1
    index = max(0, min(index, len(prices) - 1))
    return prices[index]
