"""
Market position classification.

Compares our final monthly price with competitor prices matched to the same
vehicle. The percentile is oriented so that lower means cheaper:

    percentile = round(100 * (1 - count(competitor > ours) / n))

Undercutting every competitor gives 0; matching or exceeding every
competitor gives 100. Without competitors the position is the "only" sentinel and no
comparative numbers are produced.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .config import MarketConfig, get_pricing_config
from .matrix import round_half_up
from .schema import CompetitorPrice, LeaseType, MarketPosition, PositionLabel

logger = logging.getLogger(__name__)


def filter_competitor_prices(
    prices: Iterable[CompetitorPrice],
    term: Optional[int] = None,
    mileage: Optional[int] = None,
    lease_type: Optional[LeaseType] = None,
    now: Optional[datetime] = None,
    config: Optional[MarketConfig] = None,
    latest_per_source: bool = False,
) -> List[CompetitorPrice]:
    """
    Select the competitor prices comparable with our quote.

    Entries that do not state a term, mileage or lease type match any value
    of that field.

    Args:
        prices: Competitor prices for one vehicle
        term: Our contract term
        mileage: Our annual mileage; entries within the configured tolerance match
        lease_type: Our audience (personal/business)
        now: Reference time for the freshness window (defaults to utcnow)
        config: Market configuration (defaults to the active config)
        latest_per_source: Keep only the most recent entry of each source

    Returns:
        Filtered list, most recent first
    """
    if config is None:
        config = get_pricing_config().market
    if now is None:
        now = datetime.utcnow()

    cutoff = now - timedelta(days=config.freshness_days)
    selected = []
    for price in prices:
        if price.snapshot_date < cutoff:
            continue
        if term is not None and price.term is not None and price.term != term:
            continue
        if (
            mileage is not None
            and price.mileage is not None
            and abs(price.mileage - mileage) > config.mileage_tolerance
        ):
            continue
        if lease_type is not None and price.lease_type is not None and price.lease_type != lease_type:
            continue
        selected.append(price)

    selected.sort(key=lambda p: p.snapshot_date, reverse=True)

    if latest_per_source:
        seen = set()
        latest = []
        for price in selected:
            if price.source_name in seen:
                continue
            seen.add(price.source_name)
            latest.append(price)
        selected = latest

    return selected


def position_for_percentile(percentile: int, config: Optional[MarketConfig] = None) -> PositionLabel:
    """Bucket a percentile into a position label."""
    if config is None:
        config = get_pricing_config().market

    for upper, label in config.position_bands:
        if percentile <= upper:
            return PositionLabel(label)
    return PositionLabel.HIGHEST


def compare_to_market(
    our_price: Optional[int],
    competitor_prices: List[CompetitorPrice],
    config: Optional[MarketConfig] = None,
) -> MarketPosition:
    """
    Classify our price against competitor prices.

    Args:
        our_price: Our final monthly price (minor units)
        competitor_prices: Already filtered competitor prices
        config: Market configuration (defaults to the active config)

    Returns:
        MarketPosition; the "only" sentinel when there is nothing to compare
    """
    if config is None:
        config = get_pricing_config().market

    if our_price is None or not competitor_prices:
        return MarketPosition(position=PositionLabel.ONLY, competitor_count=0)

    values = [p.monthly_price for p in competitor_prices]
    n = len(values)
    market_min = min(values)
    market_max = max(values)
    market_avg = sum(values) / n

    more_expensive = sum(1 for v in values if v > our_price)
    percentile = round_half_up(100 * (1 - more_expensive / n))
    delta = round_half_up((our_price - market_avg) / market_avg * 100)

    position = MarketPosition(
        position=position_for_percentile(percentile, config),
        percentile=percentile,
        price_delta_percent=delta,
        competitor_count=len({p.source_name for p in competitor_prices}),
        market_min=market_min,
        market_avg=round_half_up(market_avg),
        market_max=market_max,
    )
    logger.debug(
        f"Market position {position.position.value} (percentile {percentile}, "
        f"delta {delta}%) against {n} prices"
    )
    return position
