"""
Best-price selection over a rate matrix.

A column winner is only marked when at least two funders actually quoted
that payment profile and the cheapest beats the runner-up by the configured
significance threshold. Estimated cells never take part. The overall best
price is simply the cheapest observed price in the whole matrix.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Any

from .config import SelectorConfig, get_pricing_config
from .matrix import RateMatrix
from .schema import PaymentProfile

logger = logging.getLogger(__name__)


@dataclass
class OverallBest:
    """Cheapest observed cell in a matrix."""
    provider: str
    profile: PaymentProfile
    price: int


@dataclass
class BestPriceSelection:
    """Column winners and the overall best price of one matrix."""
    matrix: RateMatrix
    best_prices: Dict[PaymentProfile, int] = field(default_factory=dict)
    overall_best: Optional[OverallBest] = None

    @property
    def best_price(self) -> Optional[int]:
        return self.overall_best.price if self.overall_best else None

    def is_column_best(self, provider: str, profile: PaymentProfile) -> bool:
        """Check whether a provider's observed price is the marked column winner."""
        best = self.best_prices.get(profile)
        if best is None:
            return False
        cell = self.matrix.cell(provider, profile)
        return cell.price == best and not cell.is_estimate

    def to_response(self) -> Dict[str, Any]:
        """Full matrix response shape including best-price markers."""
        response = self.matrix.to_response()
        response['bestPrices'] = {
            profile.key: price for profile, price in self.best_prices.items()
        }
        response['overallBestKey'] = self.overall_best.profile.key if self.overall_best else None
        response['overallBestProvider'] = self.overall_best.provider if self.overall_best else None
        return response


def is_significant_saving(best: int, second: int, threshold: float) -> bool:
    """Check whether ``best`` undercuts ``second`` by at least ``threshold``."""
    if second <= 0:
        return False
    return (second - best) / second >= threshold


def select_best_prices(
    matrix: RateMatrix,
    config: Optional[SelectorConfig] = None,
) -> BestPriceSelection:
    """
    Reduce a matrix to per-column winners and an overall best price.

    Args:
        matrix: Dense rate matrix
        config: Selector configuration (defaults to the active config)

    Returns:
        BestPriceSelection. Empty for an empty matrix.
    """
    if config is None:
        config = get_pricing_config().selector

    selection = BestPriceSelection(matrix=matrix)
    if matrix.is_empty:
        return selection

    for j, profile in enumerate(matrix.profiles):
        column = sorted(price for _, price in matrix.actual_prices(j))
        if len(column) < config.min_providers:
            continue
        best, second = column[0], column[1]
        if is_significant_saving(best, second, config.significance_threshold):
            selection.best_prices[profile] = best

    # Profile order then provider order; the first minimum wins ties
    for j, profile in enumerate(matrix.profiles):
        for i, price in matrix.actual_prices(j):
            if selection.overall_best is None or price < selection.overall_best.price:
                selection.overall_best = OverallBest(
                    provider=matrix.providers[i],
                    profile=profile,
                    price=price,
                )

    if selection.overall_best:
        logger.debug(
            f"Overall best {selection.overall_best.price} from "
            f"{selection.overall_best.provider} at {selection.overall_best.profile.key}"
        )
    return selection
