"""
Rate matrix builder.

Turns the sparse set of funder quotes for one vehicle, mileage band and
maintenance selection into a dense provider x payment-profile grid. Cells
that were not quoted are estimated from the same provider's quote at the same
term, on the basis that total cash outlay over the contract stays roughly
constant when the upfront payment is reshuffled:

    estimate = round(anchor_price * anchor_total_payments / target_total_payments)

The anchor is the observed price with the lowest initial payment for that
provider and term. Nothing is extrapolated across terms, and maintained
matrices are never estimated because maintenance pricing is not linear.
"""

import logging
import math
from typing import Dict, Iterator, List, Optional, Any, Tuple

import pandas as pd

from .config import MatrixConfig, get_pricing_config
from .schema import MatrixCell, PaymentProfile, QuoteCell, total_payments

logger = logging.getLogger(__name__)

NO_RATES_MESSAGE = "No rates available"


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def estimate_price(known_price: int, known_initial: int, target_initial: int, term: int) -> int:
    """
    Estimate the monthly rental of another payment profile of the same term.

    Args:
        known_price: Observed monthly rental (minor units)
        known_initial: Initial payment months of the observed profile
        target_initial: Initial payment months to estimate
        term: Contract term in months

    Returns:
        Estimated monthly rental, rounded to minor units
    """
    known_total = total_payments(term, known_initial)
    target_total = total_payments(term, target_initial)
    return round_half_up(known_price * known_total / target_total)


class RateMatrix:
    """
    Dense provider x payment-profile price grid.

    Prices live in a 2D list indexed by provider index and profile index, with
    a parallel grid of estimate flags. Providers are sorted by code and
    profiles by (term, initial payment months).
    """

    def __init__(
        self,
        providers: List[str],
        profiles: List[PaymentProfile],
        prices: List[List[Optional[int]]],
        estimates: List[List[bool]],
        includes_maintenance: bool = False,
    ):
        self.providers = providers
        self.profiles = profiles
        self.prices = prices
        self.estimates = estimates
        self.includes_maintenance = includes_maintenance
        self._provider_index = {p: i for i, p in enumerate(providers)}
        self._profile_index = {p: j for j, p in enumerate(profiles)}

    @classmethod
    def empty(cls, includes_maintenance: bool = False) -> 'RateMatrix':
        return cls([], [], [], [], includes_maintenance=includes_maintenance)

    @property
    def is_empty(self) -> bool:
        return not self.providers or not self.profiles

    @property
    def message(self) -> Optional[str]:
        """Human-readable status for an empty matrix."""
        return NO_RATES_MESSAGE if self.is_empty else None

    @property
    def terms(self) -> List[int]:
        return sorted({p.term for p in self.profiles})

    def cell(self, provider: str, profile: PaymentProfile) -> MatrixCell:
        """Get the cell for a provider and profile (empty cell if unknown)."""
        i = self._provider_index.get(provider)
        j = self._profile_index.get(profile)
        if i is None or j is None:
            return MatrixCell()
        return MatrixCell(price=self.prices[i][j], is_estimate=self.estimates[i][j])

    def actual_prices(self, profile_index: int) -> List[Tuple[int, int]]:
        """(provider index, price) for every observed price in one column."""
        column = []
        for i in range(len(self.providers)):
            price = self.prices[i][profile_index]
            if price is not None and not self.estimates[i][profile_index]:
                column.append((i, price))
        return column

    def iter_cells(self) -> Iterator[Tuple[str, PaymentProfile, MatrixCell]]:
        """Iterate (provider, profile, cell) in provider then profile order."""
        for i, provider in enumerate(self.providers):
            for j, profile in enumerate(self.profiles):
                yield provider, profile, MatrixCell(
                    price=self.prices[i][j], is_estimate=self.estimates[i][j]
                )

    @property
    def estimate_count(self) -> int:
        return sum(sum(1 for flag in row if flag) for row in self.estimates)

    def to_response(self) -> Dict[str, Any]:
        """Matrix part of the response shape (without best-price markers)."""
        return {
            'termProfiles': [
                {
                    'term': p.term,
                    'initialPayment': p.initial_payment_months,
                    'key': p.key,
                }
                for p in self.profiles
            ],
            'providers': list(self.providers),
            'matrix': {
                provider: {
                    profile.key: {
                        'price': self.prices[i][j],
                        'isEstimate': self.estimates[i][j],
                    }
                    for j, profile in enumerate(self.profiles)
                }
                for i, provider in enumerate(self.providers)
            },
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Prices as a DataFrame with providers as rows and profile keys as columns."""
        return pd.DataFrame(
            self.prices,
            index=self.providers,
            columns=[p.key for p in self.profiles],
        )


def build_rate_matrix(
    quotes: List[QuoteCell],
    include_maintenance: bool = False,
    config: Optional[MatrixConfig] = None,
) -> RateMatrix:
    """
    Build a dense rate matrix from observed quotes.

    Args:
        quotes: Quotes for one vehicle and mileage band, in any order
        include_maintenance: Build the maintained matrix instead of the
            non-maintained one. Quotes of the other kind are ignored.
        config: Matrix configuration (defaults to the active config)

    Returns:
        RateMatrix. Empty when no quote matches the selection.
    """
    if config is None:
        config = get_pricing_config().matrix

    # Observed prices keyed by (provider, profile); duplicates keep the cheapest
    observed: Dict[Tuple[str, PaymentProfile], int] = {}
    for quote in quotes:
        if quote.includes_maintenance != include_maintenance:
            continue
        key = (quote.provider, quote.profile)
        existing = observed.get(key)
        if existing is None or quote.monthly_rental < existing:
            observed[key] = quote.monthly_rental

    if not observed:
        logger.debug("No quotes for selection, matrix is empty")
        return RateMatrix.empty(includes_maintenance=include_maintenance)

    providers = sorted({provider for provider, _ in observed})
    terms = sorted({profile.term for _, profile in observed})

    # Standard initial payments for every observed term, plus any
    # non-standard initial payment that was actually quoted
    profile_set = {
        PaymentProfile(term=term, initial_payment_months=initial)
        for term in terms
        for initial in config.standard_initial_payments
    }
    profile_set.update(profile for _, profile in observed)
    profiles = sorted(profile_set, key=lambda p: p.sort_key())

    matrix = RateMatrix(
        providers=providers,
        profiles=profiles,
        prices=[[None] * len(profiles) for _ in providers],
        estimates=[[False] * len(profiles) for _ in providers],
        includes_maintenance=include_maintenance,
    )

    # Seed observed prices
    for (provider, profile), price in observed.items():
        i = matrix._provider_index[provider]
        j = matrix._profile_index[profile]
        matrix.prices[i][j] = price

    if not include_maintenance:
        _fill_estimates(matrix)

    logger.debug(
        f"Built matrix: {len(providers)} providers x {len(profiles)} profiles, "
        f"{len(observed)} observed, {matrix.estimate_count} estimated"
    )
    return matrix


def _fill_estimates(matrix: RateMatrix) -> None:
    """Estimate empty cells from each provider's anchor price per term."""
    columns_by_term: Dict[int, List[int]] = {}
    for j, profile in enumerate(matrix.profiles):
        columns_by_term.setdefault(profile.term, []).append(j)

    for i in range(len(matrix.providers)):
        row = matrix.prices[i]
        for term, columns in columns_by_term.items():
            # Columns are in ascending initial payment order
            anchor = next((j for j in columns if row[j] is not None), None)
            if anchor is None:
                continue
            anchor_price = row[anchor]
            anchor_initial = matrix.profiles[anchor].initial_payment_months

            for j in columns:
                if row[j] is None:
                    row[j] = estimate_price(
                        anchor_price,
                        anchor_initial,
                        matrix.profiles[j].initial_payment_months,
                        term,
                    )
                    matrix.estimates[i][j] = True
