"""
Vehicle pricing pipeline.

Runs the full pricing chain for one vehicle:

    quotes -> rate matrix -> best price -> override -> score + market position

and scans whole catalogues in parallel. Each vehicle is priced independently
from already loaded data, so vehicles can be processed on any number of
worker threads.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Any, Tuple

from tqdm import tqdm

from .config import PricingConfig, get_pricing_config
from .market import compare_to_market, filter_competitor_prices
from .matrix import RateMatrix, build_rate_matrix
from .overrides import OverrideContext, resolve_override
from .schema import (
    CompetitorPrice,
    LeaseType,
    MarketPosition,
    OverrideResult,
    PositionLabel,
    PriceOverride,
    QuoteCell,
    RateScore,
    TermsHolderOpportunity,
    Vehicle,
)
from .scoring import ScoreInput, calculate_rate_score
from .selector import BestPriceSelection, select_best_prices
from .otr import calculate_terms_holder_opportunity

logger = logging.getLogger(__name__)


@dataclass
class VehiclePricing:
    """Pricing outcome for one vehicle, mileage and maintenance selection."""
    vehicle: Vehicle
    mileage: Optional[int]
    includes_maintenance: bool
    selection: BestPriceSelection
    override: OverrideResult
    market: MarketPosition
    score: Optional[RateScore] = None
    contract_type: Optional[str] = None
    otr_opportunity: Optional[TermsHolderOpportunity] = None

    @property
    def matrix(self) -> RateMatrix:
        return self.selection.matrix

    @property
    def has_rates(self) -> bool:
        return self.selection.overall_best is not None

    @property
    def final_price(self) -> Optional[int]:
        return self.override.final_price

    def to_response(self) -> Dict[str, Any]:
        best = self.selection.overall_best
        return {
            'vehicleId': self.vehicle.id,
            'capCode': self.vehicle.cap_code,
            'mileage': self.mileage,
            'includesMaintenance': self.includes_maintenance,
            'message': self.matrix.message,
            'rates': self.selection.to_response(),
            'bestPrice': best.price if best else None,
            'finalPrice': self.final_price,
            'appliedOverrideId': self.override.applied_override_id,
            'score': self.score.score if self.score else None,
            'scoreLabel': self.score.label if self.score else None,
            'scoreBreakdown': (
                self.score.breakdown.to_response()
                if self.score and self.score.breakdown else None
            ),
            'marketPosition': self.market.to_response(),
            'termsHolderOtr': self.otr_opportunity.model_dump() if self.otr_opportunity else None,
        }

    def to_row(self) -> Dict[str, Any]:
        """Flat record for tabular reports."""
        best = self.selection.overall_best
        return {
            'vehicle_id': self.vehicle.id,
            'cap_code': self.vehicle.cap_code,
            'vehicle': self.vehicle.display_name,
            'mileage': self.mileage,
            'provider': best.provider if best else None,
            'term': best.profile.term if best else None,
            'initial_payment_months': best.profile.initial_payment_months if best else None,
            'contract_type': self.contract_type,
            'best_price': best.price if best else None,
            'final_price': self.final_price,
            'applied_override_id': self.override.applied_override_id,
            'score': self.score.score if self.score else None,
            'score_label': self.score.label if self.score else None,
            'market_position': self.market.position.value,
            'percentile': self.market.percentile,
            'price_delta_percent': self.market.price_delta_percent,
            'competitor_count': self.market.competitor_count,
            'otr_savings': self.otr_opportunity.savings if self.otr_opportunity else None,
        }


def _winning_contract_type(quotes: List[QuoteCell], selection: BestPriceSelection) -> Optional[str]:
    """Contract type of the quote behind the overall best price."""
    best = selection.overall_best
    if best is None:
        return None
    matching = sorted(
        q.contract_type for q in quotes
        if q.provider == best.provider
        and q.profile == best.profile
        and q.monthly_rental == best.price
        and q.includes_maintenance == selection.matrix.includes_maintenance
    )
    return matching[0] if matching else None


def lease_type_for(contract_type: Optional[str]) -> Optional[LeaseType]:
    """Competitor audience comparable with a contract type."""
    if not contract_type:
        return None
    if 'PCH' in contract_type.upper():
        return LeaseType.PERSONAL
    return LeaseType.BUSINESS


def price_vehicle(
    vehicle: Vehicle,
    quotes: List[QuoteCell],
    overrides: Iterable[PriceOverride] = (),
    competitor_prices: Iterable[CompetitorPrice] = (),
    mileage: Optional[int] = None,
    include_maintenance: bool = False,
    provider_otr: Optional[int] = None,
    terms_holder_otr: Optional[int] = None,
    now: Optional[datetime] = None,
    config: Optional[PricingConfig] = None,
) -> VehiclePricing:
    """
    Price one vehicle.

    Args:
        vehicle: Vehicle reference data
        quotes: Funder quotes for this vehicle at one mileage
        overrides: Override snapshot
        competitor_prices: Competitor prices matched to this vehicle
        mileage: Annual mileage of the quotes
        include_maintenance: Price the maintained matrix
        provider_otr: OTR price via the funder, for terms-holder savings
        terms_holder_otr: OTR price via the terms holder
        now: Reference time (defaults to utcnow)
        config: Pricing configuration (defaults to the active config)

    Returns:
        VehiclePricing. Without rates the matrix is empty, the final price is
        None, there is no score and the market position is "only".
    """
    if config is None:
        config = get_pricing_config()
    if now is None:
        now = datetime.utcnow()

    matrix = build_rate_matrix(quotes, include_maintenance=include_maintenance, config=config.matrix)
    selection = select_best_prices(matrix, config=config.selector)
    otr_opportunity = calculate_terms_holder_opportunity(provider_otr, terms_holder_otr)

    best = selection.overall_best
    if best is None:
        logger.debug(f"No rates for {vehicle.display_name}")
        return VehiclePricing(
            vehicle=vehicle,
            mileage=mileage,
            includes_maintenance=include_maintenance,
            selection=selection,
            override=OverrideResult(original_price=None, final_price=None),
            market=MarketPosition(position=PositionLabel.ONLY),
            otr_opportunity=otr_opportunity,
        )

    contract_type = _winning_contract_type(quotes, selection)
    context = OverrideContext(
        cap_code=vehicle.cap_code or vehicle.id,
        provider=best.provider,
        contract_type=contract_type,
        term=best.profile.term,
        mileage=mileage,
    )
    override = resolve_override(best.price, context, overrides, now=now)

    score = calculate_rate_score(
        ScoreInput.for_vehicle(
            vehicle,
            override.final_price,
            term=best.profile.term,
            initial_payment_months=best.profile.initial_payment_months,
            contract_type=contract_type or "CHNM",
        ),
        config=config.scoring,
    )

    comparable = filter_competitor_prices(
        competitor_prices,
        term=best.profile.term,
        mileage=mileage,
        lease_type=lease_type_for(contract_type),
        now=now,
        config=config.market,
    )
    market = compare_to_market(override.final_price, comparable, config=config.market)

    return VehiclePricing(
        vehicle=vehicle,
        mileage=mileage,
        includes_maintenance=include_maintenance,
        selection=selection,
        override=override,
        market=market,
        score=score,
        contract_type=contract_type,
        otr_opportunity=otr_opportunity,
    )


def scan_catalogue(
    vehicles: List[Vehicle],
    ratebook: Dict[Tuple[str, int], List[QuoteCell]],
    mileage: int,
    overrides: Iterable[PriceOverride] = (),
    competitor_prices: Optional[Dict[str, List[CompetitorPrice]]] = None,
    include_maintenance: bool = False,
    max_workers: int = 4,
    show_progress: bool = True,
    now: Optional[datetime] = None,
    config: Optional[PricingConfig] = None,
) -> List[VehiclePricing]:
    """
    Price every vehicle of a catalogue in parallel.

    A failure for one vehicle is logged and does not stop the scan.

    Args:
        vehicles: Vehicle catalogue
        ratebook: Quotes grouped by (vehicle id, mileage)
        mileage: Annual mileage to price at
        overrides: Override set; one snapshot is used for the whole scan
        competitor_prices: Competitor prices keyed by vehicle id
        include_maintenance: Price maintained matrices
        max_workers: Worker threads
        show_progress: Show a tqdm progress bar
        now: Reference time (defaults to utcnow)
        config: Pricing configuration (defaults to the active config)

    Returns:
        VehiclePricing per successfully priced vehicle, in catalogue order
    """
    if config is None:
        config = get_pricing_config()
    if now is None:
        now = datetime.utcnow()
    snapshot = tuple(overrides)
    competitor_prices = competitor_prices or {}

    results: Dict[int, VehiclePricing] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {}
        for index, vehicle in enumerate(vehicles):
            future = executor.submit(
                price_vehicle,
                vehicle,
                ratebook.get((vehicle.id, mileage), []),
                overrides=snapshot,
                competitor_prices=competitor_prices.get(vehicle.id, []),
                mileage=mileage,
                include_maintenance=include_maintenance,
                now=now,
                config=config,
            )
            futures[future] = index

        with tqdm(total=len(futures), desc="Vehicles", unit="vehicle", disable=not show_progress) as pbar:
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"Error pricing {vehicles[index].display_name}: {e}")
                pbar.update(1)

    priced = [results[i] for i in sorted(results)]
    with_rates = sum(1 for p in priced if p.has_rates)
    logger.info(f"Priced {len(priced)} vehicles ({with_rates} with rates)")
    return priced
