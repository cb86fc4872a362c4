"""
Composite deal scoring.

Calculates a 0-100 "deal value" score from:
- Value score (0-100): total lease cost relative to the vehicle's list price
- Efficiency bonus (0 to +15): EV range or fuel economy
- Affordability modifier (-10 to +10): monthly price band
- Brand bonus (0 to +10): premium brand at an accessible price

The final score is the sum clamped to 0-100. PCH prices include VAT and are
converted to ex-VAT before scoring so they compare fairly with business
rates.
"""

import logging
from typing import Dict, List, Optional, Any

from pydantic import BaseModel, Field, field_validator

from .config import ScoringConfig, get_pricing_config
from .matrix import round_half_up
from .schema import (
    FuelType,
    RateScore,
    ScoreBreakdown,
    Vehicle,
    fuel_type_from_string,
    total_payments,
)

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"
UNKNOWN_SCORE = 50


class ScoreInput(BaseModel):
    """Everything needed to score one monthly rental."""
    monthly_rental: int = Field(..., ge=0, description="Monthly rental in minor units")
    term: Optional[int] = Field(default=None, ge=1, description="Defaults to the reference term")
    initial_payment_months: int = Field(default=1, ge=1)
    list_price: Optional[int] = None
    p11d: Optional[int] = None
    contract_type: str = "CHNM"
    manufacturer: str = ""
    fuel_type: FuelType = FuelType.UNKNOWN
    ev_range_miles: Optional[float] = None
    fuel_eco_mpg: Optional[float] = None

    @field_validator('fuel_type', mode='before')
    @classmethod
    def parse_fuel_type(cls, v: Any) -> FuelType:
        if isinstance(v, FuelType):
            return v
        return fuel_type_from_string(v or '')

    @classmethod
    def for_vehicle(
        cls,
        vehicle: Vehicle,
        monthly_rental: int,
        term: Optional[int] = None,
        initial_payment_months: int = 1,
        contract_type: str = "CHNM",
    ) -> 'ScoreInput':
        """Build a score input from vehicle reference data."""
        return cls(
            monthly_rental=monthly_rental,
            term=term,
            initial_payment_months=initial_payment_months,
            list_price=vehicle.list_price,
            p11d=vehicle.p11d,
            contract_type=contract_type,
            manufacturer=vehicle.manufacturer,
            fuel_type=vehicle.fuel_type,
            ev_range_miles=vehicle.ev_range_miles,
            fuel_eco_mpg=vehicle.fuel_eco_mpg,
        )


class MultiTermScore(BaseModel):
    """Score of one term in a multi-term comparison."""
    term: int
    score: int
    monthly_rental: int
    total_cost: int
    rank: str


# === Components ===

def get_value_score(cost_ratio: float, config: Optional[ScoringConfig] = None) -> int:
    """
    Map a cost ratio to a 0-100 value score.

    Lower ratios score higher. Between breakpoints the score is linear;
    beyond the last breakpoint the last segment continues down to zero.
    """
    if config is None:
        config = get_pricing_config().scoring

    if cost_ratio < config.full_score_ratio:
        return 100

    start = config.full_score_ratio
    segment = config.value_breakpoints[-1]
    for bp in config.value_breakpoints:
        if cost_ratio < bp.upper_ratio:
            segment = bp
            break
        start = bp.upper_ratio
    else:
        # Past the last breakpoint: continue the last segment's slope
        start = (
            config.value_breakpoints[-2].upper_ratio
            if len(config.value_breakpoints) > 1 else config.full_score_ratio
        )

    width = segment.upper_ratio - start
    drop = segment.score_at_start - segment.score_at_end
    score = segment.score_at_start - ((cost_ratio - start) / width) * drop
    return max(0, round_half_up(score))


def get_efficiency_bonus(
    fuel_type: FuelType,
    ev_range_miles: Optional[float],
    fuel_eco_mpg: Optional[float],
) -> float:
    """
    Efficiency bonus (0-15) before rounding.

    EVs score by range (200mi = 5, 300mi = 10, 400mi+ = 15), hybrids by a
    mix of EV range and MPG, combustion cars by MPG. MPG figures of 100 or
    more are treated as unrealistic and ignored.
    """
    valid_mpg = fuel_eco_mpg is not None and 0 < fuel_eco_mpg < 100

    if fuel_type == FuelType.ELECTRIC and ev_range_miles and ev_range_miles > 0:
        return min(15.0, max(0.0, (ev_range_miles - 100) / 20))

    if fuel_type in (FuelType.HYBRID, FuelType.PLUGIN_HYBRID):
        ev_score = min(7.0, ev_range_miles / 10) if ev_range_miles and ev_range_miles > 0 else 0.0
        mpg_score = min(8.0, (fuel_eco_mpg - 30) / 10) if valid_mpg else 3.0
        return min(15.0, ev_score + mpg_score)

    if valid_mpg:
        return min(15.0, max(0.0, (fuel_eco_mpg - 25) / 2.5))

    return 0.0


def get_affordability_modifier(monthly_rental: int, config: Optional[ScoringConfig] = None) -> int:
    """Affordability modifier (-10 to +10) by monthly price band."""
    if config is None:
        config = get_pricing_config().scoring

    monthly = monthly_rental / 100
    for upper, modifier in config.affordability_bands:
        if monthly < upper:
            return modifier
    return config.affordability_floor


def get_brand_tier(manufacturer: str, config: Optional[ScoringConfig] = None) -> Optional[str]:
    """Look up a manufacturer's brand tier (None if unlisted)."""
    if config is None:
        config = get_pricing_config().scoring

    brand = (manufacturer or '').strip().upper()
    for tier, brands in config.brand_tiers.items():
        if brand in brands:
            return tier
    return None


def get_brand_bonus(manufacturer: str, monthly_rental: int, config: Optional[ScoringConfig] = None) -> int:
    """Brand bonus (0-10): premium brands at accessible prices score most."""
    tier = get_brand_tier(manufacturer, config)
    monthly = monthly_rental / 100

    if tier == "premium":
        if monthly < 400:
            return 10
        if monthly < 600:
            return 7
        if monthly < 800:
            return 4
        return 2

    if tier == "aspirational":
        if monthly < 350:
            return 6
        if monthly < 500:
            return 4
        return 2

    if tier == "mainstream":
        return 1

    return 0


def label_for_score(score: float, config: Optional[ScoringConfig] = None) -> str:
    """
    Human-readable label for a 0-100 number.

    Used for deal scores and for any other percentile-style number, so both
    always agree on the same value.
    """
    if config is None:
        config = get_pricing_config().scoring

    for threshold, label in config.label_thresholds:
        if score >= threshold:
            return label
    return config.label_thresholds[-1][1]


def get_score_rank(score: int) -> str:
    """Coarse rank used when comparing terms of one vehicle."""
    if score >= 85:
        return "best"
    if score >= 70:
        return "good"
    if score >= 50:
        return "average"
    return "poor"


def resolve_list_price(
    list_price: Optional[int],
    p11d: Optional[int],
    config: Optional[ScoringConfig] = None,
) -> Optional[int]:
    """List price, falling back to a fraction of the P11D value."""
    if config is None:
        config = get_pricing_config().scoring

    if list_price:
        return list_price
    if p11d:
        return round_half_up(p11d * config.p11d_list_price_factor)
    return None


def ex_vat_rental(monthly_rental: int, contract_type: str, config: Optional[ScoringConfig] = None) -> int:
    """Strip VAT from personal (PCH) rentals."""
    if config is None:
        config = get_pricing_config().scoring

    if 'PCH' in (contract_type or '').upper():
        return round_half_up(monthly_rental / (1 + config.vat_rate))
    return monthly_rental


# === Main scoring ===

def calculate_rate_score(score_input: ScoreInput, config: Optional[ScoringConfig] = None) -> RateScore:
    """
    Calculate the composite score for a lease rate.

    Args:
        score_input: Rate and vehicle attributes
        config: Scoring configuration (defaults to the active config)

    Returns:
        RateScore. Without a usable list price the score is 50 with label
        "Unknown" and no breakdown.
    """
    if config is None:
        config = get_pricing_config().scoring

    list_price = resolve_list_price(score_input.list_price, score_input.p11d, config)
    if not list_price or list_price <= 0:
        return RateScore(score=UNKNOWN_SCORE, label=UNKNOWN_LABEL, breakdown=None)

    term = score_input.term or config.reference_term
    rental = ex_vat_rental(score_input.monthly_rental, score_input.contract_type, config)
    payments = total_payments(term, score_input.initial_payment_months)
    cost_ratio = rental * payments / list_price

    breakdown = ScoreBreakdown(
        value_score=get_value_score(cost_ratio, config),
        efficiency_bonus=round_half_up(get_efficiency_bonus(
            score_input.fuel_type,
            score_input.ev_range_miles,
            score_input.fuel_eco_mpg,
        )),
        affordability_mod=get_affordability_modifier(rental, config),
        brand_bonus=get_brand_bonus(score_input.manufacturer, rental, config),
        cost_ratio=round_half_up(cost_ratio * 1000) / 1000,
        total_payments=payments,
    )
    score = max(0, min(100, breakdown.raw_total))
    return RateScore(score=score, label=label_for_score(score, config), breakdown=breakdown)


def calculate_batch_scores(inputs: List[ScoreInput], config: Optional[ScoringConfig] = None) -> List[RateScore]:
    """Score a list of rates."""
    return [calculate_rate_score(i, config) for i in inputs]


def calculate_multi_term_scores(
    inputs: List[ScoreInput],
    config: Optional[ScoringConfig] = None,
) -> List[MultiTermScore]:
    """
    Score the same vehicle across several terms.

    Total cost is reported on the quoted (VAT-inclusive for PCH) rental.
    """
    if config is None:
        config = get_pricing_config().scoring

    scores = []
    for score_input in inputs:
        result = calculate_rate_score(score_input, config)
        term = score_input.term or config.reference_term
        scores.append(MultiTermScore(
            term=term,
            score=result.score,
            monthly_rental=score_input.monthly_rental,
            total_cost=score_input.monthly_rental * total_payments(term, score_input.initial_payment_months),
            rank=get_score_rank(result.score),
        ))
    return scores


def find_best_term(scores: List[MultiTermScore]) -> Optional[MultiTermScore]:
    """Highest scoring term; the earliest entry wins ties."""
    best = None
    for score in scores:
        if best is None or score.score > best.score:
            best = score
    return best


def score_summary(scores: List[MultiTermScore]) -> Dict[str, Any]:
    """Best term and average score across terms."""
    best = find_best_term(scores)
    return {
        'bestTerm': best.term if best else None,
        'bestScore': best.score if best else None,
        'averageScore': round_half_up(sum(s.score for s in scores) / len(scores)) if scores else None,
        'scores': [s.model_dump() for s in scores],
    }
