"""
Unified data schema for lease rate exploration.

This module defines the normalized data models shared by the matrix builder,
the override resolver, the scoring engine and the market comparator, so that
every funder ratebook and every competitor feed is handled the same way once
it has been ingested.

All money amounts are integers in minor units (pence) unless a field says
otherwise.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContractType(str, Enum):
    """Lease contract types as quoted by funders."""
    CH = "CH"        # Contract hire, maintained
    CHNM = "CHNM"    # Contract hire, not maintained
    PCH = "PCH"      # Personal contract hire, maintained
    PCHNM = "PCHNM"  # Personal contract hire, not maintained
    BSSNL = "BSSNL"  # Salary sacrifice (always maintained)


# Contract types that bundle maintenance into the rental
MAINTAINED_CONTRACT_TYPES = frozenset({"CH", "PCH", "BSSNL"})


class FuelType(str, Enum):
    """Vehicle fuel types."""
    PETROL = "petrol"
    DIESEL = "diesel"
    HYBRID = "hybrid"
    PLUGIN_HYBRID = "plugin_hybrid"
    ELECTRIC = "electric"
    UNKNOWN = "unknown"


class OverrideType(str, Enum):
    """How a price override changes the computed price."""
    FIXED = "fixed"            # Replace the price outright
    PERCENTAGE = "percentage"  # Multiply by (1 + value/100)
    ABSOLUTE = "absolute"      # Add value (may be negative)


class LeaseType(str, Enum):
    """Audience of a competitor listing."""
    PERSONAL = "personal"
    BUSINESS = "business"


class PositionLabel(str, Enum):
    """Market position buckets."""
    LOWEST = "lowest"
    BELOW_AVG = "below-avg"
    AVERAGE = "average"
    ABOVE_AVG = "above-avg"
    HIGHEST = "highest"
    ONLY = "only"  # No competitors to compare against


# === Rates and matrix ===

class PaymentProfile(BaseModel):
    """
    A (term, initial payment) combination.

    One upfront payment of ``initial_payment_months`` rentals is followed by
    ``term - 1`` monthly rentals, so the upfront month is never counted twice.
    """
    model_config = ConfigDict(frozen=True)

    term: int = Field(..., ge=1, description="Contract term in months")
    initial_payment_months: int = Field(..., ge=1, description="Rentals paid upfront")

    @property
    def total_payments(self) -> int:
        return total_payments(self.term, self.initial_payment_months)

    @property
    def key(self) -> str:
        """Stable column key (e.g., '36-3')."""
        return f"{self.term}-{self.initial_payment_months}"

    def sort_key(self) -> Tuple[int, int]:
        return (self.term, self.initial_payment_months)


class QuoteCell(BaseModel):
    """A single observed funder quote for one vehicle and mileage band."""
    model_config = ConfigDict(frozen=True)

    provider: str = Field(..., min_length=1, description="Funder code (e.g., 'lex')")
    term: int = Field(..., ge=1, description="Contract term in months")
    initial_payment_months: int = Field(..., ge=1, description="Rentals paid upfront")
    monthly_rental: int = Field(..., ge=0, description="Monthly rental in minor units")
    includes_maintenance: bool = False
    contract_type: str = Field(default=ContractType.CHNM.value)

    @field_validator('provider')
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator('contract_type')
    @classmethod
    def normalize_contract_type(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def profile(self) -> PaymentProfile:
        return PaymentProfile(term=self.term, initial_payment_months=self.initial_payment_months)

    @property
    def identity(self) -> Tuple[str, int, int, str, bool]:
        """Uniqueness key within a vehicle+mileage scope."""
        return (
            self.provider,
            self.term,
            self.initial_payment_months,
            self.contract_type,
            self.includes_maintenance,
        )


class MatrixCell(BaseModel):
    """Price at the intersection of one provider and one payment profile."""
    model_config = ConfigDict(frozen=True)

    price: Optional[int] = None
    is_estimate: bool = False


# === Vehicles ===

class Vehicle(BaseModel):
    """Read-only vehicle reference data used for scoring and matching."""
    id: str = Field(..., min_length=1)
    cap_code: Optional[str] = Field(default=None, description="Industry-standard vehicle identifier")
    manufacturer: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    variant: Optional[str] = None
    list_price: Optional[int] = Field(default=None, description="Basic list price in minor units")
    p11d: Optional[int] = Field(default=None, description="P11D value in minor units")
    fuel_type: FuelType = FuelType.UNKNOWN
    ev_range_miles: Optional[float] = None
    fuel_eco_mpg: Optional[float] = None
    co2_gkm: Optional[int] = None

    @field_validator('fuel_type', mode='before')
    @classmethod
    def parse_fuel_type(cls, v: Any) -> FuelType:
        if isinstance(v, FuelType):
            return v
        return fuel_type_from_string(v or '')

    @property
    def display_name(self) -> str:
        parts = [self.manufacturer, self.model]
        if self.variant:
            parts.append(self.variant)
        return ' '.join(parts)


# === Overrides ===

class OverrideScope(BaseModel):
    """
    Context an override applies to.

    A ``None`` field matches anything. Field order defines the scope tuple
    used for matching and specificity, so adding a dimension here extends
    precedence without touching the resolver.
    """
    model_config = ConfigDict(frozen=True)

    cap_code: Optional[str] = None
    provider: Optional[str] = None
    contract_type: Optional[str] = None
    term: Optional[int] = Field(default=None, gt=0)
    mileage: Optional[int] = Field(default=None, gt=0)

    @field_validator('cap_code', 'provider', 'contract_type', mode='before')
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def matchers(self) -> Tuple[Tuple[str, Any], ...]:
        """Ordered (field, value) pairs for every scope dimension."""
        return tuple((name, getattr(self, name)) for name in type(self).model_fields)

    @property
    def specificity(self) -> int:
        """Number of constrained scope dimensions."""
        return sum(1 for _, value in self.matchers() if value is not None)


class PriceOverride(BaseModel):
    """Admin-defined adjustment layered on top of the computed best price."""
    id: str
    scope: OverrideScope = Field(default_factory=OverrideScope)
    override_type: OverrideType
    value: float = Field(..., description="Minor units for fixed/absolute, percent for percentage")
    priority: int = 0
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    reason: Optional[str] = None
    internal_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('valid_from', 'valid_until', 'created_at', 'updated_at')
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Timestamps are compared as naive UTC throughout
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    def is_live(self, now: datetime) -> bool:
        """Active, already valid and not expired at ``now``."""
        if not self.is_active:
            return False
        if self.valid_from is not None and self.valid_from > now:
            return False
        if self.valid_until is not None and self.valid_until < now:
            return False
        return True


class OverrideResult(BaseModel):
    """Final displayable price after override resolution."""
    original_price: Optional[int]
    final_price: Optional[int]
    applied_override_id: Optional[str] = None
    override_type: Optional[OverrideType] = None


# === Scoring ===

class ScoreBreakdown(BaseModel):
    """Explainable components of a deal score."""
    value_score: int
    efficiency_bonus: int
    affordability_mod: int
    brand_bonus: int
    cost_ratio: float
    total_payments: int

    @property
    def raw_total(self) -> int:
        return self.value_score + self.efficiency_bonus + self.affordability_mod + self.brand_bonus

    def to_response(self) -> Dict[str, Any]:
        return {
            'valueScore': self.value_score,
            'efficiencyBonus': self.efficiency_bonus,
            'affordabilityMod': self.affordability_mod,
            'brandBonus': self.brand_bonus,
            'costRatio': self.cost_ratio,
            'totalPayments': self.total_payments,
        }


class RateScore(BaseModel):
    """Composite 0-100 score with its label and breakdown."""
    score: int = Field(..., ge=0, le=100)
    label: str
    breakdown: Optional[ScoreBreakdown] = None


# === Market ===

class CompetitorPrice(BaseModel):
    """A competitor monthly price already matched to one of our vehicles."""
    source_name: str
    monthly_price: int = Field(..., gt=0, description="Monthly price in minor units")
    term: Optional[int] = None
    mileage: Optional[int] = None
    lease_type: Optional[LeaseType] = None
    snapshot_date: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('snapshot_date')
    @classmethod
    def to_naive_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class MarketPosition(BaseModel):
    """Where our price sits among competitor prices. Derived, never persisted."""
    position: PositionLabel
    percentile: Optional[int] = None
    price_delta_percent: Optional[int] = None
    competitor_count: int = 0
    market_min: Optional[int] = None
    market_avg: Optional[int] = None
    market_max: Optional[int] = None

    @property
    def has_competition(self) -> bool:
        return self.position != PositionLabel.ONLY

    def to_response(self) -> Dict[str, Any]:
        return {
            'position': self.position.value,
            'percentile': self.percentile,
            'priceDeltaPercent': self.price_delta_percent,
            'competitorCount': self.competitor_count,
        }


class TermsHolderOpportunity(BaseModel):
    """Saving available by ordering through a terms holder."""
    provider_otr: int
    terms_holder_otr: int
    savings: int
    savings_percent: float


# === Helpers ===

def total_payments(term: int, initial_payment_months: int) -> int:
    """Upfront rentals plus the remaining ``term - 1`` monthly rentals."""
    return initial_payment_months + (term - 1)


def has_maintenance(contract_type: str) -> bool:
    """Check whether a contract type includes maintenance."""
    return (contract_type or '').strip().upper() in MAINTAINED_CONTRACT_TYPES


def parse_initial_months(payment_plan: Optional[str]) -> int:
    """
    Parse a ratebook payment plan into upfront rental months.

    Handles ``spread_6_down`` -> 6, ``monthly_in_advance`` -> 1 and the legacy
    ``6+23`` format -> 6. Anything else defaults to 1.
    """
    if not payment_plan:
        return 1
    plan = payment_plan.strip().lower()

    match = re.search(r'spread_(\d+)_down', plan)
    if match:
        return int(match.group(1))
    if plan == 'monthly_in_advance':
        return 1
    match = re.match(r'^(\d+)\+', plan)
    if match:
        return int(match.group(1))
    return 1


def fuel_type_from_string(s: str) -> FuelType:
    """Convert string to FuelType enum."""
    if not s:
        return FuelType.UNKNOWN
    s_lower = s.lower()
    if 'plug' in s_lower or 'phev' in s_lower:
        return FuelType.PLUGIN_HYBRID
    if 'hybrid' in s_lower:
        return FuelType.HYBRID
    if 'electric' in s_lower or s_lower in ('ev', 'bev'):
        return FuelType.ELECTRIC
    if 'diesel' in s_lower:
        return FuelType.DIESEL
    if 'petrol' in s_lower or 'gasoline' in s_lower:
        return FuelType.PETROL
    try:
        return FuelType(s_lower)
    except ValueError:
        return FuelType.UNKNOWN


def quote_from_ratebook_row(row: Dict[str, Any]) -> QuoteCell:
    """
    Create a QuoteCell from a raw ratebook row.

    Rows carry ``providerCode``, ``term``, ``paymentPlan``, ``totalRental``
    (pence) and ``contractType``, as exported by the rate store.
    """
    contract_type = row.get('contractType') or row.get('contract_type') or ContractType.CHNM.value
    rental = row.get('totalRental', row.get('monthly_rental'))
    initial = row.get('initialPaymentMonths', row.get('initial_payment_months'))
    if initial is None:
        initial = parse_initial_months(row.get('paymentPlan') or row.get('payment_plan'))
    return QuoteCell(
        provider=row.get('providerCode') or row.get('provider', ''),
        term=int(row['term']),
        initial_payment_months=int(initial),
        monthly_rental=int(round(float(rental))),
        includes_maintenance=has_maintenance(contract_type),
        contract_type=contract_type,
    )


def dedupe_quotes(quotes: List[QuoteCell]) -> List[QuoteCell]:
    """
    Keep one quote per identity.

    When a cell was quoted twice the cheaper rental wins, so the result does
    not depend on input order.
    """
    by_identity: Dict[Tuple[str, int, int, str, bool], QuoteCell] = {}
    for quote in quotes:
        existing = by_identity.get(quote.identity)
        if existing is None or quote.monthly_rental < existing.monthly_rental:
            by_identity[quote.identity] = quote
    return list(by_identity.values())
