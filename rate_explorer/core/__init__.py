"""Core pricing modules of the rate explorer."""

from .schema import (
    ContractType,
    FuelType,
    LeaseType,
    OverrideType,
    PositionLabel,
    PaymentProfile,
    QuoteCell,
    MatrixCell,
    Vehicle,
    OverrideScope,
    PriceOverride,
    OverrideResult,
    ScoreBreakdown,
    RateScore,
    CompetitorPrice,
    MarketPosition,
    TermsHolderOpportunity,
    total_payments,
    has_maintenance,
    parse_initial_months,
    quote_from_ratebook_row,
    dedupe_quotes,
)

from .config import (
    PricingConfig,
    MatrixConfig,
    SelectorConfig,
    ScoringConfig,
    MarketConfig,
    SourceConfig,
    RateLimitConfig,
    ConfigManager,
    get_config_manager,
    get_pricing_config,
    get_default_sources,
)

from .matrix import (
    RateMatrix,
    build_rate_matrix,
    estimate_price,
    round_half_up,
)

from .selector import (
    BestPriceSelection,
    OverallBest,
    select_best_prices,
)

from .overrides import (
    InvalidOverrideError,
    OverrideNotFoundError,
    OverrideContext,
    OverrideResolver,
    OverrideStore,
    resolve_override,
)

from .scoring import (
    ScoreInput,
    MultiTermScore,
    calculate_rate_score,
    calculate_batch_scores,
    calculate_multi_term_scores,
    find_best_term,
    label_for_score,
)

from .market import (
    compare_to_market,
    filter_competitor_prices,
)

from .otr import (
    calculate_terms_holder_opportunity,
    best_terms_holder_opportunity,
)

from .matching import (
    MatchResult,
    MatchStatus,
    VehicleMatcher,
)

from .loader import (
    load_vehicles,
    load_ratebook,
    quotes_for_vehicle,
    get_quote_stats,
)

from .pricing import (
    VehiclePricing,
    price_vehicle,
    scan_catalogue,
)

__all__ = [
    # Schema classes
    "ContractType",
    "FuelType",
    "LeaseType",
    "OverrideType",
    "PositionLabel",
    "PaymentProfile",
    "QuoteCell",
    "MatrixCell",
    "Vehicle",
    "OverrideScope",
    "PriceOverride",
    "OverrideResult",
    "ScoreBreakdown",
    "RateScore",
    "CompetitorPrice",
    "MarketPosition",
    "TermsHolderOpportunity",
    "total_payments",
    "has_maintenance",
    "parse_initial_months",
    "quote_from_ratebook_row",
    "dedupe_quotes",
    # Config
    "PricingConfig",
    "MatrixConfig",
    "SelectorConfig",
    "ScoringConfig",
    "MarketConfig",
    "SourceConfig",
    "RateLimitConfig",
    "ConfigManager",
    "get_config_manager",
    "get_pricing_config",
    "get_default_sources",
    # Matrix and selection
    "RateMatrix",
    "build_rate_matrix",
    "estimate_price",
    "round_half_up",
    "BestPriceSelection",
    "OverallBest",
    "select_best_prices",
    # Overrides
    "InvalidOverrideError",
    "OverrideNotFoundError",
    "OverrideContext",
    "OverrideResolver",
    "OverrideStore",
    "resolve_override",
    # Scoring
    "ScoreInput",
    "MultiTermScore",
    "calculate_rate_score",
    "calculate_batch_scores",
    "calculate_multi_term_scores",
    "find_best_term",
    "label_for_score",
    # Market
    "compare_to_market",
    "filter_competitor_prices",
    # Terms holder OTR
    "calculate_terms_holder_opportunity",
    "best_terms_holder_opportunity",
    # Matching
    "MatchResult",
    "MatchStatus",
    "VehicleMatcher",
    # Loaders
    "load_vehicles",
    "load_ratebook",
    "quotes_for_vehicle",
    "get_quote_stats",
    # Pipeline
    "VehiclePricing",
    "price_vehicle",
    "scan_catalogue",
]
