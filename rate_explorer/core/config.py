"""
Pricing configuration models and loader.

This module defines the tunable constants of the rate explorer (standard
payment profiles, the significance threshold, score breakpoints, market
bands, competitor source settings) and provides utilities for loading them
from YAML/JSON files.

None of these numbers has a documented derivation; they are kept here as
configuration so they can be adjusted without code changes.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Any, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class MatrixConfig(BaseModel):
    """Price matrix dimensions configuration."""
    standard_initial_payments: List[int] = Field(
        default=[1, 3, 6, 9, 12],
        description="Initial payment options (months) shown for every observed term"
    )

    @field_validator('standard_initial_payments')
    @classmethod
    def validate_initials(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("At least one standard initial payment is required")
        for months in v:
            if months < 1 or months > 24:
                raise ValueError(f"Initial payment {months} outside valid range (1-24 months)")
        return sorted(set(v))


class SelectorConfig(BaseModel):
    """Best-price selection configuration."""
    significance_threshold: float = Field(
        default=0.05, ge=0.0, lt=1.0,
        description="Minimum saving versus the runner-up for a column winner"
    )
    min_providers: int = Field(default=2, ge=2, description="Actual prices needed in a column")


class ValueBreakpoint(BaseModel):
    """One segment of the cost-ratio to value-score mapping."""
    upper_ratio: float = Field(..., gt=0)
    score_at_start: float
    score_at_end: float


class ScoringConfig(BaseModel):
    """Score engine constants."""
    reference_term: int = Field(default=36, ge=1)
    full_score_ratio: float = Field(default=0.25, gt=0, description="Ratios below this score 100")
    value_breakpoints: List[ValueBreakpoint] = Field(default_factory=lambda: [
        ValueBreakpoint(upper_ratio=0.35, score_at_start=100, score_at_end=80),
        ValueBreakpoint(upper_ratio=0.50, score_at_start=80, score_at_end=50),
        ValueBreakpoint(upper_ratio=0.70, score_at_start=50, score_at_end=20),
        ValueBreakpoint(upper_ratio=1.00, score_at_start=20, score_at_end=0),
    ])
    # (minimum score, label), highest first
    label_thresholds: List[Tuple[int, str]] = Field(default_factory=lambda: [
        (90, "Exceptional"),
        (75, "Great"),
        (60, "Good"),
        (45, "Fair"),
        (30, "Average"),
        (0, "Poor"),
    ])
    # (exclusive upper monthly price in pounds, modifier); last band catches the rest
    affordability_bands: List[Tuple[float, int]] = Field(default_factory=lambda: [
        (250, 10),
        (400, 5),
        (600, 0),
        (800, -3),
        (1000, -6),
    ])
    affordability_floor: int = -10
    vat_rate: float = Field(default=0.20, ge=0.0, description="Removed from PCH prices before scoring")
    p11d_list_price_factor: float = Field(default=0.95, gt=0, le=1.0)
    brand_tiers: Dict[str, List[str]] = Field(default_factory=lambda: {
        "premium": [
            "AUDI", "BMW", "MERCEDES", "MERCEDES-BENZ", "PORSCHE", "LAND ROVER",
            "JAGUAR", "LEXUS", "TESLA", "MASERATI", "ALFA ROMEO", "BENTLEY",
            "ASTON MARTIN", "RANGE ROVER", "LAMBORGHINI", "FERRARI", "ROLLS-ROYCE",
        ],
        "aspirational": [
            "VOLVO", "MINI", "CUPRA", "POLESTAR", "GENESIS", "LOTUS", "INFINITI",
            "DS", "ALPINE",
        ],
        "mainstream": [
            "VOLKSWAGEN", "FORD", "TOYOTA", "MAZDA", "HYUNDAI", "KIA", "HONDA",
            "SUBARU", "NISSAN", "MITSUBISHI", "SUZUKI",
        ],
        "value": [
            "DACIA", "FIAT", "CITROEN", "SEAT", "MG", "VAUXHALL", "RENAULT",
            "SKODA", "PEUGEOT", "SMART", "LEVC",
        ],
    })

    @model_validator(mode='after')
    def validate_breakpoints(self) -> 'ScoringConfig':
        """Breakpoints must be ascending and never raise the score."""
        previous_ratio = self.full_score_ratio
        for bp in self.value_breakpoints:
            if bp.upper_ratio <= previous_ratio:
                raise ValueError("Value breakpoints must have ascending ratios")
            if bp.score_at_end > bp.score_at_start:
                raise ValueError("Value score must not increase with cost ratio")
            previous_ratio = bp.upper_ratio
        self.label_thresholds = sorted(self.label_thresholds, key=lambda t: t[0], reverse=True)
        return self


class MarketConfig(BaseModel):
    """Market comparator constants."""
    # (inclusive upper percentile, label), lowest first; above the last band is 'highest'
    position_bands: List[Tuple[int, str]] = Field(default_factory=lambda: [
        (10, "lowest"),
        (40, "below-avg"),
        (60, "average"),
        (90, "above-avg"),
    ])
    freshness_days: int = Field(default=7, ge=1, description="Ignore snapshots older than this")
    mileage_tolerance: int = Field(default=2000, ge=0, description="Accepted annual mileage difference")


class RateLimitConfig(BaseModel):
    """Rate limiting configuration."""
    delay_between_requests: float = Field(default=1.0, ge=0.0, le=10.0)
    timeout: float = Field(default=20.0, gt=0, le=120.0)
    max_retries: int = Field(default=2, ge=0, le=10)


class SourceConfig(BaseModel):
    """Configuration for one competitor listing source."""
    id: str = Field(..., description="Unique source identifier (e.g., 'vipgateway')")
    name: str = Field(..., description="Human-readable source name")
    listing_url: str
    base_url: str
    enabled: bool = True
    default_lease_type: Optional[str] = None
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    check_robots: bool = True


class PricingConfig(BaseModel):
    """Complete configuration for the rate explorer."""
    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    selector: SelectorConfig = Field(default_factory=SelectorConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    market: MarketConfig = Field(default_factory=MarketConfig)
    sources: Dict[str, SourceConfig] = Field(default_factory=dict)
    provider_names: Dict[str, str] = Field(default_factory=lambda: {
        "lex": "Lex Autolease",
        "ogilvie": "Ogilvie Fleet",
        "venus": "Venus",
        "drivalia": "Drivalia",
        "ald": "ALD Automotive",
    })

    def provider_name(self, code: str) -> str:
        return self.provider_names.get(code, code)


class ConfigManager:
    """
    Manages the pricing configuration.

    Loads ``pricing.yaml``/``pricing.yml``/``pricing.json`` from a config
    directory and falls back to built-in defaults for anything not set.
    """

    CONFIG_NAMES = ("pricing.yaml", "pricing.yml", "pricing.json")

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config manager.

        Args:
            config_dir: Directory containing config files. Defaults to 'config/'
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"
        self.config_dir = Path(config_dir)
        self._config: Optional[PricingConfig] = None

    def load(self) -> PricingConfig:
        """Load configuration from disk, merged over the defaults."""
        data: Dict[str, Any] = {}
        for name in self.CONFIG_NAMES:
            filepath = self.config_dir / name
            if filepath.exists():
                data = self._read_file(filepath)
                logger.info(f"Loaded pricing config from {filepath}")
                break
        else:
            logger.debug(f"No pricing config in {self.config_dir}, using defaults")

        config = PricingConfig(**data)
        if not config.sources:
            config.sources = get_default_sources()
        self._config = config
        return config

    def _read_file(self, filepath: Path) -> Dict[str, Any]:
        """Read one YAML or JSON config file."""
        with open(filepath, 'r') as f:
            if filepath.suffix in ('.yaml', '.yml'):
                import yaml
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        return data or {}

    def get(self) -> PricingConfig:
        """Get the loaded configuration, loading it on first use."""
        if self._config is None:
            self.load()
        return self._config

    def set(self, config: PricingConfig) -> None:
        """Replace the configuration programmatically."""
        self._config = config

    def save(self, filepath: Optional[Path] = None) -> Path:
        """
        Save the current configuration to file.

        Args:
            filepath: Optional specific path, defaults to config_dir/pricing.json

        Returns:
            Path to saved file
        """
        if filepath is None:
            filepath = self.config_dir / "pricing.json"
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self.get().model_dump(mode='json'), f, indent=2)
        return filepath


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_pricing_config() -> PricingConfig:
    """Get the active pricing configuration."""
    return get_config_manager().get()


# === Default competitor sources ===

def get_default_sources() -> Dict[str, SourceConfig]:
    """Get the built-in competitor source configurations."""
    return {
        "appliedleasing": SourceConfig(
            id="appliedleasing",
            name="Applied Leasing",
            base_url="https://www.appliedleasing.co.uk",
            listing_url="https://www.appliedleasing.co.uk/car-leasing",
        ),
        "selectcarleasing": SourceConfig(
            id="selectcarleasing",
            name="Select Car Leasing",
            base_url="https://www.selectcarleasing.co.uk",
            listing_url="https://www.selectcarleasing.co.uk/special-offers",
            default_lease_type="personal",
        ),
        "vipgateway": SourceConfig(
            id="vipgateway",
            name="VIP Gateway",
            base_url="https://vipgateway.co.uk",
            listing_url="https://vipgateway.co.uk/special-car-leasing-offers",
        ),
    }
