"""Shared fixtures for the rate explorer tests."""

from datetime import datetime

import pytest

from rate_explorer.core import config as config_module
from rate_explorer.core.config import ConfigManager, PricingConfig
from rate_explorer.core.schema import QuoteCell, Vehicle

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def default_config(tmp_path, monkeypatch):
    """Isolate every test from config files and earlier config changes."""
    manager = ConfigManager(tmp_path / "config")
    monkeypatch.setattr(config_module, "_config_manager", manager)
    return manager.get()


@pytest.fixture
def pricing_config() -> PricingConfig:
    return PricingConfig()


@pytest.fixture
def now() -> datetime:
    return NOW


def quote(provider: str, term: int, initial: int, price: int, contract_type: str = "CHNM") -> QuoteCell:
    """Shorthand for a quote cell."""
    return QuoteCell(
        provider=provider,
        term=term,
        initial_payment_months=initial,
        monthly_rental=price,
        contract_type=contract_type,
        includes_maintenance=contract_type in ("CH", "PCH", "BSSNL"),
    )


@pytest.fixture
def vehicle() -> Vehicle:
    return Vehicle(
        id="veh-1",
        cap_code="TOYA1",
        manufacturer="Acme",
        model="Roadster",
        variant="1.5 Sport",
        list_price=2500000,
    )


@pytest.fixture
def example_quotes():
    """providerA quotes 36/3 at £399, providerB quotes 36/6 at £390."""
    return [
        quote("providera", 36, 3, 39900),
        quote("providerb", 36, 6, 39000),
    ]
