"""Tests for pricing configuration loading."""

import json

import pytest
from pydantic import ValidationError

from rate_explorer.core.config import (
    ConfigManager,
    MatrixConfig,
    ScoringConfig,
    ValueBreakpoint,
    get_pricing_config,
)


def test_defaults(tmp_path):
    config = ConfigManager(tmp_path).get()
    assert config.matrix.standard_initial_payments == [1, 3, 6, 9, 12]
    assert config.selector.significance_threshold == 0.05
    assert config.market.freshness_days == 7
    assert set(config.sources) == {"appliedleasing", "selectcarleasing", "vipgateway"}
    assert config.provider_name("lex") == "Lex Autolease"
    assert config.provider_name("newco") == "newco"


def test_global_config_is_isolated(default_config):
    assert get_pricing_config() is default_config


def test_load_yaml(tmp_path):
    (tmp_path / "pricing.yaml").write_text(
        "selector:\n"
        "  significance_threshold: 0.1\n"
        "matrix:\n"
        "  standard_initial_payments: [6, 1, 3, 3]\n"
    )
    config = ConfigManager(tmp_path).load()
    assert config.selector.significance_threshold == 0.1
    assert config.matrix.standard_initial_payments == [1, 3, 6]
    # Untouched sections keep their defaults
    assert config.market.mileage_tolerance == 2000
    assert "vipgateway" in config.sources


def test_load_json_sources(tmp_path):
    data = {
        "sources": {
            "example": {
                "id": "example",
                "name": "Example Leasing",
                "base_url": "https://example.com",
                "listing_url": "https://example.com/offers",
                "rate_limit": {"delay_between_requests": 0, "max_retries": 0},
            }
        }
    }
    (tmp_path / "pricing.json").write_text(json.dumps(data))
    config = ConfigManager(tmp_path).load()
    assert list(config.sources) == ["example"]
    assert config.sources["example"].rate_limit.max_retries == 0
    assert config.sources["example"].check_robots


def test_save_round_trip(tmp_path):
    manager = ConfigManager(tmp_path / "config")
    config = manager.get()
    config.selector.significance_threshold = 0.08
    path = manager.save()
    assert path.exists()

    reloaded = ConfigManager(tmp_path / "config").load()
    assert reloaded.selector.significance_threshold == 0.08


def test_invalid_initial_payments():
    with pytest.raises(ValidationError):
        MatrixConfig(standard_initial_payments=[])
    with pytest.raises(ValidationError):
        MatrixConfig(standard_initial_payments=[0, 3])


def test_breakpoints_must_ascend_and_not_raise_score():
    with pytest.raises(ValidationError):
        ScoringConfig(value_breakpoints=[
            ValueBreakpoint(upper_ratio=0.5, score_at_start=100, score_at_end=50),
            ValueBreakpoint(upper_ratio=0.4, score_at_start=50, score_at_end=0),
        ])
    with pytest.raises(ValidationError):
        ScoringConfig(value_breakpoints=[
            ValueBreakpoint(upper_ratio=0.5, score_at_start=50, score_at_end=60),
        ])


def test_label_thresholds_sorted_highest_first():
    config = ScoringConfig(label_thresholds=[(0, "Poor"), (50, "Fine"), (80, "Top")])
    assert [label for _, label in config.label_thresholds] == ["Top", "Fine", "Poor"]
