"""Tests for terms-holder OTR savings."""

from rate_explorer.core.otr import (
    best_terms_holder_opportunity,
    calculate_terms_holder_opportunity,
    savings_tier,
)


def test_saving_when_terms_holder_cheaper():
    opportunity = calculate_terms_holder_opportunity(3000000, 2850000)
    assert opportunity.savings == 150000
    assert opportunity.savings_percent == 5.0


def test_percent_rounded_to_one_decimal():
    opportunity = calculate_terms_holder_opportunity(3000000, 2990000)
    assert opportunity.savings_percent == 0.3


def test_no_saving_returns_none():
    assert calculate_terms_holder_opportunity(3000000, 3000000) is None
    assert calculate_terms_holder_opportunity(3000000, 3100000) is None


def test_missing_or_invalid_inputs_return_none():
    assert calculate_terms_holder_opportunity(None, 2850000) is None
    assert calculate_terms_holder_opportunity(3000000, None) is None
    assert calculate_terms_holder_opportunity(0, 2850000) is None
    assert calculate_terms_holder_opportunity(3000000, -1) is None


def test_best_terms_holder():
    name, opportunity = best_terms_holder_opportunity(
        3000000,
        {"holder_b": 2900000, "holder_a": 2800000, "holder_c": None},
    )
    assert name == "holder_a"
    assert opportunity.savings == 200000

    tied = best_terms_holder_opportunity(3000000, {"zeta": 2900000, "alpha": 2900000})
    assert tied[0] == "alpha"

    assert best_terms_holder_opportunity(3000000, {"holder": 3100000}) is None


def test_savings_tiers():
    assert savings_tier(12.0) == "great"
    assert savings_tier(5.0) == "good"
    assert savings_tier(2.5) == "moderate"
    assert savings_tier(0.3) == "small"
