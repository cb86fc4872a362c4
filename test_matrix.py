"""Tests for the rate matrix builder."""

import random

from conftest import quote
from rate_explorer.core.config import MatrixConfig
from rate_explorer.core.matrix import (
    NO_RATES_MESSAGE,
    build_rate_matrix,
    estimate_price,
    round_half_up,
)
from rate_explorer.core.schema import PaymentProfile


def profile(term, initial):
    return PaymentProfile(term=term, initial_payment_months=initial)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
    assert round_half_up(-0.5) == 0


def test_estimate_keeps_total_outlay():
    # 399 over 3 + 35 payments spread over 1 + 35 payments
    assert estimate_price(399, 3, 1, 36) == 421
    assert estimate_price(39900, 3, 1, 36) == 42117
    assert estimate_price(39900, 3, 6, 36) == round_half_up(39900 * 38 / 41)


def test_empty_quotes_give_empty_matrix():
    matrix = build_rate_matrix([])
    assert matrix.is_empty
    assert matrix.message == NO_RATES_MESSAGE
    assert matrix.providers == []
    assert matrix.profiles == []


def test_profiles_cover_standard_initials_for_observed_terms():
    matrix = build_rate_matrix([quote("lex", 36, 3, 30000), quote("lex", 48, 6, 28000)])
    assert matrix.terms == [36, 48]
    assert [p.key for p in matrix.profiles] == [
        "36-1", "36-3", "36-6", "36-9", "36-12",
        "48-1", "48-3", "48-6", "48-9", "48-12",
    ]


def test_non_standard_initial_is_kept():
    matrix = build_rate_matrix([quote("lex", 24, 4, 30000)])
    assert profile(24, 4) in matrix.profiles
    assert not matrix.cell("lex", profile(24, 4)).is_estimate


def test_providers_sorted_and_order_independent():
    quotes = [
        quote("venus", 36, 1, 31000),
        quote("lex", 36, 3, 30000),
        quote("ald", 48, 1, 29000),
        quote("ogilvie", 36, 6, 28000),
    ]
    reference = build_rate_matrix(quotes)
    assert reference.providers == ["ald", "lex", "ogilvie", "venus"]

    for seed in range(5):
        shuffled = list(quotes)
        random.Random(seed).shuffle(shuffled)
        matrix = build_rate_matrix(shuffled)
        assert matrix.providers == reference.providers
        assert matrix.profiles == reference.profiles
        assert matrix.prices == reference.prices
        assert matrix.estimates == reference.estimates


def test_estimates_use_lowest_initial_anchor():
    matrix = build_rate_matrix([quote("lex", 36, 3, 39900), quote("lex", 36, 9, 35000)])

    one = matrix.cell("lex", profile(36, 1))
    assert one.is_estimate
    assert one.price == estimate_price(39900, 3, 1, 36)

    six = matrix.cell("lex", profile(36, 6))
    assert six.is_estimate
    assert six.price == estimate_price(39900, 3, 6, 36)

    nine = matrix.cell("lex", profile(36, 9))
    assert not nine.is_estimate
    assert nine.price == 35000


def test_no_estimates_across_terms():
    matrix = build_rate_matrix([quote("lex", 36, 1, 30000), quote("venus", 48, 1, 28000)])
    assert matrix.cell("lex", profile(48, 1)).price is None
    assert matrix.cell("venus", profile(36, 3)).price is None
    assert matrix.cell("venus", profile(48, 3)).is_estimate


def test_duplicate_quotes_keep_cheapest():
    matrix = build_rate_matrix([quote("lex", 36, 1, 30000), quote("lex", 36, 1, 29500)])
    assert matrix.cell("lex", profile(36, 1)).price == 29500


def test_maintenance_selection():
    quotes = [
        quote("lex", 36, 1, 30000, contract_type="CHNM"),
        quote("lex", 36, 3, 35000, contract_type="CH"),
    ]
    plain = build_rate_matrix(quotes)
    assert plain.cell("lex", profile(36, 1)).price == 30000
    assert plain.cell("lex", profile(36, 3)).price == round_half_up(30000 * 36 / 38)

    maintained = build_rate_matrix(quotes, include_maintenance=True)
    assert maintained.includes_maintenance
    assert maintained.cell("lex", profile(36, 3)).price == 35000
    # Maintained matrices are never estimated
    assert maintained.cell("lex", profile(36, 1)).price is None
    assert maintained.estimate_count == 0


def test_maintenance_only_quotes_give_empty_plain_matrix():
    matrix = build_rate_matrix([quote("lex", 36, 1, 30000, contract_type="CH")])
    assert matrix.is_empty


def test_custom_standard_initials():
    config = MatrixConfig(standard_initial_payments=[6, 1, 1])
    assert config.standard_initial_payments == [1, 6]
    matrix = build_rate_matrix([quote("lex", 36, 1, 30000)], config=config)
    assert [p.key for p in matrix.profiles] == ["36-1", "36-6"]


def test_to_response_shape():
    matrix = build_rate_matrix([quote("lex", 36, 3, 39900)])
    response = matrix.to_response()
    assert response["providers"] == ["lex"]
    assert response["termProfiles"][0] == {"term": 36, "initialPayment": 1, "key": "36-1"}
    assert response["matrix"]["lex"]["36-3"] == {"price": 39900, "isEstimate": False}
    assert response["matrix"]["lex"]["36-1"]["isEstimate"] is True


def test_to_dataframe():
    matrix = build_rate_matrix([quote("lex", 36, 3, 39900), quote("venus", 36, 3, 41000)])
    df = matrix.to_dataframe()
    assert list(df.index) == ["lex", "venus"]
    assert df.loc["venus", "36-3"] == 41000
