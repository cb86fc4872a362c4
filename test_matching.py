"""Tests for vehicle identity matching."""

import pytest

from rate_explorer.core.matching import (
    MatchStatus,
    VehicleMatcher,
    normalize_identifier,
    normalize_name,
)
from rate_explorer.core.schema import Vehicle


@pytest.fixture
def matcher():
    return VehicleMatcher([
        Vehicle(id="v1", cap_code="BMI4 35MSP", manufacturer="BMW", model="i4", variant="eDrive35 M Sport"),
        Vehicle(id="v2", cap_code="BMI4 40MSP", manufacturer="BMW", model="i4", variant="eDrive40 M Sport"),
        Vehicle(id="v3", cap_code="TOYA1", manufacturer="Toyota", model="Aygo X", variant="1.0 VVT-i Edge"),
        Vehicle(id="v4", manufacturer="Land Rover", model="Defender", variant="110 D250"),
    ])


def test_normalize():
    assert normalize_name("  Land-Rover  ") == "land rover"
    assert normalize_name("Aygo X 1.0 VVT-i") == "aygo x 10 vvt i"
    assert normalize_name(None) == ""
    assert normalize_identifier(" bmi4 35msp ") == "BMI435MSP"


def test_identifier_match(matcher):
    result = matcher.match(cap_code="bmi4  35msp")
    assert result.status == MatchStatus.MATCHED
    assert result.vehicle_id == "v1"
    assert result.cap_code == "BMI4 35MSP"


def test_identifier_is_the_only_key_when_present(matcher):
    result = matcher.match(cap_code="NOPE", manufacturer="Toyota", model="Aygo X")
    assert result.status == MatchStatus.UNMATCHED
    assert result.vehicle_id is None


def test_unique_model_matches(matcher):
    result = matcher.match(manufacturer="toyota", model="aygo-x")
    assert result.is_matched
    assert result.vehicle_id == "v3"


def test_variant_disambiguates(matcher):
    result = matcher.match(manufacturer="BMW", model="i4", variant="eDrive40 M-Sport")
    assert result.vehicle_id == "v2"


def test_several_candidates_are_ambiguous(matcher):
    result = matcher.match(manufacturer="BMW", model="i4")
    assert result.status == MatchStatus.AMBIGUOUS
    assert result.vehicle_id is None
    assert result.candidate_count == 2


def test_unknown_variant_of_known_model_is_ambiguous(matcher):
    result = matcher.match(manufacturer="BMW", model="i4", variant="M50")
    assert result.status == MatchStatus.AMBIGUOUS
    assert result.vehicle_id is None


def test_manufacturer_only_hit_is_ambiguous(matcher):
    result = matcher.match(manufacturer="Land Rover", model="Discovery")
    assert result.status == MatchStatus.AMBIGUOUS
    assert result.vehicle_id is None


def test_unknown_vehicle_is_unmatched(matcher):
    assert matcher.match(manufacturer="Skoda", model="Enyaq").status == MatchStatus.UNMATCHED
    assert matcher.match(manufacturer="", model="i4").status == MatchStatus.UNMATCHED
