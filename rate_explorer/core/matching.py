"""
Vehicle identity matching.

Matches competitor listings and override contexts to our vehicles. Matching
is exact on normalized keys: the vehicle identifier (cap code) when the
caller has one, otherwise manufacturer + model (+ variant). Multiple
candidates or a manufacturer-only hit are reported as ambiguous and never
resolved to a guess.
"""

import logging
import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from .schema import Vehicle

logger = logging.getLogger(__name__)


class MatchStatus(str, Enum):
    """Outcome of a vehicle identity lookup."""
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    AMBIGUOUS = "ambiguous"


class MatchResult(BaseModel):
    """Result of matching one listing to the vehicle catalogue."""
    status: MatchStatus
    vehicle_id: Optional[str] = None
    cap_code: Optional[str] = None
    candidate_count: int = 0

    @property
    def is_matched(self) -> bool:
        return self.status == MatchStatus.MATCHED


UNMATCHED = MatchResult(status=MatchStatus.UNMATCHED)


def normalize_name(value: Optional[str]) -> str:
    """Normalize a name for matching (lowercase, no punctuation, single spaces)."""
    if not value:
        return ""
    value = value.lower().strip().replace('-', ' ')
    value = re.sub(r'[^\w\s]', '', value)
    return re.sub(r'\s+', ' ', value).strip()


def normalize_identifier(value: Optional[str]) -> str:
    """Normalize a vehicle identifier (case and whitespace insensitive)."""
    if not value:
        return ""
    return re.sub(r'\s+', '', value).upper()


class VehicleMatcher:
    """
    Exact matcher over a vehicle catalogue.

    Usage:
        matcher = VehicleMatcher(vehicles)
        result = matcher.match(manufacturer="BMW", model="i4", variant="eDrive35 M Sport")
        if result.is_matched:
            ...
    """

    def __init__(self, vehicles: Iterable[Vehicle]):
        self._by_identifier: Dict[str, List[Vehicle]] = {}
        self._by_variant: Dict[Tuple[str, str, str], List[Vehicle]] = {}
        self._by_model: Dict[Tuple[str, str], List[Vehicle]] = {}
        self._manufacturers = set()

        for vehicle in vehicles:
            identifier = normalize_identifier(vehicle.cap_code)
            if identifier:
                self._by_identifier.setdefault(identifier, []).append(vehicle)

            manufacturer = normalize_name(vehicle.manufacturer)
            model = normalize_name(vehicle.model)
            variant = normalize_name(vehicle.variant)
            self._manufacturers.add(manufacturer)
            self._by_model.setdefault((manufacturer, model), []).append(vehicle)
            if variant:
                self._by_variant.setdefault((manufacturer, model, variant), []).append(vehicle)

    @staticmethod
    def _result(candidates: List[Vehicle]) -> MatchResult:
        if len(candidates) == 1:
            vehicle = candidates[0]
            return MatchResult(
                status=MatchStatus.MATCHED,
                vehicle_id=vehicle.id,
                cap_code=vehicle.cap_code,
                candidate_count=1,
            )
        if candidates:
            return MatchResult(status=MatchStatus.AMBIGUOUS, candidate_count=len(candidates))
        return UNMATCHED

    def match_identifier(self, cap_code: str) -> MatchResult:
        """Match by vehicle identifier only."""
        return self._result(self._by_identifier.get(normalize_identifier(cap_code), []))

    def match(
        self,
        cap_code: Optional[str] = None,
        manufacturer: Optional[str] = None,
        model: Optional[str] = None,
        variant: Optional[str] = None,
    ) -> MatchResult:
        """
        Match a listing to exactly one vehicle.

        Args:
            cap_code: Vehicle identifier; when given it is the only key used
            manufacturer: Manufacturer name
            model: Model name
            variant: Optional variant/derivative name

        Returns:
            MatchResult with ``vehicle_id`` set only for an unambiguous match
        """
        if normalize_identifier(cap_code):
            return self.match_identifier(cap_code)

        manufacturer_key = normalize_name(manufacturer)
        model_key = normalize_name(model)
        if not manufacturer_key or not model_key:
            return UNMATCHED

        model_candidates = self._by_model.get((manufacturer_key, model_key), [])
        variant_key = normalize_name(variant)

        if variant_key:
            result = self._result(self._by_variant.get((manufacturer_key, model_key, variant_key), []))
            if result.status != MatchStatus.UNMATCHED:
                return result
            if model_candidates:
                # Model known but not this variant: do not pick one
                return MatchResult(status=MatchStatus.AMBIGUOUS, candidate_count=len(model_candidates))
        elif model_candidates:
            return self._result(model_candidates)

        if manufacturer_key in self._manufacturers:
            logger.debug(f"Manufacturer-only match for {manufacturer} {model}, leaving unmatched")
            return MatchResult(status=MatchStatus.AMBIGUOUS)

        return UNMATCHED
