"""
Admin price overrides.

Overrides are layered on top of the computed best price. Each override has a
scope (cap code, provider, contract type, term, mileage) in which an unset
field matches anything. When several live overrides match a context the
winner is chosen by:

1. highest priority
2. most specific scope (number of set scope fields)
3. most recently created
4. id, so that resolution is fully deterministic

Resolution reads one snapshot of the override set per call, so concurrent
edits through the OverrideStore never produce a mixed view.
"""

import json
import logging
import math
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Any, Tuple, Union

from pydantic import ValidationError

from .loader import save_json
from .matching import normalize_identifier
from .matrix import round_half_up
from .schema import (
    OverrideResult,
    OverrideScope,
    OverrideType,
    PriceOverride,
)

logger = logging.getLogger(__name__)


class InvalidOverrideError(ValueError):
    """Raised when an override write is malformed."""


class OverrideNotFoundError(KeyError):
    """Raised when an override id does not exist."""


class OverrideContext(OverrideScope):
    """Fully specified pricing context an override is matched against."""


# === Resolution ===

def _normalize(value: Any, name: str = "") -> Any:
    if name == 'cap_code':
        return normalize_identifier(value)
    if isinstance(value, str):
        return value.strip().lower()
    return value


def scope_matches(scope: OverrideScope, context: OverrideScope) -> bool:
    """Check whether every set field of ``scope`` equals the context's value."""
    for name, expected in scope.matchers():
        if expected is None:
            continue
        if _normalize(getattr(context, name, None), name) != _normalize(expected, name):
            return False
    return True


def precedence_key(override: PriceOverride) -> Tuple[int, int, datetime, str]:
    """Sort key where the greatest value wins."""
    return (override.priority, override.scope.specificity, override.created_at, override.id)


def apply_override(price: int, override: PriceOverride) -> int:
    """
    Apply one override to a price.

    Returns:
        New price in minor units, never below zero
    """
    if override.override_type == OverrideType.FIXED:
        result = override.value
    elif override.override_type == OverrideType.PERCENTAGE:
        result = price * (1 + override.value / 100)
    else:
        result = price + override.value
    return max(0, round_half_up(result))


def resolve_override(
    price: Optional[int],
    context: OverrideScope,
    overrides: Iterable[PriceOverride],
    now: Optional[datetime] = None,
) -> OverrideResult:
    """
    Resolve the final price for a context.

    Args:
        price: Computed best price (minor units), or None when there is no rate
        context: Pricing context
        overrides: Override snapshot to resolve against
        now: Reference time (defaults to utcnow)

    Returns:
        OverrideResult. Without a live matching override the price passes
        through unchanged and ``applied_override_id`` is None.
    """
    if price is None:
        return OverrideResult(original_price=None, final_price=None)

    if now is None:
        now = datetime.utcnow()

    candidates = [
        o for o in overrides
        if o.is_live(now) and scope_matches(o.scope, context)
    ]
    if not candidates:
        return OverrideResult(original_price=price, final_price=price)

    winner = max(candidates, key=precedence_key)
    final_price = apply_override(price, winner)
    logger.debug(
        f"Override {winner.id} ({winner.override_type.value} {winner.value}) "
        f"applied: {price} -> {final_price}"
    )
    return OverrideResult(
        original_price=price,
        final_price=final_price,
        applied_override_id=winner.id,
        override_type=winner.override_type,
    )


class OverrideResolver:
    """Resolves prices against the current contents of an OverrideStore."""

    def __init__(self, store: 'OverrideStore'):
        self.store = store

    def resolve(
        self,
        price: Optional[int],
        context: OverrideScope,
        now: Optional[datetime] = None,
    ) -> OverrideResult:
        return resolve_override(price, context, self.store.snapshot(), now=now)


# === Validation ===

def validate_override(override: PriceOverride) -> PriceOverride:
    """
    Check business rules a stored override must satisfy.

    Raises:
        InvalidOverrideError: If the override is malformed
    """
    if not math.isfinite(override.value):
        raise InvalidOverrideError(f"Override value must be a finite number: {override.value}")
    if override.override_type == OverrideType.FIXED and override.value < 0:
        raise InvalidOverrideError("Fixed override price cannot be negative")
    if override.override_type == OverrideType.PERCENTAGE and override.value <= -100:
        raise InvalidOverrideError("Percentage override must be greater than -100")
    if (
        override.valid_from is not None
        and override.valid_until is not None
        and override.valid_until <= override.valid_from
    ):
        raise InvalidOverrideError("valid_until must be after valid_from")
    return override


def build_override(data: Dict[str, Any]) -> PriceOverride:
    """
    Create a validated PriceOverride from a dict.

    Scope fields may be given flat or under ``scope``.

    Raises:
        InvalidOverrideError: If the data is malformed
    """
    data = dict(data)
    value = data.get('value')
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidOverrideError(f"Override value must be numeric, got {value!r}")

    scope = dict(data.pop('scope', None) or {})
    for name in OverrideScope.model_fields:
        if name in data:
            scope[name] = data.pop(name)
    data['scope'] = scope

    try:
        override = PriceOverride.model_validate(data)
    except ValidationError as e:
        raise InvalidOverrideError(str(e)) from e
    return validate_override(override)


def override_from_request(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert an admin request body (camelCase, pounds) to override data.

    Fixed and absolute values are given in pounds and stored in pence;
    percentages are stored as given.
    """
    override_type = payload.get('overrideType')
    value = payload.get('overrideValueGbp', payload.get('value'))
    if override_type in (OverrideType.FIXED.value, OverrideType.ABSOLUTE.value):
        try:
            value = round_half_up(float(value) * 100)
        except (TypeError, ValueError):
            raise InvalidOverrideError(f"Override value must be numeric, got {value!r}")

    data: Dict[str, Any] = {
        'override_type': override_type,
        'value': value,
        'cap_code': payload.get('capCode'),
        'provider': payload.get('providerCode'),
        'contract_type': payload.get('contractType'),
        'term': payload.get('term'),
        'mileage': payload.get('annualMileage'),
        'reason': payload.get('reason'),
        'internal_notes': payload.get('internalNotes'),
        'valid_from': payload.get('validFrom'),
        'valid_until': payload.get('validUntil'),
    }
    if payload.get('isActive') is not None:
        data['is_active'] = payload['isActive']
    if payload.get('priority') is not None:
        data['priority'] = payload['priority']
    if payload.get('id'):
        data['id'] = payload['id']
    return data


def override_to_response(override: PriceOverride) -> Dict[str, Any]:
    """Admin response shape for one override."""
    if override.override_type == OverrideType.PERCENTAGE:
        value_gbp = override.value
    else:
        value_gbp = override.value / 100
    return {
        'id': override.id,
        'capCode': override.scope.cap_code,
        'providerCode': override.scope.provider,
        'contractType': override.scope.contract_type,
        'term': override.scope.term,
        'annualMileage': override.scope.mileage,
        'overrideType': override.override_type.value,
        'overrideValuePence': override.value,
        'overrideValueGbp': value_gbp,
        'reason': override.reason,
        'internalNotes': override.internal_notes,
        'validFrom': override.valid_from.isoformat() if override.valid_from else None,
        'validUntil': override.valid_until.isoformat() if override.valid_until else None,
        'isActive': override.is_active,
        'priority': override.priority,
        'createdAt': override.created_at.isoformat(),
        'updatedAt': override.updated_at.isoformat(),
    }


# === Store ===

class OverrideStore:
    """
    Thread-safe override store with optional JSON persistence.

    Writers take a lock and publish a new immutable tuple; readers take the
    current tuple without locking.

    Usage:
        store = OverrideStore("output/overrides.json")
        override = store.create({'override_type': 'absolute', 'value': -500,
                                 'cap_code': 'TOYA1'})
        result = OverrideResolver(store).resolve(price, context)
    """

    def __init__(self, filepath: Optional[Union[str, Path]] = None):
        """
        Initialize override store.

        Args:
            filepath: JSON file for persistence (None keeps overrides in memory)
        """
        self.filepath = Path(filepath) if filepath else None
        self._lock = threading.Lock()
        self._overrides: Tuple[PriceOverride, ...] = ()
        if self.filepath and self.filepath.exists():
            self._load()

    def _load(self):
        """Load overrides from disk. A malformed record fails the load."""
        with open(self.filepath) as f:
            data = json.load(f)
        overrides = []
        for record in data.get('overrides', []):
            try:
                overrides.append(validate_override(PriceOverride.model_validate(record)))
            except ValidationError as e:
                raise InvalidOverrideError(f"Stored override is malformed: {e}") from e
        self._overrides = tuple(overrides)
        logger.info(f"Loaded {len(overrides)} overrides from {self.filepath}")

    def _save(self, overrides: Tuple[PriceOverride, ...]):
        """Save an override set to disk. Raises before anything is published."""
        if self.filepath is None:
            return
        save_json(self.filepath, {
            'updated_at': datetime.utcnow().isoformat(),
            'overrides': [o.model_dump(mode='json') for o in overrides],
        })

    def snapshot(self) -> Tuple[PriceOverride, ...]:
        """Current override set as an immutable tuple."""
        return self._overrides

    def get(self, override_id: str) -> PriceOverride:
        for override in self._overrides:
            if override.id == override_id:
                return override
        raise OverrideNotFoundError(override_id)

    def create(self, data: Union[Dict[str, Any], PriceOverride]) -> PriceOverride:
        """
        Create an override.

        Args:
            data: Override fields (flat scope fields allowed) or a PriceOverride

        Returns:
            The stored override

        Raises:
            InvalidOverrideError: If the data is malformed or the id exists
        """
        if isinstance(data, PriceOverride):
            data = data.model_dump()
        data = dict(data)
        now = datetime.utcnow()
        data.setdefault('id', uuid.uuid4().hex)
        data['created_at'] = data.get('created_at') or now
        data['updated_at'] = now
        override = build_override(data)

        with self._lock:
            if any(o.id == override.id for o in self._overrides):
                raise InvalidOverrideError(f"Override {override.id} already exists")
            overrides = self._overrides + (override,)
            self._save(overrides)
            self._overrides = overrides

        logger.info(f"Created override {override.id} ({override.override_type.value})")
        return override

    def update(self, override_id: str, changes: Dict[str, Any]) -> PriceOverride:
        """
        Update fields of an existing override.

        Returns:
            The full updated override

        Raises:
            OverrideNotFoundError: If the id does not exist
            InvalidOverrideError: If the result is malformed
        """
        with self._lock:
            existing = self.get(override_id)
            data = existing.model_dump()
            scope = data.pop('scope')
            data.update(scope)
            data.update({k: v for k, v in changes.items() if k not in ('id', 'created_at')})
            if 'scope' in changes:
                data.pop('scope')
                data.update(changes['scope'] or {})
            data['updated_at'] = datetime.utcnow()
            updated = build_override(data)

            overrides = tuple(
                updated if o.id == override_id else o for o in self._overrides
            )
            self._save(overrides)
            self._overrides = overrides

        logger.info(f"Updated override {override_id}")
        return updated

    def delete(self, override_id: str) -> PriceOverride:
        """
        Delete an override.

        Returns:
            The deleted override

        Raises:
            OverrideNotFoundError: If the id does not exist
        """
        with self._lock:
            existing = self.get(override_id)
            overrides = tuple(o for o in self._overrides if o.id != override_id)
            self._save(overrides)
            self._overrides = overrides

        logger.info(f"Deleted override {override_id}")
        return existing

    def list(
        self,
        cap_code: Optional[str] = None,
        provider: Optional[str] = None,
        active_only: bool = True,
        limit: int = 100,
        now: Optional[datetime] = None,
    ) -> List[PriceOverride]:
        """
        List overrides, highest priority first, then newest first.

        Args:
            cap_code: Only overrides scoped to this cap code
            provider: Only overrides scoped to this provider
            active_only: Exclude inactive, expired and not yet valid overrides
            limit: Maximum number of overrides returned
            now: Reference time for expiry (defaults to utcnow)
        """
        if now is None:
            now = datetime.utcnow()

        result = list(self.snapshot())
        if cap_code:
            wanted = normalize_identifier(cap_code)
            result = [o for o in result if normalize_identifier(o.scope.cap_code) == wanted]
        if provider:
            result = [o for o in result if _normalize(o.scope.provider) == _normalize(provider)]
        if active_only:
            result = [o for o in result if o.is_live(now)]

        result.sort(key=lambda o: (o.priority, o.created_at), reverse=True)
        return result[:limit]

    def __len__(self) -> int:
        return len(self._overrides)
