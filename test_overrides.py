"""Tests for price override resolution and storage."""

import json
from datetime import datetime, timedelta

import pytest

from rate_explorer.core.overrides import (
    InvalidOverrideError,
    OverrideContext,
    OverrideNotFoundError,
    OverrideResolver,
    OverrideStore,
    apply_override,
    build_override,
    override_from_request,
    override_to_response,
    resolve_override,
)
from rate_explorer.core.schema import OverrideType

NOW = datetime(2026, 3, 1, 12, 0, 0)

CONTEXT = OverrideContext(
    cap_code="TOYA1",
    provider="lex",
    contract_type="CHNM",
    term=36,
    mileage=10000,
)


def make(override_id, override_type="absolute", value=-500, created_at=None, **fields):
    data = {
        "id": override_id,
        "override_type": override_type,
        "value": value,
        "created_at": created_at or NOW - timedelta(days=1),
    }
    data.update(fields)
    return build_override(data)


def test_apply_override_types():
    assert apply_override(30000, make("a", "fixed", 25000)) == 25000
    assert apply_override(30000, make("b", "percentage", -10)) == 27000
    assert apply_override(30000, make("c", "absolute", 1500)) == 31500
    # Never below zero
    assert apply_override(1000, make("d", "absolute", -5000)) == 0


def test_percentage_rounds_half_up():
    assert apply_override(10005, make("a", "percentage", -50)) == 5003


def test_no_matching_override_passes_through():
    result = resolve_override(30000, CONTEXT, [make("a", cap_code="OTHER1")], now=NOW)
    assert result.final_price == 30000
    assert result.original_price == 30000
    assert result.applied_override_id is None


def test_none_price_passes_through():
    result = resolve_override(None, CONTEXT, [make("a")], now=NOW)
    assert result.final_price is None
    assert result.applied_override_id is None


def test_scope_matching_is_case_insensitive():
    result = resolve_override(30000, CONTEXT, [make("a", cap_code="toya1", provider="LEX")], now=NOW)
    assert result.applied_override_id == "a"
    assert result.final_price == 29500


def test_priority_beats_specificity():
    overrides = [
        make("broad", value=-100, priority=5),
        make("narrow", value=-900, priority=1, cap_code="TOYA1", provider="lex", term=36),
    ]
    assert resolve_override(30000, CONTEXT, overrides, now=NOW).applied_override_id == "broad"


def test_specificity_breaks_priority_ties():
    overrides = [
        make("global", value=-100),
        make("vehicle", value=-200, cap_code="TOYA1"),
        make("vehicle_provider", value=-300, cap_code="TOYA1", provider="lex"),
    ]
    result = resolve_override(30000, CONTEXT, overrides, now=NOW)
    assert result.applied_override_id == "vehicle_provider"
    assert result.final_price == 29700


def test_newest_wins_then_id():
    older = make("older", value=-100, created_at=NOW - timedelta(days=3))
    newer = make("newer", value=-200, created_at=NOW - timedelta(days=2))
    assert resolve_override(30000, CONTEXT, [newer, older], now=NOW).applied_override_id == "newer"

    same_a = make("aaa", value=-100)
    same_b = make("bbb", value=-200)
    assert resolve_override(30000, CONTEXT, [same_b, same_a], now=NOW).applied_override_id == "bbb"
    assert resolve_override(30000, CONTEXT, [same_a, same_b], now=NOW).applied_override_id == "bbb"


def test_inactive_and_out_of_window_overrides_ignored():
    overrides = [
        make("inactive", is_active=False),
        make("expired", valid_until=NOW - timedelta(hours=1)),
        make("future", valid_from=NOW + timedelta(hours=1)),
    ]
    assert resolve_override(30000, CONTEXT, overrides, now=NOW).applied_override_id is None


def test_timezone_aware_windows_are_normalized():
    from datetime import timezone

    override = make("a", valid_until=datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc))
    assert override.valid_until == datetime(2026, 3, 1, 13, 0)
    assert resolve_override(30000, CONTEXT, [override], now=NOW).applied_override_id == "a"


@pytest.mark.parametrize("data", [
    {"override_type": "fixed", "value": -1},
    {"override_type": "percentage", "value": -100},
    {"override_type": "absolute", "value": float("nan")},
    {"override_type": "absolute", "value": True},
    {"override_type": "absolute", "value": None},
    {"override_type": "bogus", "value": 10},
    {"override_type": "absolute", "value": 10, "term": 0},
    {
        "override_type": "absolute",
        "value": 10,
        "valid_from": NOW,
        "valid_until": NOW - timedelta(days=1),
    },
])
def test_invalid_overrides_rejected(data):
    with pytest.raises(InvalidOverrideError):
        build_override({"id": "x", **data})


def test_request_conversion_uses_pounds():
    data = override_from_request({
        "capCode": "TOYA1",
        "providerCode": "lex",
        "overrideType": "absolute",
        "overrideValueGbp": -12.5,
        "priority": 3,
    })
    assert data["value"] == -1250
    assert data["cap_code"] == "TOYA1"
    assert data["priority"] == 3

    percentage = override_from_request({"overrideType": "percentage", "value": -7.5})
    assert percentage["value"] == -7.5


def test_store_crud_and_persistence(tmp_path):
    filepath = tmp_path / "overrides.json"
    store = OverrideStore(filepath)

    created = store.create({"override_type": "absolute", "value": -500, "cap_code": "TOYA1", "priority": 2})
    assert len(store) == 1
    assert store.get(created.id).scope.cap_code == "TOYA1"

    updated = store.update(created.id, {"value": -700})
    assert updated.value == -700
    assert updated.created_at == created.created_at
    assert updated.scope.cap_code == "TOYA1"

    with open(filepath) as f:
        saved = json.load(f)
    assert saved["overrides"][0]["value"] == -700

    reloaded = OverrideStore(filepath)
    assert reloaded.get(created.id).value == -700

    deleted = store.delete(created.id)
    assert deleted.id == created.id
    assert len(store) == 0
    with pytest.raises(OverrideNotFoundError):
        store.get(created.id)


def test_store_rejects_invalid_writes():
    store = OverrideStore()
    with pytest.raises(InvalidOverrideError):
        store.create({"override_type": "fixed", "value": -10})
    created = store.create({"id": "fixed1", "override_type": "fixed", "value": 25000})
    with pytest.raises(InvalidOverrideError):
        store.create({"id": "fixed1", "override_type": "fixed", "value": 20000})
    with pytest.raises(InvalidOverrideError):
        store.update(created.id, {"value": -1})
    assert store.get("fixed1").value == 25000
    with pytest.raises(OverrideNotFoundError):
        store.delete("missing")


def test_malformed_stored_override_fails_load(tmp_path):
    filepath = tmp_path / "overrides.json"
    filepath.write_text(json.dumps({"overrides": [{"id": "x", "override_type": "fixed", "value": -5}]}))
    with pytest.raises(InvalidOverrideError):
        OverrideStore(filepath)


def test_store_list_filters_and_orders():
    store = OverrideStore()
    store.create({"id": "low", "override_type": "absolute", "value": -1, "cap_code": "TOYA1", "priority": 1})
    store.create({"id": "high", "override_type": "absolute", "value": -1, "cap_code": "TOYA1", "priority": 9})
    store.create({"id": "other", "override_type": "absolute", "value": -1, "cap_code": "OTHER1"})
    store.create({"id": "off", "override_type": "absolute", "value": -1, "cap_code": "TOYA1", "is_active": False})

    assert [o.id for o in store.list(cap_code="toya1")] == ["high", "low"]
    assert {o.id for o in store.list(cap_code="TOYA1", active_only=False)} == {"high", "low", "off"}
    assert len(store.list(limit=2)) == 2


def test_resolver_uses_store_snapshot():
    store = OverrideStore()
    resolver = OverrideResolver(store)
    assert resolver.resolve(30000, CONTEXT, now=NOW).applied_override_id is None

    store.create({"id": "a", "override_type": "fixed", "value": 25000, "cap_code": "TOYA1"})
    result = resolver.resolve(30000, CONTEXT, now=datetime.utcnow() + timedelta(seconds=1))
    assert result.final_price == 25000
    assert result.override_type == OverrideType.FIXED


def test_response_shape():
    response = override_to_response(make("a", "absolute", -1250, cap_code="TOYA1"))
    assert response["id"] == "a"
    assert response["capCode"] == "TOYA1"
    assert response["overrideType"] == "absolute"
    assert response["overrideValueGbp"] == -12.5


def test_cap_code_matching_ignores_whitespace():
    spaced = OverrideContext(cap_code="toya 1", provider="lex", contract_type="CHNM", term=36, mileage=10000)
    assert resolve_override(30000, spaced, [make("a", cap_code="TOYA1")], now=NOW).applied_override_id == "a"
    assert resolve_override(30000, CONTEXT, [make("b", cap_code=" toya 1 ")], now=NOW).applied_override_id == "b"

    store = OverrideStore()
    store.create({"id": "a", "override_type": "absolute", "value": -1, "cap_code": "TOYA 1"})
    assert [o.id for o in store.list(cap_code="toya1")] == ["a"]


def test_store_list_skips_overrides_not_yet_valid():
    store = OverrideStore()
    store.create({"id": "now", "override_type": "absolute", "value": -1, "cap_code": "TOYA1",
                  "valid_from": NOW - timedelta(days=1)})
    store.create({"id": "later", "override_type": "absolute", "value": -1, "cap_code": "TOYA1",
                  "valid_from": NOW + timedelta(days=1)})

    assert [o.id for o in store.list(now=NOW)] == ["now"]
    assert {o.id for o in store.list(active_only=False, now=NOW)} == {"now", "later"}


@pytest.fixture
def blocked_path(tmp_path):
    """A path whose parent is a regular file, so saving always fails."""
    blocker = tmp_path / "blocked"
    blocker.write_text("")
    return blocker / "overrides.json"


def test_failed_create_leaves_store_unchanged(blocked_path):
    store = OverrideStore(blocked_path)
    with pytest.raises(OSError):
        store.create({"id": "a", "override_type": "fixed", "value": 25000, "cap_code": "TOYA1"})

    assert store.snapshot() == ()
    assert len(store) == 0
    assert OverrideResolver(store).resolve(30000, CONTEXT, now=NOW).applied_override_id is None


def test_failed_update_and_delete_leave_store_unchanged(tmp_path, blocked_path):
    store = OverrideStore(tmp_path / "overrides.json")
    created = store.create({"id": "a", "override_type": "fixed", "value": 25000, "cap_code": "TOYA1"})
    before = store.snapshot()

    store.filepath = blocked_path
    with pytest.raises(OSError):
        store.update(created.id, {"value": 20000})
    with pytest.raises(OSError):
        store.delete(created.id)

    assert store.snapshot() == before
    assert store.get("a").value == 25000
    # The last good file is untouched
    assert OverrideStore(tmp_path / "overrides.json").get("a").value == 25000
