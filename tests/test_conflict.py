from __future__ import annotations

import uuid

import pytest

from docwrite.conflict import (
    KEEP_OLD,
    REJECT,
    Action,
    ConflictPolicy,
    CustomConflict,
    ErrorOnConflict,
    ReplaceOnConflict,
    UpdateOnConflict,
    generate_key,
    policy_for,
)
from docwrite.errors import ConflictRejected, DuplicatePrimaryKey, PrimaryKeyChanged, StructuralError

OLD = {"id": 1, "title": "old", "meta": {"a": 1, "b": 2}}
NEW = {"id": 1, "body": "new", "meta": {"b": 3}}


@pytest.mark.parametrize(
    "policy", [ErrorOnConflict(), ReplaceOnConflict(), UpdateOnConflict()]
)
def test_fresh_insert_always_commits(policy: ConflictPolicy) -> None:
    resolution = policy.resolve_insert("id", 1, None, NEW)

    assert resolution.action is Action.COMMIT
    assert resolution.value == NEW


def test_error_policy_rejects_duplicate() -> None:
    resolution = ErrorOnConflict().resolve_insert("id", 1, OLD, NEW)

    assert resolution.action is Action.REJECT
    assert isinstance(resolution.error, DuplicatePrimaryKey)
    assert "Duplicate primary key `id`" in str(resolution.error)


def test_replace_policy_drops_old_fields() -> None:
    resolution = ReplaceOnConflict().resolve_insert("id", 1, OLD, NEW)

    assert resolution.value == NEW


def test_update_policy_deep_merges() -> None:
    resolution = UpdateOnConflict().resolve_insert("id", 1, OLD, NEW)

    assert resolution.value == {"id": 1, "title": "old", "body": "new", "meta": {"a": 1, "b": 3}}


def test_custom_policy_receives_key_old_and_new() -> None:
    calls = []

    def resolve(key, old, new):
        calls.append((key, old, new))
        return {**old, "count": old.get("count", 0) + new["count"]}

    resolution = CustomConflict(resolve).resolve_insert("id", 7, {"id": 7, "count": 2}, {"id": 7, "count": 3})

    assert calls == [(7, {"id": 7, "count": 2}, {"id": 7, "count": 3})]
    assert resolution.action is Action.COMMIT
    assert resolution.value == {"id": 7, "count": 5}


def test_custom_policy_keep_old_is_noop() -> None:
    resolution = CustomConflict(lambda k, o, n: KEEP_OLD).resolve_insert("id", 1, OLD, NEW)
    assert resolution.action is Action.NOOP


def test_custom_policy_reject() -> None:
    resolution = CustomConflict(lambda k, o, n: REJECT).resolve_insert("id", 1, OLD, NEW)

    assert resolution.action is Action.REJECT
    assert isinstance(resolution.error, ConflictRejected)


def test_custom_policy_cannot_change_primary_key() -> None:
    resolution = CustomConflict(lambda k, o, n: {**n, "id": 2}).resolve_insert("id", 1, OLD, NEW)

    assert resolution.action is Action.REJECT
    assert isinstance(resolution.error, PrimaryKeyChanged)


def test_custom_policy_failure_is_rejection() -> None:
    def boom(key, old, new):
        raise RuntimeError("boom")

    resolution = CustomConflict(boom).resolve_insert("id", 1, OLD, NEW)

    assert resolution.action is Action.REJECT
    assert "boom" in str(resolution.error)


def test_policy_for_maps_options() -> None:
    assert isinstance(policy_for("error"), ErrorOnConflict)
    assert isinstance(policy_for("replace"), ReplaceOnConflict)
    assert isinstance(policy_for("update"), UpdateOnConflict)
    assert isinstance(policy_for(lambda k, o, n: n), CustomConflict)

    policy = UpdateOnConflict()
    assert policy_for(policy) is policy


@pytest.mark.parametrize("option", ["upsert", 3, None])
def test_policy_for_rejects_unknown_options(option) -> None:
    with pytest.raises(StructuralError):
        policy_for(option)


def test_generated_keys_are_unique_uuid_strings() -> None:
    keys = {generate_key() for _ in range(100)}

    assert len(keys) == 100
    for key in keys:
        assert str(uuid.UUID(key)) == key
