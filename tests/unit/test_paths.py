from __future__ import annotations

import pytest

from canon.paths import MAX_MERGE_DEPTH, MISSING, get_path, has_path, merge_deep, set_path, snapshot


def test_get_path_reads_nested_values_and_reports_missing() -> None:
    root = {"user": {"profile": {"name": "Ada"}}, "count": 3}

    assert get_path(root, "user.profile.name") == "Ada"
    assert get_path(root, "count") == 3
    assert get_path(root, "user.missing") is MISSING
    assert get_path(root, "count.deeper") is MISSING
    assert get_path(root, "user.profile.name.first", default=None) is None


def test_has_path_distinguishes_none_from_absent() -> None:
    root = {"user": {"email": None}}

    assert has_path(root, "user.email") is True
    assert has_path(root, "user.phone") is False
    assert has_path(root, "user.email.domain") is False


def test_set_path_creates_intermediates_without_mutating_input() -> None:
    root = {"user": {"id": "u1"}}

    result = set_path(root, "user.profile.plan", "pro")

    assert result == {"user": {"id": "u1", "profile": {"plan": "pro"}}}
    assert root == {"user": {"id": "u1"}}


def test_set_path_overwrites_non_map_intermediate() -> None:
    result = set_path({"user": "anonymous"}, "user.id", "u1")
    assert result == {"user": {"id": "u1"}}


def test_merge_deep_merges_maps_and_replaces_everything_else() -> None:
    target = {"user": {"id": "u1", "tags": ["a"]}, "count": 1}
    source = {"user": {"plan": "pro", "tags": ["b"]}, "count": 2}

    result = merge_deep(target, source)

    assert result == {"user": {"id": "u1", "plan": "pro", "tags": ["b"]}, "count": 2}
    assert target == {"user": {"id": "u1", "tags": ["a"]}, "count": 1}


def test_merge_deep_falls_back_to_flat_overwrite_past_depth_bound() -> None:
    def nest(depth: int, leaf: dict) -> dict:
        node = leaf
        for _ in range(depth):
            node = {"n": node}
        return node

    target = nest(MAX_MERGE_DEPTH + 1, {"keep": 1})
    source = nest(MAX_MERGE_DEPTH + 1, {"new": 2})

    result = merge_deep(target, source)

    node = result
    for _ in range(MAX_MERGE_DEPTH):
        node = node["n"]
    # Below the bound the source subtree replaces the target one wholesale.
    assert node == {"n": {"new": 2}}


def test_merge_deep_is_associative_on_disjoint_keys() -> None:
    a = {"a": {"x": 1}}
    b = {"b": [1, 2]}
    c = {"c": {"y": {"z": True}}}

    assert merge_deep(merge_deep(a, b), c) == merge_deep(a, merge_deep(b, c))


@pytest.mark.parametrize("value", [{"a": [1, {"b": 2}]}, [1, [2, 3]], "text", 42, None])
def test_snapshot_is_structurally_independent(value: object) -> None:
    copied = snapshot(value)
    assert copied == value
    if isinstance(value, dict):
        copied["a"][1]["b"] = 99
        assert value["a"][1]["b"] == 2
