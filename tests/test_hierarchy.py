import logging

import pytest

from conftest import leaf
from engines.hierarchy import (
    HierarchyError, apply_edit, build_tree, check_invariants, find_node, find_parent,
    flatten_tree, iter_leaves, recompute_headcounts, roll_up, rolled_up_headcount,
    rolled_up_validated_capacity, set_node_field, update_headcount, update_node,
)


def _two_leaf_tree():
    return build_tree({
        "id": "root", "role": "CRO",
        "children": [leaf("A", headcount=3), leaf("B", headcount=5)],
    })


def _headcounts(root):
    return {n["id"]: n["headcount"] for n in flatten_tree(root)}


def test_build_tree_assigns_depth_and_rolls_headcount(org):
    assert org["depth"] == 0
    for node in flatten_tree(org):
        for child in node["children"]:
            assert child["depth"] == node["depth"] + 1
    assert org["headcount"] == 8
    assert check_invariants(org) == []


def test_build_tree_replaces_stale_internal_headcount():
    tree = build_tree({"id": "r", "role": "RVP", "headcount": 99,
                       "children": [leaf("x", headcount=2), leaf("y", headcount=4)]})
    assert tree["headcount"] == 6


def test_build_tree_drops_derived_and_foreign_role_fields():
    raw = {"id": "r", "role": "RVP", "expectedCapacity": 5, "difference": 1,
           "allocatedHC": 4, "industry": "MFG",
           "children": [leaf("x", repType="TBH", totalHC=3)]}
    tree = build_tree(raw)
    assert "expectedCapacity" not in tree and "difference" not in tree
    assert tree["allocatedHC"] == 4 and "industry" not in tree
    x = tree["children"][0]
    assert x["repType"] == "TBH" and "totalHC" not in x
    # input untouched
    assert raw["expectedCapacity"] == 5 and "depth" not in raw


def test_build_tree_clears_validated_on_internal_nodes():
    tree = build_tree({"id": "r", "role": "RVP", "validatedCapacity": 999,
                       "children": [leaf("x", validated=10)]})
    assert tree["validatedCapacity"] is None
    assert rolled_up_validated_capacity(tree) == 10


@pytest.mark.parametrize("raw, message", [
    ({"id": "r", "role": "CRO", "children": [leaf("x"), leaf("x")]}, "duplicate"),
    ({"id": "r", "role": "CRO", "children": [{"id": "r", "role": "AE"}]}, "duplicate"),
    ({"id": "r", "role": "Manager"}, "unknown role"),
    ({"role": "AE"}, "no id"),
    ({"id": "r", "role": "AE", "headcount": -1}, "invalid headcount"),
    ({"id": "r", "role": "AE", "headcount": 1.5}, "invalid headcount"),
    ({"id": "r", "role": "AE", "validatedCapacity": float("nan")}, "invalid validatedCapacity"),
    ({"id": "r", "role": "AE", "targetCapacity": "lots"}, "invalid targetCapacity"),
])
def test_build_tree_rejects_malformed_input(raw, message):
    with pytest.raises(HierarchyError, match=message):
        build_tree(raw)


def test_build_tree_none_is_none():
    assert build_tree(None) is None


def test_rollup_example_scenario():
    root = _two_leaf_tree()
    assert roll_up(root, "headcount") == 8
    updated = update_headcount(root, "A", 10)
    assert updated["headcount"] == 15
    assert find_node(updated, "B")["headcount"] == 5
    # old snapshot unchanged
    assert root["headcount"] == 8
    assert find_node(root, "A")["headcount"] == 3


def test_headcount_edit_only_touches_ancestors(org):
    before = _headcounts(org)
    updated = update_headcount(org, "ae3", 4)
    after = _headcounts(updated)
    changed = {k for k in before if before[k] != after[k]}
    assert changed == {"ae3", "rvp-us", "amer-industries-avp", "svp-amer", "cro"}
    assert after["rvp-us"] == 7 and after["cro"] == 11
    assert rolled_up_headcount(updated) == sum(n["headcount"] for n in iter_leaves(updated))
    assert check_invariants(updated) == []


def test_headcount_edit_shares_untouched_subtrees(org):
    updated = update_headcount(org, "ae1", 2)
    assert find_node(updated, "rvp-canada") is find_node(org, "rvp-canada")
    assert find_node(updated, "ae2") is find_node(org, "ae2")
    assert find_node(updated, "rvp-us") is not find_node(org, "rvp-us")


def test_headcount_edit_to_zero_keeps_rollup(org):
    updated = update_headcount(org, "ae8", 0)
    assert find_node(updated, "rvp-canada")["headcount"] == 3
    assert updated["headcount"] == 7


def test_headcount_edit_on_internal_node_is_rejected(org, caplog):
    with caplog.at_level(logging.WARNING):
        result = update_headcount(org, "rvp-us", 40)
    assert result is org
    assert "derived" in caplog.text


@pytest.mark.parametrize("value", [-1, 2.5, float("nan"), "3", None, True])
def test_headcount_edit_rejects_invalid_values(org, value):
    assert update_headcount(org, "ae1", value) is org


def test_headcount_edit_unknown_node_is_noop(org, caplog):
    with caplog.at_level(logging.WARNING):
        assert update_headcount(org, "nobody", 3) is org
    assert "not found" in caplog.text


def test_validated_rollup_distinguishes_unset_from_zero():
    all_unset = build_tree({"id": "r", "role": "RVP", "children": [leaf("x"), leaf("y")]})
    assert rolled_up_validated_capacity(all_unset) is None
    one_zero = set_node_field(all_unset, "x", "validatedCapacity", 0)
    assert rolled_up_validated_capacity(one_zero) == 0
    assert rolled_up_validated_capacity(one_zero) is not None


def test_validated_rollup_skips_unset_leaves(small_org):
    assert rolled_up_validated_capacity(find_node(small_org, "a")) == 150
    assert rolled_up_validated_capacity(find_node(small_org, "b")) is None
    assert roll_up(small_org, "validatedCapacity") == 150


def test_roll_up_unknown_field():
    with pytest.raises(ValueError):
        roll_up(_two_leaf_tree(), "targetCapacity")


def test_update_node_applies_to_target_only(org):
    updated = update_node(org, "rvp-us", lambda n: {**n, "targetCapacity": 5000})
    assert find_node(updated, "rvp-us")["targetCapacity"] == 5000
    assert find_node(org, "rvp-us")["targetCapacity"] == 0
    assert updated["targetCapacity"] == 0
    assert find_node(updated, "rvp-canada") is find_node(org, "rvp-canada")


def test_update_node_mutating_updater_leaves_old_snapshot(org):
    def add_segment(n):
        n["segments"].append("NEW")
        return n

    updated = update_node(org, "ae1", add_segment)
    assert find_node(org, "ae1")["segments"] == ["AERO"]
    assert find_node(updated, "ae1")["segments"] == ["AERO", "NEW"]


def test_update_node_unknown_id_returns_same_root(org):
    assert update_node(org, "missing", lambda n: n) is org


@pytest.mark.parametrize("field, value", [
    ("headcount", 3),
    ("children", []),
    ("id", "other"),
    ("role", "AE"),
    ("expectedCapacity", 100),
    ("industry", "MFG"),
    ("validatedCapacity", 100),
    ("targetCapacity", float("inf")),
])
def test_field_update_rejects_rollup_and_foreign_fields(org, field, value):
    assert set_node_field(org, "rvp-us", field, value) is org


def test_validated_capacity_edit_on_leaf(org):
    updated = set_node_field(org, "ae1", "validatedCapacity", 2000)
    assert find_node(updated, "ae1")["validatedCapacity"] == 2000
    assert rolled_up_validated_capacity(find_node(updated, "rvp-us")) == 2000 + 1150 + 1100 + 1050
    cleared = set_node_field(updated, "ae1", "validatedCapacity", None)
    assert find_node(cleared, "ae1")["validatedCapacity"] is None


def test_negative_validated_capacity_rejected(org):
    assert set_node_field(org, "ae1", "validatedCapacity", -5) is org


def test_apply_edit_dispatches(org):
    by_headcount = apply_edit(org, "ae1", "headcount", 3)
    assert by_headcount["headcount"] == 10
    by_target = apply_edit(org, "cro", "targetCapacity", 9000)
    assert by_target["targetCapacity"] == 9000
    assert by_target["headcount"] == 8


def test_recompute_headcounts_repairs_inconsistent_tree(org):
    broken = dict(org, headcount=1)
    fixed = recompute_headcounts(broken)
    assert fixed["headcount"] == 8
    assert check_invariants(broken) != []
    assert check_invariants(fixed) == []


def test_find_parent(org):
    assert find_parent(org, "ae5")["id"] == "rvp-canada"
    assert find_parent(org, "cro") is None
    assert find_parent(org, "missing") is None
