# tests/unit/services/test_match_utils.py
import pytest

from stocksync.core.enums import GroupKeyKind
from stocksync.services.match_utils import (
    ByExtractedCode,
    ByNormalizedName,
    BySku,
    GroupKey,
    compute_group_key,
    distinct_store_count,
    extract_code_from_name,
    master_sku_for,
    normalize_name,
    sum_stock,
)


@pytest.mark.parametrize("name, expected", [
    ("0101 Red Shirt", "0101"),
    ("SZ4590 Running Shoes", "SZ4590"),
    ("ABC-123 Coffee Mug", "ABC-123"),
    ("XY_77 Tote Bag", "XY_77"),
    ("Red Shirt", None),          # no digit
    ("A1 Shirt", None),           # too short
    ("SZ4590", None),             # no trailing whitespace
    ("AB-12-34 Widget", None),    # more than one separator
    ("", None),
    (None, None),
])
def test_extract_code_from_name(name, expected):
    assert extract_code_from_name(name) == expected


def test_normalize_name_collapses_whitespace_and_case():
    assert normalize_name("  Blue   Ceramic\tMug ") == "blue ceramic mug"
    assert normalize_name(None) == ""


def test_sku_wins_over_name_code():
    group_key = compute_group_key("0101 Red Shirt", "  ABC-100 ")
    assert group_key.kind == GroupKeyKind.SKU
    assert group_key.key == "sku:abc-100"
    assert group_key.display == "ABC-100"


def test_blank_sku_falls_back_to_name_code():
    group_key = compute_group_key("SZ4590 Running Shoes", "   ")
    assert group_key.key == "code:sz4590"
    assert group_key.display == "SZ4590"


def test_plain_name_falls_back_to_normalized_name():
    group_key = compute_group_key("Blue  Ceramic Mug", None)
    assert group_key.key == "name:blue ceramic mug"


def test_empty_product_has_no_key():
    assert compute_group_key("   ", None) is None


def test_strategies_are_pluggable():
    """A caller can restrict matching to a subset of the rules"""
    strategies = [ByNormalizedName()]
    assert compute_group_key("0101 Red Shirt", "ABC-100", strategies).key == "name:0101 red shirt"

    assert BySku().key_for("Anything", None) is None
    assert ByExtractedCode().key_for("No code here", None) is None


def test_master_sku_for_sku_and_code_groups_uses_key_value():
    assert master_sku_for(GroupKey(GroupKeyKind.SKU, "abc-100", "ABC-100"), ["Mug"]) == "abc-100"
    assert master_sku_for(GroupKey(GroupKeyKind.CODE, "sz4590", "SZ4590"), ["Shoes"]) == "sz4590"


def test_master_sku_for_name_groups_uses_first_product_name():
    group_key = GroupKey(GroupKeyKind.NAME, "blue mug", "Blue Mug")
    assert master_sku_for(group_key, ["Blue  Mug", "blue mug"]) == "Blue  Mug"
    assert master_sku_for(group_key, []) == "blue mug"


def test_counting_helpers():
    assert distinct_store_count([1, 2, 2, 3]) == 3
    assert sum_stock([1, None, 4]) == 5
