"""Grouping heuristics for finding the same physical item across store catalogs."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from stocksync.core.enums import GroupKeyKind

# Leading code such as "0101 ...", "SZ4590 ..." or "ABC-123 ..."
_NAME_CODE_RE = re.compile(r"^([A-Za-z0-9]+[-_]?[A-Za-z0-9]*)\s+")
_DIGIT_RE = re.compile(r"\d")
_WHITESPACE_RE = re.compile(r"\s+")

MIN_CODE_LENGTH = 3


@dataclass(frozen=True)
class GroupKey:
    kind: GroupKeyKind
    value: str
    display: str  # What the user sees as the SKU of the group

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.value}"


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip()


def extract_code_from_name(name: Optional[str]) -> Optional[str]:
    """Return a SKU-like token at the start of a product name, if there is one"""
    if not name:
        return None
    match = _NAME_CODE_RE.match(name)
    if not match:
        return None
    code = match.group(1)
    if len(code) >= MIN_CODE_LENGTH and _DIGIT_RE.search(code):
        return code
    return None


def normalize_name(name: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", _normalize(name).lower())


class GroupKeyStrategy(ABC):
    """One matching rule. Returns None when the rule does not apply to the product."""

    @abstractmethod
    def key_for(self, name: Optional[str], sku: Optional[str]) -> Optional[GroupKey]:
        pass


class BySku(GroupKeyStrategy):
    def key_for(self, name, sku):
        sku_norm = _normalize(sku)
        if not sku_norm:
            return None
        return GroupKey(GroupKeyKind.SKU, sku_norm.lower(), sku_norm)


class ByExtractedCode(GroupKeyStrategy):
    def key_for(self, name, sku):
        code = extract_code_from_name(name)
        if not code:
            return None
        return GroupKey(GroupKeyKind.CODE, code.lower(), code)


class ByNormalizedName(GroupKeyStrategy):
    def key_for(self, name, sku):
        normalized = normalize_name(name)
        if not normalized:
            return None
        return GroupKey(GroupKeyKind.NAME, normalized, _normalize(name))


DEFAULT_STRATEGIES: Sequence[GroupKeyStrategy] = (BySku(), ByExtractedCode(), ByNormalizedName())


def compute_group_key(
    name: Optional[str],
    sku: Optional[str],
    strategies: Sequence[GroupKeyStrategy] = DEFAULT_STRATEGIES,
) -> Optional[GroupKey]:
    """First strategy that yields a key wins"""
    for strategy in strategies:
        group_key = strategy.key_for(name, sku)
        if group_key is not None:
            return group_key
    return None


def master_sku_for(group_key: GroupKey, product_names: Iterable[str]) -> str:
    """
    SKU and code groups use the key value itself; name groups use the name of
    the first product encountered.
    """
    if group_key.kind in (GroupKeyKind.SKU, GroupKeyKind.CODE):
        return group_key.value
    for name in product_names:
        return name
    return group_key.value


def distinct_store_count(store_ids: Iterable[int]) -> int:
    return len(set(store_ids))


def sum_stock(quantities: Iterable[int]) -> int:
    return sum(q or 0 for q in quantities)
