"""
Inventory item matcher (``ledger_intake.matcher``).

Responsibility
--------------
Links a parsed expense description ("cabe merah tanjung") to an inventory
item by keyword overlap, so matched purchases post as INVENTORY against the
right item and everything else falls back to EXPENSE for review.

Scoring
-------
* Item keywords come from a comma-separated list per item.
* Input text is normalized (lowercase, non-alphanumerics become spaces) and
  quantity tokens ("5kg") are dropped.
* Variant keywords (colours, sizes, cultivars) are a hard filter: every
  variant keyword in the input must be a keyword of the candidate.
* A keyword hit scores ``variant_weight`` for a variant keyword, 1 otherwise.
* One top scorer -> MATCHED; several -> AMBIGUOUS; no hits -> UNMATCHED.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol
from uuid import UUID

from ledger_config.schema import DEFAULT_VARIANT_KEYWORDS

REGULAR_WEIGHT = 1
DEFAULT_VARIANT_WEIGHT = 5


class MatchStatus(str, Enum):
    MATCHED = "Matched"
    AMBIGUOUS = "Ambiguous"
    UNMATCHED = "Unmatched"


@dataclass(frozen=True)
class InventoryItem:
    """Inventory master-data row, as supplied by the item catalog."""

    id: UUID
    code: str
    name: str
    keywords: str = ""
    unit: str = ""


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    item: InventoryItem | None = None
    candidates: tuple[InventoryItem, ...] = field(default_factory=tuple)


class ItemCatalog(Protocol):
    """Source of active inventory items (master data lives outside the ledger)."""

    def list_items(self) -> Sequence[InventoryItem]: ...


class StaticItemCatalog:
    """Fixed in-memory catalog."""

    def __init__(self, items: Iterable[InventoryItem] = ()):
        self._items = tuple(items)

    def list_items(self) -> Sequence[InventoryItem]:
        return self._items


def normalize(text: str) -> str:
    """Lowercase, non-alphanumerics to spaces, whitespace collapsed."""
    chars = [ch.lower() if ch.isalnum() else " " for ch in text]
    return " ".join("".join(chars).split())


def _is_quantity_token(token: str) -> bool:
    """``"5kg"``, ``"2l"``: a digit run followed by letters only."""
    i = 0
    while i < len(token) and (token[i].isdigit() or token[i] == "."):
        i += 1
    return 0 < i < len(token) and token[i:].isalpha() and any(c.isdigit() for c in token[:i])


class ItemMatcher:
    """Keyword matcher over a fixed set of inventory items."""

    def __init__(
        self,
        items: Iterable[InventoryItem],
        variant_keywords: Iterable[str] = DEFAULT_VARIANT_KEYWORDS,
        variant_weight: int = DEFAULT_VARIANT_WEIGHT,
    ):
        self._items = tuple(items)
        self._variants = frozenset(k.lower() for k in variant_keywords)
        self._variant_weight = variant_weight
        self._keywords: tuple[frozenset[str], ...] = tuple(
            frozenset(
                kw for kw in (normalize(part) for part in item.keywords.split(",")) if kw
            )
            for item in self._items
        )

    def match(self, text: str) -> MatchResult:
        tokens = {tok for tok in normalize(text).split() if not _is_quantity_token(tok)}
        input_variants = tokens & self._variants

        scored: list[tuple[int, InventoryItem]] = []
        for item, keywords in zip(self._items, self._keywords):
            if not input_variants <= keywords:
                continue
            score = sum(
                self._variant_weight if kw in self._variants else REGULAR_WEIGHT
                for kw in keywords & tokens
            )
            if score > 0:
                scored.append((score, item))

        if not scored:
            return MatchResult(MatchStatus.UNMATCHED)

        best = max(score for score, _ in scored)
        top = tuple(item for score, item in scored if score == best)
        if len(top) == 1:
            return MatchResult(MatchStatus.MATCHED, item=top[0])
        return MatchResult(MatchStatus.AMBIGUOUS, candidates=top)
