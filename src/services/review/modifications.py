"""Pure transformations of source line items into a new item set."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Literal

from schemas.documents import LineItem, SourceDocument
from schemas.intents import CloneModifications
from schemas.review import ModificationPreview
from services.review.line_items import derive_total, make_item, seed_item


# Loose phrasing fallback: "remove the work charge" matches "Installation work".
CATEGORY_WORDS: tuple[str, ...] = (
    "service",
    "labor",
    "material",
    "fee",
    "cost",
    "charge",
    "work",
    "install",
    "delivery",
)


MatchTier = Literal["substring", "word_prefix", "category"]


def keyword_match_tier(description: str, keyword: str) -> MatchTier | None:
    """Return the first tier at which ``keyword`` matches ``description``.

    Tiers, cheapest and most precise first:
      1. substring containment;
      2. word prefix in either direction (keyword words longer than 2 chars);
      3. a category word present in both strings.
    """
    desc = description.lower()
    key = keyword.lower().strip()
    if not key:
        return None

    if key in desc:
        return "substring"

    key_words = [w for w in key.split() if len(w) > 2]
    desc_words = desc.split()
    for kw in key_words:
        for dw in desc_words:
            if dw.startswith(kw) or kw.startswith(dw):
                return "word_prefix"

    if any(cat in key and cat in desc for cat in CATEGORY_WORDS):
        return "category"
    return None


def matches_keyword(description: str, keyword: str) -> bool:
    """Case-insensitive fuzzy match of a spoken keyword against a description."""
    return keyword_match_tier(description, keyword) is not None


def _subtotal(items: Iterable[LineItem]) -> float:
    return round(sum(item.total for item in items), 2)


def apply_clone(
    source: SourceDocument, modifications: CloneModifications | None
) -> ModificationPreview:
    mods = modifications or CloneModifications()
    items = [seed_item(raw) for raw in source.line_items]

    for update in mods.update_items:
        if not update.match:
            continue
        for idx, item in enumerate(items):
            if not matches_keyword(item.description, update.match):
                continue
            quantity = item.quantity
            if update.new_quantity is not None:
                quantity = update.new_quantity
            rate = update.new_rate if update.new_rate is not None else item.rate
            items[idx] = item.model_copy(
                update={
                    "description": update.new_description or item.description,
                    "quantity": quantity,
                    "rate": rate,
                    "total": derive_total(quantity, rate),
                    "total_overridden": False,
                }
            )

    if mods.new_amount is not None and not mods.update_items and items:
        first = items[0]
        items[0] = first.model_copy(
            update={
                "rate": mods.new_amount,
                "total": derive_total(first.quantity, mods.new_amount),
                "total_overridden": False,
            }
        )

    if mods.remove_items:
        items = [
            item
            for item in items
            if not any(
                matches_keyword(item.description, kw) for kw in mods.remove_items
            )
        ]

    for addition in mods.add_items:
        items.append(
            make_item(
                addition.description,
                quantity=addition.quantity,
                unit=addition.unit,
                rate=addition.rate,
            )
        )

    subtotal = _subtotal(items)
    total = mods.new_total if mods.new_total is not None else subtotal
    return ModificationPreview(items=items, subtotal=subtotal, total=total)


def combine_for_merge(selections: Sequence[SourceDocument]) -> ModificationPreview:
    """Concatenate the selected documents' items in selection order.

    Identical descriptions from different sources stay separate lines.
    """
    items = [seed_item(raw) for doc in selections for raw in doc.line_items]
    subtotal = _subtotal(items)
    return ModificationPreview(items=items, subtotal=subtotal, total=subtotal)
