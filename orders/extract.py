"""
Comment text -> order candidates -> catalog-resolved candidates.

    "2번 3개요"  -> item 2, quantity 3
    "1번 2개, 3번 1개" -> item 1 x2, item 3 x1
    "3개요"      -> item 1, quantity 3, ambiguous (no item marker)
"""

from __future__ import annotations

import re

from .keywords import has_closing_keyword
from .models import Catalog, OrderCandidate

# A number followed by 번; words like 이번, 한번 or 번호 are not markers
ITEM_MARKER_RE = re.compile(r"\d+\s*번")

# <item number> 번 ... <quantity>; anything but digits/newlines may sit between
EXPLICIT_ORDER_RE = re.compile(r"(\d+)\s*번(?:[^\d\n]*?)(\d+)")
BARE_NUMBER_RE = re.compile(r"\d+")

REASON_NO_ITEM_MARKER = "no_item_marker"
REASON_ITEM_SUBSTITUTED = "item_substituted"


def _normalize(text: str) -> str:
    return re.sub(r"[ \t\r\f\v]+", " ", text).strip()


def extract_order_candidates(text: str | None) -> list[OrderCandidate]:
    """Parse candidates from text alone, without looking at a catalog."""
    if not text:
        return []
    text = _normalize(text)
    if has_closing_keyword(text):
        return []

    candidates = []
    for m in EXPLICIT_ORDER_RE.finditer(text):
        item_number, quantity = int(m.group(1)), int(m.group(2))
        if item_number > 0 and quantity > 0:
            candidates.append(OrderCandidate(item_number, quantity, False))

    if candidates or ITEM_MARKER_RE.search(text):
        return candidates

    # No item marker at all: every bare number is a quantity against item 1
    for m in BARE_NUMBER_RE.finditer(text):
        quantity = int(m.group(0))
        if quantity > 0:
            candidates.append(OrderCandidate(1, quantity, True, reason=REASON_NO_ITEM_MARKER))
    return candidates


def resolve_candidate(candidate: OrderCandidate, catalog: Catalog | None) -> OrderCandidate | None:
    """
    Map a candidate onto the catalog.

    Unknown item numbers fall back to item 1, then to the only entry of a
    single-item catalog; otherwise the candidate is dropped. Any substitution
    marks the result ambiguous.
    """
    if not catalog:
        return None
    if candidate.item_number in catalog:
        return candidate
    if 1 in catalog:
        target = 1
    elif len(catalog) == 1:
        target = next(iter(catalog))
    else:
        return None
    return OrderCandidate(target, candidate.quantity, True, reason=REASON_ITEM_SUBSTITUTED)


def extract_order(text: str | None, catalog: Catalog | None) -> list[OrderCandidate]:
    resolved = []
    for candidate in extract_order_candidates(text):
        result = resolve_candidate(candidate, catalog)
        if result is not None:
            resolved.append(result)
    return resolved
