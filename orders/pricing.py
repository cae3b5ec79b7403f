"""
Bundle pricing.

Greedy: take the largest bundle that fits as many whole times as possible,
move to the next smaller one, and price whatever is left at the unit price of
the smallest bundle. With no usable bundle the fallback unit price applies to
the whole quantity. Totals are rounded half-up to whole currency units.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

from .models import PriceOption


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _coerce(bundle: PriceOption | dict[str, Any]) -> PriceOption:
    if isinstance(bundle, PriceOption):
        return bundle
    return PriceOption.from_dict(bundle)


def usable_bundles(bundles: Iterable[PriceOption | dict[str, Any]] | None) -> list[PriceOption]:
    """Valid bundles, largest quantity first (cheaper first on ties)."""
    valid = [b for b in (_coerce(b) for b in bundles or []) if b.is_valid]
    return sorted(valid, key=lambda b: (-b.quantity, b.price))


def smallest_bundle(bundles: list[PriceOption]) -> PriceOption | None:
    if not bundles:
        return None
    return min(bundles, key=lambda b: (b.quantity, b.price))


def unit_price_basis(
    bundles: Iterable[PriceOption | dict[str, Any]] | None,
    fallback_unit_price: float = 0,
) -> float:
    """Per-unit price used for any quantity the bundles cannot cover."""
    smallest = smallest_bundle(usable_bundles(bundles))
    if smallest is None:
        return max(0.0, float(fallback_unit_price or 0))
    return smallest.unit_price


def calculate_optimal_price(
    quantity: int,
    bundles: Iterable[PriceOption | dict[str, Any]] | None,
    fallback_unit_price: float = 0,
) -> int:
    if not isinstance(quantity, int) or quantity <= 0:
        return 0

    ordered = usable_bundles(bundles)
    if not ordered:
        return round_half_up(max(0.0, float(fallback_unit_price or 0)) * quantity)

    remaining = quantity
    total = 0.0
    for bundle in ordered:
        if bundle.quantity > remaining:
            continue
        count = remaining // bundle.quantity
        total += count * bundle.price
        remaining -= count * bundle.quantity
        if remaining == 0:
            break

    if remaining > 0:
        total += remaining * smallest_bundle(ordered).unit_price

    return max(0, round_half_up(total))
