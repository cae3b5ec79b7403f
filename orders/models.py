"""
Types for order extraction and pricing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

CONFIRMED = "confirmed"
NEEDS_REVIEW = "needs_review"


@dataclass
class PriceOption:
    """A (quantity, price) bundle for one catalog item."""
    quantity: int
    price: float
    description: str = ""

    @property
    def is_valid(self) -> bool:
        return isinstance(self.quantity, int) and self.quantity > 0 and self.price >= 0

    @property
    def unit_price(self) -> float:
        return self.price / self.quantity

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceOption":
        return cls(
            quantity=int(data.get("quantity") or 0),
            price=float(data.get("price") or 0),
            description=str(data.get("description") or ""),
        )


@dataclass
class CatalogEntry:
    item_number: int
    product_id: str
    base_price: float = 0
    price_options: list[PriceOption] = field(default_factory=list)
    title: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        return cls(
            item_number=int(data["item_number"]),
            product_id=str(data["product_id"]),
            base_price=float(data.get("base_price") or 0),
            price_options=[PriceOption.from_dict(o) for o in data.get("price_options") or []],
            title=data.get("title"),
        )

    def as_dict(self) -> dict:
        return asdict(self)


# itemNumber -> entry. Empty means "not a product post".
Catalog = Dict[int, CatalogEntry]


@dataclass(frozen=True)
class OrderCandidate:
    item_number: int
    quantity: int
    is_ambiguous: bool = False
    reason: str | None = field(default=None, compare=False)


@dataclass
class ExtractedOrder:
    order_id: str
    post_id: str
    comment_id: str
    item_number: int
    product_id: str
    quantity: int
    unit_price_basis: float
    total_amount: int
    status: str = CONFIRMED
    reason: str | None = None
    author: str | None = None
    comment_body: str | None = None
    ordered_at: str | None = None

    @property
    def needs_review(self) -> bool:
        return self.status == NEEDS_REVIEW

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class PostOrderResult:
    """Outcome of running every comment on one post through the engine."""
    post_id: str
    orders: list[ExtractedOrder] = field(default_factory=list)
    closed_by_comment_id: str | None = None
    skipped_after_close: int = 0
    skipped_excluded: int = 0
    skipped_cancel: int = 0
    unmatched: int = 0
