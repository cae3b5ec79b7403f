"""
Catalog parsing from post body text.

Sellers write their catalog inline, e.g.

    1번. 씨앗젓갈 1통 👉 9,500원
    2번. 비빔낙지 9,500원
       2팩 → 18,000원

or, for a single-product post,

    1팩 5,000원
    3팩 13,000원

Numbered lines become one CatalogEntry each; bundle lines under a numbered
line belong to that item. A body without a price indicator is not a product
post and yields an empty catalog.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .models import Catalog, CatalogEntry, PriceOption
from .pricing import round_half_up

if TYPE_CHECKING:
    from band.models import Post

log = logging.getLogger(__name__)

UNIT_WORDS = ("팩", "개", "세트", "박스")

_PRICE = r"(\d{1,3}(?:,\d{3})+|\d+)"
PRICE_RE = re.compile(_PRICE + r"\s*원")
TRAILING_PRICE_RE = re.compile(r"(\d{1,3}(?:,\d{3})+|\d{3,})\s*$")
BUNDLE_RE = re.compile(r"(\d+)\s*(" + "|".join(UNIT_WORDS) + r")\s*(?:[→=:]{1,2}|->)?\s*" + _PRICE + r"\s*원")
NUMBERED_LINE_RE = re.compile(r"^\s*(\d{1,2})(?:\s*번|\s*[.):]|\s+)[\s.:👉)]*(.+)$")
TITLE_SPLIT_RE = re.compile(r"👉|->|→|:|" + _PRICE + r"\s*원")

PRICE_KEYWORD_RE = re.compile(r"수령|픽업|도착|예약|주문|특가|정상가|할인가|가격|원|₩")
PRICE_NUMBER_RE = re.compile(r"(?:[1-9]\d{2,}|[1-9]\d{0,2}(?:,\d{3})+(?!\d))")

DESCRIPTION_CHARS = 50


def _to_int(text: str) -> int:
    return int(text.replace(",", ""))


def _describe(line: str) -> str:
    line = line.strip()
    if len(line) > DESCRIPTION_CHARS:
        return line[:DESCRIPTION_CHARS - 3] + "..."
    return line


def product_id_for(band_id: str, post_id: str, item_number: int) -> str:
    return f"prod_{band_id}_{post_id}_item{item_number}"


def content_has_price_indicator(content: str | None) -> bool:
    """True when the text has a price-ish keyword and a number of at least 100."""
    if not content or not PRICE_KEYWORD_RE.search(content):
        return False
    return any(_to_int(n) >= 100 for n in PRICE_NUMBER_RE.findall(content))


def extract_price_options(content: str | None) -> list[PriceOption]:
    """
    Bundle options, line by line.

    "3개 → 13,000원" gives (3, 13000). A line with a plain price and no
    bundle gives (1, lowest price on the line).
    """
    options: list[PriceOption] = []
    if not content:
        return options

    seen = set()
    for line in content.splitlines():
        bundles = []
        for m in BUNDLE_RE.finditer(line):
            quantity, price = int(m.group(1)), _to_int(m.group(3))
            if quantity > 0 and price > 0:
                bundles.append((quantity, price))

        if not bundles:
            prices = [_to_int(p) for p in PRICE_RE.findall(line)]
            prices = [p for p in prices if p > 0]
            if prices:
                bundles.append((1, min(prices)))

        for quantity, price in bundles:
            if (quantity, price) in seen:
                continue
            seen.add((quantity, price))
            options.append(PriceOption(quantity=quantity, price=price, description=_describe(line)))
    return options


def base_price_for(options: list[PriceOption]) -> float:
    """Single-unit price if offered, else the cheapest per-unit price."""
    valid = [o for o in options if o.is_valid]
    if not valid:
        return 0
    singles = [o.price for o in valid if o.quantity == 1]
    if singles:
        return min(singles)
    return round_half_up(min(o.unit_price for o in valid))


def _line_price(text: str) -> int | None:
    prices = PRICE_RE.findall(text)
    if prices:
        return _to_int(prices[-1])
    m = TRAILING_PRICE_RE.search(text)
    if m:
        return _to_int(m.group(1))
    return None


def extract_numbered_products(content: str | None) -> list[dict]:
    """
    Numbered product lines with the text that follows each one.

    Returns ``[{item_number, title, price, description, block}]`` where
    ``block`` is the numbered line plus any unnumbered lines up to the next
    numbered one.
    """
    products: list[dict] = []
    if not content:
        return products

    current = None
    for line in content.splitlines():
        m = NUMBERED_LINE_RE.match(line)
        rest = m.group(2).strip() if m else ""
        if m and not rest.startswith(UNIT_WORDS):
            price = _line_price(rest)
            title = TITLE_SPLIT_RE.split(rest)[0].strip() or rest
            current = {
                "item_number": int(m.group(1)),
                "title": title,
                "price": price,
                "description": _describe(line),
                "block": [line],
            }
            products.append(current)
        elif current is not None:
            current["block"].append(line)

    result = []
    seen = set()
    for product in products:
        if product["item_number"] in seen:
            continue
        block_text = "\n".join(product["block"])
        if product["price"] is None:
            product["price"] = _line_price(block_text)
        if not product["price"] or product["item_number"] <= 0:
            log.debug("numbered line without price: %s", product["description"])
            continue
        seen.add(product["item_number"])
        product["block"] = block_text
        result.append(product)
    return result


def catalog_from_post_body(band_id: str, post: "Post") -> Catalog:
    body = post.body or ""
    if not content_has_price_indicator(body):
        return {}

    catalog: Catalog = {}
    for product in extract_numbered_products(body):
        n = product["item_number"]
        options = extract_price_options(product["block"])
        if not options:
            options = [PriceOption(quantity=1, price=product["price"], description=product["description"])]
        catalog[n] = CatalogEntry(
            item_number=n,
            product_id=product_id_for(band_id, post.post_id, n),
            base_price=base_price_for(options),
            price_options=options,
            title=product["title"],
        )

    if catalog:
        return catalog

    options = extract_price_options(body)
    if not options:
        return {}
    first_line = next((l.strip() for l in body.splitlines() if l.strip()), "")
    return {
        1: CatalogEntry(
            item_number=1,
            product_id=product_id_for(band_id, post.post_id, 1),
            base_price=base_price_for(options),
            price_options=options,
            title=post.title or first_line[:DESCRIPTION_CHARS] or None,
        )
    }
