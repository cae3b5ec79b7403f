"""
Order extraction engine.

Pure functions over comment text and a per-post catalog: no browser, no I/O.
"""

from .catalog import catalog_from_post_body, content_has_price_indicator, extract_price_options
from .engine import build_order, process_post_comments
from .extract import extract_order, extract_order_candidates, resolve_candidate
from .keywords import has_cancel_keyword, has_closing_keyword
from .models import (
    CONFIRMED,
    NEEDS_REVIEW,
    Catalog,
    CatalogEntry,
    ExtractedOrder,
    OrderCandidate,
    PostOrderResult,
    PriceOption,
)
from .pricing import calculate_optimal_price

__all__ = [
    "CONFIRMED",
    "NEEDS_REVIEW",
    "Catalog",
    "CatalogEntry",
    "ExtractedOrder",
    "OrderCandidate",
    "PostOrderResult",
    "PriceOption",
    "build_order",
    "calculate_optimal_price",
    "catalog_from_post_body",
    "content_has_price_indicator",
    "extract_order",
    "extract_order_candidates",
    "extract_price_options",
    "has_cancel_keyword",
    "has_closing_keyword",
    "process_post_comments",
    "resolve_candidate",
]
