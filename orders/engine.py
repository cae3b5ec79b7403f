"""
Comments -> priced orders for one post.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from .extract import extract_order
from .keywords import has_cancel_keyword, has_closing_keyword
from .models import CONFIRMED, NEEDS_REVIEW, Catalog, ExtractedOrder, PostOrderResult
from .pricing import calculate_optimal_price, unit_price_basis

if TYPE_CHECKING:
    from band.models import Comment

log = logging.getLogger(__name__)


def order_id_for(comment_id: str) -> str:
    return f"order_{comment_id}"


def build_order(comment: "Comment", catalog: Catalog | None) -> ExtractedOrder | None:
    """
    Turn one comment into at most one order.

    Only the first resolvable candidate counts. Closing and cancel comments
    produce nothing; the sticky closing rule is applied by the caller.
    """
    body = comment.body or ""
    if not catalog or has_closing_keyword(body) or has_cancel_keyword(body):
        return None

    candidates = extract_order(body, catalog)
    if not candidates:
        return None

    first = candidates[0]
    entry = catalog[first.item_number]
    total = calculate_optimal_price(first.quantity, entry.price_options, entry.base_price)

    return ExtractedOrder(
        order_id=order_id_for(comment.comment_id),
        post_id=comment.post_id,
        comment_id=comment.comment_id,
        item_number=first.item_number,
        product_id=entry.product_id,
        quantity=first.quantity,
        unit_price_basis=unit_price_basis(entry.price_options, entry.base_price),
        total_amount=total,
        status=NEEDS_REVIEW if first.is_ambiguous else CONFIRMED,
        reason=first.reason if first.is_ambiguous else None,
        author=comment.author,
        comment_body=body,
        ordered_at=comment.commented_at or comment.timestamp,
    )


def process_post_comments(
    post_id: str,
    comments: Iterable["Comment"],
    catalog: Catalog | None,
    excluded_authors: Iterable[str] = (),
) -> PostOrderResult:
    """
    Run a post's comments, in display order, through the engine.

    The first closing comment stops order extraction for every comment after it.
    """
    result = PostOrderResult(post_id=post_id)
    if not catalog:
        return result

    excluded = {a.strip() for a in excluded_authors if a and a.strip()}
    closed = False

    for comment in comments:
        if closed:
            result.skipped_after_close += 1
            continue
        if has_closing_keyword(comment.body):
            closed = True
            result.closed_by_comment_id = comment.comment_id
            log.info("post %s closed by comment %s", post_id, comment.comment_id)
            continue
        if (comment.author or "").strip() in excluded:
            result.skipped_excluded += 1
            continue
        if has_cancel_keyword(comment.body):
            result.skipped_cancel += 1
            continue

        order = build_order(comment, catalog)
        if order is None:
            result.unmatched += 1
            continue
        result.orders.append(order)

    return result
