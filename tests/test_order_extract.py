"""
Tests for orders/extract.py, orders/keywords.py and orders/engine.py.
"""

import pytest

from band.models import Comment
from orders.engine import build_order, order_id_for, process_post_comments
from orders.extract import (
    REASON_ITEM_SUBSTITUTED,
    REASON_NO_ITEM_MARKER,
    extract_order,
    extract_order_candidates,
    resolve_candidate,
)
from orders.keywords import has_cancel_keyword, has_closing_keyword
from orders.models import CONFIRMED, NEEDS_REVIEW, CatalogEntry, OrderCandidate, PriceOption


def entry(n, price=5000, options=None):
    return CatalogEntry(
        item_number=n,
        product_id=f"prod_b1_p1_item{n}",
        base_price=price,
        price_options=options if options is not None else [PriceOption(1, price)],
    )


def comment(index, body, author="고객"):
    return Comment(comment_id=f"p1_comment_{index}", post_id="p1", author=author, body=body,
                   commented_at=f"2025-03-14T10:{index:02d}:00+09:00")


TWO_ITEMS = {1: entry(1, 5000), 2: entry(2, 9500)}


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

class TestExtractOrderCandidates:
    def test_explicit_item_and_quantity(self):
        assert extract_order_candidates("2번 3개요") == [OrderCandidate(2, 3, False)]

    def test_several_explicit_orders(self):
        assert extract_order_candidates("1번 2개, 3번 1개 주세요") == [
            OrderCandidate(1, 2, False),
            OrderCandidate(3, 1, False),
        ]

    def test_text_between_marker_and_quantity(self):
        assert extract_order_candidates("2번 비빔낙지 4팩") == [OrderCandidate(2, 4, False)]

    def test_bare_number_is_ambiguous_quantity_of_item_one(self):
        candidates = extract_order_candidates("3개요")
        assert candidates == [OrderCandidate(1, 3, True)]
        assert candidates[0].reason == REASON_NO_ITEM_MARKER

    def test_marker_without_quantity_disables_fallback(self):
        assert extract_order_candidates("2번 주세요") == []

    @pytest.mark.parametrize("text,quantity", [
        ("이번에도 3개 부탁드려요", 3),
        ("한번에 2개 주세요", 2),
        ("번호 몰라서 4개요", 4),
    ])
    def test_words_containing_beon_are_not_item_markers(self, text, quantity):
        assert extract_order_candidates(text) == [OrderCandidate(1, quantity, True)]
        assert extract_order(text, TWO_ITEMS) == [OrderCandidate(1, quantity, True)]

    def test_closing_text_yields_nothing(self):
        assert extract_order_candidates("마감합니다") == []

    def test_empty(self):
        assert extract_order_candidates("") == []
        assert extract_order_candidates(None) == []
        assert extract_order_candidates("감사합니다") == []

    def test_zero_quantity_dropped(self):
        assert extract_order_candidates("1번 0개") == []


class TestResolveCandidate:
    def test_known_item_unchanged(self):
        c = OrderCandidate(2, 3, False)
        assert resolve_candidate(c, TWO_ITEMS) is c

    def test_unknown_item_falls_back_to_item_one(self):
        resolved = resolve_candidate(OrderCandidate(7, 2, False), TWO_ITEMS)
        assert resolved == OrderCandidate(1, 2, True)
        assert resolved.reason == REASON_ITEM_SUBSTITUTED

    def test_unknown_item_falls_back_to_single_entry(self):
        resolved = resolve_candidate(OrderCandidate(3, 1, False), {5: entry(5)})
        assert resolved == OrderCandidate(5, 1, True)

    def test_unknown_item_dropped_when_no_fallback(self):
        assert resolve_candidate(OrderCandidate(9, 1, False), {2: entry(2), 3: entry(3)}) is None

    def test_empty_catalog(self):
        assert resolve_candidate(OrderCandidate(1, 1, False), {}) is None


class TestExtractOrder:
    def test_explicit_order(self):
        assert extract_order("2번 3개요", TWO_ITEMS) == [OrderCandidate(2, 3, False)]

    def test_no_item_marker(self):
        assert extract_order("3개요", {1: entry(1)}) == [OrderCandidate(1, 3, True)]

    def test_closing(self):
        assert extract_order("마감합니다", TWO_ITEMS) == []


class TestKeywords:
    def test_closing_keywords(self):
        assert has_closing_keyword("오늘 주문마감 합니다")
        assert has_closing_keyword("SOLD OUT")
        assert not has_closing_keyword("2번 1개요")
        assert not has_closing_keyword(None)

    def test_cancel_keywords(self):
        assert has_cancel_keyword("1번 주문 취소할게요")
        assert has_cancel_keyword("Cancel please")
        assert not has_cancel_keyword("1번 2개")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TestBuildOrder:
    def test_confirmed_order_is_priced(self):
        catalog = {1: entry(1, 5000, [PriceOption(1, 5000), PriceOption(3, 13000)])}
        order = build_order(comment(0, "1번 4개요"), catalog)
        assert order.order_id == order_id_for("p1_comment_0") == "order_p1_comment_0"
        assert order.product_id == "prod_b1_p1_item1"
        assert order.quantity == 4
        assert order.total_amount == 18000
        assert order.unit_price_basis == 5000
        assert order.status == CONFIRMED
        assert order.reason is None
        assert order.ordered_at == "2025-03-14T10:00:00+09:00"

    def test_ambiguous_order_needs_review(self):
        order = build_order(comment(1, "3개요"), {1: entry(1, 5000)})
        assert order.status == NEEDS_REVIEW
        assert order.needs_review
        assert order.reason == REASON_NO_ITEM_MARKER
        assert order.total_amount == 15000

    def test_only_first_candidate_counts(self):
        order = build_order(comment(2, "2번 1개, 1번 5개"), TWO_ITEMS)
        assert (order.item_number, order.quantity) == (2, 1)

    def test_no_order_without_catalog(self):
        assert build_order(comment(3, "1번 1개"), {}) is None

    def test_cancel_comment(self):
        assert build_order(comment(4, "1번 1개 취소요"), TWO_ITEMS) is None


class TestProcessPostComments:
    def test_closing_is_sticky_for_later_comments(self):
        comments = [
            comment(0, "1번 1개"),
            comment(1, "마감합니다"),
            comment(2, "2번 2개"),
            comment(3, "1번 3개"),
        ]
        result = process_post_comments("p1", comments, TWO_ITEMS)
        assert [o.comment_id for o in result.orders] == ["p1_comment_0"]
        assert result.closed_by_comment_id == "p1_comment_1"
        assert result.skipped_after_close == 2

    def test_cancel_is_not_sticky(self):
        comments = [comment(0, "1번 1개 취소"), comment(1, "2번 2개")]
        result = process_post_comments("p1", comments, TWO_ITEMS)
        assert [o.comment_id for o in result.orders] == ["p1_comment_1"]
        assert result.skipped_cancel == 1
        assert result.closed_by_comment_id is None

    def test_excluded_authors(self):
        comments = [comment(0, "1번 10개 재고 있어요", author="사장님"), comment(1, "1번 1개")]
        result = process_post_comments("p1", comments, TWO_ITEMS, excluded_authors=["사장님 "])
        assert [o.comment_id for o in result.orders] == ["p1_comment_1"]
        assert result.skipped_excluded == 1

    def test_seller_closing_comment_still_closes(self):
        comments = [comment(0, "완판 감사합니다", author="사장님"), comment(1, "1번 1개")]
        result = process_post_comments("p1", comments, TWO_ITEMS, excluded_authors=["사장님"])
        assert result.orders == []
        assert result.closed_by_comment_id == "p1_comment_0"

    def test_unmatched_comments_counted(self):
        result = process_post_comments("p1", [comment(0, "언제 도착하나요?")], TWO_ITEMS)
        assert result.orders == []
        assert result.unmatched == 1

    def test_empty_catalog_means_not_a_product_post(self):
        result = process_post_comments("p1", [comment(0, "1번 1개")], {})
        assert result.orders == []
        assert result.unmatched == 0
