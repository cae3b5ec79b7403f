"""
Tests for orders/catalog.py - catalogs parsed from post bodies.
"""

from band.models import Post
from orders.catalog import (
    base_price_for,
    catalog_from_post_body,
    content_has_price_indicator,
    extract_numbered_products,
    extract_price_options,
    product_id_for,
)
from orders.models import PriceOption

MULTI_ITEM_BODY = """[공지] 오늘의 상품
1번. 씨앗젓갈 1통 👉 9,500원
2번. 비빔낙지 9,500원
   2팩 → 18,000원
내일 오후 수령입니다"""

SINGLE_ITEM_BODY = """국산 깐마늘
1팩 5,000원
3팩 13,000원"""


def post(body, title=None):
    return Post(post_id="p1", band_id="b1", url="https://www.band.us/band/b1/post/p1", body=body, title=title)


class TestPriceIndicator:
    def test_keyword_and_price(self):
        assert content_has_price_indicator("오늘 특가 9,900원")
        assert content_has_price_indicator("가격 15000")

    def test_number_too_small(self):
        assert not content_has_price_indicator("주문 2개")

    def test_no_keyword(self):
        assert not content_has_price_indicator("오늘 날씨 25도, 습도 60")
        assert not content_has_price_indicator("")


class TestExtractPriceOptions:
    def test_bundle_lines(self):
        options = extract_price_options("1팩 5,000원\n3팩 → 13,000원")
        assert [(o.quantity, o.price) for o in options] == [(1, 5000), (3, 13000)]

    def test_plain_price_line_is_single_unit(self):
        options = extract_price_options("비빔낙지 9,500원")
        assert [(o.quantity, o.price) for o in options] == [(1, 9500)]

    def test_duplicates_collapsed(self):
        options = extract_price_options("2팩 18,000원\n2팩 18,000원")
        assert len(options) == 1


class TestBasePrice:
    def test_single_unit_preferred(self):
        assert base_price_for([PriceOption(3, 13000), PriceOption(1, 5000)]) == 5000

    def test_cheapest_unit_price_otherwise(self):
        assert base_price_for([PriceOption(3, 13000)]) == 4333

    def test_no_options(self):
        assert base_price_for([]) == 0


class TestNumberedProducts:
    def test_numbered_lines_with_following_bundle_lines(self):
        products = extract_numbered_products(MULTI_ITEM_BODY)
        assert [p["item_number"] for p in products] == [1, 2]
        assert products[0]["title"] == "씨앗젓갈 1통"
        assert products[0]["price"] == 9500
        assert "2팩 → 18,000원" in products[1]["block"]

    def test_bundle_lines_are_not_products(self):
        assert extract_numbered_products(SINGLE_ITEM_BODY) == []


class TestCatalogFromPostBody:
    def test_multi_item_post(self):
        catalog = catalog_from_post_body("b1", post(MULTI_ITEM_BODY))
        assert sorted(catalog) == [1, 2]
        assert catalog[1].product_id == product_id_for("b1", "p1", 1) == "prod_b1_p1_item1"
        assert catalog[1].base_price == 9500
        assert [(o.quantity, o.price) for o in catalog[2].price_options] == [(1, 9500), (2, 18000)]

    def test_single_item_post(self):
        catalog = catalog_from_post_body("b1", post(SINGLE_ITEM_BODY, title="국산 깐마늘"))
        assert list(catalog) == [1]
        assert catalog[1].title == "국산 깐마늘"
        assert catalog[1].base_price == 5000
        assert len(catalog[1].price_options) == 2

    def test_post_without_prices(self):
        assert catalog_from_post_body("b1", post("다음 주 공지사항입니다")) == {}
