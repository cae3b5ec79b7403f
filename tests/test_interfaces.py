"""
Tests for the file-backed collaborators in orchestrate/interfaces.py.
"""

import json

import pytest
import yaml

from band.errors import ConfigError
from band.models import Comment, Post
from orchestrate.interfaces import (
    BodyCatalogLookup,
    FileAccountRegistry,
    JsonResultSink,
    StaticAccountRegistry,
    StaticCatalogLookup,
)
from orchestrate.presenter import merge_by_key, post_json_path
from orchestrate.config import AccountConfig
from orders import ExtractedOrder


POST = Post("100", "b1", "https://www.band.us/band/b1/post/100", author_name="바다상회",
            body="1번 씨앗젓갈 9,500원\n2번 명란젓 12,000원")


def order(comment_id, quantity):
    return ExtractedOrder(order_id=f"order_100_{comment_id}", post_id="100", comment_id=comment_id,
                          item_number=1, product_id="b1_100_item1", quantity=quantity,
                          unit_price_basis=9500, total_amount=9500 * quantity)


class TestJsonResultSink:
    def test_upserts_merge_into_one_file(self, tmp_path):
        sink = JsonResultSink(tmp_path)
        sink.upsert_post("shop1", POST)
        sink.upsert_comments("shop1", POST, [Comment("100_c1", "100", "김고객", "1번 1개")])
        sink.upsert_comments("shop1", POST, [
            Comment("100_c1", "100", "김고객", "1번 2개"),
            Comment("100_c2", "100", "이고객", "1번 1개"),
        ])
        sink.upsert_orders("shop1", POST, [order("c1", 2)])

        record = json.loads(post_json_path(tmp_path, "b1", "100").read_text(encoding="utf-8"))
        assert record["account_id"] == "shop1"
        assert record["post"]["author_name"] == "바다상회"
        assert [c["body"] for c in record["comments"]] == ["1번 2개", "1번 1개"]
        assert [o["order_id"] for o in record["orders"]] == ["order_100_c1"]

    def test_unreadable_file_is_rewritten(self, tmp_path):
        path = post_json_path(tmp_path, "b1", "100")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        JsonResultSink(tmp_path).upsert_post("shop1", POST)
        assert json.loads(path.read_text(encoding="utf-8"))["post"]["post_id"] == "100"


def test_merge_by_key_keeps_first_seen_order():
    merged = merge_by_key([{"id": 1, "v": "a"}, {"id": 2, "v": "b"}], [{"id": 2, "v": "B"}, {"id": 3, "v": "c"}], "id")
    assert merged == [{"id": 1, "v": "a"}, {"id": 2, "v": "B"}, {"id": 3, "v": "c"}]


class TestAccountRegistries:
    def test_static_registry(self):
        registry = StaticAccountRegistry([AccountConfig("shop1", "b1")])
        account = registry.set_automation("shop1", True, 15)
        assert (account.auto_crawl, account.crawl_interval) == (True, 15)
        with pytest.raises(ConfigError):
            registry.set_automation("nobody", True)
        with pytest.raises(ConfigError):
            registry.set_automation("shop1", True, 0)

    def test_file_registry_writes_back(self, tmp_path):
        path = tmp_path / "accounts.yaml"
        path.write_text(yaml.safe_dump({"accounts": [
            {"account_id": "shop1", "band_id": "b1", "password_env": "SHOP1_PW"},
            {"account_id": "shop2", "band_id": "b2"},
        ]}), encoding="utf-8")

        registry = FileAccountRegistry(path)
        registry.set_automation("shop1", True, 20)

        saved = yaml.safe_load(path.read_text(encoding="utf-8"))["accounts"]
        assert saved[0]["auto_crawl"] is True
        assert saved[0]["crawl_interval"] == 20
        assert saved[0]["password_env"] == "SHOP1_PW"
        assert "auto_crawl" not in saved[1]

        fresh = FileAccountRegistry(path)
        assert [a.account_id for a in fresh.list_accounts() if a.auto_crawl] == ["shop1"]

    def test_file_registry_sees_edits(self, tmp_path):
        path = tmp_path / "accounts.json"
        path.write_text('[{"account_id": "shop1", "band_id": "b1"}]', encoding="utf-8")
        registry = FileAccountRegistry(path)
        path.write_text('[{"account_id": "shop1", "band_id": "b1"}, {"account_id": "shop2", "band_id": "b2"}]',
                        encoding="utf-8")
        assert [a.account_id for a in registry.list_accounts()] == ["shop1", "shop2"]


class TestCatalogLookups:
    def test_body_lookup(self):
        lookup = BodyCatalogLookup()
        lookup.observe_post(POST)
        catalog = lookup.get_catalog("100")
        assert sorted(catalog) == [1, 2]
        assert catalog[2].base_price == 12000
        assert lookup.get_catalog("999") == {}

    def test_body_lookup_forgets_processed_posts(self):
        lookup = BodyCatalogLookup()
        lookup.observe_post(POST)
        lookup.forget("100")
        lookup.forget("100")
        assert lookup.get_catalog("100") == {}
        assert lookup._catalogs == {}

    def test_static_lookup_from_yaml(self, tmp_path):
        path = tmp_path / "catalogs.yaml"
        path.write_text(
            "'100':\n"
            "  - item_number: 1\n"
            "    product_id: p1\n"
            "    base_price: 3000\n"
            "    price_options:\n"
            "      - {quantity: 1, price: 3000}\n"
            "      - {quantity: 3, price: 8000}\n",
            encoding="utf-8",
        )
        lookup = StaticCatalogLookup.from_file(path)
        entry = lookup.get_catalog("100")[1]
        assert entry.product_id == "p1"
        assert [o.quantity for o in entry.price_options] == [1, 3]
        lookup.observe_post(POST)
        assert lookup.get_catalog("100")[1] is entry
