"""
Tests for band/cookies.py - per-account cookie jar persistence.
"""

import json
import time

from band.cookies import (
    FileSessionStore,
    MemorySessionStore,
    drop_expired,
    filter_platform_cookies,
    inspect_session,
    missing_essential,
)
from band.models import Session

BAND_COOKIES = [
    {"name": "band_session", "value": "abc", "domain": ".band.us", "path": "/", "expires": -1},
    {"name": "auth_token", "value": "t", "domain": "auth.band.us", "path": "/", "expires": -1},
]
OTHER_COOKIES = [
    {"name": "NID_AUT", "value": "n", "domain": ".naver.com", "path": "/", "expires": -1},
]


class TestCookieFilters:
    def test_only_platform_domains_kept(self):
        kept = filter_platform_cookies(BAND_COOKIES + OTHER_COOKIES)
        assert [c["name"] for c in kept] == ["band_session", "auth_token"]

    def test_lookalike_domains_dropped(self):
        cookies = [
            {"name": "a", "domain": ".band.us"},
            {"name": "b", "domain": "band.us"},
            {"name": "c", "domain": "auth.band.us"},
            {"name": "d", "domain": "band.us.example.com"},
            {"name": "e", "domain": "notband.us"},
        ]
        assert [c["name"] for c in filter_platform_cookies(cookies, ("band.us",))] == ["a", "b", "c"]

    def test_drop_expired(self):
        cookies = [
            {"name": "old", "expires": 100},
            {"name": "session", "expires": -1},
            {"name": "future", "expires": 5000},
        ]
        assert [c["name"] for c in drop_expired(cookies, now_ts=1000)] == ["session", "future"]

    def test_missing_essential(self):
        assert missing_essential(BAND_COOKIES) == []
        assert missing_essential(BAND_COOKIES[1:]) == ["band_session"]


class TestFileSessionStore:
    def test_put_then_get(self, tmp_path):
        store = FileSessionStore(tmp_path)
        captured = time.time()
        store.put("shop1", Session("shop1", BAND_COOKIES + OTHER_COOKIES, captured, True))

        raw = json.loads((tmp_path / "shop1.json").read_text(encoding="utf-8"))
        assert set(raw) == {"cookies", "timestamp"}
        assert raw["timestamp"] == int(captured * 1000)
        assert len(raw["cookies"]) == 2

        session = store.get("shop1")
        assert session.account_id == "shop1"
        assert [c["name"] for c in session.cookies] == ["band_session", "auth_token"]
        assert abs(session.captured_at - captured) < 0.01
        assert session.valid is False

    def test_missing_account(self, tmp_path):
        assert FileSessionStore(tmp_path).get("nobody") is None

    def test_legacy_list_file(self, tmp_path):
        (tmp_path / "shop1.json").write_text(json.dumps(BAND_COOKIES), encoding="utf-8")
        session = FileSessionStore(tmp_path).get("shop1")
        assert len(session.cookies) == 2
        assert session.captured_at > 0

    def test_unreadable_file(self, tmp_path):
        (tmp_path / "shop1.json").write_text("{not json", encoding="utf-8")
        assert FileSessionStore(tmp_path).get("shop1") is None

    def test_missing_essential_cookie_still_saved(self, tmp_path, caplog):
        store = FileSessionStore(tmp_path)
        store.put("shop1", Session("shop1", BAND_COOKIES[1:], time.time(), True))
        assert store.get("shop1") is not None
        assert "band_session" in caplog.text

    def test_delete(self, tmp_path):
        store = FileSessionStore(tmp_path)
        store.put("shop1", Session("shop1", BAND_COOKIES, time.time(), True))
        assert store.delete("shop1") is True
        assert store.get("shop1") is None
        assert store.delete("shop1") is False

    def test_account_id_made_file_safe(self, tmp_path):
        store = FileSessionStore(tmp_path)
        assert store.path_for("shop/../1").parent == tmp_path


class TestInspectSession:
    def test_missing(self, tmp_path):
        status = inspect_session(FileSessionStore(tmp_path), "shop1", 3600)
        assert not status.exists
        assert status.warning == "cookie_file_missing"

    def test_fresh(self, tmp_path):
        store = FileSessionStore(tmp_path)
        store.put("shop1", Session("shop1", BAND_COOKIES, time.time(), True))
        status = inspect_session(store, "shop1", 3600)
        assert status.exists and not status.stale
        assert status.cookie_count == 2
        assert status.warning is None

    def test_stale(self, tmp_path):
        store = FileSessionStore(tmp_path)
        store.put("shop1", Session("shop1", BAND_COOKIES, time.time() - 7200, True))
        status = inspect_session(store, "shop1", 3600)
        assert status.stale
        assert status.warning == "cookie_stale"


def test_memory_store_filters_domains():
    store = MemorySessionStore()
    store.put("shop1", Session("shop1", BAND_COOKIES + OTHER_COOKIES, time.time(), True))
    assert len(store.get("shop1").cookies) == 2
    assert store.delete("shop1")
    assert store.get("shop1") is None
