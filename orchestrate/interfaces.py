"""
Collaborators consumed by the crawler and scheduler.

Each collaborator is a small Protocol with file-backed and in-memory
implementations. Persistence beyond these files belongs to whoever consumes
the result sink.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

import yaml

from band.errors import ConfigError
from band.models import Comment, Post, Session
from orders import Catalog, CatalogEntry, ExtractedOrder, catalog_from_post_body

from .config import AccountConfig, load_accounts, validate_interval
from .presenter import build_post_record, merge_by_key, post_json_path, write_post_json

log = logging.getLogger(__name__)


# =============================================================================
# PROTOCOLS
# =============================================================================

class SessionStore(Protocol):
    def get(self, account_id: str) -> Session | None: ...
    def put(self, account_id: str, session: Session) -> object: ...
    def delete(self, account_id: str) -> bool: ...


class AccountRegistry(Protocol):
    def list_accounts(self) -> list[AccountConfig]: ...
    def get_account(self, account_id: str) -> AccountConfig | None: ...
    def set_automation(self, account_id: str, enabled: bool, interval: int | None = None) -> AccountConfig: ...


class CatalogLookup(Protocol):
    def observe_post(self, post: Post) -> None: ...
    def get_catalog(self, post_id: str) -> Catalog: ...
    def forget(self, post_id: str) -> None: ...


class ResultSink(Protocol):
    def upsert_post(self, account_id: str, post: Post) -> None: ...
    def upsert_comments(self, account_id: str, post: Post, comments: list[Comment]) -> None: ...
    def upsert_orders(self, account_id: str, post: Post, orders: list[ExtractedOrder]) -> None: ...


# =============================================================================
# ACCOUNT REGISTRIES
# =============================================================================

class StaticAccountRegistry:
    """Accounts held in memory."""

    def __init__(self, accounts: list[AccountConfig] | None = None):
        self._accounts = {a.account_id: a for a in accounts or []}
        self._lock = threading.Lock()

    def list_accounts(self) -> list[AccountConfig]:
        with self._lock:
            return list(self._accounts.values())

    def get_account(self, account_id: str) -> AccountConfig | None:
        with self._lock:
            return self._accounts.get(account_id)

    def add(self, account: AccountConfig) -> None:
        with self._lock:
            self._accounts[account.account_id] = account

    def set_automation(self, account_id: str, enabled: bool, interval: int | None = None) -> AccountConfig:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise ConfigError(f"unknown account {account_id}")
            if interval is not None:
                account.crawl_interval = validate_interval(interval)
            account.auto_crawl = bool(enabled)
            return account


class FileAccountRegistry(StaticAccountRegistry):
    """
    Accounts file on disk (YAML or JSON). Re-read on every ``reload()``;
    automation changes are written back.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(load_accounts(str(self.path)))

    def reload(self) -> list[AccountConfig]:
        accounts = load_accounts(str(self.path))
        with self._lock:
            self._accounts = {a.account_id: a for a in accounts}
        return accounts

    def list_accounts(self) -> list[AccountConfig]:
        return self.reload()

    def set_automation(self, account_id: str, enabled: bool, interval: int | None = None) -> AccountConfig:
        account = super().set_automation(account_id, enabled, interval)
        self._write_back(account)
        return account

    def _write_back(self, account: AccountConfig) -> None:
        text = self.path.read_text(encoding="utf-8")
        is_yaml = self.path.suffix.lower() in (".yaml", ".yml")
        raw = (yaml.safe_load(text) if is_yaml else json.loads(text)) or []
        entries = raw.get("accounts", []) if isinstance(raw, dict) else raw
        for entry in entries:
            if str(entry.get("account_id") or entry.get("id")) == account.account_id:
                entry["auto_crawl"] = account.auto_crawl
                entry["crawl_interval"] = account.crawl_interval
        if is_yaml:
            self.path.write_text(yaml.safe_dump(raw, allow_unicode=True, sort_keys=False), encoding="utf-8")
        else:
            self.path.write_text(json.dumps(raw, indent=2, ensure_ascii=False), encoding="utf-8")


# =============================================================================
# CATALOG LOOKUPS
# =============================================================================

class BodyCatalogLookup:
    """Catalog parsed from each post's own body text."""

    def __init__(self):
        self._catalogs: dict[str, Catalog] = {}

    def observe_post(self, post: Post) -> None:
        self._catalogs[post.post_id] = catalog_from_post_body(post.band_id, post)

    def get_catalog(self, post_id: str) -> Catalog:
        return self._catalogs.get(post_id, {})

    def forget(self, post_id: str) -> None:
        self._catalogs.pop(post_id, None)


class StaticCatalogLookup:
    """Catalogs supplied up front, keyed by post id."""

    def __init__(self, catalogs: dict[str, Catalog] | None = None):
        self._catalogs = dict(catalogs or {})

    def observe_post(self, post: Post) -> None:
        pass

    def get_catalog(self, post_id: str) -> Catalog:
        return self._catalogs.get(post_id, {})

    def forget(self, post_id: str) -> None:
        pass

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticCatalogLookup":
        """JSON/YAML ``{post_id: [catalog entry, ...]}``."""
        p = Path(path)
        text = p.read_text(encoding="utf-8")
        raw = (yaml.safe_load(text) if p.suffix.lower() in (".yaml", ".yml") else json.loads(text)) or {}
        catalogs = {}
        for post_id, entries in raw.items():
            parsed = [CatalogEntry.from_dict(e) for e in entries or []]
            catalogs[str(post_id)] = {e.item_number: e for e in parsed}
        return cls(catalogs)


# =============================================================================
# RESULT SINKS
# =============================================================================

class MemoryResultSink:
    """Keeps the latest version of every record, keyed by natural id."""

    def __init__(self):
        self.posts: dict[str, Post] = {}
        self.comments: dict[str, Comment] = {}
        self.orders: dict[str, ExtractedOrder] = {}
        self._lock = threading.Lock()

    def upsert_post(self, account_id: str, post: Post) -> None:
        with self._lock:
            self.posts[post.post_id] = post

    def upsert_comments(self, account_id: str, post: Post, comments: list[Comment]) -> None:
        with self._lock:
            for comment in comments:
                self.comments[comment.comment_id] = comment

    def upsert_orders(self, account_id: str, post: Post, orders: list[ExtractedOrder]) -> None:
        with self._lock:
            for order in orders:
                self.orders[order.order_id] = order


class JsonResultSink:
    """One JSON file per post under ``output_dir/<band_id>/posts``."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)
        self._lock = threading.Lock()

    def _load(self, post: Post) -> dict | None:
        path = post_json_path(self.output_dir, post.band_id, post.post_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("rewriting unreadable %s: %s", path, e)
            return None

    def _upsert(self, account_id: str, post: Post, comments: list[Comment], orders: list[ExtractedOrder]) -> None:
        with self._lock:
            record = build_post_record(post, comments, orders, account_id=account_id)
            existing = self._load(post)
            if existing:
                record["comments"] = merge_by_key(existing.get("comments", []), record["comments"], "comment_id")
                record["orders"] = merge_by_key(existing.get("orders", []), record["orders"], "order_id")
            write_post_json(record, self.output_dir)

    def upsert_post(self, account_id: str, post: Post) -> None:
        self._upsert(account_id, post, [], [])

    def upsert_comments(self, account_id: str, post: Post, comments: list[Comment]) -> None:
        self._upsert(account_id, post, comments, [])

    def upsert_orders(self, account_id: str, post: Post, orders: list[ExtractedOrder]) -> None:
        self._upsert(account_id, post, [], orders)
