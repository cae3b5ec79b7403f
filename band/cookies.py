"""
Cookie jar persistence for BAND sessions.

Jars are stored one file per account as ``{"cookies": [...], "timestamp": ms}``.
Only platform-domain cookies are kept.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import COOKIE_DOMAINS, DEFAULT_COOKIES_DIR, ESSENTIAL_COOKIES
from .models import Session

log = logging.getLogger(__name__)


@dataclass
class CookieStatus:
    path: str | None
    exists: bool
    stale: bool
    captured_at: str | None
    cookie_count: int
    warning: str | None


def filter_platform_cookies(
    cookies: list[dict[str, Any]],
    domains: tuple[str, ...] = COOKIE_DOMAINS,
) -> list[dict[str, Any]]:
    """Keep cookies whose domain belongs to the platform."""
    kept = []
    for cookie in cookies:
        domain = (cookie.get("domain") or "").lstrip(".")
        if any(domain == d or domain.endswith("." + d) for d in domains):
            kept.append(cookie)
    return kept


def drop_expired(cookies: list[dict[str, Any]], now_ts: float | None = None) -> list[dict[str, Any]]:
    if now_ts is None:
        now_ts = datetime.now(timezone.utc).timestamp()
    filtered = []
    for cookie in cookies:
        exp = cookie.get("expires")
        if isinstance(exp, (int, float)) and exp > 0 and exp < now_ts:
            continue
        filtered.append(cookie)
    return filtered


def missing_essential(cookies: list[dict[str, Any]]) -> list[str]:
    names = {c.get("name") for c in cookies}
    return [name for name in ESSENTIAL_COOKIES if name not in names]


def _safe_name(account_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.@-]", "_", account_id) or "_"


class FileSessionStore:
    """Session store backed by JSON files under ``cookies_dir``."""

    def __init__(self, cookies_dir: Path | None = None):
        self.cookies_dir = Path(cookies_dir) if cookies_dir else DEFAULT_COOKIES_DIR
        self._lock = threading.Lock()

    def path_for(self, account_id: str) -> Path:
        return self.cookies_dir / f"{_safe_name(account_id)}.json"

    def get(self, account_id: str) -> Session | None:
        path = self.path_for(account_id)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("cookie file unreadable for %s: %s", account_id, e)
            return None

        # Older captures were a bare list of cookies
        if isinstance(raw, list):
            cookies, timestamp_ms = raw, path.stat().st_mtime * 1000
        elif isinstance(raw, dict) and isinstance(raw.get("cookies"), list):
            cookies, timestamp_ms = raw["cookies"], raw.get("timestamp") or 0
        else:
            log.warning("cookie file for %s has unexpected shape", account_id)
            return None

        return Session(
            account_id=account_id,
            cookies=drop_expired(cookies),
            captured_at=float(timestamp_ms) / 1000.0,
            valid=False,
        )

    def put(self, account_id: str, session: Session) -> Path:
        cookies = filter_platform_cookies(session.cookies)
        missing = missing_essential(cookies)
        if missing:
            log.warning("saving cookies for %s without %s", account_id, ", ".join(missing))

        payload = {"cookies": cookies, "timestamp": int(session.captured_at * 1000)}
        path = self.path_for(account_id)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(path)
        log.info("saved %d cookies for %s", len(cookies), account_id)
        return path

    def delete(self, account_id: str) -> bool:
        path = self.path_for(account_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        log.info("deleted cookie file for %s", account_id)
        return True


class MemorySessionStore:
    """In-process session store, mainly for tests and one-shot runs."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def get(self, account_id: str) -> Session | None:
        return self._sessions.get(account_id)

    def put(self, account_id: str, session: Session) -> None:
        self._sessions[account_id] = Session(
            account_id=account_id,
            cookies=filter_platform_cookies(session.cookies),
            captured_at=session.captured_at,
            valid=session.valid,
        )

    def delete(self, account_id: str) -> bool:
        return self._sessions.pop(account_id, None) is not None


def inspect_session(store: FileSessionStore, account_id: str, ttl_seconds: float) -> CookieStatus:
    path = store.path_for(account_id)
    if not path.exists():
        return CookieStatus(path=str(path), exists=False, stale=False, captured_at=None,
                            cookie_count=0, warning="cookie_file_missing")

    session = store.get(account_id)
    if session is None:
        return CookieStatus(path=str(path), exists=True, stale=False, captured_at=None,
                            cookie_count=0, warning="cookie_file_invalid")

    captured_at = datetime.fromtimestamp(session.captured_at, tz=timezone.utc).isoformat()
    stale = session.is_stale(ttl_seconds)
    warning = None
    if stale:
        warning = "cookie_stale"
    elif missing_essential(session.cookies):
        warning = "essential_cookie_missing"
    return CookieStatus(path=str(path), exists=True, stale=stale, captured_at=captured_at,
                        cookie_count=len(session.cookies), warning=warning)
