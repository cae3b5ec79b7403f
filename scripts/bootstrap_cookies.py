#!/usr/bin/env python3
"""
Manual cookie bootstrap for accounts stuck behind a bot challenge.

Opens a visible browser on the band login page. Log in and solve any
challenge by hand, then press Enter; the platform cookies are saved for the
account and picked up by the next crawl.

Usage:
    python scripts/bootstrap_cookies.py --account shop1
    python scripts/bootstrap_cookies.py --account shop1 --band-id 12345678
    python scripts/bootstrap_cookies.py --account shop1 --inspect
"""

import argparse
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from band.config import BAND_LOGIN_URL, DEFAULT_HEADERS, SessionConfig, band_url
from band.cookies import FileSessionStore, inspect_session
from band.models import Session


def cmd_inspect(store: FileSessionStore, account_id: str, ttl_seconds: float) -> None:
    status = inspect_session(store, account_id, ttl_seconds)
    print(f"Cookies for {account_id}: {status.path}")
    if not status.exists:
        print("  no saved cookies")
        return
    print(f"  cookies:  {status.cookie_count}")
    print(f"  captured: {status.captured_at or 'unknown'}")
    print(f"  stale:    {'yes' if status.stale else 'no'}")
    if status.warning:
        print(f"  warning:  {status.warning}")


def cmd_bootstrap(store: FileSessionStore, account_id: str, url: str) -> None:
    from playwright.sync_api import sync_playwright

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=False)
        context = browser.new_context(locale="ko-KR", timezone_id="Asia/Seoul",
                                      extra_http_headers=DEFAULT_HEADERS)
        page = context.new_page()
        page.goto(url)
        input(f"Log in as {account_id} and solve any challenge, then press Enter to save cookies...")
        cookies = context.cookies()
        path = store.put(account_id, Session(account_id=account_id, cookies=cookies,
                                             captured_at=time.time(), valid=True))
        print(f"Saved cookies to {path}")
        browser.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Bootstrap band session cookies for an account")
    parser.add_argument("--account", required=True, help="Account id the cookies belong to")
    parser.add_argument("--band-id", help="Open this band after login instead of the login page")
    parser.add_argument("--cookies-dir", help="Session cookie directory (default: ~/.band/cookies)")
    parser.add_argument("--inspect", action="store_true", help="Show the saved jar's status and exit")
    parser.add_argument("--delete", action="store_true", help="Delete the saved jar and exit")
    args = parser.parse_args()

    config = SessionConfig(cookies_dir=Path(args.cookies_dir).expanduser() if args.cookies_dir else None)
    store = FileSessionStore(config.cookies_dir)

    if args.inspect:
        cmd_inspect(store, args.account, config.cookie_ttl_seconds)
        return
    if args.delete:
        print("Deleted" if store.delete(args.account) else "Nothing to delete")
        return

    cmd_bootstrap(store, args.account, band_url(args.band_id) if args.band_id else BAND_LOGIN_URL)


if __name__ == "__main__":
    main()
