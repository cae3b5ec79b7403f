#!/usr/bin/env python3
"""
One-shot crawl for one or more accounts.

Restores (or logs into) each account's session, loads the newest posts of its
band, extracts post details and comments, turns comments into orders and
writes one JSON file per post under the output directory.

Usage:
    python scripts/crawl.py --accounts profiles/accounts.yaml --account shop1
    python scripts/crawl.py --accounts profiles/accounts.yaml --target 20 --no-headless
    python scripts/crawl.py --run-config profiles/run_config.yaml --catalog catalogs.yaml
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add parent dir to path for band/orders/orchestrate
sys.path.insert(0, str(Path(__file__).parent.parent))

from band.config import ExtractionConfig, SessionConfig
from band.cookies import FileSessionStore
from orchestrate.config import (
    DEFAULT_RUN_CONFIG,
    OUTPUT_DIR,
    apply_run_config,
    load_accounts,
    load_run_config,
    provided_cli_flags,
)
from orchestrate.crawler import SUCCEEDED, Crawler
from orchestrate.events import EventBus, LoggingSubscriber
from orchestrate.interfaces import BodyCatalogLookup, JsonResultSink, StaticCatalogLookup
from orchestrate.presenter import summarize_run

log = logging.getLogger("crawl")


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl band posts, comments and orders once")
    parser.add_argument("--accounts", help="Accounts file (YAML/JSON)")
    parser.add_argument("--account", help="Comma-separated account ids to crawl (default: all)")
    parser.add_argument("--target-posts", type=int, help="Posts to load per account")
    parser.add_argument("--catalog", help="Catalog file {post_id: [entries]}; default parses post bodies")
    parser.add_argument("--cookies-dir", help="Session cookie directory (default: ~/.band/cookies)")
    parser.add_argument("--output-dir", help=f"Output directory (default: {OUTPUT_DIR})")
    parser.add_argument("--run-timeout", type=float, default=1800.0, help="Hard cap per run in seconds")
    parser.add_argument("--no-headless", action="store_true", help="Run browser visibly")
    parser.add_argument("--stealth", action="store_true", help="Apply playwright-stealth patches")
    parser.add_argument("--run-config", help="Path to JSON/YAML run config (overrides defaults)")
    parser.add_argument("--json", action="store_true", help="Print run summaries as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Warnings and errors only")
    return parser


def resolve_args(argv: list[str]) -> argparse.Namespace:
    args = build_parser().parse_args(argv)
    provided_flags = provided_cli_flags(argv)
    cfg = {}
    if DEFAULT_RUN_CONFIG.exists():
        cfg = load_run_config(str(DEFAULT_RUN_CONFIG))
    if args.run_config:
        cfg.update(load_run_config(args.run_config))
    return apply_run_config(args, cfg, provided_flags)


def build_crawler(args: argparse.Namespace, events: EventBus) -> Crawler:
    session_config = SessionConfig(
        headless=not args.no_headless,
        stealth=bool(args.stealth),
        cookies_dir=Path(args.cookies_dir).expanduser() if args.cookies_dir else None,
    )
    catalog_lookup = StaticCatalogLookup.from_file(args.catalog) if args.catalog else BodyCatalogLookup()
    return Crawler(
        session_store=FileSessionStore(session_config.cookies_dir),
        result_sink=JsonResultSink(Path(args.output_dir) if args.output_dir else OUTPUT_DIR),
        catalog_lookup=catalog_lookup,
        events=events,
        session_config=session_config,
        extraction_config=ExtractionConfig(),
        run_timeout_seconds=float(args.run_timeout),
    )


async def crawl_accounts(crawler: Crawler, accounts: list, target: int | None) -> list:
    results = []
    for account in accounts:
        results.append(await crawler.run(account, target))
    return results


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = resolve_args(argv)
    configure_logging(args.verbose, args.quiet)

    if not args.accounts:
        print("Error: --accounts is required (or set accounts_file in the run config)")
        return 2
    accounts = load_accounts(args.accounts)
    if args.account:
        wanted = {a.strip() for a in args.account.split(",")}
        accounts = [a for a in accounts if a.account_id in wanted]
    if not accounts:
        print("No accounts matched filters")
        return 1

    events = EventBus()
    events.subscribe(LoggingSubscriber())
    crawler = build_crawler(args, events)

    print(f"Crawling {len(accounts)} account(s)...")
    results = asyncio.run(crawl_accounts(crawler, accounts, args.target_posts))

    summaries = [summarize_run(r) for r in results]
    if args.json:
        print(json.dumps(summaries, indent=2, ensure_ascii=False))
    else:
        for s in summaries:
            line = (f"  {s['account_id']:20} {s['status']:10} posts={s['posts_extracted']}/{s['posts_loaded']} "
                    f"comments={s['comments']} orders={s['orders']} mismatches={s['mismatches']}")
            if s["error"]:
                line += f"  error: {s['error']}"
            print(line)

    return 0 if all(r.status == SUCCEEDED for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
