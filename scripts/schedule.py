#!/usr/bin/env python3
"""
Scheduler daemon: crawls every account with auto_crawl enabled on its own
interval until interrupted.

The accounts file is re-read by the hourly refresh job, so enabling an
account or changing its interval takes effect without a restart.

Usage:
    python scripts/schedule.py --accounts profiles/accounts.yaml
    python scripts/schedule.py --accounts profiles/accounts.yaml --max-workers 3 --list
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from band.config import ExtractionConfig, SessionConfig
from band.cookies import FileSessionStore
from orchestrate.config import (
    DEFAULT_RUN_CONFIG,
    OUTPUT_DIR,
    SchedulerConfig,
    apply_run_config,
    load_run_config,
    provided_cli_flags,
)
from orchestrate.crawler import Crawler
from orchestrate.events import EventBus, LoggingSubscriber
from orchestrate.interfaces import BodyCatalogLookup, FileAccountRegistry, JsonResultSink, StaticCatalogLookup
from orchestrate.scheduler import CrawlScheduler

log = logging.getLogger("schedule")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run recurring band crawls per account")
    parser.add_argument("--accounts", help="Accounts file (YAML/JSON)")
    parser.add_argument("--max-workers", type=int, default=2, help="Concurrent browser sessions")
    parser.add_argument("--run-timeout", type=float, default=1800.0, help="Hard cap per run in seconds")
    parser.add_argument("--refresh-interval", type=int, default=60, help="Minutes between registry reconciles")
    parser.add_argument("--catalog", help="Catalog file {post_id: [entries]}; default parses post bodies")
    parser.add_argument("--cookies-dir", help="Session cookie directory (default: ~/.band/cookies)")
    parser.add_argument("--output-dir", help=f"Output directory (default: {OUTPUT_DIR})")
    parser.add_argument("--no-headless", action="store_true", help="Run browser visibly")
    parser.add_argument("--stealth", action="store_true", help="Apply playwright-stealth patches")
    parser.add_argument("--run-config", help="Path to JSON/YAML run config (overrides defaults)")
    parser.add_argument("--list", action="store_true", help="Print the jobs that would be registered and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Warnings and errors only")
    return parser


def build_scheduler(args: argparse.Namespace) -> CrawlScheduler:
    events = EventBus()
    events.subscribe(LoggingSubscriber())

    session_config = SessionConfig(
        headless=not args.no_headless,
        stealth=bool(args.stealth),
        cookies_dir=Path(args.cookies_dir).expanduser() if args.cookies_dir else None,
    )
    catalog_lookup = StaticCatalogLookup.from_file(args.catalog) if args.catalog else BodyCatalogLookup()
    crawler = Crawler(
        session_store=FileSessionStore(session_config.cookies_dir),
        result_sink=JsonResultSink(Path(args.output_dir) if args.output_dir else OUTPUT_DIR),
        catalog_lookup=catalog_lookup,
        events=events,
        session_config=session_config,
        extraction_config=ExtractionConfig(),
    )
    config = SchedulerConfig(
        max_workers=int(args.max_workers),
        run_timeout_seconds=float(args.run_timeout),
        refresh_interval_minutes=int(args.refresh_interval),
    )
    return CrawlScheduler(crawler, FileAccountRegistry(args.accounts), config=config, events=events)


async def run_forever(scheduler: CrawlScheduler) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    await scheduler.start()
    for job in scheduler.list_jobs():
        log.info("%s  %s  next=%s", job["job_id"], job["cron_expression"], job["next_run"])
    try:
        await stop.wait()
    finally:
        log.info("shutting down")
        await scheduler.shutdown()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = build_parser().parse_args(argv)
    cfg = {}
    if DEFAULT_RUN_CONFIG.exists():
        cfg = load_run_config(str(DEFAULT_RUN_CONFIG))
    if args.run_config:
        cfg.update(load_run_config(args.run_config))
    args = apply_run_config(args, cfg, provided_cli_flags(argv))

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")

    if not args.accounts:
        print("Error: --accounts is required (or set accounts_file in the run config)")
        return 2

    scheduler = build_scheduler(args)
    if args.list:
        scheduler.refresh()
        print(json.dumps(scheduler.list_jobs(), indent=2, ensure_ascii=False))
        return 0

    asyncio.run(run_forever(scheduler))
    return 0


if __name__ == "__main__":
    sys.exit(main())
