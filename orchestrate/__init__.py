"""
Orchestration for crawl runs: configuration, the per-account crawler,
the recurring scheduler, and the collaborators they consume.
"""

from .config import (
    load_run_config,
    apply_run_config,
    provided_cli_flags,
    load_accounts,
    validate_interval,
    AccountConfig,
    SchedulerConfig,
    PROJECT_ROOT,
    OUTPUT_DIR,
    DEFAULT_RUN_CONFIG,
)
from .crawler import (
    CancelToken,
    Crawler,
    CrawlRunResult,
)
from .events import (
    CrawlEvent,
    EventBus,
    EventRecorder,
    LoggingSubscriber,
)
from .interfaces import (
    BodyCatalogLookup,
    FileAccountRegistry,
    JsonResultSink,
    MemoryResultSink,
    StaticAccountRegistry,
    StaticCatalogLookup,
)
from .presenter import summarize_run, write_post_json
from .scheduler import CrawlScheduler, ScheduledJob, cron_expression, next_fire_time
from .state import StateStore

__all__ = [
    "load_run_config",
    "apply_run_config",
    "provided_cli_flags",
    "load_accounts",
    "validate_interval",
    "AccountConfig",
    "SchedulerConfig",
    "PROJECT_ROOT",
    "OUTPUT_DIR",
    "DEFAULT_RUN_CONFIG",
    "CancelToken",
    "Crawler",
    "CrawlRunResult",
    "CrawlEvent",
    "EventBus",
    "EventRecorder",
    "LoggingSubscriber",
    "BodyCatalogLookup",
    "FileAccountRegistry",
    "JsonResultSink",
    "MemoryResultSink",
    "StaticAccountRegistry",
    "StaticCatalogLookup",
    "summarize_run",
    "write_post_json",
    "CrawlScheduler",
    "ScheduledJob",
    "cron_expression",
    "next_fire_time",
    "StateStore",
]
