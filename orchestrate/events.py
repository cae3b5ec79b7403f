"""
Structured progress events.

The crawler and scheduler publish CrawlEvent values to an EventBus instead of
calling progress callbacks; subscribers decide what to do with them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

log = logging.getLogger(__name__)

# Event kinds
RUN_STARTED = "run_started"
SESSION_READY = "session_ready"
POSTS_LOADED = "posts_loaded"
POST_EXTRACTED = "post_extracted"
ORDERS_EXTRACTED = "orders_extracted"
EXTRACTION_MISMATCH = "extraction_mismatch"
RUN_FINISHED = "run_finished"
RUN_FAILED = "run_failed"
TICK_SKIPPED = "tick_skipped"
JOB_REGISTERED = "job_registered"
JOB_REMOVED = "job_removed"
OPERATOR_ALERT = "operator_alert"

_WARNING_KINDS = {EXTRACTION_MISMATCH, TICK_SKIPPED}
_ERROR_KINDS = {RUN_FAILED, OPERATOR_ALERT}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CrawlEvent:
    kind: str
    account_id: str | None = None
    run_id: str | None = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    at: str = field(default_factory=_now)

    def as_dict(self) -> dict:
        return asdict(self)


Subscriber = Callable[[CrawlEvent], None]


class EventBus:
    """Synchronous fan-out. A failing subscriber never breaks the publisher."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe():
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)
        return unsubscribe

    def publish(self, event: CrawlEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception:
                log.exception("event subscriber failed on %s", event.kind)

    def emit(self, kind: str, account_id: str | None = None, run_id: str | None = None,
             message: str = "", **data) -> CrawlEvent:
        event = CrawlEvent(kind=kind, account_id=account_id, run_id=run_id, message=message, data=data)
        self.publish(event)
        return event


class LoggingSubscriber:
    """Turns events into log lines."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("orchestrate.events")

    def __call__(self, event: CrawlEvent) -> None:
        if event.kind in _ERROR_KINDS:
            level = logging.ERROR
        elif event.kind in _WARNING_KINDS:
            level = logging.WARNING
        else:
            level = logging.INFO
        who = event.account_id or "-"
        run = f" run={event.run_id}" if event.run_id else ""
        self.logger.log(level, "[%s] %s%s %s", who, event.kind, run, event.message)


class EventRecorder:
    """Keeps every event in memory. Handy for tests and one-shot CLI summaries."""

    def __init__(self):
        self.events: list[CrawlEvent] = []

    def __call__(self, event: CrawlEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: str) -> list[CrawlEvent]:
        return [e for e in self.events if e.kind == kind]
