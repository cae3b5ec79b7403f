"""
Crawler: one run for one account.

    ensure session -> open feed -> load N posts -> per post: detail, comments,
    orders -> result sink

The run checks a CancelToken between stages and is bounded by a hard
timeout; on timeout the browser is torn down and the run is marked failed.
Session-level failures end the run; extraction problems only add mismatch
records.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from playwright.async_api import Error as PlaywrightError

from band.browser import launch_browser
from band.comments_api import CommentsApiClient
from band.config import ExtractionConfig, SessionConfig
from band.errors import AuthenticationFailure, CrawlError, ExtractionMismatch, RunCancelled, RunTimeout
from band.pipeline import ExtractionPipeline
from band.session import LoginLocks, SessionManager
from orders import ExtractedOrder, process_post_comments

from . import events as ev
from .config import DEFAULT_TARGET_POSTS
from .events import EventBus
from .interfaces import BodyCatalogLookup, CatalogLookup, ResultSink, SessionStore

log = logging.getLogger(__name__)

RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"
CANCELLED = "cancelled"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CancelToken:
    """Cooperative cancellation, checked between pipeline stages."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise RunCancelled(f"cancelled before {stage}: {self.reason}")


@dataclass
class CrawlRunResult:
    run_id: str
    account_id: str
    status: str = RUNNING
    started_at: str = field(default_factory=_now)
    finished_at: str | None = None
    target_count: int = 0
    posts_loaded: int = 0
    posts_extracted: int = 0
    comment_count: int = 0
    orders: list[ExtractedOrder] = field(default_factory=list)
    mismatches: list[ExtractionMismatch] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None

    @property
    def authentication_failed(self) -> bool:
        return self.error_type == AuthenticationFailure.__name__


def default_comments_api(account) -> CommentsApiClient | None:
    token = getattr(account, "access_token", None)
    return CommentsApiClient(token) if token else None


class Crawler:
    def __init__(
        self,
        session_store: SessionStore,
        result_sink: ResultSink,
        catalog_lookup: CatalogLookup | None = None,
        events: EventBus | None = None,
        session_config: SessionConfig | None = None,
        extraction_config: ExtractionConfig | None = None,
        run_timeout_seconds: float = 1800.0,
        locks: LoginLocks | None = None,
        browser_factory=launch_browser,
        comments_api_factory=default_comments_api,
    ):
        self.session_store = session_store
        self.result_sink = result_sink
        self.catalog_lookup = catalog_lookup or BodyCatalogLookup()
        self.events = events or EventBus()
        self.session_config = session_config or SessionConfig()
        self.extraction_config = extraction_config or ExtractionConfig()
        self.run_timeout_seconds = run_timeout_seconds
        self.locks = locks or LoginLocks()
        self.browser_factory = browser_factory
        self.comments_api_factory = comments_api_factory

    def _session_manager(self, account) -> SessionManager:
        return SessionManager(
            account.account_id,
            account.band_id,
            self.session_store,
            config=self.session_config,
            browser_factory=self.browser_factory,
            locks=self.locks,
        )

    async def run(
        self,
        account,
        target_count: int | None = None,
        cancel_token: CancelToken | None = None,
        run_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> CrawlRunResult:
        """
        Run every stage for ``account``. Never raises for crawl failures; see
        ``result.status``. ``timeout_seconds`` overrides the crawler-wide limit.
        """
        timeout = timeout_seconds or self.run_timeout_seconds
        target = target_count or account.target_posts or DEFAULT_TARGET_POSTS
        token = cancel_token or CancelToken()
        result = CrawlRunResult(run_id=run_id or uuid.uuid4().hex, account_id=account.account_id, target_count=target)
        manager = self._session_manager(account)
        self.events.emit(ev.RUN_STARTED, account.account_id, result.run_id, f"target {target} posts")

        try:
            await asyncio.wait_for(self._run_stages(account, manager, target, token, result),
                                   timeout=timeout)
            result.status = SUCCEEDED
        except asyncio.TimeoutError:
            self._fail(result, RunTimeout(f"run exceeded {timeout:.0f}s"))
        except RunCancelled as e:
            result.status = CANCELLED
            result.error, result.error_type = str(e), type(e).__name__
        except (CrawlError, PlaywrightError) as e:
            self._fail(result, e)
        finally:
            await manager.close()
            result.finished_at = _now()

        if result.status == SUCCEEDED:
            self.events.emit(ev.RUN_FINISHED, account.account_id, result.run_id,
                             f"{result.posts_extracted} posts, {len(result.orders)} orders",
                             posts=result.posts_extracted, orders=len(result.orders),
                             mismatches=len(result.mismatches))
        else:
            self.events.emit(ev.RUN_FAILED, account.account_id, result.run_id,
                             f"{result.status}: {result.error}", error_type=result.error_type)
        return result

    def _fail(self, result: CrawlRunResult, error: BaseException) -> None:
        result.status = FAILED
        result.error = str(error)
        result.error_type = type(error).__name__

    async def _run_stages(self, account, manager: SessionManager, target: int, token: CancelToken,
                          result: CrawlRunResult) -> None:
        token.raise_if_cancelled("session")
        await manager.ensure_session(account)
        self.events.emit(ev.SESSION_READY, account.account_id, result.run_id)

        token.raise_if_cancelled("feed")
        pipeline = ExtractionPipeline(manager, self.extraction_config, self.comments_api_factory(account))
        if not await pipeline.open_feed(account.band_id):
            return
        result.posts_loaded = await pipeline.load_posts(target)
        refs = (await pipeline.list_post_refs())[:target]
        self.events.emit(ev.POSTS_LOADED, account.account_id, result.run_id,
                         f"{len(refs)} posts", loaded=result.posts_loaded, target=target)

        for ref in refs:
            token.raise_if_cancelled(f"post {ref.post_id}")
            extraction = await pipeline.crawl_post(ref)
            for mismatch in extraction.mismatches:
                result.mismatches.append(mismatch)
                self.events.emit(ev.EXTRACTION_MISMATCH, account.account_id, result.run_id,
                                 f"{mismatch.post_id} {mismatch.kind}", **mismatch.as_dict())
            if extraction.post is None:
                continue
            self._store_post(account, extraction.post, extraction.comments, result)

    def _store_post(self, account, post, comments, result: CrawlRunResult) -> None:
        self.result_sink.upsert_post(account.account_id, post)
        self.result_sink.upsert_comments(account.account_id, post, comments)
        result.posts_extracted += 1
        result.comment_count += len(comments)
        self.events.emit(ev.POST_EXTRACTED, account.account_id, result.run_id,
                         f"{post.post_id} ({len(comments)} comments)", post_id=post.post_id)

        self.catalog_lookup.observe_post(post)
        try:
            catalog = self.catalog_lookup.get_catalog(post.post_id)
            if not catalog:
                return
            outcome = process_post_comments(post.post_id, comments, catalog, account.excluded_authors)
        finally:
            self.catalog_lookup.forget(post.post_id)
        if outcome.orders:
            self.result_sink.upsert_orders(account.account_id, post, outcome.orders)
            result.orders.extend(outcome.orders)
        self.events.emit(ev.ORDERS_EXTRACTED, account.account_id, result.run_id,
                         f"{post.post_id}: {len(outcome.orders)} orders",
                         post_id=post.post_id, orders=len(outcome.orders),
                         closed_by=outcome.closed_by_comment_id)
