"""
Content extraction pipeline for one logged-in session.

Every step is best-effort: partial or empty results come back as values and
discrepancies are collected as ExtractionMismatch records. Only session or
navigation failures on the feed itself propagate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError

from .browser import goto, wait_for_any
from .config import COMMENT_AREA_SELECTOR, FEED_CARD_SELECTOR, ExtractionConfig, band_url
from .errors import CrawlError, ExtractionMismatch, TransientNetworkError
from .extractor import parse_comments, parse_post_detail, parse_post_refs
from .lazy_loader import LoadResult, load_all_comments, load_posts
from .models import Comment, Post, PostRef
from .retry import RetryPolicy, call_with_retries_async
from .strategies import POST_BODY

log = logging.getLogger(__name__)

DETAIL_READY_SELECTORS = [s.selector for s in POST_BODY] + [".errorContainer", ".bandDeletedPost"]


@dataclass
class PostExtraction:
    ref: PostRef
    post: Post | None
    comments: list[Comment] = field(default_factory=list)
    mismatches: list[ExtractionMismatch] = field(default_factory=list)


class ExtractionPipeline:
    """Feed and post scraping on top of a SessionManager's page."""

    def __init__(
        self,
        session,
        config: ExtractionConfig | None = None,
        comments_api=None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.config = config or ExtractionConfig()
        self.navigation_policy = RetryPolicy(
            max_attempts=self.config.navigation_attempts,
            base_delay_seconds=self.config.navigation_backoff_seconds,
        )
        self.sleep_fn = sleep_fn
        self.comments_api = comments_api
        self.band_id = session.band_id
        self.mismatches: list[ExtractionMismatch] = []
        self.last_load: LoadResult | None = None

    @property
    def page(self):
        return self.session.page

    async def _goto(self, url: str) -> None:
        await call_with_retries_async(
            lambda: goto(self.page, url, self.config.detail_timeout_ms),
            self.navigation_policy,
            operation=f"navigate {url}",
            sleep_fn=self.sleep_fn,
        )

    def _record(self, mismatch: ExtractionMismatch) -> ExtractionMismatch:
        log.warning("extraction mismatch on post %s: %s %s (expected=%s actual=%s)",
                    mismatch.post_id, mismatch.kind, mismatch.detail, mismatch.expected, mismatch.actual)
        self.mismatches.append(mismatch)
        return mismatch

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    async def open_feed(self, band_id: str | None = None) -> bool:
        """Navigate to the band feed. Returns False when no post card shows up."""
        if band_id:
            self.band_id = band_id
        await self._goto(band_url(self.band_id))
        ready = await wait_for_any(self.page, [FEED_CARD_SELECTOR], self.config.detail_timeout_ms)
        if ready is None:
            log.warning("feed for band %s showed no posts", self.band_id)
        return ready is not None

    async def load_posts(self, target_count: int) -> int:
        self.last_load = await load_posts(self.page, target_count, self.config)
        log.info("feed loaded %d/%d posts in %d scrolls (%s)",
                 self.last_load.count, target_count, self.last_load.attempts, self.last_load.stop_reason)
        return self.last_load.count

    async def list_post_refs(self) -> list[PostRef]:
        return parse_post_refs(await self.page.content(), self.band_id)

    # ------------------------------------------------------------------
    # Post detail
    # ------------------------------------------------------------------

    async def _open_post(self, ref: PostRef) -> bool:
        try:
            await self._goto(ref.url)
        except TransientNetworkError as e:
            self._record(ExtractionMismatch(ref.post_id, "navigation", str(e)))
            return False
        await wait_for_any(self.page, DETAIL_READY_SELECTORS, self.config.detail_timeout_ms)
        return True

    async def extract_post_detail(self, ref: PostRef) -> Post | None:
        if not await self._open_post(ref):
            return None
        post, mismatches = parse_post_detail(await self.page.content(), ref, self.config.title_fallback_chars)
        for mismatch in mismatches:
            self._record(mismatch)
        return post

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def load_all_comments(self, ref: PostRef) -> int:
        """Expand the comment thread of the currently open post."""
        await wait_for_any(self.page, [COMMENT_AREA_SELECTOR], self.config.comment_area_timeout_ms)
        result = await load_all_comments(self.page, ref.displayed_comment_count, self.config)
        log.debug("post %s comments: %d after %d clicks (%s)",
                  ref.post_id, result.count, result.attempts, result.stop_reason)
        return result.count

    async def extract_comments(self, ref: PostRef) -> list[Comment]:
        """Comments of ``ref``: over the API when configured, else from the open page."""
        if self.comments_api is not None:
            try:
                return await self.comments_api.fetch_comments_async(self.band_id, ref.post_id)
            except CrawlError as e:
                log.warning("comments API failed for %s, reading the page instead: %s", ref.post_id, e)
                await self.load_all_comments(ref)
        return parse_comments(await self.page.content(), ref.post_id)

    async def crawl_post(self, ref: PostRef) -> PostExtraction:
        """Detail, full comment thread and a comment-count cross-check for one post."""
        start = len(self.mismatches)
        try:
            return await self._crawl_post(ref, start)
        except PlaywrightError as e:
            # DOM races such as a navigation during content(); the post is skipped
            self._record(ExtractionMismatch(ref.post_id, "page_error", str(e)))
            return PostExtraction(ref=ref, post=None, mismatches=self.mismatches[start:])

    async def _crawl_post(self, ref: PostRef, start: int) -> PostExtraction:
        post = await self.extract_post_detail(ref)
        if post is None:
            return PostExtraction(ref=ref, post=None, mismatches=self.mismatches[start:])

        if post.comment_count:
            ref.displayed_comment_count = post.comment_count
        if self.comments_api is None:
            await self.load_all_comments(ref)
        comments = await self.extract_comments(ref)

        if post.comment_count and len(comments) != post.comment_count:
            self._record(ExtractionMismatch(
                ref.post_id, "comment_count", "extracted comments differ from displayed count",
                expected=post.comment_count, actual=len(comments),
            ))
        return PostExtraction(ref=ref, post=post, comments=comments, mismatches=self.mismatches[start:])
