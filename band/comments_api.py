"""
Paginated comment retrieval over the BAND open API.

Pages are followed through ``paging.next_params`` until it is empty. Each
page gets up to three attempts with doubling backoff; if a later page still
fails, the comments collected so far are returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable

import requests

from .config import COMMENTS_API_URL, DEFAULT_HEADERS
from .dates import KST
from .errors import AuthenticationFailure, CrawlError, TransientNetworkError
from .extractor import comment_id_for, strip_platform_markup
from .models import Comment
from .retry import RetryPolicy, call_with_retries

log = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50
DEFAULT_TIMEOUT = 15


def _created_at(value: Any) -> str | None:
    if isinstance(value, (int, float)) and value > 0:
        return datetime.fromtimestamp(value / 1000, tz=KST).isoformat()
    if isinstance(value, str) and value:
        return value
    return None


class CommentsApiClient:
    def __init__(
        self,
        access_token: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        policy: RetryPolicy | None = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        sleep_fn: Callable[[float], None] = time.sleep,
    ):
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.policy = policy or RetryPolicy(max_attempts=3, base_delay_seconds=1.0)
        self.limit = limit
        self.sleep_fn = sleep_fn

    def fetch_page(self, band_key: str, post_key: str, next_params: dict | None = None) -> dict:
        """One page of ``result_data``. Raises TransientNetworkError for retryable failures."""
        params = {
            "access_token": self.access_token,
            "band_key": band_key,
            "post_key": post_key,
            "limit": self.limit,
        }
        if next_params:
            params.update(next_params)

        try:
            resp = self.session.get(COMMENTS_API_URL, params=params, headers=DEFAULT_HEADERS, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientNetworkError(f"comments request failed: {e}") from e
        except requests.RequestException as e:
            raise CrawlError(f"comments request failed: {e}") from e

        status = resp.status_code
        if status == 429 or status >= 500:
            raise TransientNetworkError(f"comments API returned HTTP {status}", status=status)
        if status in (401, 403):
            raise AuthenticationFailure(f"comments API rejected the access token (HTTP {status})")
        if status >= 400:
            raise CrawlError(f"comments API returned HTTP {status}")

        try:
            data = resp.json()
        except ValueError as e:
            raise CrawlError("comments API returned invalid JSON") from e

        if data.get("result_code") != 1:
            raise CrawlError(f"comments API result_code {data.get('result_code')}")
        return data.get("result_data") or {}

    def _to_comment(self, post_key: str, item: dict, index: int) -> Comment:
        author = item.get("author") or {}
        created = _created_at(item.get("created_at"))
        return Comment(
            comment_id=comment_id_for(post_key, item.get("comment_key"), index),
            post_id=post_key,
            author=author.get("name") or "",
            author_key=author.get("user_key"),
            body=strip_platform_markup(item.get("content") or ""),
            timestamp=created,
            commented_at=created,
        )

    def fetch_comments(self, band_key: str, post_key: str, max_pages: int | None = None) -> list[Comment]:
        comments: list[Comment] = []
        next_params = None
        pages = 0

        while True:
            try:
                data = call_with_retries(
                    lambda: self.fetch_page(band_key, post_key, next_params),
                    self.policy,
                    operation=f"comments {post_key} page {pages + 1}",
                    sleep_fn=self.sleep_fn,
                )
            except TransientNetworkError:
                if pages == 0:
                    raise
                log.warning("comments for %s truncated after %d pages", post_key, pages)
                break

            pages += 1
            items = data.get("items") or []
            offset = len(comments)
            comments.extend(self._to_comment(post_key, item, offset + i) for i, item in enumerate(items))

            next_params = (data.get("paging") or {}).get("next_params")
            if not next_params or not items:
                break
            if max_pages is not None and pages >= max_pages:
                break

        return comments

    async def fetch_comments_async(self, band_key: str, post_key: str, max_pages: int | None = None) -> list[Comment]:
        return await asyncio.to_thread(self.fetch_comments, band_key, post_key, max_pages)
