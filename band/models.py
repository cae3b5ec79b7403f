"""
Records produced by the session manager and the extraction pipeline.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class Session:
    """Cookie jar for one platform account."""
    account_id: str
    cookies: list[dict[str, Any]] = field(default_factory=list)
    captured_at: float = field(default_factory=time.time)   # epoch seconds
    valid: bool = False

    def age_seconds(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.captured_at

    def is_stale(self, ttl_seconds: float, now: float | None = None) -> bool:
        return self.age_seconds(now) >= ttl_seconds


@dataclass
class PostRef:
    """A post as seen on the feed, before its detail page is opened."""
    band_id: str
    post_id: str
    url: str
    displayed_comment_count: int = 0
    posted_at: str | None = None


@dataclass
class Post:
    post_id: str
    band_id: str
    url: str
    author_name: str | None = None
    title: str | None = None
    body: str = ""
    timestamp: str | None = None          # raw text as shown on the page
    posted_at: str | None = None          # ISO 8601 when the raw text parsed
    comment_count: int = 0                # displayed count
    image_urls: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class Comment:
    comment_id: str
    post_id: str
    author: str
    body: str
    timestamp: str | None = None
    commented_at: str | None = None
    is_secret: bool = False
    author_key: str | None = None

    def as_dict(self) -> dict:
        return asdict(self)
