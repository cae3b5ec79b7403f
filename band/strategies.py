"""
Ranked DOM lookup strategies.

Each field of a post or comment is described by an ordered list of
FieldStrategy values. The first strategy that yields a non-empty value wins;
adding support for a new layout means appending a strategy, not another
branch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bs4 import Tag


@dataclass(frozen=True)
class FieldStrategy:
    name: str
    selector: str
    attr: str | None = None            # None = element text
    pattern: str | None = None         # keep group 1 of this regex
    separator: str = " "

    def apply(self, scope: "Tag") -> str | None:
        el = scope.select_one(self.selector)
        if el is None:
            return None
        if self.attr:
            value = el.get(self.attr)
            if isinstance(value, list):
                value = " ".join(value)
        else:
            value = el.get_text(self.separator, strip=True)
        if not value:
            return None
        value = value.strip()
        if self.pattern:
            m = re.search(self.pattern, value)
            if not m:
                return None
            value = m.group(1)
        return value or None


def apply_strategies(scope: "Tag", strategies: list[FieldStrategy]) -> tuple[str | None, str | None]:
    """Return ``(value, strategy_name)`` from the first strategy that hits."""
    for strategy in strategies:
        value = strategy.apply(scope)
        if value:
            return value, strategy.name
    return None, None


def first_value(scope: "Tag", strategies: list[FieldStrategy]) -> str | None:
    return apply_strategies(scope, strategies)[0]


# =============================================================================
# FEED
# =============================================================================

POST_ID_PATTERN = r"/post/(\d+)"

FEED_POST_LINK = [
    FieldStrategy("writer_link", "div.postWriterInfoWrap a.text", attr="href", pattern=POST_ID_PATTERN),
    FieldStrategy("any_post_link", 'a[href*="/post/"]', attr="href", pattern=POST_ID_PATTERN),
]

FEED_COMMENT_COUNT = [
    FieldStrategy("comment_button", "button._commentCountBtn span.count", pattern=r"(\d[\d,]*)"),
    FieldStrategy("comment_count", ".comment .count", pattern=r"(\d[\d,]*)"),
]

FEED_TIME = [
    FieldStrategy("time_title", "div.postListInfoWrap time.time", attr="title"),
    FieldStrategy("time_text", "div.postListInfoWrap time.time"),
    FieldStrategy("any_time", "time.time"),
]


# =============================================================================
# POST DETAIL
# =============================================================================

POST_AUTHOR = [
    FieldStrategy("writer_info", ".postWriterInfoWrap .text"),
    FieldStrategy("user_name", ".userName"),
]

POST_TITLE = [
    FieldStrategy("subject", ".postSubject"),
]

POST_BODY = [
    FieldStrategy("text_view", ".postBody .dPostTextView .txtBody", separator="\n"),
    FieldStrategy("text_body", ".dPostTextView .txtBody", separator="\n"),
    FieldStrategy("any_text_body", ".txtBody", separator="\n"),
]

POST_TIME = [
    FieldStrategy("info_time_title", ".postListInfoWrap .time", attr="title"),
    FieldStrategy("info_time", ".postListInfoWrap .time"),
    FieldStrategy("etc_time_title", ".etcArea .time", attr="title"),
    FieldStrategy("etc_time", ".etcArea .time"),
]

POST_COMMENT_COUNT = [
    FieldStrategy("comment_button", "button._commentCountBtn span.count", pattern=r"(\d[\d,]*)"),
    FieldStrategy("comment_label", ".commentCount", pattern=r"(\d[\d,]*)"),
]

POST_IMAGE_SELECTORS = [
    ".imageListInner img",
    "._imageListView img",
    ".attachedImage img",
]


# =============================================================================
# COMMENTS
# =============================================================================

COMMENT_AUTHOR = [
    FieldStrategy("author_button", "button[data-uiselector='authorNameButton'] strong.name"),
    FieldStrategy("writer_name", ".writerName"),
    FieldStrategy("write_info", ".writeInfo .name"),
    FieldStrategy("user_name", ".userName"),
    FieldStrategy("u_name", ".uName"),
    FieldStrategy("author_info", ".dAuthorInfo strong"),
]

COMMENT_TIME = [
    FieldStrategy("time_title", "time.time", attr="title"),
    FieldStrategy("time_text", "time.time"),
    FieldStrategy("date_title", ".commentDate", attr="title"),
    FieldStrategy("date_text", ".commentDate"),
]

# Selectors only: comment bodies need markup stripped before text extraction
COMMENT_BODY_SELECTORS = [
    "p.txt._commentContent",
    ".commentBody .text",
    ".commentText",
    ".txt",
]

COMMENT_ID_ATTRS = ["data-comment-key", "data-comment-id", "data-key", "id"]

SECRET_COMMENT_SELECTOR = ".secretGuideBox"
