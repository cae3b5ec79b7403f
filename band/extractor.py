"""
HTML -> records for the BAND feed, post detail and comment list.

Everything here works on markup strings so it can be tested on saved pages.
Missing fields come back as None or empty; nothing here raises on layout
drift.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Tag

from .challenge import detect_unavailable_post_html, UNAVAILABLE_POST_SELECTORS
from .config import COMMENT_AREA_SELECTOR, COMMENT_ITEM_SELECTORS, FEED_CARD_SELECTOR, FEED_POST_SELECTOR, post_url
from .dates import to_iso
from .errors import ExtractionMismatch
from .models import Comment, Post, PostRef
from .strategies import (
    COMMENT_AUTHOR,
    COMMENT_BODY_SELECTORS,
    COMMENT_ID_ATTRS,
    COMMENT_TIME,
    FEED_COMMENT_COUNT,
    FEED_POST_LINK,
    FEED_TIME,
    POST_AUTHOR,
    POST_BODY,
    POST_COMMENT_COUNT,
    POST_ID_PATTERN,
    POST_IMAGE_SELECTORS,
    POST_TIME,
    POST_TITLE,
    SECRET_COMMENT_SELECTOR,
    apply_strategies,
    first_value,
)

log = logging.getLogger(__name__)

BAND_MARKUP_RE = re.compile(r"<band:refer[^>]*>.*?</band:refer>", re.DOTALL | re.IGNORECASE)
BAND_TAG_RE = re.compile(r"</?band:[^>]*>", re.IGNORECASE)
IMAGE_SIZE_RE = re.compile(r"\[\d+x\d+\]")

SECRET_COMMENT_BODY = "[비밀 댓글]"
UNKNOWN_AUTHOR = "익명"


def strip_platform_markup(text: str | None) -> str:
    """Remove inline ``<band:refer>`` mentions and any other band: tags."""
    if not text:
        return ""
    text = BAND_MARKUP_RE.sub("", text)
    text = BAND_TAG_RE.sub("", text)
    return text.strip()


def parse_count(text: str | None) -> int:
    if not text:
        return 0
    m = re.search(r"\d[\d,]*", text)
    return int(m.group(0).replace(",", "")) if m else 0


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


# =============================================================================
# FEED
# =============================================================================

def parse_post_refs(html: str, band_id: str) -> list[PostRef]:
    """Post references in feed order, de-duplicated by post id."""
    soup = _soup(html)
    cards = soup.select(FEED_POST_SELECTOR) or soup.select(FEED_CARD_SELECTOR)

    refs = []
    seen = set()
    for card in cards:
        post_id = card.get("data-post-id") or first_value(card, FEED_POST_LINK)
        if not post_id:
            continue
        m = re.search(POST_ID_PATTERN, post_id)
        if m:
            post_id = m.group(1)
        if post_id in seen:
            continue
        seen.add(post_id)
        refs.append(PostRef(
            band_id=band_id,
            post_id=post_id,
            url=post_url(band_id, post_id),
            displayed_comment_count=parse_count(first_value(card, FEED_COMMENT_COUNT)),
            posted_at=first_value(card, FEED_TIME),
        ))
    return refs


# =============================================================================
# POST DETAIL
# =============================================================================

def _image_urls(soup: BeautifulSoup) -> list[str]:
    urls = []
    for selector in POST_IMAGE_SELECTORS:
        for img in soup.select(selector):
            src = img.get("src") or img.get("data-src")
            if not src or src.startswith("data:image"):
                continue
            src = IMAGE_SIZE_RE.sub("", src)
            if src not in urls:
                urls.append(src)
    return urls


def _fallback_title(body: str, limit: int) -> str | None:
    for line in body.splitlines():
        line = line.strip()
        if line:
            return line[:limit]
    return None


def is_unavailable_post(html: str) -> bool:
    soup = _soup(html)
    if any(soup.select_one(sel) is not None for sel in UNAVAILABLE_POST_SELECTORS):
        return True
    # Text markers only count when the post body itself is gone
    if first_value(soup, POST_BODY):
        return False
    return bool(detect_unavailable_post_html(html))


def parse_post_detail(
    html: str,
    ref: PostRef,
    title_limit: int = 50,
) -> tuple[Post | None, list[ExtractionMismatch]]:
    """
    Parse an opened post. Returns ``(None, [mismatch])`` for deleted or
    inaccessible posts.
    """
    if is_unavailable_post(html):
        return None, [ExtractionMismatch(ref.post_id, "unavailable", "post deleted or inaccessible")]

    soup = _soup(html)
    mismatches = []

    author = first_value(soup, POST_AUTHOR)
    body, strategy = apply_strategies(soup, POST_BODY)
    body = strip_platform_markup(body)
    if strategy:
        log.debug("post %s body via %s", ref.post_id, strategy)
    else:
        mismatches.append(ExtractionMismatch(ref.post_id, "missing_field", "body"))

    title = first_value(soup, POST_TITLE) or _fallback_title(body, title_limit)
    timestamp = first_value(soup, POST_TIME) or ref.posted_at

    count_text = first_value(soup, POST_COMMENT_COUNT)
    comment_count = parse_count(count_text) if count_text else ref.displayed_comment_count

    post = Post(
        post_id=ref.post_id,
        band_id=ref.band_id,
        url=ref.url,
        author_name=author,
        title=title,
        body=body,
        timestamp=timestamp,
        posted_at=to_iso(timestamp),
        comment_count=comment_count,
        image_urls=_image_urls(soup),
    )
    return post, mismatches


# =============================================================================
# COMMENTS
# =============================================================================

def _comment_body(item: Tag) -> str:
    for selector in COMMENT_BODY_SELECTORS:
        el = item.select_one(selector)
        if el is None:
            continue
        inner = el.decode_contents()
        text = BeautifulSoup(strip_platform_markup(inner), "lxml").get_text(" ", strip=True)
        if text:
            return text
    return ""


def _comment_native_id(item: Tag) -> str | None:
    for attr in COMMENT_ID_ATTRS:
        value = item.get(attr)
        if value:
            return str(value)
    return None


def _comment_items(html: str) -> list[Tag]:
    soup = _soup(html)
    area = soup.select_one(COMMENT_AREA_SELECTOR) or soup
    for selector in COMMENT_ITEM_SELECTORS:
        items = area.select(selector)
        if items:
            return items
    return []


def comment_id_for(post_id: str, native: str | None, index: int) -> str:
    """Natural comment id, the same whether read from the page or the open API."""
    return f"{post_id}_{native}" if native else f"{post_id}_comment_{index}"


def parse_comments(html: str, post_id: str) -> list[Comment]:
    """Comments in display order, ids from ``comment_id_for``."""
    comments = []
    for index, item in enumerate(_comment_items(html)):
        author = first_value(item, COMMENT_AUTHOR) or UNKNOWN_AUTHOR
        timestamp = first_value(item, COMMENT_TIME)
        is_secret = item.select_one(SECRET_COMMENT_SELECTOR) is not None
        body = SECRET_COMMENT_BODY if is_secret else _comment_body(item)
        if not body:
            continue

        native = _comment_native_id(item)
        comments.append(Comment(
            comment_id=comment_id_for(post_id, native, index),
            post_id=post_id,
            author=author,
            body=body,
            timestamp=timestamp,
            commented_at=to_iso(timestamp),
            is_secret=is_secret,
        ))
    return comments
