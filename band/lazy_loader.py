"""
Lazy-load drivers for the BAND feed and comment list.

Handles:
- Scrolling the feed until enough posts are materialized
- Clicking "previous comments" until the full thread is on the page

Both loops are bounded and report how far they got; callers must not assume
the target was reached.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from playwright.async_api import Error as PlaywrightError

from .browser import click_first
from .config import COMMENT_ITEM_SELECTORS, FEED_CARD_SELECTOR, ExtractionConfig
from .human import pause

log = logging.getLogger(__name__)

SCROLL_TO_BOTTOM_JS = "window.scrollTo(0, document.body.scrollHeight)"


@dataclass
class LoadResult:
    count: int
    attempts: int
    stop_reason: str           # target | plateau | cap | below_threshold | control_absent | no_growth


async def count_elements(page, selectors: list[str]) -> int:
    """Count matches of the first selector that matches anything."""
    for selector in selectors:
        try:
            n = await page.locator(selector).count()
        except PlaywrightError as e:
            log.debug("count of %s failed: %s", selector, e)
            continue
        if n:
            return n
    return 0


async def load_posts(page, target_count: int, config: ExtractionConfig) -> LoadResult:
    """
    Scroll the feed until ``target_count`` posts exist.

    Stops early when the count stays flat for ``plateau_attempts`` scrolls and
    never scrolls more than ``max_scroll_attempts`` times.
    """
    count = await count_elements(page, [FEED_CARD_SELECTOR])
    attempts = 0
    flat = 0

    while count < target_count:
        if attempts >= config.max_scroll_attempts:
            return LoadResult(count, attempts, "cap")
        if flat >= config.plateau_attempts:
            return LoadResult(count, attempts, "plateau")

        try:
            await page.evaluate(SCROLL_TO_BOTTOM_JS)
        except PlaywrightError as e:
            log.debug("scroll failed: %s", e)
        attempts += 1
        await pause(config.scroll_pause_seconds + random.uniform(0, config.scroll_jitter_seconds))

        current = await count_elements(page, [FEED_CARD_SELECTOR])
        if current > count:
            count = current
            flat = 0
        else:
            flat += 1
        log.debug("feed scroll %d: %d posts (flat %d)", attempts, count, flat)

    return LoadResult(count, attempts, "target")


async def load_all_comments(page, displayed_count: int, config: ExtractionConfig) -> LoadResult:
    """
    Click the load-previous control until the comment count stops growing.

    Skipped when the displayed count is below ``comment_load_threshold``.
    """
    count = await count_elements(page, COMMENT_ITEM_SELECTORS)
    if displayed_count < config.comment_load_threshold:
        return LoadResult(count, 0, "below_threshold")

    clicks = 0
    no_growth = 0
    while clicks < config.max_comment_load_iterations:
        clicked = await click_first(page, config.load_more_selectors)
        if not clicked:
            return LoadResult(count, clicks, "control_absent")
        clicks += 1
        await pause(config.comment_click_pause_seconds)

        current = await count_elements(page, COMMENT_ITEM_SELECTORS)
        if current > count:
            count = current
            no_growth = 0
        else:
            no_growth += 1
            if no_growth >= config.comment_no_growth_limit:
                return LoadResult(count, clicks, "no_growth")

    return LoadResult(count, clicks, "cap")
