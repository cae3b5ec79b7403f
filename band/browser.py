"""
Browser lifecycle for one account: launch, navigate, tear down.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import BROWSER_ARGS, DEFAULT_HEADERS, USER_AGENTS, SessionConfig
from .errors import NavigationTimeout, TransientNetworkError
from .human import HumanSession

log = logging.getLogger(__name__)


@dataclass
class BrowserHandle:
    """Driver, browser, context and page owned by one SessionManager."""
    playwright: Any
    browser: Any
    context: Any
    page: Any

    async def close(self) -> None:
        for name in ("context", "browser"):
            target = getattr(self, name)
            if target is None:
                continue
            try:
                await target.close()
            except PlaywrightError as e:
                log.debug("%s close failed: %s", name, e)
        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except PlaywrightError as e:
                log.debug("playwright stop failed: %s", e)
        self.context = self.browser = self.page = self.playwright = None


def pick_user_agent(config: SessionConfig) -> str:
    return config.user_agent or random.choice(USER_AGENTS)


async def launch_browser(config: SessionConfig, human: HumanSession) -> BrowserHandle:
    """Start chromium with the account's fingerprint and return a fresh page."""
    pw = await async_playwright().start()
    try:
        browser = await pw.chromium.launch(headless=config.headless, args=BROWSER_ARGS)
        context_options = human.apply_to_context_options()
        context_options.setdefault("user_agent", pick_user_agent(config))
        context = await browser.new_context(extra_http_headers=DEFAULT_HEADERS, **context_options)
        page = await context.new_page()
        page.set_default_timeout(config.navigation_timeout_ms)

        if config.stealth:
            from playwright_stealth import Stealth
            await Stealth().apply_stealth_async(page)
    except PlaywrightError:
        await pw.stop()
        raise

    return BrowserHandle(playwright=pw, browser=browser, context=context, page=page)


async def goto(page, url: str, timeout_ms: int, wait_until: str = "domcontentloaded") -> None:
    """Navigate, mapping Playwright failures onto the crawl error taxonomy."""
    try:
        await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(f"navigation to {url} timed out after {timeout_ms}ms") from e
    except PlaywrightError as e:
        raise TransientNetworkError(f"navigation to {url} failed: {e}") from e


async def wait_for_any(page, selectors: list[str], timeout_ms: int) -> str | None:
    """Wait for the first of ``selectors`` to attach; None when none does in time."""
    combined = ", ".join(selectors)
    try:
        await page.wait_for_selector(combined, timeout=timeout_ms, state="attached")
    except PlaywrightError:
        return None
    for selector in selectors:
        if await page.query_selector(selector) is not None:
            return selector
    return None


async def click_first(page, selectors: list[str]) -> str | None:
    """Click the first visible match among ``selectors``."""
    for selector in selectors:
        element = await page.query_selector(selector)
        if element is None:
            continue
        try:
            if not await element.is_visible():
                continue
            await element.click()
        except PlaywrightError as e:
            log.debug("click on %s failed: %s", selector, e)
            continue
        return selector
    return None
