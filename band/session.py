"""
Session manager: login state and the persisted cookie jar for one account.

States:

    uninitialized -> cookie_restore_attempted -> logged_in
                                              -> challenge_bounce_retry -> logged_in | failed

Cookie restore never raises for a missing or stale jar; that is a normal
"log in again" outcome. Credential login bounces once on a bot challenge
(neutral page, back to the login entry, one more full attempt) and gives up
on the second challenge.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from playwright.async_api import Error as PlaywrightError

from .browser import BrowserHandle, click_first, goto, launch_browser, wait_for_any
from .challenge import detect_bad_credentials, detect_challenge
from .config import (
    BAND_HOME_URL,
    BAND_LOGIN_URL,
    ID_FIELD_SELECTOR,
    LOGIN_BUTTON_SELECTORS,
    LOGIN_MARKER_SELECTOR,
    NEUTRAL_URL,
    PASSWORD_FIELD_SELECTOR,
    PROVIDER_BUTTON_SELECTORS,
    PROVIDER_LOGIN_URL,
    SUBMIT_SELECTORS,
    SessionConfig,
    band_url,
)
from .errors import AuthenticationFailure, ChallengeDetected, CrawlError
from .human import HumanSession, delay_in_range, human_type, pause
from .models import Session

log = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
COOKIE_RESTORE_ATTEMPTED = "cookie_restore_attempted"
CHALLENGE_BOUNCE_RETRY = "challenge_bounce_retry"
LOGGED_IN = "logged_in"
FAILED = "failed"

# Sets the value the way a paste would, without synthetic key events
_FILL_JS = """
([selector, value]) => {
    const field = document.querySelector(selector);
    if (!field) return false;
    field.focus();
    field.value = value;
    field.dispatchEvent(new Event('input', { bubbles: true }));
    field.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}
"""

BrowserFactory = Callable[[SessionConfig, HumanSession], Awaitable[BrowserHandle]]


class LoginLocks:
    """One asyncio.Lock per account id, shared by every SessionManager of a process."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def for_account(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock


class SessionManager:
    """Owns one browser and the login state for one account."""

    def __init__(
        self,
        account_id: str,
        band_id: str,
        store,
        config: SessionConfig | None = None,
        browser_factory: BrowserFactory = launch_browser,
        locks: LoginLocks | None = None,
        human: HumanSession | None = None,
    ):
        self.account_id = account_id
        self.band_id = band_id
        self.store = store
        self.config = config or SessionConfig()
        self.browser_factory = browser_factory
        self.locks = locks or LoginLocks()
        self.human = human or HumanSession(seed=account_id, user_agent=self.config.user_agent)

        self.state = UNINITIALIZED
        self.session: Session | None = None
        self.handle: BrowserHandle | None = None

    @property
    def page(self):
        return self.handle.page if self.handle else None

    @property
    def is_logged_in(self) -> bool:
        return self.state == LOGGED_IN and self.session is not None and self.session.valid

    async def start(self) -> None:
        if self.handle is None:
            self.handle = await self.browser_factory(self.config, self.human)

    async def close(self) -> None:
        if self.handle is not None:
            await self.handle.close()
            self.handle = None

    async def invalidate(self) -> None:
        """Forget the current session and drop the persisted jar."""
        self.session = None
        self.state = UNINITIALIZED
        self.store.delete(self.account_id)
        if self.handle is not None and self.handle.context is not None:
            try:
                await self.handle.context.clear_cookies()
            except PlaywrightError as e:
                log.debug("clear_cookies failed: %s", e)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self) -> bool:
        """Open the band page and look for the member-only marker."""
        await goto(self.page, band_url(self.band_id), self.config.navigation_timeout_ms)
        found = await wait_for_any(self.page, [LOGIN_MARKER_SELECTOR], self.config.validate_timeout_ms)
        return found is not None

    # ------------------------------------------------------------------
    # Cookie restore
    # ------------------------------------------------------------------

    async def restore_session(self, account_id: str | None = None) -> bool:
        async with self.locks.for_account(account_id or self.account_id):
            return await self._restore(account_id or self.account_id)

    async def _restore(self, account_id: str) -> bool:
        self.state = COOKIE_RESTORE_ATTEMPTED
        stored = self.store.get(account_id)
        if stored is None or not stored.cookies:
            log.info("no saved cookies for %s", account_id)
            return False
        if stored.is_stale(self.config.cookie_ttl_seconds):
            log.info("saved cookies for %s are stale (%.1fh old)",
                     account_id, stored.age_seconds() / 3600)
            return False

        await self.start()
        try:
            await self.handle.context.add_cookies(stored.cookies)
        except PlaywrightError as e:
            log.warning("saved cookies for %s rejected by browser: %s", account_id, e)
            self.store.delete(account_id)
            return False

        if not await self.validate():
            log.info("saved cookies for %s no longer log in; discarding", account_id)
            await self.invalidate()
            self.state = COOKIE_RESTORE_ATTEMPTED
            return False

        stored.valid = True
        self.session = stored
        self.state = LOGGED_IN
        log.info("restored session for %s from cookies", account_id)
        return True

    # ------------------------------------------------------------------
    # Credential login
    # ------------------------------------------------------------------

    async def login_with_credentials(self, login_id: str, password: str) -> Session:
        async with self.locks.for_account(self.account_id):
            return await self._login(login_id, password)

    async def _open_login_form(self) -> bool:
        page = self.page
        timeout = self.config.navigation_timeout_ms

        # Auth page -> external provider button
        await goto(page, BAND_LOGIN_URL, timeout)
        await pause(delay_in_range(self.config.login_delay_range))
        if await click_first(page, PROVIDER_BUTTON_SELECTORS):
            if await wait_for_any(page, [ID_FIELD_SELECTOR], timeout):
                return True

        # Provider login form directly
        await goto(page, PROVIDER_LOGIN_URL, timeout)
        if await wait_for_any(page, [ID_FIELD_SELECTOR], self.config.validate_timeout_ms):
            return True

        # Home page -> login button -> provider button
        await goto(page, BAND_HOME_URL, timeout)
        await pause(delay_in_range(self.config.login_delay_range))
        if await click_first(page, LOGIN_BUTTON_SELECTORS):
            await pause(delay_in_range(self.config.login_delay_range))
            await click_first(page, PROVIDER_BUTTON_SELECTORS)
        return await wait_for_any(page, [ID_FIELD_SELECTOR], timeout) is not None

    async def _fill(self, selector: str, value: str) -> None:
        if self.config.type_credentials:
            await human_type(self.page, selector, value, self.human)
            return
        filled = await self.page.evaluate(_FILL_JS, [selector, value])
        if not filled:
            raise CrawlError(f"login field {selector} not found")

    async def _submit_credentials(self, login_id: str, password: str) -> None:
        await self._fill(ID_FIELD_SELECTOR, login_id)
        await pause(delay_in_range(self.config.login_delay_range))
        await self._fill(PASSWORD_FIELD_SELECTOR, password)
        await pause(delay_in_range(self.config.login_delay_range))

        if not await click_first(self.page, SUBMIT_SELECTORS):
            await self.page.keyboard.press("Enter")

        try:
            await self.page.wait_for_load_state("domcontentloaded", timeout=self.config.navigation_timeout_ms)
        except PlaywrightError as e:
            log.debug("post-submit load wait ended: %s", e)
        await pause(self.config.settle_seconds)

    async def _bounce(self) -> None:
        self.state = CHALLENGE_BOUNCE_RETRY
        await goto(self.page, NEUTRAL_URL, self.config.navigation_timeout_ms)
        await pause(delay_in_range(self.config.login_delay_range))

    async def _login(self, login_id: str, password: str) -> Session:
        await self.start()

        for attempt in (1, 2):
            form_ready = await self._open_login_form()
            markers = await detect_challenge(self.page)
            if not markers:
                if not form_ready:
                    self.state = FAILED
                    raise CrawlError("login form not found")
                await self._submit_credentials(login_id, password)
                markers = await detect_challenge(self.page)

            if markers:
                if attempt == 1:
                    log.warning("challenge during login for %s (%s); bouncing once",
                                self.account_id, ", ".join(markers))
                    await self._bounce()
                    continue
                self.state = FAILED
                raise ChallengeDetected(f"challenge persisted after retry for {self.account_id}", markers)

            bad = await detect_bad_credentials(self.page)
            if bad:
                self.state = FAILED
                raise AuthenticationFailure(f"credentials rejected for {self.account_id}", self.account_id)
            break

        if not await self.validate():
            self.state = FAILED
            raise CrawlError(f"login for {self.account_id} did not reach a member page")

        cookies = await self.handle.context.cookies()
        self.session = Session(account_id=self.account_id, cookies=cookies, captured_at=time.time(), valid=True)
        self.store.put(self.account_id, self.session)
        self.state = LOGGED_IN
        log.info("logged in %s with credentials", self.account_id)
        return self.session

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def ensure_session(self, account) -> Session:
        """
        Valid session for ``account``: saved cookies first, credentials second.

        ``account`` needs ``account_id``, ``login_id`` and ``password``.
        """
        async with self.locks.for_account(account.account_id):
            if self.is_logged_in:
                return self.session
            if await self._restore(account.account_id):
                return self.session
            if not account.login_id or not account.password:
                self.state = FAILED
                raise AuthenticationFailure(f"no credentials configured for {account.account_id}",
                                            account.account_id)
            return await self._login(account.login_id, account.password)
