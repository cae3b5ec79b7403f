"""
Tests for band/session.py against a scripted fake browser.
"""

import asyncio
import time
from types import SimpleNamespace

import pytest

from band.config import (
    BAND_LOGIN_URL,
    NEUTRAL_URL,
    PROVIDER_BUTTON_SELECTORS,
    PROVIDER_LOGIN_URL,
    SUBMIT_SELECTORS,
    SessionConfig,
    band_url,
)
from band.cookies import MemorySessionStore
from band.errors import AuthenticationFailure, ChallengeDetected
from band.models import Session
from band.session import COOKIE_RESTORE_ATTEMPTED, FAILED, LOGGED_IN, LoginLocks, SessionManager

from fakes import FakeBrowserFactory, FakeContext, FakePage, login_marker_page

FAST = SessionConfig(login_delay_range=(0.0, 0.0), settle_seconds=0.0, cookie_ttl_hours=24)
BAND = "b1"
AFTER_SUBMIT_URL = "https://band.us/after-login"

JAR = [{"name": "band_session", "value": "abc", "domain": ".band.us", "path": "/", "expires": -1}]

LOGIN_ENTRY_HTML = '<html><body><a class="-naver externalLogin" href="#">네이버로 로그인</a></body></html>'
PROVIDER_FORM_HTML = (
    '<html><body><form><input id="id"/><input id="pw" type="password"/>'
    '<button class="btn_login" type="submit">로그인</button></form></body></html>'
)
CHALLENGE_FORM_HTML = PROVIDER_FORM_HTML.replace("</form>", '</form><div class="g-recaptcha"></div>')
BAD_CREDENTIALS_HTML = '<html><body><div class="error">아이디 또는 비밀번호를 잘못 입력했습니다.</div></body></html>'


def account(login_id="shop@example.com", password="secret"):
    return SimpleNamespace(account_id="shop1", band_id=BAND, login_id=login_id, password=password)


def login_page(form_html=PROVIDER_FORM_HTML, after_submit_html="<html><body>home</body></html>", member=True):
    routes = {
        BAND_LOGIN_URL: LOGIN_ENTRY_HTML,
        PROVIDER_LOGIN_URL: form_html,
        AFTER_SUBMIT_URL: after_submit_html,
        band_url(BAND): login_marker_page() if member else "<html><body>guest</body></html>",
    }
    click_routes = {PROVIDER_BUTTON_SELECTORS[0]: PROVIDER_LOGIN_URL, SUBMIT_SELECTORS[0]: AFTER_SUBMIT_URL}
    return FakePage(routes, click_routes)


def manager(page, store=None, context=None):
    factory = FakeBrowserFactory(page, context or FakeContext(cookies=JAR))
    mgr = SessionManager("shop1", BAND, store or MemorySessionStore(), config=FAST, browser_factory=factory)
    return mgr, factory


class TestRestoreSession:
    def test_valid_jar_skips_credential_login(self):
        store = MemorySessionStore()
        store.put("shop1", Session("shop1", JAR, time.time(), True))
        page = login_page()
        mgr, factory = manager(page, store)

        session = asyncio.run(mgr.ensure_session(account(password=None)))

        assert session.valid is True
        assert mgr.state == LOGGED_IN
        assert BAND_LOGIN_URL not in page.navigations
        assert factory.context.added == JAR

    def test_no_jar(self):
        mgr, factory = manager(login_page())
        assert asyncio.run(mgr.restore_session()) is False
        assert mgr.state == COOKIE_RESTORE_ATTEMPTED
        assert factory.launches == 0

    def test_stale_jar_not_used(self):
        store = MemorySessionStore()
        store.put("shop1", Session("shop1", JAR, time.time() - 25 * 3600, True))
        mgr, factory = manager(login_page(), store)
        assert asyncio.run(mgr.restore_session()) is False
        assert factory.context.added == []

    def test_rejected_jar_is_deleted(self):
        store = MemorySessionStore()
        store.put("shop1", Session("shop1", JAR, time.time(), True))
        mgr, factory = manager(login_page(member=False), store)
        assert asyncio.run(mgr.restore_session()) is False
        assert store.get("shop1") is None
        assert factory.context.cleared == 1


class TestCredentialLogin:
    def test_login_persists_cookies(self):
        store = MemorySessionStore()
        page = login_page()
        mgr, _ = manager(page, store)

        session = asyncio.run(mgr.ensure_session(account()))

        assert session.valid
        assert mgr.state == LOGGED_IN
        assert page.filled == {"#id": "shop@example.com", "#pw": "secret"}
        assert store.get("shop1").cookies == JAR

    def test_challenge_bounces_once_then_fails(self):
        page = login_page(form_html=CHALLENGE_FORM_HTML)
        mgr, _ = manager(page)

        with pytest.raises(ChallengeDetected):
            asyncio.run(mgr.login_with_credentials("shop@example.com", "secret"))

        assert page.navigations.count(NEUTRAL_URL) == 1
        assert mgr.state == FAILED
        assert page.filled == {}

    def test_challenge_cleared_on_second_attempt(self):
        page = login_page(form_html=CHALLENGE_FORM_HTML)
        original = page._navigate

        def clear_after_bounce(url):
            if url == NEUTRAL_URL:
                page.routes[PROVIDER_LOGIN_URL] = PROVIDER_FORM_HTML
            original(url)

        page._navigate = clear_after_bounce
        mgr, _ = manager(page)

        session = asyncio.run(mgr.login_with_credentials("shop@example.com", "secret"))
        assert session.valid
        assert page.navigations.count(NEUTRAL_URL) == 1

    def test_bad_credentials(self):
        page = login_page(after_submit_html=BAD_CREDENTIALS_HTML)
        store = MemorySessionStore()
        mgr, _ = manager(page, store)

        with pytest.raises(AuthenticationFailure) as excinfo:
            asyncio.run(mgr.login_with_credentials("shop@example.com", "wrong"))

        assert excinfo.value.account_id == "shop1"
        assert store.get("shop1") is None
        assert NEUTRAL_URL not in page.navigations

    def test_missing_credentials(self):
        mgr, _ = manager(login_page())
        with pytest.raises(AuthenticationFailure):
            asyncio.run(mgr.ensure_session(account(password=None)))


def test_login_locks_are_per_account():
    locks = LoginLocks()
    assert locks.for_account("a") is locks.for_account("a")
    assert locks.for_account("a") is not locks.for_account("b")


def test_close_releases_browser():
    store = MemorySessionStore()
    store.put("shop1", Session("shop1", JAR, time.time(), True))
    mgr, factory = manager(login_page(), store)

    async def scenario():
        await mgr.restore_session()
        await mgr.close()

    asyncio.run(scenario())
    assert mgr.handle is None
    assert factory.context.closed


class CountingStore(MemorySessionStore):
    def __init__(self):
        super().__init__()
        self.puts = 0

    def put(self, account_id, session):
        self.puts += 1
        super().put(account_id, session)


def test_concurrent_logins_for_one_account_share_the_jar():
    store = CountingStore()
    locks = LoginLocks()
    pages = [login_page(), login_page()]
    managers = [
        SessionManager("shop1", BAND, store, config=FAST, locks=locks,
                       browser_factory=FakeBrowserFactory(page, FakeContext(cookies=JAR)))
        for page in pages
    ]

    async def scenario():
        return await asyncio.gather(*(m.ensure_session(account()) for m in managers))

    sessions = asyncio.run(scenario())

    assert all(s.valid for s in sessions)
    assert all(m.state == LOGGED_IN for m in managers)
    assert store.puts == 1
    assert [BAND_LOGIN_URL in p.navigations for p in pages].count(True) == 1
