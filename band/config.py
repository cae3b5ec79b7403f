"""
Configuration for BAND sessions and extraction.

URLs, DOM selectors and tuning knobs live here so the session manager and the
extraction pipeline stay free of literals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


# =============================================================================
# URLS
# =============================================================================

BAND_ROOT = "https://www.band.us"
BAND_HOME_URL = "https://band.us/home"
BAND_LOGIN_URL = "https://auth.band.us/login_page"
PROVIDER_LOGIN_URL = "https://nid.naver.com/nidlogin.login"

# Neutral page visited between login attempts when a challenge shows up
NEUTRAL_URL = "https://www.band.us/"

COMMENTS_API_URL = "https://openapi.band.us/v2.1/band/post/comments"


def band_url(band_id: str) -> str:
    return f"{BAND_ROOT}/band/{band_id}"


def post_url(band_id: str, post_id: str) -> str:
    return f"{BAND_ROOT}/band/{band_id}/post/{post_id}"


# =============================================================================
# COOKIES
# =============================================================================

COOKIE_DOMAINS = ("band.us", "auth.band.us")
ESSENTIAL_COOKIES = ("band_session",)
DEFAULT_COOKIES_DIR = Path.home() / ".band" / "cookies"


# =============================================================================
# BROWSER
# =============================================================================

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36 Edg/121.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.3 Safari/605.1.15",
]

DEFAULT_HEADERS = {
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
}

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


# =============================================================================
# SELECTORS
# =============================================================================

# Only rendered for a logged-in member
LOGIN_MARKER_SELECTOR = ".profileInner"

LOGIN_BUTTON_SELECTORS = ["a.login", "button._loginBtn", "a.btnTextStyle._btnLogin"]
PROVIDER_BUTTON_SELECTORS = ["a.-naver.externalLogin", "a.uButtonRound.-h56.-icoType.-naver"]
ID_FIELD_SELECTOR = "#id"
PASSWORD_FIELD_SELECTOR = "#pw"
SUBMIT_SELECTORS = ["button.btn_login", 'button[type="submit"]']

FEED_CARD_SELECTOR = ".cCard"
FEED_POST_SELECTOR = ".postWrap .cCard article._postMainWrap"

COMMENT_AREA_SELECTOR = ".dPostCommentMainView"
COMMENT_ITEM_SELECTORS = [".cComment", ".uCommentList li"]
LOAD_PREVIOUS_COMMENTS_SELECTORS = [
    "button[data-uiselector='previousCommentButton']",
    "button.prevComment",
    "a.viewMoreComment",
]


# =============================================================================
# CONFIG OBJECTS
# =============================================================================

@dataclass
class SessionConfig:
    """Browser and login settings for one SessionManager."""
    headless: bool = True
    stealth: bool = False                  # apply playwright_stealth when installed
    navigation_timeout_ms: int = 30000
    cookie_ttl_hours: float = 24.0
    cookies_dir: Path | None = None
    login_delay_range: tuple[float, float] = (2.0, 4.0)
    settle_seconds: float = 3.0            # wait after submit / navigation
    user_agent: str | None = None          # None = pick from USER_AGENTS
    validate_timeout_ms: int = 10000       # wait for the login marker
    type_credentials: bool = False         # key-by-key typing instead of setting values

    @property
    def cookie_ttl_seconds(self) -> float:
        return self.cookie_ttl_hours * 3600


@dataclass
class ExtractionConfig:
    """Pagination and scraping limits."""
    scroll_pause_seconds: float = 3.0
    scroll_jitter_seconds: float = 1.0
    plateau_attempts: int = 5              # stop after count is flat this many times
    max_scroll_attempts: int = 20          # hard cap regardless of growth
    comment_load_threshold: int = 20       # below this no load-more control exists
    max_comment_load_iterations: int = 10
    comment_no_growth_limit: int = 2
    comment_click_pause_seconds: float = 2.0
    detail_timeout_ms: int = 30000
    comment_area_timeout_ms: int = 5000
    title_fallback_chars: int = 50
    navigation_attempts: int = 3           # feed and post navigation, doubling backoff
    navigation_backoff_seconds: float = 1.0
    load_more_selectors: list[str] = field(default_factory=lambda: list(LOAD_PREVIOUS_COMMENTS_SELECTORS))
