"""
Page-state classification: bot challenges, rejected credentials and
unavailable posts.

The HTML classifiers are side-effect free so they can be tested on saved
markup; the async wrappers only read the live page's content.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bs4 import BeautifulSoup

if TYPE_CHECKING:
    from playwright.async_api import Page


CHALLENGE_SELECTORS = [
    'iframe[src*="recaptcha"]',
    ".g-recaptcha",
    'iframe[src*="captcha"]',
    "#captcha",
    "#recaptcha",
]

CHALLENGE_TEXT_MARKERS = [
    "captcha",
    "로봇이 아닙니다",
    "자동 가입 방지",
    "보안 인증",
    "보안문자",
]

BAD_CREDENTIAL_MARKERS = [
    "아이디 또는 비밀번호",
    "비밀번호를 잘못",
    "아이디(로그인 전용 아이디) 또는 비밀번호를 잘못",
]

UNAVAILABLE_POST_MARKERS = [
    "삭제되었거나",
    "찾을 수 없습니다",
    "삭제된 게시글",
    "존재하지 않는 게시글",
    "권한이 없습니다",
    "접근할 수 없습니다",
    "찾을 수 없는 페이지",
    "비공개 설정된 글",
]

UNAVAILABLE_POST_SELECTORS = [".errorContainer", ".bandDeletedPost"]


def _marker_hits(text: str, markers: list[str]) -> list[str]:
    lower = text.lower()
    return [m for m in markers if m.lower() in lower]


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _visible_text(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return soup.get_text(" ", strip=True)


def detect_challenge_html(html: str) -> list[str]:
    """Return the challenge markers found in ``html`` (empty when clean)."""
    soup = _soup(html)
    hits = [sel for sel in CHALLENGE_SELECTORS if soup.select_one(sel) is not None]
    hits.extend(_marker_hits(_visible_text(soup), CHALLENGE_TEXT_MARKERS))
    return hits


def detect_bad_credentials_html(html: str) -> list[str]:
    return _marker_hits(_visible_text(_soup(html)), BAD_CREDENTIAL_MARKERS)


def detect_unavailable_post_html(html: str) -> list[str]:
    soup = _soup(html)
    hits = [sel for sel in UNAVAILABLE_POST_SELECTORS if soup.select_one(sel) is not None]
    hits.extend(_marker_hits(_visible_text(soup), UNAVAILABLE_POST_MARKERS))
    return hits


async def detect_challenge(page: "Page") -> list[str]:
    return detect_challenge_html(await page.content())


async def detect_bad_credentials(page: "Page") -> list[str]:
    return detect_bad_credentials_html(await page.content())
