"""
Korean timestamp parsing for feed and comment times.

Handles the forms BAND renders:
    "3월 14일 오후 8:58"
    "2025년 3월 14일 오후 3:55"
    "5분 전", "2시간 전", "30초 전", "방금 전", "어제"
and plain ISO 8601. Anything else parses to None; callers keep the raw text.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

KST = ZoneInfo("Asia/Seoul")

_FULL_DATE = re.compile(r"(\d{4})년\s*(\d{1,2})월\s*(\d{1,2})일\s*(오전|오후)\s*(\d{1,2}):(\d{2})")
_MONTH_DAY = re.compile(r"(\d{1,2})월\s*(\d{1,2})일\s*(오전|오후)\s*(\d{1,2}):(\d{2})")
_RELATIVE = re.compile(r"(\d+)\s*(초|분|시간|일)\s*전")

_RELATIVE_UNITS = {
    "초": "seconds",
    "분": "minutes",
    "시간": "hours",
    "일": "days",
}


def _to_24h(ampm: str, hour: int) -> int:
    if ampm == "오후" and hour < 12:
        return hour + 12
    if ampm == "오전" and hour == 12:
        return 0
    return hour


def _build(year: int, month: int, day: int, ampm: str, hour: int, minute: int) -> datetime | None:
    try:
        return datetime(year, month, day, _to_24h(ampm, hour), minute, tzinfo=KST)
    except ValueError:
        return None


def parse_korean_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse a displayed timestamp into an aware datetime in KST."""
    if not text:
        return None
    text = text.strip()
    now = now or datetime.now(KST)

    m = _FULL_DATE.search(text)
    if m:
        year, month, day, ampm, hour, minute = m.groups()
        return _build(int(year), int(month), int(day), ampm, int(hour), int(minute))

    m = _MONTH_DAY.search(text)
    if m:
        month, day, ampm, hour, minute = m.groups()
        return _build(now.year, int(month), int(day), ampm, int(hour), int(minute))

    if text == "방금 전":
        return now

    m = _RELATIVE.search(text)
    if m:
        amount, unit = m.groups()
        return now - timedelta(**{_RELATIVE_UNITS[unit]: int(amount)})

    if text.startswith("어제"):
        return now - timedelta(days=1)

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=KST)


def to_iso(text: str | None, now: datetime | None = None) -> str | None:
    parsed = parse_korean_date(text, now=now)
    return parsed.isoformat() if parsed else None
