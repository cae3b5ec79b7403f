"""
Keyword checks on comment text.
"""

from __future__ import annotations

# A closing comment ends order eligibility for every later comment on the post
CLOSING_KEYWORDS = [
    "마감",
    "종료",
    "완판",
    "품절",
    "완료",
    "주문마감",
    "주문종료",
    "판매마감",
    "판매종료",
    "sold out",
    "soldout",
    "closed",
]

# Cancels only the comment it appears in
CANCEL_KEYWORDS = [
    "취소",
    "cancel",
]


def _hits(text: str | None, keywords: list[str]) -> list[str]:
    if not text:
        return []
    lower = text.lower()
    return [k for k in keywords if k in lower]


def has_closing_keyword(text: str | None) -> bool:
    return bool(_hits(text, CLOSING_KEYWORDS))


def has_cancel_keyword(text: str | None) -> bool:
    return bool(_hits(text, CANCEL_KEYWORDS))
