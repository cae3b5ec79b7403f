"""
Exception taxonomy for crawl runs.

Session-level failures abort the current run only. Extraction problems are
recorded as ExtractionMismatch values and never raised in normal flow.
"""

from __future__ import annotations

from dataclasses import dataclass


class CrawlError(RuntimeError):
    """Base class for every failure a crawl run can surface."""


class AuthenticationFailure(CrawlError):
    """Credentials were rejected. Fatal, never retried."""

    def __init__(self, message: str, account_id: str | None = None):
        super().__init__(message)
        self.account_id = account_id


class ChallengeDetected(CrawlError):
    """Bot verification still present after the single bounce."""

    def __init__(self, message: str, markers: list[str] | None = None):
        super().__init__(message)
        self.markers = list(markers or [])


class TransientNetworkError(CrawlError):
    """Retryable network failure (5xx, 429, connection reset, timeout)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class NavigationTimeout(TransientNetworkError):
    """Browser navigation exceeded its fixed timeout."""


class SchedulingConflict(CrawlError):
    """A tick fired while the previous run for the same account was still in flight."""


class RunCancelled(CrawlError):
    """Cooperative cancellation observed between pipeline stages."""


class RunTimeout(CrawlError):
    """Hard per-run timeout fired."""


class ConfigError(CrawlError, ValueError):
    """Invalid configuration value."""


@dataclass
class ExtractionMismatch:
    """Partial or inconsistent scrape. Logged and kept on the run result."""
    post_id: str
    kind: str                      # comment_count | missing_field | unavailable
    detail: str
    expected: int | None = None
    actual: int | None = None

    def as_dict(self) -> dict:
        return {
            "post_id": self.post_id,
            "kind": self.kind,
            "detail": self.detail,
            "expected": self.expected,
            "actual": self.actual,
        }
