"""
BAND platform layer.

Primary interface:
    from band import SessionManager, ExtractionPipeline, FileSessionStore

    manager = SessionManager(account_id, band_id, FileSessionStore())
    await manager.ensure_session(account)

    pipeline = ExtractionPipeline(manager)
    await pipeline.open_feed()
    await pipeline.load_posts(50)
    for ref in await pipeline.list_post_refs():
        extraction = await pipeline.crawl_post(ref)
"""

from .config import ExtractionConfig, SessionConfig
from .cookies import FileSessionStore, MemorySessionStore
from .errors import (
    AuthenticationFailure,
    ChallengeDetected,
    ConfigError,
    CrawlError,
    ExtractionMismatch,
    NavigationTimeout,
    RunCancelled,
    RunTimeout,
    SchedulingConflict,
    TransientNetworkError,
)
from .models import Comment, Post, PostRef, Session
from .pipeline import ExtractionPipeline, PostExtraction
from .session import LoginLocks, SessionManager


__all__ = [
    'SessionManager',
    'LoginLocks',
    'ExtractionPipeline',
    'PostExtraction',
    'FileSessionStore',
    'MemorySessionStore',
    'SessionConfig',
    'ExtractionConfig',
    'Session',
    'Post',
    'PostRef',
    'Comment',
    'CrawlError',
    'AuthenticationFailure',
    'ChallengeDetected',
    'TransientNetworkError',
    'NavigationTimeout',
    'ExtractionMismatch',
    'SchedulingConflict',
    'RunCancelled',
    'RunTimeout',
    'ConfigError',
]
