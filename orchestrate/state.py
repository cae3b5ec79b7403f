"""
In-process state store with per-entry expiry.

Owned by the scheduler (run records, per-account login status). Entries
expire after a TTL; reads never return an expired entry and every write
drops whatever has expired.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterator


class StateStore:
    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def _expires_at(self, ttl: float | None) -> float | None:
        ttl = self.ttl_seconds if ttl is None else ttl
        return None if ttl is None else self.clock() + ttl

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        with self._lock:
            self._drop_expired(self.clock())
            self._entries[key] = (value, self._expires_at(ttl))

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at is not None and expires_at <= self.clock():
                del self._entries[key]
                return default
            return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def _drop_expired(self, now: float) -> int:
        expired = [k for k, (_, exp) in self._entries.items() if exp is not None and exp <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            return self._drop_expired(now)

    def items(self) -> Iterator[tuple[str, Any]]:
        self.purge_expired()
        with self._lock:
            snapshot = [(k, v) for k, (v, _) in self._entries.items()]
        return iter(snapshot)

    def __contains__(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        self.purge_expired()
        with self._lock:
            return len(self._entries)
