"""
In-process store of exchanged tokens keyed by subject, audience and scopes.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class ExchangeCacheKey:
    """Who the token is for and what it grants."""

    subject: str
    audience: str
    scopes: FrozenSet[str]

    @classmethod
    def build(cls, subject: str, audience: str, scopes: Iterable[str]) -> "ExchangeCacheKey":
        return cls(subject=subject, audience=audience, scopes=frozenset(scopes))


@dataclass(frozen=True)
class ExchangeCacheEntry:
    """An exchanged token and the instant (epoch seconds) it expires."""

    token: str
    expires_at: float

    def __repr__(self) -> str:
        return f"ExchangeCacheEntry(expires_at={self.expires_at})"


class ExchangeCache:
    """Thread-safe keyed store with expiry.

    Entries are replaced whole, never mutated. An entry is considered expired
    ``skew_seconds`` before its real expiry and is dropped on lookup. An insert
    also sweeps out every expired entry, at most once per ``purge_interval``
    seconds, so subjects that never come back do not accumulate.
    """

    def __init__(self, skew_seconds: float = 0.0, clock: Callable[[], float] = time.time,
                 purge_interval: float = 60.0):
        self.skew_seconds = skew_seconds
        self.purge_interval = purge_interval
        self._clock = clock
        self._entries: Dict[ExchangeCacheKey, ExchangeCacheEntry] = {}
        self._last_purge = clock()
        self._lock = threading.Lock()

    def get(self, key: ExchangeCacheKey) -> Optional[ExchangeCacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at - self.skew_seconds <= self._clock():
                del self._entries[key]
                return None
            return entry

    def put(self, key: ExchangeCacheKey, entry: ExchangeCacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry
            now = self._clock()
            if now - self._last_purge >= self.purge_interval:
                self._purge_locked(now)

    def invalidate(self, key: ExchangeCacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.expires_at - self.skew_seconds <= now]
        for key in expired:
            del self._entries[key]
        self._last_purge = now
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
