"""Process-local key/value cache with time-based expiry."""

from __future__ import annotations

import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]

SIMILARITY_TTL_SECONDS = 24 * 60 * 60


class TTLCache(Generic[K, V]):
    """A dict-backed cache whose entries expire ``ttl_seconds`` after insertion.

    The clock is injected so tests can move time forward without sleeping.
    Not thread-safe; the scheduler that owns it runs a single loop.
    """

    def __init__(self, ttl_seconds: float, clock: Optional[Clock] = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self._clock: Clock = clock or time.monotonic
        self._entries: Dict[K, Tuple[V, float]] = {}

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = (value, self._clock())

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)

    def purge(self) -> int:
        """Drop expired entries and return how many were removed."""

        now = self._clock()
        expired = [k for k, (_, at) in self._entries.items() if now - at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["Clock", "SIMILARITY_TTL_SECONDS", "TTLCache"]
