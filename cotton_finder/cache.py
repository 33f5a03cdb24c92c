"""Time-expiring results cache for search runs.

The cache is owned by whoever calls the pipeline and is passed in
explicitly, so tests can drive expiry with a fake clock.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from cotton_finder.config import SEARCH_CACHE_TTL

__all__ = ["TTLCache"]


class TTLCache:
    """In-memory key/value cache where each entry expires after a TTL.

    Args:
        ttl_seconds: Default lifetime of an entry.
        clock: Returns the current time in seconds (default: time.monotonic).
    """

    def __init__(
        self,
        ttl_seconds: float = SEARCH_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value for ``ttl`` seconds (default: the cache TTL)."""
        lifetime = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            self._entries[key] = (self._clock() + lifetime, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
