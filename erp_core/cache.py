"""
Short-lived in-memory cache for remote query results.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .logging import get_logger


DEFAULT_QUERY_CACHE_TTL = 30.0


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class QueryCache:
    """TTL map from an opaque key to the last successful result.

    Stale entries stay in place until overwritten or cleared; there is no size
    bound. Callers are expected to ``clear()`` after a mutation.
    """

    def __init__(self, ttl: float = DEFAULT_QUERY_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.logger = get_logger("erp.query_cache")

    def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key`` if it is still fresh."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, key: str) -> bool:
        """Drop a single key. Returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self.logger.debug("Query cache cleared", entries=count)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
