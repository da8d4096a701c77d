"""Keyed in-memory response cache with a per-entry TTL.

The cache is created by the application and handed to the HTTP layer as a
dependency; the computation services never touch it.
"""

import time
import threading
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Thread-safe dictionary whose entries expire after their TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def set(self, key: str, value: Any, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} entries")
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            return {"size": len(self._entries), "keys": list(self._entries)}


def cache_key(*parts) -> str:
    return ":".join(str(p) for p in parts)


def ttl_for_interval(interval: str, ttl_by_interval: dict[str, int], default: int = DEFAULT_TTL_SECONDS) -> int:
    key = getattr(interval, "value", interval)
    return ttl_by_interval.get(key, default)
