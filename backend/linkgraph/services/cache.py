"""In-process read-through cache for per-user connection queries."""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    data: Any
    expires_at: float


class QueryCache:
    """TTL cache keyed by ``(namespace, user_id)``.

    Mutating operations call ``invalidate_users`` right after their commit,
    so a stale entry never outlives the request that changed the data.
    """

    def __init__(self, ttl_seconds: float = 3600.0) -> None:
        self._ttl = ttl_seconds
        self._entries: dict[tuple[str, str], _CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_load(self, namespace: str, user_id: str, loader: Callable[[], Any]) -> Any:
        key = (namespace, user_id)
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now < entry.expires_at:
                self.hits += 1
                return entry.data
        self.misses += 1
        data = loader()
        if self._ttl > 0:
            with self._lock:
                self._entries[key] = _CacheEntry(data=data, expires_at=now + self._ttl)
        return data

    def invalidate_users(self, *user_ids: str) -> int:
        """Drop every cached entry belonging to any of ``user_ids``."""
        targets = set(user_ids)
        with self._lock:
            stale = [key for key in self._entries if key[1] in targets]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cache entries for users %s", len(stale), sorted(targets))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
