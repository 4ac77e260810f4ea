"""In-process cache of aggregated model suggestions keyed by content hash.

Keys come from :func:`draft_assist.textutils.content_hash`, a non-cryptographic
hash. Two different texts that collide share an entry, and the second one is
served the first one's suggestions. That risk is accepted and not detected.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable, Dict, List

from .models import CacheEntry, Suggestion

logger = logging.getLogger(__name__)


class ResultCache:
    """TTL cache with batch eviction of the oldest entries when full."""

    def __init__(
        self,
        ttl_seconds: float = 120.0,
        max_size: int = 20,
        eviction_fraction: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1.")
        if not 0.0 < eviction_fraction <= 1.0:
            raise ValueError("eviction_fraction must be in (0, 1].")
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._eviction_count = max(1, math.floor(max_size * eviction_fraction))
        self._clock = clock
        # dicts keep insertion order, so iteration is oldest-first
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> List[Suggestion] | None:
        """Return cached suggestions, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Cache miss for %s", key)
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                logger.debug("Cache entry %s expired", key)
                return None
            logger.debug("Cache hit for %s", key)
            return list(entry.suggestions)

    def put(self, key: str, suggestions: List[Suggestion]) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired_locked(now)
            # Re-inserting moves the key to the young end.
            self._entries.pop(key, None)
            if len(self._entries) >= self._max_size:
                victims = list(self._entries)[: self._eviction_count]
                for victim in victims:
                    del self._entries[victim]
                logger.debug("Evicted %s cache entries", len(victims))
            self._entries[key] = CacheEntry(suggestions=list(suggestions), created_at=now)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cache cleanup: removed %s expired entries", len(expired))
        return len(expired)

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self._ttl
