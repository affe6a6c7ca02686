"""Bounded, time-expiring cache for analysis results.

Entries expire ``ttl_seconds`` after insertion. When full, the oldest 20%
of entries by insertion time are evicted to make room. Only successful,
non-empty results are admitted (see ``is_cacheable``) so a transient
upstream failure is never served back as the canonical answer.
"""

import hashlib
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_EVICTION_FRACTION = 0.2


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


def analysis_fingerprint(target: str, context: str | None = None, category: str | None = None) -> str:
    """Normalized cache key for an analysis request.

    The target is compared case-insensitively with any trailing slash
    removed; context and category are trimmed and lowercased.
    """
    normalized_target = (target or "").strip().lower().rstrip("/")
    normalized_context = (context or "").strip().lower()
    normalized_category = (category or "").strip().lower()
    raw = "\x1f".join((normalized_target, normalized_context, normalized_category))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def is_cacheable(result: Any) -> bool:
    """True for successful results that created at least one card."""
    if not isinstance(result, dict):
        return False
    if result.get("success") is False or result.get("error"):
        return False
    cards_created = result.get("cardsCreated")
    return isinstance(cards_created, int) and cards_created > 0


class ResultCache:
    """TTL cache with a hard capacity bound."""

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            del self._entries[key]
            return None
        logger.debug("Analysis cache hit %s", key[:12])
        return entry.data

    def set(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_oldest()
        self._entries[key] = CacheEntry(data=value, timestamp=self._clock())

    def _evict_oldest(self) -> None:
        count = max(1, math.ceil(len(self._entries) * _EVICTION_FRACTION))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:count]
        for key, _entry in oldest:
            del self._entries[key]
        logger.debug("Analysis cache evicted %d entries", len(oldest))
