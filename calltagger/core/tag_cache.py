"""
Content-addressed tag cache for cost optimization.

Transcripts are retagged often (taxonomy updates, calibration reruns) and
identical chunks recur across passes. Caching by a SHA-256 digest of the exact
chunk text skips paying for the same LLM call twice.
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .taxonomy import TaxonomyTag

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached tags for one chunk text."""
    tags: Tuple[TaxonomyTag, ...]
    created_at: float = field(default_factory=time.time)


class TagCache:
    """
    In-memory LRU cache keyed by the SHA-256 of chunk text.

    - Exact-match only: no case or whitespace normalization
    - Bounded by max_size, least recently used entry evicted first
    - Entries expire after ttl_seconds regardless of capacity pressure

    Usage:
        cache = TagCache(max_size=10000, ttl_seconds=3600)

        tags = cache.get(text)
        if tags is None:
            tags = classify(text)
            cache.set(text, tags)
    """

    def __init__(
        self,
        max_size: int = 10_000,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize tag cache.

        Args:
            max_size: Maximum number of entries
            ttl_seconds: Entry time-to-live in seconds
            clock: Time source (seconds)
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def hash_text(text: str) -> str:
        """Deterministic cache key for chunk text."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def get(self, text: str) -> Optional[List[TaxonomyTag]]:
        """
        Look up cached tags for a chunk.

        Returns:
            List of tags, or None on miss / expired entry
        """
        key = self.hash_text(text)

        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self._misses += 1
                return None

            if self._clock() - entry.created_at > self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Cache entry expired: {key[:8]}...")
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return list(entry.tags)

    def set(self, text: str, tags: Sequence[TaxonomyTag]) -> None:
        """Store tags for a chunk, evicting the LRU entry when full."""
        key = self.hash_text(text)

        with self._lock:
            if key in self._entries:
                del self._entries[key]

            while len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache full, evicted {evicted[:8]}...")

            self._entries[key] = CacheEntry(
                tags=tuple(tags),
                created_at=self._clock()
            )

    @property
    def stats(self) -> Dict:
        """Cache statistics: size, hits, misses, hit_rate."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Tag cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
