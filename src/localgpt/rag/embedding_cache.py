"""Content-addressed cache of embedding vectors.

Vectors are keyed by (sha256 of the text, embedding model), so the same
passage embedded by two different models never shares an entry. Vectors
from different models are not comparable, which is why the owner clears
the whole cache whenever the embedding model selection changes.
"""

import hashlib
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from localgpt.utils.logging import get_logger


logger = get_logger(__name__)


def content_hash(text: str) -> str:
    """Deterministic hex digest identifying a text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class CacheStats:
    """Counters for cache activity since the last clear.

    Attributes:
        hits: Lookups that found a vector
        misses: Lookups that found nothing
        evictions: Entries dropped to respect max_entries
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for logging."""
        return {"hits": self.hits, "misses": self.misses, "evictions": self.evictions}


class EmbeddingCache:
    """
    Process-wide store of previously computed embedding vectors.

    Safe for concurrent use from threads and coroutines: every operation
    holds an internal lock. A clear() racing with a put() may drop that
    entry, which only costs a recomputation.

    Entries live until clear() or until evicted. With max_entries unset the
    cache grows without bound (one working set of documents is expected);
    with max_entries set, the least recently used entry is evicted first.

    Example:
        >>> cache = EmbeddingCache()
        >>> cache.put("some passage", "nomic-embed-text", vector)
        >>> cache.get("some passage", "nomic-embed-text") is not None
        True
        >>> cache.get("some passage", "all-minilm") is None
        True
    """

    def __init__(self, max_entries: Optional[int] = None):
        """
        Initialize cache.

        Args:
            max_entries: Optional capacity; None means unbounded
        """
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[tuple[str, str], np.ndarray]" = OrderedDict()
        self._lock = threading.Lock()
        self.stats = CacheStats()

    @staticmethod
    def make_key(text: str, model: str) -> tuple[str, str]:
        """Cache key for a text under an embedding model."""
        return content_hash(text), model

    def get(self, text: str, model: str) -> Optional[np.ndarray]:
        """
        Look up the vector of `text` computed by `model`.

        Returns:
            The cached vector, or None on a miss
        """
        key = self.make_key(text, model)
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self.stats.misses += 1
                return None
            self._entries.move_to_end(key)
            self.stats.hits += 1
            return vector

    def put(self, text: str, model: str, vector: Any) -> None:
        """
        Store the vector of `text` computed by `model`.

        The vector is copied and made read-only so later mutation by the
        caller cannot corrupt the cache.
        """
        stored = np.array(vector, dtype=np.float32)
        stored.setflags(write=False)
        key = self.make_key(text, model)
        with self._lock:
            self._entries[key] = stored
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
                    self.stats.evictions += 1

    def clear(self) -> None:
        """Drop every entry (called when the embedding model selection changes)."""
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self.stats = CacheStats()
        logger.info("embedding_cache_cleared", dropped=dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, item: tuple[str, str]) -> bool:
        """Membership by (text, model) pair; does not count as a hit or miss."""
        text, model = item
        key = self.make_key(text, model)
        with self._lock:
            return key in self._entries
