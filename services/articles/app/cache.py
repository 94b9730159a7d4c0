"""
In-process TTL caches.

Entries expire once ``now - timestamp >= ttl`` and are dropped lazily when a
lookup finds them expired; nothing sweeps the maps in the background. The
clock is injectable so tests can step time deterministically.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

from shared.schemas.article import Article

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp >= self.ttl


class TTLCache(Generic[V]):
    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[Hashable, CacheEntry[V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self.clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: Hashable, value: V) -> None:
        """Overwrite whatever is stored under ``key`` and restart its TTL."""
        self._entries[key] = CacheEntry(value=value, timestamp=self.clock(), ttl=self.ttl)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)


class DateCache(TTLCache[List[Article]]):
    """Article lists keyed by ``(region, date)``."""

    def get_articles(self, region: str, day: str) -> Optional[List[Article]]:
        articles = self.get(self._key(region, day))
        return list(articles) if articles is not None else None

    def put_articles(self, region: str, day: str, articles: List[Article]) -> None:
        self.set(self._key(region, day), list(articles))

    @staticmethod
    def _key(region: str, day: str) -> Tuple[str, str]:
        return (region, day)
