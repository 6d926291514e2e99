import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Dict, Hashable, NamedTuple, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


class CacheEntry(NamedTuple):
    records: Tuple
    fetched_at: float


class QueryCache:
    """Last full-record fetch per key, expired lazily after ``ttl`` seconds."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()
        self._loading: Dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> Optional[Tuple]:
        """Cached records for ``key``, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self.clock() - entry.fetched_at < self.ttl:
                return entry.records
            return None

    def put(self, key: Hashable, records: Sequence) -> Tuple:
        stored = tuple(records)
        with self._lock:
            self._entries[key] = CacheEntry(stored, self.clock())
        return stored

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                dropped = 1 if self._entries.pop(key, None) is not None else 0
        logger.info("Invalidated %d cache entr%s", dropped, "y" if dropped == 1 else "ies")

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Sequence]]) -> Tuple:
        """Return cached records or await ``loader`` once and cache its result.

        Concurrent misses on the same key wait for the first load instead of
        issuing their own.
        """
        records = self.get(key)
        if records is not None:
            return records
        lock = self._loading.setdefault(key, asyncio.Lock())
        async with lock:
            records = self.get(key)
            if records is not None:
                return records
            logger.debug("Cache miss for %s", key)
            return self.put(key, await loader())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
