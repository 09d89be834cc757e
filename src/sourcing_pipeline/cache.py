"""In-memory caches for search responses and classifier verdicts.

Both caches are plain objects owned by the pipeline that creates them, share
the ``get`` / ``put`` / ``sweep`` interface, and guard their store with a
``threading.Lock`` so concurrent searches can read and insert safely. Entries
are immutable once written: a second ``put`` for a live key is ignored.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import CACHE_SWEEP_INTERVAL_SECONDS, SEARCH_CACHE_TTL_SECONDS
from .models import ClassificationResult, SearchResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    response: SearchResponse
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.created_at + self.ttl


class SearchCache:
    """Full search responses keyed by search id, with TTL expiry."""

    def __init__(
        self,
        default_ttl: float = SEARCH_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def put(self, search_id: str, response: SearchResponse, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        now = self._clock()
        with self._lock:
            existing = self._store.get(search_id)
            if existing is not None and not existing.is_expired(now):
                logger.debug("Search %s already cached; keeping first entry", search_id)
                return
            self._store[search_id] = CacheEntry(response=response, created_at=now, ttl=ttl)

    def get(self, search_id: str) -> Optional[SearchResponse]:
        """Cached response, or None when unknown or expired (expired entries are dropped)."""
        now = self._clock()
        with self._lock:
            entry = self._store.get(search_id)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._store[search_id]
                return None
            return entry.response

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
            for key in expired:
                del self._store[key]
        if expired:
            logger.info("Swept %d expired search cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            entries: List[Dict[str, Any]] = [
                {
                    "search_id": key,
                    "age_seconds": now - entry.created_at,
                    "expires_in_seconds": entry.created_at + entry.ttl - now,
                }
                for key, entry in self._store.items()
            ]
        return {"size": len(entries), "entries": entries}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class ClassificationCache:
    """Classifier verdicts keyed by seller id. No expiry."""

    def __init__(self) -> None:
        self._store: Dict[str, ClassificationResult] = {}
        self._lock = threading.Lock()

    def get(self, seller_id: str) -> Optional[ClassificationResult]:
        with self._lock:
            return self._store.get(seller_id)

    def put(self, seller_id: str, result: ClassificationResult) -> None:
        with self._lock:
            self._store.setdefault(seller_id, result)

    def sweep(self) -> int:
        return 0

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class CacheSweeper:
    """Background asyncio task that calls ``cache.sweep()`` at a fixed interval."""

    def __init__(self, cache: Any, interval_seconds: float = CACHE_SWEEP_INTERVAL_SECONDS) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping; must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Cache sweeper started (every %.0fs)", self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.cache.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
