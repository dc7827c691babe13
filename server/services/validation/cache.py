"""In-memory validation result cache.

LRU capacity eviction plus TTL expiry, with single-flight fetch coalescing:
at most one ``fetcher`` runs per key at any instant, and every concurrent
``get_or_fetch`` for that key awaits the same in-flight task.

Single-process only. The in-flight map relies on the event loop: the
check-then-register in ``get_or_fetch`` contains no await, so it cannot
interleave with another coroutine.
"""

import asyncio
import threading
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

from core.logging import get_logger, log_cache_operation
from .models import CacheEntry, CacheStats

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING = object()


class ValidationCache(Generic[T]):
    """TTL/LRU cache with fetch coalescing."""

    def __init__(
        self,
        max_size: int = 100,
        ttl: float = 300.0,
        stale_while_revalidate: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache.

        Args:
            max_size: Entries kept before the least recently used is dropped
            ttl: Seconds after which an entry counts as expired
            stale_while_revalidate: Serve expired entries from get_or_fetch
                while a background refresh runs
            clock: Wall-clock source in seconds
        """
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl = ttl
        self.stale_while_revalidate = stale_while_revalidate
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._lock = threading.RLock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._coalesced = 0

    # =========================================================================
    # BASIC OPERATIONS
    # =========================================================================

    def get(self, key: str) -> Optional[T]:
        """Return the live value for ``key`` or None."""
        with self._lock:
            value = self._lookup(key)
            if value is _MISSING:
                self._misses += 1
                log_cache_operation(logger, "get", key, hit=False)
                return None
            self._hits += 1
        log_cache_operation(logger, "get", key, hit=True)
        return value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, created_at=self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                log_cache_operation(logger, "evict", evicted)
        log_cache_operation(logger, "set", key, ttl=self.ttl)

    def has(self, key: str) -> bool:
        """True when a live entry exists. Does not touch recency or counters."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._is_expired(entry)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry. In-flight fetches keep running and will still store."""
        with self._lock:
            self._entries.clear()

    def is_stale(self, key: str) -> bool:
        """True when ``key`` is absent or past its TTL."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is None or self._is_expired(entry)

    def purge_stale(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._is_expired(e)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        return len(expired)

    cleanup = purge_stale

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                max_size=self.max_size,
                evictions=self._evictions,
                expirations=self._expirations,
                coalesced=self._coalesced,
                in_flight=len(self._in_flight),
            )

    def __len__(self) -> int:
        return len(self._entries)

    # =========================================================================
    # FETCH COALESCING
    # =========================================================================

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        bypass_cache: bool = False,
    ) -> T:
        """Return a cached value, or compute it once for all concurrent callers.

        Args:
            key: Cache key
            fetcher: Zero-argument coroutine function producing the value
            bypass_cache: Ignore any cached value and fetch a fresh one

        Returns:
            The cached or freshly fetched value

        Raises:
            Whatever ``fetcher`` raises; nothing is cached in that case.
        """
        value, _ = await self.resolve(key, fetcher, bypass_cache=bypass_cache)
        return value

    async def resolve(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        bypass_cache: bool = False,
    ) -> Tuple[T, bool]:
        """Same as ``get_or_fetch`` but also reports whether the value was
        served from the cache (fresh or stale) rather than by a fetch.

        Callers that join an in-flight fetch get ``False``.
        """
        if not bypass_cache:
            with self._lock:
                value = self._lookup(key)
                if value is not _MISSING:
                    self._hits += 1
                    log_cache_operation(logger, "get_or_fetch", key, hit=True)
                    return value, True

                if self.stale_while_revalidate:
                    entry = self._entries.get(key)
                    if entry is not None:
                        self._hits += 1
                        if key not in self._in_flight:
                            self._start_fetch(key, fetcher)
                        log_cache_operation(logger, "get_or_fetch", key,
                                            hit=True, stale=True)
                        return entry.value, True

        task = self._in_flight.get(key)
        if task is not None:
            self._coalesced += 1
            logger.debug("Joined in-flight fetch", cache_key=key)
        else:
            task = self._start_fetch(key, fetcher)

        # Shield so a cancelled waiter never cancels the shared fetch
        return await asyncio.shield(task), False

    def _start_fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> asyncio.Task:
        self._misses += 1
        log_cache_operation(logger, "get_or_fetch", key, hit=False)
        task = asyncio.ensure_future(self._run_fetch(key, fetcher))
        self._in_flight[key] = task
        task.add_done_callback(lambda t: self._on_fetch_done(key, t))
        return task

    async def _run_fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetcher()
            self.set(key, value)
            return value
        finally:
            self._release(key, asyncio.current_task())

    def _on_fetch_done(self, key: str, task: asyncio.Task) -> None:
        self._release(key, task)
        if task.cancelled():
            return
        # Retrieving the exception here also covers background refreshes
        # nobody awaits.
        error = task.exception()
        if error is not None:
            logger.warning("Cache fetch failed", cache_key=key, error=str(error))

    def _release(self, key: str, task: Optional[asyncio.Task]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    # =========================================================================
    # INTERNALS (caller holds the lock)
    # =========================================================================

    def _is_expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.created_at > self.ttl

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if self._is_expired(entry):
            if not self.stale_while_revalidate:
                del self._entries[key]
                self._expirations += 1
            return _MISSING
        entry.hits += 1
        self._entries.move_to_end(key)
        return entry.value
