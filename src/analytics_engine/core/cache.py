"""
Size and time bounded in-memory cache for aggregate results.

Entries expire after their TTL and the store is capped at `max_entries`.
Expired entries are dropped lazily on `get` and in bulk by `sweep()`, which
a background thread runs on a fixed interval once `start()` is called.
When the store overflows, the oldest entries are evicted until it is back
down to `max_entries * eviction_target_ratio`.

The cache is process local. Instances of the host service do not share it.
"""
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ..config import (
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_EVICTION_TARGET_RATIO,
    DEFAULT_MAX_CACHE_ENTRIES,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
)
from .models import CacheStats
from .time_aggregator import safe_divide

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its creation time (clock seconds) and TTL."""
    value: T
    created_at: float
    ttl_ms: float

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) * 1000 > self.ttl_ms


class BoundedTTLCache(Generic[T]):
    """Thread-safe key -> value cache with per-entry TTL and a size cap.

    Usage:
        cache = BoundedTTLCache(max_entries=500)
        cache.start()  # background sweep
        cache.set("daily", stats, ttl_ms=60_000)
        cache.get("daily")
        cache.destroy()
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
        eviction_target_ratio: float = DEFAULT_EVICTION_TARGET_RATIO,
        default_ttl_ms: float = DEFAULT_CACHE_TTL_MS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        if not 0 < eviction_target_ratio <= 1:
            raise ValueError(
                f"eviction_target_ratio must be in (0, 1], got {eviction_target_ratio}"
            )

        self.max_entries = max_entries
        self.eviction_target_ratio = eviction_target_ratio
        self.default_ttl_ms = default_ttl_ms
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock

        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        self._sweeper: threading.Thread | None = None
        self._stop_sweeper: threading.Event | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def target_size(self) -> int:
        """Entry count the store shrinks to once it overflows."""
        return min(self.max_entries, int(self.max_entries * self.eviction_target_ratio))

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def set(self, key: str, value: T, ttl_ms: float | None = None) -> None:
        """Store a value. Re-setting a key makes it the newest entry."""
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms

        with self._lock:
            # Drop first so the key moves to the end of insertion order
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value=value, created_at=self._clock(), ttl_ms=ttl)
            logger.debug(f"Data cached: key={key} ttl_ms={ttl}")
            self._enforce_size_limit()

    def get(self, key: str) -> T | None:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Cache expired: key={key}")
                return None

            self._hits += 1
            logger.debug(f"Cache hit: key={key}")
            return entry.value

    def invalidate(self, key: str) -> None:
        """Remove a single entry if present."""
        with self._lock:
            self._entries.pop(key, None)
        logger.debug(f"Cache invalidated: key={key}")

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def sweep(self) -> int:
        """Remove all expired entries, then enforce the size cap.

        Returns:
            Number of expired entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]

            if expired:
                logger.debug(
                    f"Cache cleanup: removed={len(expired)} remaining={len(self._entries)}"
                )

            self._enforce_size_limit()
            return len(expired)

    def stats(self) -> CacheStats:
        """Snapshot of size and hit/miss counters."""
        with self._lock:
            lookups = self._hits + self._misses
            return CacheStats(
                size=len(self._entries),
                max_entries=self.max_entries,
                keys=list(self._entries.keys()),
                hits=self._hits,
                misses=self._misses,
                hit_rate=safe_divide(self._hits, lookups) * 100,
            )

    # -------------------------------------------------------------------------
    # Background sweep
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Check if the background sweeper is active."""
        return self._sweeper is not None and self._sweeper.is_alive()

    def start(self) -> None:
        """Start the background sweeper. Calling it twice is a no-op."""
        with self._lock:
            if self._sweeper is not None:
                return
            self._stop_sweeper = threading.Event()
            # Must not keep the process alive
            self._sweeper = threading.Thread(
                target=self._run_sweeper,
                args=(self._stop_sweeper,),
                name="ttl-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()
        logger.info(f"Cache sweeper started: interval={self.sweep_interval_seconds}s")

    def destroy(self) -> None:
        """Stop the background sweeper and drop every entry."""
        with self._lock:
            sweeper, stop = self._sweeper, self._stop_sweeper
            self._sweeper = None
            self._stop_sweeper = None

        if stop is not None:
            stop.set()
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join()

        self.clear()
        logger.info("Cache destroyed")

    def _run_sweeper(self, stop: threading.Event) -> None:
        while not stop.wait(self.sweep_interval_seconds):
            self.sweep()

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    def _enforce_size_limit(self) -> None:
        """Evict oldest entries once the store exceeds max_entries.

        Caller must hold the lock.
        """
        if len(self._entries) <= self.max_entries:
            return

        target = self.target_size
        # sorted() is stable, so equal timestamps keep insertion order
        oldest_first = sorted(self._entries.items(), key=lambda item: item[1].created_at)
        to_remove = max(0, len(self._entries) - target)

        for key, _ in oldest_first[:to_remove]:
            del self._entries[key]

        logger.debug(f"Cache evicted: removed={to_remove} remaining={len(self._entries)}")
