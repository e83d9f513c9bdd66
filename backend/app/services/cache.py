# backend/app/services/cache.py
"""
Explicit TTL cache abstraction.

A cache stores (value, timestamp) pairs and never decides freshness on its
own: every reader supplies the TTL it is willing to accept. This lets the
same store serve a 15-minute AVIV reading and an hour-old price series.

Implementations:
    InMemoryTtlCache  - bounded LRU (OrderedDict + Lock), per process
    DatabaseTtlCache  - backed by the cache_entries table, shared across workers

Usage:
    cache = InMemoryTtlCache()
    cache.put("bitcoin-aviv", {"aviv": 1.3})

    hit = cache.get("bitcoin-aviv")             # (value, timestamp) or None
    value = get_fresh(cache, "bitcoin-aviv", timedelta(minutes=15))
"""

import copy
import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import CacheEntry
from app.services.constants import CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TtlCache(Protocol):
    """Key/value store returning values together with their write time."""

    def get(self, key: str) -> tuple[Any, datetime] | None:
        ...

    def put(self, key: str, value: Any) -> None:
        ...


def get_fresh(
        cache: TtlCache,
        key: str,
        ttl: timedelta,
        now: datetime | None = None,
) -> Any | None:
    """
    Return the cached value if it is younger than ttl, else None.

    Args:
        cache: Any TtlCache implementation
        key: Cache key
        ttl: Maximum acceptable age, supplied by the caller
        now: Reference time (defaults to current UTC time)
    """
    hit = cache.get(key)
    if hit is None:
        logger.debug(f"Cache miss: {key}")
        return None

    value, timestamp = hit
    age = (now or _utcnow()) - timestamp
    if age >= ttl:
        logger.debug(f"Cache stale: {key} (age {age.total_seconds():.0f}s)")
        return None

    logger.debug(f"Cache hit: {key}")
    return value


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryTtlCache:
    """
    Thread-safe bounded LRU cache.

    Reading an entry marks it most recently used; inserting beyond max_size
    evicts the least recently used entry. Values are deep-copied on the way
    in and out so callers cannot mutate cached state.
    """

    def __init__(self, max_size: int = CACHE_MAX_ENTRIES, clock: Clock = _utcnow):
        self._entries: OrderedDict[str, tuple[Any, datetime]] = OrderedDict()
        self._max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[Any, datetime] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            value, timestamp = entry
            return copy.deepcopy(value), timestamp

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = (copy.deepcopy(value), self._clock())

            while len(self._entries) > self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted (LRU): {evicted}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# DATABASE
# =============================================================================


class DatabaseTtlCache:
    """
    Cache backed by the cache_entries table.

    Values must be JSON-serialisable. put() overwrites the row for the key and
    resets its timestamp. The session is owned by the caller; this class
    commits its own writes.
    """

    def __init__(self, db: Session, clock: Clock = _utcnow):
        self._db = db
        self._clock = clock

    def get(self, key: str) -> tuple[Any, datetime] | None:
        entry = self._db.execute(
            select(CacheEntry).where(CacheEntry.cache_key == key)
        ).scalar_one_or_none()
        if entry is None:
            return None

        created_at = entry.created_at
        # SQLite drops tzinfo on read; stored values are always UTC
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return entry.data, created_at

    def put(self, key: str, value: Any) -> None:
        entry = self._db.execute(
            select(CacheEntry).where(CacheEntry.cache_key == key)
        ).scalar_one_or_none()

        if entry is None:
            self._db.add(CacheEntry(cache_key=key, data=value, created_at=self._clock()))
        else:
            entry.data = value
            entry.created_at = self._clock()

        self._db.commit()
        logger.debug(f"Cache stored: {key}")
