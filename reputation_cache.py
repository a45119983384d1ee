"""Expiring in-memory store for computed reputation results."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Callable, MutableMapping

from activity_analysis import current_millis
from trustgate_models import CacheCorruption, DataSource, ReputationResult

logger = logging.getLogger(__name__)

CacheKey = tuple[str, DataSource]

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 1000


def cache_key(address: str, live: bool) -> CacheKey:
    """Return the key for ``address`` under the live or fallback data mode."""

    return (address, DataSource.LIVE if live else DataSource.FALLBACK)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A stored result and the epoch-millisecond instant it stops being served."""

    key: CacheKey
    result: ReputationResult
    expires_at: int


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    corrupted: int = 0


class ReputationCache:
    """Keeps reputation results keyed by ``(address, data source mode)``.

    Reads ignore entries whose ``expires_at`` has passed even though they stay
    in memory until the next sweep.  A sweep runs whenever a write pushes the
    entry count above ``max_entries``: expired entries go first, then entries
    closest to expiry until the store is back under the ceiling.
    """

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._entries: MutableMapping[CacheKey, CacheEntry] = {}
        self._lock = threading.RLock()
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._clock = clock or current_millis
        self._stats = CacheStats()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: CacheKey) -> ReputationResult | None:
        """Return the fresh result stored under ``key`` or ``None``."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                logger.debug("Cache miss for %s/%s", key[0], key[1].value)
                return None
            try:
                self._check_entry(key, entry)
            except CacheCorruption as exc:
                self._stats.corrupted += 1
                self._stats.misses += 1
                del self._entries[key]
                logger.warning("Dropping corrupted cache entry for %s: %s", key[0], exc)
                return None
            if self._clock() >= entry.expires_at:
                self._stats.misses += 1
                logger.debug("Cache entry for %s/%s expired", key[0], key[1].value)
                return None
            self._stats.hits += 1
            logger.debug("Cache hit for %s/%s", key[0], key[1].value)
            return entry.result

    def put(
        self,
        key: CacheKey,
        result: ReputationResult,
        ttl: float | None = None,
    ) -> CacheEntry:
        """Store ``result`` under ``key`` for ``ttl`` seconds, replacing any entry."""

        lifetime = self._default_ttl if ttl is None else ttl
        if lifetime <= 0:
            raise ValueError("ttl must be positive")
        with self._lock:
            entry = CacheEntry(
                key=key,
                result=result,
                expires_at=self._clock() + int(lifetime * 1000),
            )
            self._entries[key] = entry
            if len(self._entries) > self._max_entries:
                self._evict()
            return entry

    def clear(self) -> None:
        """Drop every entry immediately."""

        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Remove entries that are no longer served and return how many went."""

        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
            self._stats.evictions += len(expired)
            return len(expired)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "evictions": self._stats.evictions,
                "corrupted": self._stats.corrupted,
                "size": len(self._entries),
            }

    def _evict(self) -> None:
        removed = self.purge_expired()
        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            by_expiry = sorted(self._entries.values(), key=lambda entry: entry.expires_at)
            for entry in by_expiry[:overflow]:
                del self._entries[entry.key]
            self._stats.evictions += overflow
            removed += overflow
        logger.debug("Cache sweep removed %d entries, %d remain", removed, len(self._entries))

    @staticmethod
    def _check_entry(key: CacheKey, entry: object) -> None:
        if not isinstance(entry, CacheEntry):
            raise CacheCorruption(f"unexpected entry type {type(entry).__name__}")
        if entry.key != key:
            raise CacheCorruption("entry stored under a foreign key")
        if not isinstance(entry.result, ReputationResult):
            raise CacheCorruption("entry does not hold a reputation result")
        if entry.result.data_source is not key[1] and key[1] is DataSource.FALLBACK:
            raise CacheCorruption("live result stored under the fallback key")


__all__ = [
    "CacheEntry",
    "CacheKey",
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_TTL_SECONDS",
    "ReputationCache",
    "cache_key",
]
