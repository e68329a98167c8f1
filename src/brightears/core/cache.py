"""
In-process TTL cache for expensive read queries (artist search, profiles).
Why: bounded staleness without a cache server; one instance per app, not a module global.
"""

import json
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Pattern, TypeVar, Union

from .logging import get_logger

_LOG = get_logger(__name__)

T = TypeVar("T")


class CacheTTL:
    """TTL tiers in seconds; pick the one matching the data's volatility."""

    SHORT_TERM = 60
    SEARCH_RESULTS = 3 * 60
    ARTIST_PROFILE = 10 * 60
    STATIC_DATA = 60 * 60


DEFAULT_TTL = 5 * 60


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        # Strict: ttl <= 0 is expired on arrival.
        return now - self.stored_at < self.ttl


class TTLCache(Generic[T]):
    """Key/value store where each entry carries its own TTL.

    Expiry is lazy on read; ``cleanup()`` sweeps entries nobody reads again.
    ``max_entries`` bounds the size, evicting the oldest entry once expired
    ones are gone. ``None`` leaves the cache bounded by time only.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._data: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if not entry.is_live(self._clock()):
                del self._data[key]
                return None
            return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            if (
                self.max_entries is not None
                and key not in self._data
                and len(self._data) >= self.max_entries
            ):
                self._make_room(now)
            self._data[key] = CacheEntry(value=value, stored_at=now, ttl=ttl)

    def has(self, key: str) -> bool:
        """Agrees with ``get``: a stored ``None`` counts as absent."""
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Drop every key matching ``pattern``.

        A plain string matches as a substring; a compiled regex is applied
        with ``search``. Returns how many entries were removed.
        """
        regex = re.compile(re.escape(pattern)) if isinstance(pattern, str) else pattern
        with self._lock:
            doomed = [key for key in self._data if regex.search(key)]
            for key in doomed:
                del self._data[key]
        if doomed:
            _LOG.info(
                f"Invalidated {len(doomed)} cache entries",
                extra={"cache_pattern": _pattern_text(pattern), "removed": len(doomed)},
            )
        return len(doomed)

    def cleanup(self) -> int:
        """Remove all expired entries; returns the number removed."""
        with self._lock:
            removed = self._purge_expired(self._clock())
        if removed:
            _LOG.info(f"Cache cleanup removed {removed} expired entries", extra={"removed": removed})
        return removed

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._data)}

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    @staticmethod
    def generate_key(params: Mapping[str, Any], prefix: Optional[str] = None) -> str:
        """Canonical key for a parameter mapping, independent of insertion order.

        ``None`` values are dropped so an omitted filter and an explicit
        ``None`` share one entry.
        """
        present = {name: value for name, value in params.items() if value is not None}
        canonical = json.dumps(present, sort_keys=True, separators=(",", ":"), default=_json_default)
        return f"{prefix}:{canonical}" if prefix else canonical

    def __len__(self) -> int:
        return self.get_stats()["size"]

    # caller holds the lock
    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._data.items() if not entry.is_live(now)]
        for key in expired:
            del self._data[key]
        return len(expired)

    def _make_room(self, now: float) -> None:
        self._purge_expired(now)
        if not self._data or len(self._data) < (self.max_entries or 0):
            return
        oldest = min(self._data, key=lambda k: self._data[k].stored_at)
        del self._data[oldest]
        _LOG.debug("Cache full, evicted oldest entry", extra={"cache_key": oldest})


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        # iteration order follows the hash seed; sort for a stable key
        return sorted(value, key=repr)
    return str(value)


def _pattern_text(pattern: Union[str, Pattern[str]]) -> str:
    return pattern if isinstance(pattern, str) else pattern.pattern


__all__ = ["CacheEntry", "CacheTTL", "DEFAULT_TTL", "TTLCache"]
