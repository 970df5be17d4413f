"""TTL cache for resource read results."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Final

logger = logging.getLogger(__name__)

STATE_URI: Final = "release://state"
CONFIG_URI: Final = "release://config"
COMMITS_URI: Final = "release://commits"
CHANGELOG_URI: Final = "release://changelog"
RISK_REPORT_URI: Final = "release://risk-report"

DEFAULT_TTL: Final = timedelta(seconds=10)
DEFAULT_TTLS: Final[Mapping[str, timedelta]] = {
    STATE_URI: timedelta(seconds=5),
    CONFIG_URI: timedelta(minutes=5),
    COMMITS_URI: timedelta(seconds=30),
    CHANGELOG_URI: timedelta(seconds=30),
    RISK_REPORT_URI: timedelta(seconds=30),
}
STATE_DEPENDENT_KEYS: Final = (STATE_URI, COMMITS_URI, CHANGELOG_URI, RISK_REPORT_URI)

type Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CacheEntry:
    value: Any
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(slots=True)
class CacheEntryStats:
    """Remaining lifetime of one entry."""

    expires_in: timedelta
    expired: bool


@dataclass(slots=True)
class CacheStats:
    """Snapshot of cache contents."""

    enabled: bool
    entry_count: int
    entries: dict[str, CacheEntryStats] = field(default_factory=dict)


class ResourceCache:
    """Per-key TTL cache with lazy expiry.

    Expired entries are treated as absent on read but only removed by
    `cleanup()`. Disabling the cache drops every entry, so re-enabling never
    brings old values back.
    """

    def __init__(
        self,
        ttls: Mapping[str, timedelta] | None = None,
        *,
        default_ttl: timedelta = DEFAULT_TTL,
        clock: Clock = _utc_now,
    ) -> None:
        self._ttls: dict[str, timedelta] = dict(DEFAULT_TTLS if ttls is None else ttls)
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._enabled = True
        self._lock = threading.RLock()

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def ttl_for(self, key: str) -> timedelta:
        with self._lock:
            return self._ttls.get(key, self._default_ttl)

    def get(self, key: str) -> Any | None:
        with self._lock:
            if not self._enabled:
                return None
            entry = self._entries.get(key)
            if entry is None or entry.expired(self._clock()):
                logger.debug("cache miss: %s", key)
                return None
            logger.debug("cache hit: %s", key)
            return entry.value

    def set(self, key: str, value: Any) -> None:
        if value is None:
            return
        with self._lock:
            if not self._enabled:
                return
            ttl = self._ttls.get(key, self._default_ttl)
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
        logger.debug("cache invalidated: %s", key)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("cache cleared")

    def invalidate_state_dependent(self) -> None:
        """Drop every entry derived from release state; config survives."""
        with self._lock:
            for key in STATE_DEPENDENT_KEYS:
                self._entries.pop(key, None)
        logger.debug("cache invalidated state-dependent resources")

    def set_ttl(self, key: str, ttl: timedelta) -> None:
        """Change the TTL used for future writes of `key`."""
        with self._lock:
            self._ttls[key] = ttl

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled
            if not enabled:
                self._entries.clear()

    def cleanup(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("cache cleanup removed %d entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            entries = {
                key: CacheEntryStats(
                    expires_in=entry.expires_at - now,
                    expired=entry.expired(now),
                )
                for key, entry in self._entries.items()
            }
            return CacheStats(enabled=self._enabled, entry_count=len(entries), entries=entries)
