"""In-memory TTL cache for extraction results.

Entries are evicted lazily: expiry is checked on lookup and there is no
background sweep. Disabling the cache is a visibility gate, not a purge -
stored entries survive and reappear when the cache is re-enabled.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from precohora.logger import get_logger

log = get_logger(__name__)

KEY_SEPARATOR = "&"


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class ResultCache:
    """Key-addressed store with per-entry absolute expiry.

    Attributes:
        enabled: Whether lookups and stores are currently honoured.

    Example:
        cache = ResultCache()
        key = ResultCache.build_key("coordinates", {"lat": -12.97, "lng": -38.5})
        cache.put(key, stations, ttl_seconds=3600)
        cache.get(key)  # -> stations, until the hour is up
    """

    def __init__(
        self,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an empty cache.

        Args:
            enabled: Initial state of the visibility gate.
            clock: Monotonic seconds source; injectable for tests.
        """
        self._entries: dict[str, CacheEntry] = {}
        self._enabled = enabled
        self._clock = clock

    @staticmethod
    def build_key(prefix: str, params: Mapping[str, Any]) -> str:
        """Build a canonical key from a scope tag and parameters.

        Pairs are ordered by parameter name, so the key does not depend on
        the mapping's insertion order.

        Args:
            prefix: Scope tag, e.g. ``"coordinates"``.
            params: Parameter names mapped to values.

        Returns:
            Key of the form ``prefix:a=1&b=2``.
        """
        pairs = KEY_SEPARATOR.join(f"{name}={params[name]}" for name in sorted(params))
        return f"{prefix}:{pairs}"

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        log.info("Cache " + ("enabled" if enabled else "disabled"), stored_entries=len(self._entries))

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent, expired or disabled.

        An expired entry is removed as a side effect of the lookup.
        """
        if not self._enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() >= entry.expires_at:
            log.debug("Cache entry expired", key=key)
            del self._entries[key]
            return None

        log.debug("Cache hit", key=key)
        return entry.value

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a value, replacing any existing entry for the key."""
        if not self._enabled:
            return

        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)
        log.debug("Cache entry stored", key=key, ttl_seconds=ttl_seconds)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        log.debug("Cache entry removed", key=key)

    def clear(self) -> None:
        self._entries.clear()
        log.info("Cache cleared")

    def __len__(self) -> int:
        return len(self._entries)
