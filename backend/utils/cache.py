"""In-memory cache with age-based expiry.

Each service owns its own ``TTLCache`` passed in by the application
factory. Entries are invalidated purely by elapsed time, never by
content. Access happens from one event loop, so there is no locking.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float


class TTLCache:
    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "",
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self.name = name
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}

    def _live_entry(self, key: Hashable, max_age: Optional[float]) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        window = self.ttl_seconds if max_age is None else float(max_age)
        if self._clock() - entry.inserted_at < window:
            return entry
        return None

    def get(self, key: Hashable, max_age: Optional[float] = None, default: Any = None) -> Any:
        """Return the stored value while younger than the TTL (or ``max_age``).

        Expired entries stay in place so a later call with a wider
        ``max_age`` can still serve them as a stale fallback. A stored
        ``None`` is indistinguishable from a miss here; use ``in`` or
        ``default`` to tell them apart.
        """
        entry = self._live_entry(key, max_age)
        return default if entry is None else entry.value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def age(self, key: Hashable) -> Optional[float]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.inserted_at

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self._live_entry(key, None) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        fresh = sum(
            1 for e in self._entries.values() if now - e.inserted_at < self.ttl_seconds
        )
        return {
            "name": self.name,
            "size": len(self._entries),
            "fresh": fresh,
            "ttlSeconds": self.ttl_seconds,
        }
