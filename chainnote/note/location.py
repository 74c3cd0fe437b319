"""
Short-lived store of the last location each user shared.

A user may send a location message and then, separately, the note it
belongs to. The location waits here until the note arrives, the entry
expires, or capacity forces it out.

Bounds:
    - Per-entry TTL, checked on read (expired entries are never returned).
    - Fixed capacity; inserting beyond it evicts the oldest entry.

Process-local and not durable: a restart forgets every pending location.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_MAX_ENTRIES = 1024


@dataclass(frozen=True)
class Location:
    """A shared location, as reported by the chat platform."""

    lat: float
    lon: float
    address: str | None = None


class LocationStore:
    """Bounded, expiring map of user id to Location.

    Args:
        ttl_seconds: Lifetime of an entry after it is stored.
        max_entries: Capacity; the oldest entry is evicted beyond it.
        clock: Monotonic clock in seconds. Inject for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[str, tuple[float, Location]] = OrderedDict()
        self._lock = threading.Lock()

    def put(self, user_id: str, location: Location) -> None:
        expires_at = self._clock() + self._ttl
        with self._lock:
            self._entries.pop(user_id, None)
            self._entries[user_id] = (expires_at, location)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def get(self, user_id: str) -> Location | None:
        """Return the user's location, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            expires_at, location = entry
            if self._clock() >= expires_at:
                del self._entries[user_id]
                return None
            return location

    def discard(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (exp, _) in self._entries.items() if now >= exp]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
