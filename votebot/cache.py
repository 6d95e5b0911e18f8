"""Small in-memory maps with time-based expiry.

Entries expire after ``ttl_seconds``. With ``refresh_on_access`` the clock
restarts on every read (idle expiry); otherwise it only restarts on write.
Expired entries are pruned lazily on access.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    touched_at: float


class ExpiringMap(Generic[V]):
    def __init__(
        self,
        *,
        ttl_seconds: float,
        refresh_on_access: bool = False,
        clock: Clock = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._refresh = refresh_on_access
        self._clock = clock
        self._entries: dict[str, _Entry[V]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def get(self, key: str) -> V | None:
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return None
            if self._refresh:
                entry.touched_at = now
            return entry.value

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, touched_at=self._clock())

    def setdefault(self, key: str, factory: Callable[[], V]) -> V:
        """Return the live value for ``key``, creating it with ``factory`` if absent.

        The check and the insert happen under one lock, so concurrent callers
        always observe the same value.
        """
        with self._lock:
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                entry = _Entry(value=factory(), touched_at=now)
                self._entries[key] = entry
            elif self._refresh:
                entry.touched_at = now
            return entry.value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune(self) -> int:
        with self._lock:
            return self._prune(self._clock())

    def _live_entry(self, key: str, now: float) -> _Entry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now - entry.touched_at >= self._ttl:
            del self._entries[key]
            return None
        return entry

    def _prune(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now - entry.touched_at >= self._ttl]
        for key in expired:
            del self._entries[key]
        return len(expired)
