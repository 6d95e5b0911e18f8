from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock

from votebot.cache import Clock, ExpiringMap


@dataclass(slots=True)
class _Flag:
    active: bool = False


class SingleFlightRegistry:
    """Per-item in-flight flags. At most one evaluation per item holds its flag.

    Entries are created lazily and dropped after ``idle_seconds`` without use,
    so a flag leaked by a crashed evaluation eventually clears itself.
    """

    def __init__(self, *, idle_seconds: float = 6 * 3600, clock: Clock | None = None) -> None:
        if clock is None:
            self._flags: ExpiringMap[_Flag] = ExpiringMap(ttl_seconds=idle_seconds, refresh_on_access=True)
        else:
            self._flags = ExpiringMap(ttl_seconds=idle_seconds, refresh_on_access=True, clock=clock)
        self._lock = Lock()

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            flag = self._flags.setdefault(key, _Flag)
            if flag.active:
                return False
            flag.active = True
            return True

    def release(self, key: str) -> None:
        with self._lock:
            flag = self._flags.get(key)
            if flag is not None:
                flag.active = False

    def is_active(self, key: str) -> bool:
        flag = self._flags.get(key)
        return flag is not None and flag.active

    @contextmanager
    def guard(self, key: str) -> Iterator[bool]:
        """Yield whether the flag was acquired; release it on exit if so."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    def __len__(self) -> int:
        return len(self._flags)
