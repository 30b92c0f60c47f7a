"""Timestamped in-memory caches used for duplicate suppression."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from typing import Any

Clock = Callable[[], float]


class CacheBackend(ABC):
    """Abstract cache keyed by string with a per-entry last-seen time."""

    @abstractmethod
    def get(self, key: str) -> tuple[Any, float] | None:
        """Return ``(value, seen_at)`` for a key or ``None`` when missing."""

    @abstractmethod
    def set(self, key: str, value: Any = None) -> None:
        """Record a value for ``key`` stamped with the current time."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete one cache key."""

    @abstractmethod
    def clear(self) -> None:
        """Clear all cache entries."""

    @abstractmethod
    def sweep(self, max_age: float) -> int:
        """Evict entries older than ``max_age`` seconds; return eviction count."""


class TimedCache(CacheBackend):
    """Dictionary cache that remembers when each key was last recorded.

    Entries never expire on read; callers decide what "too old" means and
    call :meth:`sweep` (lazily on insert, and from a periodic task).

    Args:
        clock: Time source in seconds. Defaults to ``time.time``.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock: Clock = clock or time.time
        self._data: dict[str, tuple[Any, float]] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> tuple[Any, float] | None:
        return self._data.get(key)

    def set(self, key: str, value: Any = None) -> None:
        self._data[key] = (value, self._clock())

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def age(self, key: str) -> float | None:
        """Seconds since ``key`` was recorded, or ``None`` when missing."""
        item = self._data.get(key)
        if item is None:
            return None
        return self._clock() - item[1]

    def sweep(self, max_age: float) -> int:
        now = self._clock()
        stale = [key for key, (_, seen) in self._data.items() if now - seen > max_age]
        for key in stale:
            del self._data[key]
        return len(stale)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))
