"""Cooperative single-thread scheduling.

Every piece of deferred monitor work (enrichment delay, polling, cache
cleanup, debug-mode retries) goes through a ``Scheduler``. Two
implementations exist:

- ``ManualScheduler`` keeps a virtual clock that only moves when
  ``advance()`` is called. Replays and tests use it.
- ``AsyncioScheduler`` runs callbacks on an asyncio event loop against wall
  clock time.

Callbacks due at the same instant run in submission order. A callback that
raises is logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


@dataclass(slots=True)
class TaskHandle:
    """Handle returned for every scheduled callback."""

    name: str
    interval: float | None = None
    cancelled: bool = False
    _native: Any = field(default=None, repr=False)

    def cancel(self) -> None:
        self.cancelled = True
        if self._native is not None:
            self._native.cancel()
            self._native = None


def _run_guarded(handle: TaskHandle, callback: Callback, args: tuple[Any, ...]) -> None:
    try:
        callback(*args)
    except Exception:
        logger.exception("Scheduled task %s failed", handle.name)


class Scheduler(ABC):
    """Abstract cooperative scheduler."""

    @abstractmethod
    def now(self) -> float:
        """Current time as epoch seconds."""

    @abstractmethod
    def call_later(
        self, delay: float, callback: Callback, *args: Any, name: str = ""
    ) -> TaskHandle:
        """Run ``callback(*args)`` once after ``delay`` seconds."""

    @abstractmethod
    def call_every(
        self, interval: float, callback: Callback, *args: Any, name: str = ""
    ) -> TaskHandle:
        """Run ``callback(*args)`` every ``interval`` seconds until cancelled."""


@dataclass(order=True, slots=True)
class _Entry:
    due: float
    seq: int
    handle: TaskHandle = field(compare=False)
    callback: Callback = field(compare=False)
    args: tuple[Any, ...] = field(compare=False, default=())


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by an explicit virtual clock.

    Example:
        scheduler = ManualScheduler(start=1_700_000_000.0)
        scheduler.call_later(0.05, print, "enriched")
        scheduler.advance(0.05)   # prints "enriched"
    """

    def __init__(self, start: float | None = None) -> None:
        self._now = time.time() if start is None else float(start)
        self._queue: list[_Entry] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(
        self, delay: float, callback: Callback, *args: Any, name: str = ""
    ) -> TaskHandle:
        handle = TaskHandle(name=name or getattr(callback, "__name__", "task"))
        self._push(self._now + max(delay, 0.0), handle, callback, args)
        return handle

    def call_every(
        self, interval: float, callback: Callback, *args: Any, name: str = ""
    ) -> TaskHandle:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        handle = TaskHandle(
            name=name or getattr(callback, "__name__", "task"), interval=interval
        )
        self._push(self._now + interval, handle, callback, args)
        return handle

    def pending(self) -> int:
        """Number of scheduled, non-cancelled callbacks."""
        return sum(1 for entry in self._queue if not entry.handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every callback that falls due."""
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + seconds
        while self._queue and self._queue[0].due <= target:
            entry = heapq.heappop(self._queue)
            if entry.handle.cancelled:
                continue
            self._now = max(self._now, entry.due)
            _run_guarded(entry.handle, entry.callback, entry.args)
            if entry.handle.interval is not None and not entry.handle.cancelled:
                self._push(
                    entry.due + entry.handle.interval,
                    entry.handle,
                    entry.callback,
                    entry.args,
                )
        self._now = target

    def run_until_idle(self, limit: float = 60.0) -> None:
        """Run one-shot callbacks until none are left (periodic ones keep running).

        Stops after ``limit`` virtual seconds to bound runaway periodic work.
        """
        deadline = self._now + limit
        while True:
            one_shots = [
                e for e in self._queue if not e.handle.cancelled and e.handle.interval is None
            ]
            if not one_shots:
                return
            due = min(e.due for e in one_shots)
            if due > deadline:
                return
            self.advance(due - self._now)

    def _push(
        self, due: float, handle: TaskHandle, callback: Callback, args: tuple[Any, ...]
    ) -> None:
        heapq.heappush(self._queue, _Entry(due, next(self._seq), handle, callback, args))


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.time()

    def call_later(
        self, delay: float, callback: Callback, *args: Any, name: str = ""
    ) -> TaskHandle:
        handle = TaskHandle(name=name or getattr(callback, "__name__", "task"))
        handle._native = self.loop.call_later(
            max(delay, 0.0), _run_guarded, handle, callback, args
        )
        return handle

    def call_every(
        self, interval: float, callback: Callback, *args: Any, name: str = ""
    ) -> TaskHandle:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        handle = TaskHandle(
            name=name or getattr(callback, "__name__", "task"), interval=interval
        )

        def tick() -> None:
            if handle.cancelled:
                return
            _run_guarded(handle, callback, args)
            if not handle.cancelled:
                handle._native = self.loop.call_later(interval, tick)

        handle._native = self.loop.call_later(interval, tick)
        return handle
