"""Bounded, timestamp-ordered log of dispatched events."""

from __future__ import annotations

import bisect
import logging
from typing import Any

from monitor.cache import Clock
from monitor.config import MonitorConfig
from monitor.dedup import PresentationDedupFilter
from monitor.engine import EventEngine, Notification
from monitor.events import Event, NotificationType

logger = logging.getLogger(__name__)


def _sort_key(event: Event) -> float:
    return event.timestamp.timestamp() if event.timestamp is not None else 0.0


class EventLog:
    """Consumer that keeps what a viewer would display.

    Applies presentation de-duplication, keeps events sorted by timestamp
    (historical events land before live ones) and drops the oldest events
    beyond ``max_events``.
    """

    def __init__(
        self,
        max_events: int = 1000,
        dedup_window: float = 2.0,
        clock: Clock | None = None,
    ) -> None:
        if max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self.max_events = max_events
        self.dedup = PresentationDedupFilter(window=dedup_window, clock=clock)
        self.suppressed = 0
        self.trimmed = 0
        self._events: list[Event] = []

    @classmethod
    def from_config(cls, config: MonitorConfig, clock: Clock | None = None) -> EventLog:
        return cls(
            max_events=config.event_log.max_events,
            dedup_window=config.dedup.presentation_window,
            clock=clock,
        )

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def add(self, event: Event) -> bool:
        """Insert ``event`` in timestamp order; False if it was a duplicate."""
        if self.dedup.is_duplicate(event):
            self.suppressed += 1
            logger.debug("Presentation duplicate dropped: %s", event.name)
            return False

        bisect.insort_right(self._events, event, key=_sort_key)
        overflow = len(self._events) - self.max_events
        if overflow > 0:
            del self._events[:overflow]
            self.trimmed += overflow
        return True

    def clear(self) -> None:
        self._events.clear()
        self.dedup.clear()
        self.suppressed = 0

    def attach(self, bus: EventEngine, priority: int = 0) -> None:
        bus.register(NotificationType.EVENT_DETECTED, self._on_event, priority)
        bus.register(NotificationType.CLEARED, self._on_cleared, priority)

    def detach(self, bus: EventEngine) -> None:
        bus.unregister(NotificationType.EVENT_DETECTED, self._on_event)
        bus.unregister(NotificationType.CLEARED, self._on_cleared)

    def to_list(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self._events]

    def _on_event(self, notification: Notification) -> None:
        self.add(notification.payload)

    def _on_cleared(self, notification: Notification) -> None:
        _ = notification
        self.clear()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))
