"""Console consumer: one log block per dispatched event."""

from __future__ import annotations

import json
import logging
from typing import Any

from monitor.engine import EventEngine, Notification
from monitor.events import Event, NotificationType

logger = logging.getLogger(__name__)


def display_name(event: Event) -> str:
    """Event name as shown to users; ``aEvent`` actions show their payload name."""
    details = event.details if isinstance(event.details, dict) else {}
    if event.name == "aEvent" and details.get("aEvent"):
        return f"{details['aEvent']} (aEvent)"
    return event.name


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class ConsoleReporter:
    """Log each event with its number, time and trigger/tag summary.

    Numbers start at 0 to line up with primary collection indexes.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger
        self.count = 0

    def attach(self, bus: EventEngine, priority: int = -10) -> None:
        bus.register(NotificationType.EVENT_DETECTED, self._on_event, priority)
        bus.register(NotificationType.CLEARED, self._on_cleared, priority)
        bus.register(NotificationType.DEBUG_MODE, self._on_debug_mode, priority)

    def report(self, event: Event) -> None:
        number = self.count
        self.count += 1
        moment = event.timestamp.astimezone() if event.timestamp else None
        time_text = f"{moment:%H:%M:%S}.{moment.microsecond // 1000:03d}" if moment else "--"

        self.log.info("MTM Event #%d: %s at %s", number, display_name(event), time_text)
        self.log.info("  Details: %s", _dump(event.details))

        analysis = event.trigger_analysis
        if analysis is not None:
            if not analysis.debug_mode_active:
                self.log.info("  Debug mode not (yet) active, trigger and tag analysis unavailable")
            if analysis.triggered_triggers:
                self.log.info(
                    "  Triggered triggers: %s",
                    ", ".join(t.name or str(t.id) for t in analysis.triggered_triggers),
                )
            if analysis.fired_tags:
                self.log.info(
                    "  Fired tags: %s",
                    ", ".join(f"{t.name} <- {t.trigger_name} @ {t.time}" for t in analysis.fired_tags),
                )

        if event.container_info:
            info = event.container_info[0]
            self.log.info("  Variables (%s): %s", info.id, _dump(info.resolved_variables))

        if event.collection_snapshot:
            self.log.info("  Current collection: %s", _dump(event.collection_snapshot))
        else:
            self.log.info("  Current collection: (empty or not available)")

    def _on_event(self, notification: Notification) -> None:
        self.report(notification.payload)

    def _on_cleared(self, notification: Notification) -> None:
        _ = notification
        self.count = 0

    def _on_debug_mode(self, notification: Notification) -> None:
        payload = notification.payload or {}
        if payload.get("success"):
            self.log.info("Tag manager debug mode enabled")
        else:
            self.log.warning("Tag manager debug mode unavailable: %s", payload.get("error"))
