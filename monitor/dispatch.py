"""Final stage: timestamp, sanitize, seal and emit one event."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from hosts.base import read_all

from .engine import Notification
from .events import Event, NotificationType
from .exceptions import SerializationError

if TYPE_CHECKING:
    from .context import MonitorContext

logger = logging.getLogger(__name__)

_DROP = object()


def _descriptor(value: Any) -> dict[str, Any]:
    text = repr(value)
    return {
        "__isSerializedObject": True,
        "type": type(value).__name__,
        "repr": text if len(text) <= 200 else text[:197] + "...",
    }


def sanitize(value: Any, _path: frozenset[int] = frozenset()) -> Any:
    """JSON-safe copy of ``value``.

    Callables are dropped from mappings (``None`` inside lists); other
    non-JSON objects become a small descriptor.

    Raises:
        SerializationError: On circular references.
        RecursionError: When nesting exceeds the interpreter's limit.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if callable(value):
        return _DROP

    marker = id(value)
    if marker in _path:
        raise SerializationError(
            "Circular reference in event payload", context={"type": type(value).__name__}
        )

    if isinstance(value, Mapping):
        path = _path | {marker}
        copied: dict[str, Any] = {}
        for key, item in value.items():
            clean = sanitize(item, path)
            if clean is not _DROP:
                copied[key if isinstance(key, str) else str(key)] = clean
        return copied
    if isinstance(value, (list, tuple, set, frozenset)):
        path = _path | {marker}
        items = [sanitize(item, path) for item in value]
        return [None if item is _DROP else item for item in items]
    return _descriptor(value)


def _sanitize_field(value: Any) -> Any:
    clean = sanitize(value)
    return None if clean is _DROP else clean


class DispatchGate:
    """Emit each completed event exactly once."""

    def __init__(self, context: MonitorContext) -> None:
        self._context = context
        self.dispatched = 0
        self.stale_dropped = 0

    def dispatch(self, event: Event, timestamp: float | None = None) -> bool:
        """Finalize and emit ``event``.

        Args:
            event: Enriched event; sealed on return.
            timestamp: Synthetic epoch seconds for historical events.

        Returns:
            False when the event belongs to a cleared generation.
        """
        ctx = self._context
        if event.sealed:
            logger.warning("Event %s already dispatched", event.name)
            return False
        if self.reject_stale(event):
            return False

        moment = ctx.scheduler.now() if timestamp is None else timestamp
        event.timestamp = datetime.fromtimestamp(moment, tz=timezone.utc)
        event.collection_snapshot = self._snapshot_primary()

        try:
            event.details = _sanitize_field(event.details)
            event.raw_data = _sanitize_field(event.raw_data)
            for info in event.container_info:
                info.resolved_variables = _sanitize_field(info.resolved_variables)
        except (SerializationError, RecursionError) as exc:
            logger.warning("Event %s not serializable, sending descriptor: %s", event.name, exc)
            event.details = {"serialized": "true"} if isinstance(event.details, Mapping) else None
            event.raw_data = None
            for info in event.container_info:
                info.resolved_variables = {}

        event.seal()
        self.dispatched += 1
        ctx.bus.put(
            Notification(NotificationType.EVENT_DETECTED, payload=event, source="DispatchGate")
        )
        return True

    def reject_stale(self, event: Event) -> bool:
        """Count and report True for an event from a cleared generation."""
        current = self._context.generation
        if event.generation == current:
            return False
        self.stale_dropped += 1
        logger.debug(
            "Dropping %s from generation %d (current %d)", event.name, event.generation, current
        )
        return True

    def _snapshot_primary(self) -> list[Any] | None:
        ctx = self._context
        collection = ctx.host.collection(ctx.config.collections.primary)
        if collection is None:
            return None
        try:
            return _sanitize_field(read_all(collection))
        except Exception as exc:
            logger.debug("Could not copy %s: %s", ctx.config.collections.primary, exc)
            return None
