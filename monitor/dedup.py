"""Duplicate suppression.

Two independent filters share one signature:

``GlobalDedupFilter``
    Engine side, short window. Stops the same physical append from being
    reported twice when the native-append and polling paths overlap.

``PresentationDedupFilter``
    Consumer side, longer window. Drops the second delivery of an event
    when exactly one of the two deliveries carried an array index (backlog
    scan vs. live interception). Two deliveries with the same index presence
    are both legitimate.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from .cache import Clock, TimedCache
from .events import METADATA_KEYS, Event

logger = logging.getLogger(__name__)


def clean_details(details: Any) -> Any:
    """Copy of ``details`` without processed markers and debug annotations."""
    if not isinstance(details, Mapping):
        return details
    return {key: value for key, value in details.items() if key not in METADATA_KEYS}


def _describe(value: Any) -> str:
    return f"<{type(value).__name__}>"


def event_signature(event: Event) -> str:
    """Serialized ``{name, origin, cleaned details}`` used for comparison.

    The historical flag is left out so backlog and live deliveries
    of the same logical event compare equal.
    """
    payload = {
        "name": event.name or "unknown",
        "origin": event.origin or "unknown",
        "details": clean_details(event.details) if event.details else None,
    }
    try:
        return json.dumps(payload, sort_keys=True, default=_describe, ensure_ascii=False)
    except (TypeError, ValueError):
        # mixed-type keys cannot be sorted; circular payloads cannot be dumped
        pass
    except RecursionError:
        return _opaque_signature(payload)
    try:
        return json.dumps(payload, default=_describe, ensure_ascii=False)
    except (TypeError, ValueError):
        pass
    except RecursionError:
        return _opaque_signature(payload)
    try:
        return repr(payload)
    except RecursionError:
        return _opaque_signature(payload)


def _opaque_signature(payload: dict[str, Any]) -> str:
    # nesting too deep to walk; the details cannot take part in the comparison
    return f"{payload['name']}|{payload['origin']}|<unserializable>"


class GlobalDedupFilter:
    """Admit an event unless its signature was seen less than ``window`` ago."""

    def __init__(self, window: float = 1.0, clock: Clock | None = None) -> None:
        self.window = window
        self._cache = TimedCache(clock)
        self.suppressed = 0

    def is_duplicate(self, event: Event) -> bool:
        age = self._cache.age(event_signature(event))
        return age is not None and age < self.window

    def mark(self, event: Event) -> None:
        self._cache.set(event_signature(event))
        self._cache.sweep(self.window)

    def admit(self, event: Event) -> bool:
        """Record and admit, or count and reject a duplicate."""
        if self.is_duplicate(event):
            self.suppressed += 1
            logger.debug("Global duplicate suppressed: %s (%s)", event.name, event.origin)
            return False
        self.mark(event)
        return True

    def sweep(self) -> int:
        return self._cache.sweep(self.window)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class PresentationDedupFilter:
    """Suppress index/no-index double deliveries of the same event."""

    def __init__(self, window: float = 2.0, clock: Clock | None = None) -> None:
        self.window = window
        self._cache = TimedCache(clock)

    def is_duplicate(self, event: Event) -> bool:
        signature = event_signature(event)
        entry = self._cache.get(signature)
        if entry is not None:
            had_index, _ = entry
            age = self._cache.age(signature)
            if age is not None and age < self.window and had_index != event.has_index:
                return True

        self._cache.set(signature, event.has_index)
        self._cache.sweep(self.window)
        return False

    def sweep(self) -> int:
        return self._cache.sweep(self.window)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
