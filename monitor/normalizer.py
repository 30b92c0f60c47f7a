"""Turn raw collection entries into partially populated ``Event`` records."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .events import Event, EventSource

logger = logging.getLogger(__name__)

ARRAY_FALLBACK = "MTM Array Event"
OBJECT_FALLBACK = "MTM Direct Object"
VALUE_FALLBACK = "MTM Direct Value"
CUSTOM_EVENT_FALLBACK = "MTM Custom Event"
SCAN_FALLBACK = "MTM Event"

CUSTOM_EVENT = "mtm.CustomEvent"

TAG_FIELDS = ("tags", "firedTags", "mtm.tags", "gtm.tags")
TAG_NAME_FIELDS = ("tagName", "mtm.tagName")


def get_nested_value(obj: Any, path: str) -> Any:
    """Walk a dotted path through nested mappings; ``None`` when missing."""
    current = obj
    for key in path.split("."):
        if not isinstance(current, Mapping) or current.get(key) is None:
            return None
        current = current[key]
    return current


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    if "." in key:
        return get_nested_value(data, key)
    return None


def extract_fired_tags(data: Any) -> list[str]:
    """Tag identifiers carried directly in a payload.

    The first list found under ``TAG_FIELDS`` wins, then ``tagName`` and
    ``mtm.tagName`` are appended.
    """
    if not isinstance(data, Mapping):
        return []

    fired: list[str] = []
    for key in TAG_FIELDS:
        value = _lookup(data, key)
        if isinstance(value, (list, tuple)):
            fired = list(value)
            break

    for key in TAG_NAME_FIELDS:
        if data.get(key):
            fired.append(data[key])
    return fired


def is_custom_event(data: Mapping[str, Any]) -> bool:
    return data.get("event") == CUSTOM_EVENT or bool(data.get("mtm.customEvent"))


def resolve_object_name(data: Mapping[str, Any], fallback: str = OBJECT_FALLBACK) -> str:
    """Name of a keyed entry.

    Custom events prefer the explicit ``eventName``, then the
    ``mtm.customEventName`` alias, then ``event``. Other entries use
    ``event`` then ``eventName``.
    """
    if is_custom_event(data):
        chain = ("eventName", "mtm.customEventName", "event")
        fallback = CUSTOM_EVENT_FALLBACK
    else:
        chain = ("event", "eventName")
    for key in chain:
        value = data.get(key)
        if value:
            return str(value)
    return fallback


def _scan_labels(historical: bool) -> tuple[str, str]:
    if historical:
        return "initial-scan", "array-read"
    return "live-proxy", "proxy-intercept"


def normalize_push(
    origin: str,
    raw: Any,
    array_index: int | None = None,
    historical: bool = False,
    source: EventSource = EventSource.COLLECTION_PUSH,
) -> Event:
    """Normalize one entry appended to a push-style collection.

    Lists become ``{action, parameters}``; mappings are shallow-copied;
    anything else is wrapped as ``{value}``.
    """
    if isinstance(raw, (list, tuple)):
        action = raw[0] if raw else None
        name = str(action) if action else ARRAY_FALLBACK
        details: dict[str, Any] = {"action": action, "parameters": list(raw[1:])}
    elif isinstance(raw, Mapping):
        name = resolve_object_name(raw)
        details = dict(raw)
    else:
        name = VALUE_FALLBACK
        details = {"value": raw}

    source_type, detection_method = _scan_labels(historical)
    return Event(
        source=source,
        origin=origin,
        name=name,
        details=details,
        raw_data=raw,
        historical=historical,
        array_index=array_index,
        fired_tags=extract_fired_tags(raw),
        source_type=source_type,
        detection_method=detection_method,
    )


def is_recognized_scan_entry(data: Any) -> bool:
    """Whether a secondary-collection entry belongs to the monitored tag manager."""
    if not isinstance(data, Mapping):
        return False

    event = data.get("event")
    if isinstance(event, str) and (
        event.startswith("mtm.")
        or event == "mtm"
        or "CustomEvent" in event
    ):
        return True
    if event and data.get("mtm.customEvent"):
        return True
    if "mtm" in data:
        return True
    return "aMTMts" in data and "aMTMparams" in data


def normalize_scan_entry(
    origin: str,
    raw: Any,
    historical: bool = False,
) -> Event | None:
    """Normalize a secondary-collection entry; ``None`` when not recognized."""
    if not is_recognized_scan_entry(raw):
        logger.debug("Skipping unrecognized %s entry", origin)
        return None

    event_name = raw.get("event")
    if is_custom_event(raw):
        name = resolve_object_name(raw)
        details: dict[str, Any] = {
            "eventCategory": raw.get("eventCategory"),
            "eventAction": raw.get("eventAction"),
            "eventLabel": raw.get("eventLabel"),
            "eventValue": raw.get("eventValue"),
            "customEventName": raw.get("mtm.customEventName"),
        }
        details.update(raw)
    elif isinstance(event_name, str) and event_name.startswith("mtm."):
        name = event_name
        details = dict(raw)
    else:
        name = str(event_name or raw.get("eventName") or raw.get("type") or SCAN_FALLBACK)
        details = dict(raw)

    source_type, detection_method = _scan_labels(historical)
    return Event(
        source=EventSource.COLLECTION_SCAN,
        origin=origin,
        name=name,
        details=details,
        raw_data=raw,
        historical=historical,
        fired_tags=extract_fired_tags(raw),
        source_type=source_type,
        detection_method=detection_method,
    )
