"""Variable resolution against one event.

Resolution order for data-layer fields:

1. the event's own flattened data (exact key, then dotted path),
2. the secondary collection backlog, newest entry first,
3. the variable's default value.

A present key holding ``None`` ends the search with the default value.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .events import PROCESSED_MARKER, Event
from .normalizer import get_nested_value
from .rules import Constant, CustomFunction, DataLayerField, PageUrl, UnknownVariable, VariableRef

logger = logging.getLogger(__name__)

_SKIPPED_KEYS = frozenset({PROCESSED_MARKER, "_debug"})
_NOT_FOUND = object()


@dataclass(slots=True)
class EventContext:
    """Flattened view of an event used for variable lookup and matching.

    Attributes:
        event_name: Name used for matching; an ``aEvent`` payload field
            replaces the event name.
        data: Payload merged with nested parameter and timer objects.
        backlog: Secondary collection (adapter or plain sequence) searched
            when a field is not in ``data``.
    """

    event_name: str | None
    data: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    page_url: str = ""
    backlog: Any = None

    @property
    def is_timer_tick(self) -> bool:
        return self.event_name == "timer" or self.data.get("aEvent") == "timer"

    @classmethod
    def from_event(cls, event: Event, page_url: str = "", backlog: Any = None) -> EventContext:
        ctx = cls(event_name=event.name, source=event.origin, page_url=page_url, backlog=backlog)
        data = ctx.data
        details = event.details if isinstance(event.details, Mapping) else {}

        for key, value in details.items():
            if key not in _SKIPPED_KEYS:
                data[key] = value

        if details.get("aEvent"):
            data["aEvent"] = details["aEvent"]
            ctx.event_name = details["aEvent"]

        _take_timer(data, details.get("timer"))

        params = details.get("aMTMparams")
        if isinstance(params, Mapping):
            for key, value in params.items():
                if key not in _SKIPPED_KEYS and key not in data:
                    data[key] = value
            _take_timer(data, params.get("timer"))

        positional = details.get("parameters")
        if details.get("action") == "aEvent" and isinstance(positional, list) and len(positional) >= 2:
            data["aEvent"] = positional[0]
            if isinstance(positional[1], Mapping):
                data.update(positional[1])
                _take_timer(data, positional[1].get("timer"), replace=False)

        raw = event.raw_data
        if isinstance(raw, Mapping):
            for key, value in raw.items():
                if key not in _SKIPPED_KEYS and key not in data:
                    data[key] = value
            timer = raw.get("timer")
            if isinstance(timer, Mapping) and timer.get("time") is not None:
                data["timer.time"] = timer["time"]

        return ctx


def _take_timer(data: dict[str, Any], timer: Any, replace: bool = True) -> None:
    if not timer:
        return
    if replace:
        data["timer"] = timer
    if isinstance(timer, Mapping) and timer.get("time") is not None:
        data["timer.time"] = timer["time"]


def _lookup_in(container: Any, name: str) -> Any:
    if not isinstance(container, Mapping):
        return _NOT_FOUND
    if name in container:
        return container[name]
    if "." in name:
        value = get_nested_value(container, name)
        if value is not None:
            return value
    return _NOT_FOUND


def _iter_backlog(backlog: Any) -> Iterator[Any]:
    """Entries newest first, from an adapter or a plain sequence."""
    if backlog is None:
        return
    if hasattr(backlog, "current_length") and hasattr(backlog, "read_at"):
        for index in range(backlog.current_length() - 1, -1, -1):
            yield backlog.read_at(index)
    elif isinstance(backlog, Sequence):
        yield from reversed(backlog)


def lookup_data_layer(name: str, ctx: EventContext) -> Any:
    """Raw lookup without default; ``None`` when nothing was found."""
    value = _lookup_in(ctx.data, name)
    if value is not _NOT_FOUND:
        return value

    for entry in _iter_backlog(ctx.backlog):
        value = _lookup_in(entry, name)
        if value is not _NOT_FOUND:
            return value
    return None


def _resolve_data_layer(ref: DataLayerField, ctx: EventContext) -> Any:
    if not ref.data_layer_name:
        return ref.default_value
    value = lookup_data_layer(ref.data_layer_name, ctx)
    if value is None:
        logger.debug(
            "Data layer variable %s not found, using default %r",
            ref.data_layer_name,
            ref.default_value,
        )
        return ref.default_value
    return value


def resolve(ref: VariableRef | None, ctx: EventContext) -> Any:
    """Resolve a variable reference; failures become ``"Error: ..."`` strings."""
    if ref is None:
        return None
    try:
        match ref:
            case DataLayerField():
                return _resolve_data_layer(ref, ctx)
            case PageUrl():
                return ctx.page_url
            case Constant() | CustomFunction():
                return ref.default_value
            case UnknownVariable():
                logger.debug("Unknown variable type %s", ref.host_type)
                return ref.default_value
    except Exception as exc:
        logger.warning("Variable %s could not be resolved: %s", ref.name, exc)
        return f"Error: {exc}"
    return None
