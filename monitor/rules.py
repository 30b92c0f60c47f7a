"""Typed, read-only snapshots of the host's rule container.

Host rule objects arrive either as plain mappings (recorded fixtures, camelCase
keys) or as live objects (snake_case attributes). Everything is copied into
frozen dataclasses at enrichment time; nothing is cached across events.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)

_MISSING = object()


def read_field(obj: Any, *names: str, default: Any = None) -> Any:
    """Read the first present key/attribute among ``names``."""
    if obj is None:
        return default
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name, _MISSING)
        else:
            value = getattr(obj, name, _MISSING)
        if value is not _MISSING:
            return value
    return default


# --- variable references -------------------------------------------------


@dataclass(frozen=True, slots=True)
class DataLayerField:
    """Lookup of a (possibly dotted) name in the event, then the backlog."""

    data_layer_name: str | None
    name: str | None = None
    default_value: Any = None
    host_type: str = "DataLayer"


@dataclass(frozen=True, slots=True)
class PageUrl:
    name: str | None = None
    default_value: Any = None
    host_type: str = "PageUrl"


@dataclass(frozen=True, slots=True)
class Constant:
    name: str | None = None
    default_value: Any = None
    host_type: str = "Constant"


@dataclass(frozen=True, slots=True)
class CustomFunction:
    """Host-side function; its value is the snapshot in ``default_value``."""

    name: str | None = None
    default_value: Any = None
    host_type: str = "CustomJsFunction"


@dataclass(frozen=True, slots=True)
class UnknownVariable:
    host_type: str
    name: str | None = None
    default_value: Any = None


VariableRef = Union[DataLayerField, PageUrl, Constant, CustomFunction, UnknownVariable]

_SIMPLE_VARIANTS: dict[str, type] = {
    "PageUrl": PageUrl,
    "Constant": Constant,
    "CustomJsFunction": CustomFunction,
    "CustomFunction": CustomFunction,
}


def parse_variable(raw: Any) -> VariableRef | None:
    """Build a variable reference from host data; ``None`` when unusable."""
    if raw is None or isinstance(raw, (str, int, float, bool, list, tuple)):
        return None

    host_type = read_field(raw, "type")
    name = read_field(raw, "name")
    default_value = read_field(raw, "defaultValue", "default_value")
    parameters = read_field(raw, "parameters")

    if host_type == "DataLayer":
        data_layer_name = read_field(parameters, "dataLayerName", "data_layer_name")
        return DataLayerField(
            data_layer_name=data_layer_name if isinstance(data_layer_name, str) else None,
            name=name,
            default_value=default_value,
        )

    variant = _SIMPLE_VARIANTS.get(host_type) if isinstance(host_type, str) else None
    if variant is not None:
        return variant(name=name, default_value=default_value, host_type=host_type)

    return UnknownVariable(
        host_type=str(host_type) if host_type is not None else "Unknown",
        name=name,
        default_value=default_value,
    )


# --- conditions, triggers, tags --------------------------------------------


@dataclass(frozen=True, slots=True)
class Condition:
    """One comparison. ``actual``/``comparison`` are ``None`` when malformed."""

    actual: VariableRef | None
    comparison: str | None
    expected: Any = None
    raw: Any = None

    @property
    def malformed(self) -> bool:
        return self.actual is None or self.comparison is None

    def describe(self) -> dict[str, Any]:
        actual = self.actual
        return {
            "actual": {
                "type": actual.host_type if actual else None,
                "name": actual.name if actual else None,
                "dataLayerName": getattr(actual, "data_layer_name", None),
            },
            "comparison": self.comparison,
            "expected": self.expected,
        }


def parse_condition(raw: Any) -> Condition:
    comparison = read_field(raw, "comparison")
    return Condition(
        actual=parse_variable(read_field(raw, "actual")),
        comparison=comparison if isinstance(comparison, str) else None,
        expected=read_field(raw, "expected"),
        raw=raw,
    )


@dataclass(frozen=True, slots=True)
class Tag:
    name: str
    fire_trigger_ids: tuple[Any, ...] = ()


def parse_tag(raw: Any) -> Tag:
    name = read_field(raw, "name") or "Unknown Tag"
    ids = read_field(raw, "fireTriggerIds", "fire_trigger_ids") or ()
    if not isinstance(ids, (list, tuple, set)):
        ids = ()
    return Tag(name=str(name), fire_trigger_ids=tuple(ids))


@dataclass(frozen=True, slots=True)
class Trigger:
    """A named conjunctive rule.

    ``tag_lookup`` is the host's native reverse lookup when it offers one;
    ``referenced_tags`` is the trigger's own tag list when present.
    """

    id: Any
    name: str
    type: str | None = None
    conditions: tuple[Condition, ...] = ()
    referenced_tags: tuple[Tag, ...] | None = None
    tag_lookup: Callable[[], Any] | None = field(default=None, compare=False)


def parse_trigger(raw: Any) -> Trigger:
    raw_conditions = read_field(raw, "conditions") or ()
    if not isinstance(raw_conditions, (list, tuple)):
        logger.debug("Trigger conditions are not a list: %r", raw_conditions)
        raw_conditions = ()

    raw_referenced = read_field(raw, "referencedTags", "referenced_tags")
    referenced = None
    if isinstance(raw_referenced, (list, tuple)):
        referenced = tuple(parse_tag(tag) for tag in raw_referenced)

    lookup = read_field(raw, "getReferencedTags", "get_referenced_tags")
    return Trigger(
        id=read_field(raw, "id"),
        name=str(read_field(raw, "name") or ""),
        type=read_field(raw, "type"),
        conditions=tuple(parse_condition(c) for c in raw_conditions),
        referenced_tags=referenced,
        tag_lookup=lookup if callable(lookup) else None,
    )


@dataclass(frozen=True, slots=True)
class RuleSnapshot:
    """Rules visible at one instant.

    ``debug_mode_active`` is true when the container exposes both a trigger
    list and a tag list (even empty ones).
    """

    triggers: tuple[Trigger, ...] = ()
    tags: tuple[Tag, ...] = ()
    debug_mode_active: bool = False
    total_triggers: int = 0
    total_tags: int = 0


def snapshot_rules(container: Any) -> RuleSnapshot:
    """Copy the container's triggers and tags; degraded snapshot when absent."""
    if container is None:
        return RuleSnapshot()

    raw_triggers = read_field(container, "triggers")
    raw_tags = read_field(container, "tags")
    has_triggers = isinstance(raw_triggers, (list, tuple))
    has_tags = isinstance(raw_tags, (list, tuple))
    total_triggers = len(raw_triggers) if has_triggers else 0
    total_tags = len(raw_tags) if has_tags else 0
    if not (has_triggers and has_tags):
        return RuleSnapshot(total_triggers=total_triggers, total_tags=total_tags)

    return RuleSnapshot(
        triggers=tuple(parse_trigger(t) for t in raw_triggers),
        tags=tuple(parse_tag(t) for t in raw_tags),
        debug_mode_active=True,
        total_triggers=total_triggers,
        total_tags=total_tags,
    )
