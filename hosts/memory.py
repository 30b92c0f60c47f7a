"""In-memory host page.

Stands in for a browser page: collections are Python lists, the rule
container is plain objects. Used by the replay CLI and by tests.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .base import AppendHandler


class MemoryCollection:
    """List-backed collection.

    ``push()`` is the native append: attached handlers see the entries before
    they land. Mutating ``items`` directly bypasses the handlers, the way page
    scripts sometimes write into the array without calling ``push``.
    """

    def __init__(self, name: str, items: Sequence[Any] | None = None) -> None:
        self.name = name
        self.items: list[Any] = list(items or [])
        self._handlers: list[AppendHandler] = []

    def push(self, *entries: Any) -> int:
        start = len(self.items)
        for handler in list(self._handlers):
            handler(entries, start)
        self.items.extend(entries)
        return len(self.items)

    def on_append(self, handler: AppendHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def remove_handler(self, handler: AppendHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def has_handler(self, handler: AppendHandler) -> bool:
        return handler in self._handlers

    def drop_handlers(self) -> None:
        """Forget every handler, as when page code overwrites ``push``."""
        self._handlers.clear()

    def current_length(self) -> int:
        return len(self.items)

    def read_at(self, index: int) -> Any:
        return self.items[index]


class MemoryVariable:
    """Host variable with a live ``get()``."""

    def __init__(
        self,
        name: str,
        type: str = "Constant",
        parameters: Mapping[str, Any] | None = None,
        default_value: Any = None,
        value: Any = None,
        getter: Callable[[], Any] | None = None,
    ) -> None:
        self.name = name
        self.type = type
        self.parameters = dict(parameters or {})
        self.default_value = default_value
        self._value = value
        self._getter = getter

    def get(self) -> Any:
        if self._getter is not None:
            return self._getter()
        return self._value if self._value is not None else self.default_value


class MemoryTrigger:
    """Host trigger; ``get_referenced_tags`` exists only when a lookup is given."""

    def __init__(
        self,
        id: Any,
        name: str,
        type: str = "CustomEvent",
        conditions: Sequence[Any] | None = None,
        referenced_tags: Sequence[Any] | None = None,
        tag_lookup: Callable[[], list[Any]] | None = None,
    ) -> None:
        self.id = id
        self.name = name
        self.type = type
        self.conditions = list(conditions or [])
        self.referenced_tags = list(referenced_tags) if referenced_tags is not None else None
        if tag_lookup is not None:
            self.get_referenced_tags = tag_lookup


class MemoryTag:
    def __init__(self, name: str, fire_trigger_ids: Sequence[Any] = ()) -> None:
        self.name = name
        self.fire_trigger_ids = list(fire_trigger_ids)


class MemoryContainer:
    """Rule container. Triggers and tags are hidden until introspection is on."""

    def __init__(
        self,
        id: str = "container",
        triggers: Sequence[MemoryTrigger] = (),
        tags: Sequence[MemoryTag] = (),
        variables: Sequence[MemoryVariable] = (),
        version_name: str | None = None,
        revision: Any = None,
        environment: str | None = "live",
        introspection: bool = True,
        native_tag_lookup: bool = False,
    ) -> None:
        self.id = id
        self.version_name = version_name
        self.revision = revision
        self.environment = environment
        self.introspection = introspection
        self._triggers = list(triggers)
        self._tags = list(tags)
        self.variables = list(variables)
        if native_tag_lookup:
            for trigger in self._triggers:
                trigger.get_referenced_tags = self._lookup_for(trigger)

    @property
    def triggers(self) -> list[MemoryTrigger] | None:
        return self._triggers if self.introspection else None

    @property
    def tags(self) -> list[MemoryTag] | None:
        return self._tags if self.introspection else None

    def _lookup_for(self, trigger: MemoryTrigger) -> Callable[[], list[MemoryTag]]:
        return lambda: [tag for tag in self._tags if trigger.id in tag.fire_trigger_ids]


class MemoryHost:
    """Host page made of memory collections and an optional container.

    Args:
        debug_mode_available_after: ``None`` means the page has no
            ``enable_debug_mode`` capability at all; ``n`` means the first
            ``n`` calls find the tag manager not loaded yet and fail.
    """

    def __init__(
        self,
        page_url: str = "https://example.test/",
        collections: Mapping[str, Sequence[Any]] | None = None,
        container: MemoryContainer | None = None,
        debug_mode_available_after: int | None = 0,
    ) -> None:
        self.page_url = page_url
        self._collections: dict[str, MemoryCollection] = {
            name: MemoryCollection(name, items) for name, items in (collections or {}).items()
        }
        self._container = container
        self._debug_after = debug_mode_available_after
        self.debug_mode_calls = 0
        if debug_mode_available_after is not None:
            self.enable_debug_mode = self._enable_debug_mode

    def collection(self, name: str, create: bool = False) -> MemoryCollection | None:
        existing = self._collections.get(name)
        if existing is None and create:
            existing = self._collections[name] = MemoryCollection(name)
        return existing

    def replace_collection(self, name: str, items: Sequence[Any] = ()) -> MemoryCollection:
        """Recreate a collection, dropping every handler of the old one."""
        fresh = MemoryCollection(name, items)
        self._collections[name] = fresh
        return fresh

    def container(self) -> MemoryContainer | None:
        return self._container

    def _enable_debug_mode(self) -> None:
        self.debug_mode_calls += 1
        if self._debug_after is not None and self.debug_mode_calls <= self._debug_after:
            raise RuntimeError("tag manager not loaded")
        if self._container is not None:
            self._container.introspection = True

    @classmethod
    def from_fixture(cls, data: Mapping[str, Any]) -> "MemoryHost":
        """Build a host from a recorded page fixture (camelCase JSON)."""
        container = None
        raw_container = data.get("container")
        if raw_container:
            tags = [
                MemoryTag(t.get("name", "Unknown Tag"), t.get("fireTriggerIds", []))
                for t in raw_container.get("tags", [])
            ]
            triggers = [
                MemoryTrigger(
                    id=t.get("id"),
                    name=t.get("name", ""),
                    type=t.get("type", "CustomEvent"),
                    conditions=t.get("conditions", []),
                    referenced_tags=tags,
                )
                for t in raw_container.get("triggers", [])
            ]
            variables = [
                MemoryVariable(
                    name=v.get("name", ""),
                    type=v.get("type", "Constant"),
                    parameters=v.get("parameters"),
                    default_value=v.get("defaultValue"),
                    value=v.get("value"),
                )
                for v in raw_container.get("variables", [])
            ]
            container = MemoryContainer(
                id=raw_container.get("id", "container"),
                triggers=triggers,
                tags=tags,
                variables=variables,
                version_name=raw_container.get("versionName"),
                revision=raw_container.get("revision"),
                environment=raw_container.get("environment", "live"),
                introspection=raw_container.get("introspection", True),
                native_tag_lookup=raw_container.get("nativeTagLookup", False),
            )

        return cls(
            page_url=data.get("pageUrl", "https://example.test/"),
            collections=data.get("collections"),
            container=container,
            debug_mode_available_after=data.get("debugModeAvailableAfter", 0),
        )
