"""Protocol definitions for the host page the monitor observes."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

AppendHandler = Callable[[Sequence[Any], int], None]
"""Called with the appended entries and the index the first one will occupy."""


@runtime_checkable
class CollectionAdapter(Protocol):
    """Contract for one named append-only host collection."""

    name: str

    def on_append(self, handler: AppendHandler) -> None:
        """Call ``handler`` synchronously for every native append."""

    def remove_handler(self, handler: AppendHandler) -> None:
        """Stop calling ``handler``."""

    def has_handler(self, handler: AppendHandler) -> bool:
        """Whether ``handler`` is still attached."""

    def current_length(self) -> int:
        """Number of entries currently in the collection."""

    def read_at(self, index: int) -> Any:
        """Entry at ``index``."""


@runtime_checkable
class HostPage(Protocol):
    """Contract for the page environment.

    ``container()`` returns the rule-introspection object (with ``triggers``,
    ``tags`` and ``variables``) or ``None``. A host may additionally offer an
    ``enable_debug_mode()`` method; the monitor probes for it.
    """

    page_url: str

    def collection(self, name: str, create: bool = False) -> CollectionAdapter | None:
        """Return the named collection, creating an empty one if asked."""

    def container(self) -> Any | None:
        """Return the rule-introspection object, if any."""


def read_all(collection: CollectionAdapter) -> list[Any]:
    """Read every entry of a collection through the adapter interface."""
    return [collection.read_at(i) for i in range(collection.current_length())]
