"""Observe every entry appended to a named host collection.

Two paths feed the same report callback:

- native appends, reported synchronously through the adapter's append hook;
- direct mutations, found by :meth:`CollectionInterceptor.poll` comparing the
  collection length with the interceptor's cursor.

Mapping entries are tagged with ``PROCESSED_MARKER`` once reported so that
neither path, nor a later backlog scan, reports them again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from typing import Any

from hosts.base import CollectionAdapter, HostPage

from .events import PROCESSED_MARKER

logger = logging.getLogger(__name__)

Report = Callable[[Any, "int | None", str], None]
"""Receives ``(entry, array_index, detection_method)``."""


def is_processed(entry: Any) -> bool:
    return isinstance(entry, Mapping) and bool(entry.get(PROCESSED_MARKER))


def mark_processed(entry: Any) -> None:
    """Tag a mapping entry; other entries cannot carry the marker."""
    if isinstance(entry, MutableMapping):
        try:
            entry[PROCESSED_MARKER] = True
        except TypeError:
            logger.debug("Entry %r rejected the processed marker", type(entry).__name__)


class CollectionInterceptor:
    """Attach to one host collection and report what gets appended.

    Args:
        host: Page that owns the collection.
        name: Collection name, e.g. ``"_mtm"``.
        report: Callback for each new, unprocessed entry.
        indexed: Whether reported entries carry their array index.
        create: Create an empty collection when the page has none yet.
    """

    def __init__(
        self,
        host: HostPage,
        name: str,
        report: Report,
        indexed: bool = True,
        create: bool = True,
    ) -> None:
        self.name = name
        self.indexed = indexed
        self.create = create
        self._host = host
        self._report = report
        self._collection: CollectionAdapter | None = None
        self._cursor = 0
        self.reported = 0
        self.reinstalls = 0

    @property
    def collection(self) -> CollectionAdapter | None:
        return self._collection

    @property
    def cursor(self) -> int:
        return self._cursor

    def install(self, cursor: int | None = None) -> CollectionAdapter | None:
        """Attach the append hook. The cursor defaults to the current length."""
        collection = self._host.collection(self.name, create=self.create)
        if collection is None:
            logger.debug("Collection %s not present, not intercepting", self.name)
            return None

        collection.on_append(self._on_append)
        self._collection = collection
        self._cursor = collection.current_length() if cursor is None else cursor
        logger.debug("Intercepting %s at length %d", self.name, self._cursor)
        return collection

    def uninstall(self) -> None:
        if self._collection is not None:
            self._collection.remove_handler(self._on_append)
        self._collection = None

    def scan_backlog(self) -> list[tuple[int, Any]]:
        """Unprocessed ``(index, entry)`` pairs already in the collection."""
        collection = self._host.collection(self.name)
        if collection is None:
            return []
        backlog = []
        for index in range(collection.current_length()):
            entry = collection.read_at(index)
            if is_processed(entry):
                logger.debug("%s[%d] already processed, skipping", self.name, index)
                continue
            backlog.append((index, entry))
        return backlog

    def poll(self) -> int:
        """Report entries that appeared without a native append."""
        collection = self._collection
        if collection is None:
            return 0

        length = collection.current_length()
        if length < self._cursor:
            # truncated by the page; resume from the new end
            self._cursor = length
            return 0

        count = 0
        while self._cursor < length:
            index = self._cursor
            self._cursor += 1
            entry = collection.read_at(index)
            if is_processed(entry):
                continue
            if self._emit(entry, index, "poll"):
                count += 1
        if count:
            logger.debug("Poll of %s found %d new entries", self.name, count)
        return count

    def ensure_installed(self) -> bool:
        """Reinstall if the collection was recreated or lost the hook."""
        current = self._host.collection(self.name)
        if current is None and self._collection is None and not self.create:
            return False

        if current is not None and current is self._collection:
            if current.has_handler(self._on_append):
                return False
            current.on_append(self._on_append)
            logger.info("Re-intercepting %s (append hook lost)", self.name)
        else:
            if self._collection is not None:
                self._collection.remove_handler(self._on_append)
            if self.install(cursor=0) is None:
                return False
            logger.info("Re-intercepting %s (collection recreated)", self.name)

        self.reinstalls += 1
        return True

    def _on_append(self, entries: Sequence[Any], start_index: int) -> None:
        # runs inside the page's own append call: never raise
        try:
            for offset, entry in enumerate(entries):
                if is_processed(entry):
                    logger.debug("%s entry already processed, skipping", self.name)
                    continue
                self._emit(entry, start_index + offset, "proxy-intercept")
        except Exception:
            logger.exception("Interception of %s failed", self.name)
        finally:
            self._cursor = max(self._cursor, start_index + len(entries))

    def _emit(self, entry: Any, index: int, method: str) -> bool:
        try:
            self._report(entry, index if self.indexed else None, method)
        except Exception:
            logger.exception("Reporting %s[%d] failed", self.name, index)
            return False
        finally:
            mark_processed(entry)
        self.reported += 1
        return True
