"""Tests for the in-memory host page."""

from __future__ import annotations

import pytest

from hosts import CollectionAdapter, HostPage, MemoryCollection, MemoryHost, read_all


def test_memory_types_satisfy_protocols() -> None:
    host = MemoryHost(collections={"_mtm": []})

    assert isinstance(host, HostPage)
    assert isinstance(host.collection("_mtm"), CollectionAdapter)


def test_push_calls_handlers_before_append() -> None:
    collection = MemoryCollection("_mtm", [1])
    seen = []

    def handler(entries, start):
        seen.append((tuple(entries), start, len(collection.items)))

    collection.on_append(handler)

    assert collection.push(2, 3) == 3
    assert seen == [((2, 3), 1, 1)]
    assert collection.items == [1, 2, 3]


def test_handler_registration_is_idempotent() -> None:
    collection = MemoryCollection("_mtm")
    calls = []

    def handler(entries, start):
        calls.append(start)

    collection.on_append(handler)
    collection.on_append(handler)

    collection.push("x")

    assert calls == [0]
    assert collection.has_handler(handler)
    collection.remove_handler(handler)
    assert not collection.has_handler(handler)


def test_read_all() -> None:
    assert read_all(MemoryCollection("c", [1, {"a": 2}])) == [1, {"a": 2}]


def test_collection_lookup_and_create() -> None:
    host = MemoryHost()

    assert host.collection("_mtm") is None
    created = host.collection("_mtm", create=True)
    assert host.collection("_mtm") is created


def test_replace_collection_drops_handlers() -> None:
    host = MemoryHost(collections={"_mtm": []})
    calls = []
    host.collection("_mtm").on_append(lambda e, s: calls.append(e))

    fresh = host.replace_collection("_mtm", [1])
    fresh.push(2)

    assert calls == []
    assert host.collection("_mtm") is fresh


def test_debug_mode_capability() -> None:
    host = MemoryHost(debug_mode_available_after=2)

    with pytest.raises(RuntimeError):
        host.enable_debug_mode()
    with pytest.raises(RuntimeError):
        host.enable_debug_mode()
    host.enable_debug_mode()

    assert host.debug_mode_calls == 3


def test_no_debug_mode_capability() -> None:
    assert not hasattr(MemoryHost(debug_mode_available_after=None), "enable_debug_mode")


def test_from_fixture() -> None:
    """Fixtures use camelCase keys, as recorded from pages."""
    host = MemoryHost.from_fixture(
        {
            "pageUrl": "https://shop.test/",
            "collections": {"_mtm": [{"event": "mtm.Start"}]},
            "debugModeAvailableAfter": 1,
            "container": {
                "id": "abc",
                "versionName": "v2",
                "introspection": False,
                "nativeTagLookup": True,
                "triggers": [{"id": 1, "name": "All", "conditions": []}],
                "tags": [{"name": "GA4", "fireTriggerIds": [1]}],
                "variables": [{"name": "Currency", "type": "Constant", "defaultValue": "EUR"}],
            },
        }
    )

    container = host.container()
    assert host.page_url == "https://shop.test/"
    assert host.collection("_mtm").items == [{"event": "mtm.Start"}]
    assert container.id == "abc"
    assert container.version_name == "v2"
    assert container.triggers is None
    assert container.variables[0].get() == "EUR"

    with pytest.raises(RuntimeError):
        host.enable_debug_mode()
    host.enable_debug_mode()

    assert container.triggers[0].get_referenced_tags()[0].name == "GA4"
