"""Monitor session wiring tests."""

from __future__ import annotations

import pytest

from hosts import MemoryContainer, MemoryHost, MemoryTag, MemoryTrigger
from monitor.config import ConfigManager
from monitor.engine import EventEngine
from monitor.events import EventSource, NotificationType
from monitor.scheduler import ManualScheduler
from monitor.session import MonitorSession

START = 1_700_000_000.0


class Harness:
    """Session on a manual clock, recording every notification."""

    def __init__(self, host: MemoryHost, **config) -> None:
        self.host = host
        self.scheduler = ManualScheduler(start=START)
        self.bus = EventEngine()
        self.events = []
        self.notifications = []
        self.bus.register(NotificationType.EVENT_DETECTED, lambda n: self.events.append(n.payload))
        for kind in (NotificationType.DEBUG_MODE, NotificationType.CLEARED):
            self.bus.register(kind, self.notifications.append)
        self.session = MonitorSession(
            host, ConfigManager().from_dict(config), self.scheduler, self.bus
        )

    def push(self, *entries, collection: str = "_mtm") -> None:
        self.host.collection(collection).push(*entries)

    def payloads(self, kind: NotificationType) -> list:
        return [n.payload for n in self.notifications if n.type == kind]


def _click_container(introspection: bool = True) -> MemoryContainer:
    trigger = MemoryTrigger(
        1,
        "Click trigger",
        conditions=[
            {
                "actual": {"type": "DataLayer", "parameters": {"dataLayerName": "event"}},
                "comparison": "equals",
                "expected": "mtm.CustomEvent",
            }
        ],
    )
    return MemoryContainer(
        id="ctr1",
        triggers=[trigger],
        tags=[MemoryTag("GA4", [1])],
        introspection=introspection,
    )


class TestLivePipeline:
    def test_event_dispatched_after_enrichment_delay(self):
        h = Harness(MemoryHost(debug_mode_available_after=None))
        h.session.start()

        h.push({"event": "mtm.CustomEvent", "mtm.customEventName": "click"})
        assert h.events == []

        h.scheduler.advance(0.1)

        [event] = h.events
        assert event.name == "click"
        assert event.array_index == 0
        assert event.historical is False
        assert event.sealed
        assert event.trigger_analysis.debug_mode_active is False
        assert event.trigger_analysis.triggered_triggers == []
        assert event.trigger_analysis.fired_tags == []
        assert event.collection_snapshot[0]["mtm.customEventName"] == "click"

    def test_trigger_analysis_attached(self):
        h = Harness(MemoryHost(container=_click_container()))
        h.session.start()

        h.push({"event": "mtm.CustomEvent", "mtm.customEventName": "click"})
        h.scheduler.advance(0.1)

        [event] = h.events
        analysis = event.trigger_analysis
        assert analysis.debug_mode_active is True
        assert [t.name for t in analysis.triggered_triggers] == ["Click trigger"]
        assert [t.name for t in analysis.fired_tags] == ["GA4"]
        assert event.container_info[0].id == "ctr1"

    def test_duplicate_push_within_window_suppressed(self):
        h = Harness(MemoryHost())
        h.session.start()

        h.push({"event": "x"})
        h.scheduler.advance(0.5)
        h.push({"event": "x"})
        h.scheduler.advance(0.2)

        assert len(h.events) == 1
        assert h.session.get_stats()["duplicates_suppressed"] == 1

        h.scheduler.advance(1.0)
        h.push({"event": "x"})
        h.scheduler.advance(0.1)
        assert len(h.events) == 2

    def test_direct_mutation_reported_by_poll(self):
        h = Harness(MemoryHost())
        h.session.start()

        h.host.collection("_mtm").items.append({"event": "direct"})
        h.scheduler.advance(0.5)

        [event] = h.events
        assert event.detection_method == "poll"
        assert event.array_index == 0

    def test_deeply_nested_entry_still_dispatched(self):
        h = Harness(MemoryHost())
        h.session.start()
        entry: dict = {"leaf": True}
        for _ in range(20_000):
            entry = {"child": entry}
        entry["event"] = "deep"

        h.push(entry)
        h.scheduler.advance(1.0)

        [event] = h.events
        assert event.name == "deep"
        assert event.details == {"serialized": "true"}

    def test_alias_collection(self):
        h = Harness(MemoryHost(collections={"_paq_mtm": []}))
        h.session.start()

        h.push(["trackEvent", "a"], collection="_paq_mtm")
        h.scheduler.advance(0.1)

        [event] = h.events
        assert event.source is EventSource.OTHER
        assert event.origin == "_paq_mtm.push"
        assert event.array_index is None

    def test_reinterception_after_replacement(self):
        h = Harness(MemoryHost())
        h.session.start()

        h.host.replace_collection("_mtm", [{"event": "after-replace"}])
        h.scheduler.advance(1.5)

        assert [e.name for e in h.events] == ["after-replace"]

        h.push({"event": "native"})
        h.scheduler.advance(0.1)
        assert h.events[-1].name == "native"
        assert h.events[-1].array_index == 1

    def test_data_layer_backlog_used_for_variables(self):
        trigger = MemoryTrigger(
            1,
            "Cart page",
            conditions=[
                {
                    "actual": {"type": "DataLayer", "parameters": {"dataLayerName": "pageType"}},
                    "comparison": "equals",
                    "expected": "cart",
                }
            ],
        )
        container = MemoryContainer(triggers=[trigger], tags=[])
        host = MemoryHost(collections={"dataLayer": [{"pageType": "cart"}]}, container=container)
        h = Harness(host)
        h.session.start()

        h.push({"event": "x"})
        h.scheduler.advance(0.1)

        assert [t.name for t in h.events[0].trigger_analysis.triggered_triggers] == ["Cart page"]


class TestBacklog:
    def test_backlog_dispatched_historically_in_order(self):
        host = MemoryHost(collections={"_mtm": [{"event": "a"}, ["trackPageView"], {"event": "c"}]})
        h = Harness(host)
        h.session.start()

        assert [e.array_index for e in h.events] == [0, 1, 2]
        assert all(e.historical for e in h.events)
        stamps = [e.timestamp.timestamp() for e in h.events]
        assert stamps == pytest.approx([START - 15, START - 10, START - 5])
        assert all(e.source_type == "initial-scan" for e in h.events)

    def test_backlog_not_reported_again(self):
        host = MemoryHost(collections={"_mtm": [{"event": "a"}]})
        h = Harness(host)
        h.session.start()
        h.scheduler.advance(2.0)

        assert len(h.events) == 1
        assert host.collection("_mtm").items[0]["__mtm_processed"] is True

    def test_secondary_collection_scan(self):
        host = MemoryHost(
            collections={
                "dataLayer": [{"event": "gtm.js"}, {"event": "mtm.PageView"}, {"mtm": {}}]
            }
        )
        h = Harness(host, watchSecondaryCollection=True)
        h.session.start()

        assert [e.name for e in h.events] == ["mtm.PageView", "MTM Event"]
        assert [e.source for e in h.events] == [EventSource.COLLECTION_SCAN] * 2
        stamps = [e.timestamp.timestamp() for e in h.events]
        assert stamps == pytest.approx([START - 6, START - 3])

    def test_secondary_offsets_count_only_recognized_entries(self):
        host = MemoryHost(
            collections={
                "dataLayer": [{"event": "mtm.PageView"}, {"event": "gtm.js"}, {"event": "gtm.dom"}]
            }
        )
        h = Harness(host, watchSecondaryCollection=True)
        h.session.start()

        [event] = h.events
        assert event.timestamp.timestamp() == pytest.approx(START - 3)

    def test_processed_primary_entries_keep_their_slot(self):
        """Skipped entries still count towards the primary offsets."""
        host = MemoryHost(collections={"_mtm": [{"event": "a", "__mtm_processed": True}, {"event": "b"}]})
        h = Harness(host)
        h.session.start()

        [event] = h.events
        assert event.array_index == 1
        assert event.timestamp.timestamp() == pytest.approx(START - 5)

    def test_secondary_live_push(self):
        h = Harness(MemoryHost(collections={"dataLayer": []}), watchSecondaryCollection=True)
        h.session.start()

        h.push({"event": "gtm.click"}, {"event": "mtm.Click"}, collection="dataLayer")
        h.scheduler.advance(0.1)

        assert [e.name for e in h.events] == ["mtm.Click"]
        assert h.events[0].origin == "dataLayer"

    def test_missing_secondary_collection_created_and_hooked(self):
        h = Harness(MemoryHost(), watchSecondaryCollection=True)
        h.session.start()

        assert h.host.collection("dataLayer") is not None

        h.push({"event": "mtm.Click"}, collection="dataLayer")
        h.scheduler.advance(0.1)

        [event] = h.events
        assert event.name == "mtm.Click"
        assert event.detection_method == "proxy-intercept"

    def test_missing_alias_collection_not_created(self):
        h = Harness(MemoryHost())
        h.session.start()

        assert h.host.collection("_paq_mtm") is None

    def test_primary_watch_disabled(self):
        host = MemoryHost(collections={"_mtm": [{"event": "a"}]})
        h = Harness(host, watchPrimaryCollection=False)
        h.session.start()

        host.collection("_mtm").push({"event": "b"})
        h.scheduler.advance(0.5)

        assert h.events == []


class TestClear:
    def test_clear_drops_in_flight_enrichment(self):
        h = Harness(MemoryHost())
        h.session.start()

        h.push({"event": "x"})
        generation = h.session.clear()
        h.scheduler.advance(0.1)

        assert generation == 1
        assert h.events == []
        assert h.session.gate.stale_dropped == 1
        assert h.session.enrichments == 0
        assert h.payloads(NotificationType.CLEARED) == [{"generation": 1}]

    def test_events_after_clear_are_dispatched(self):
        h = Harness(MemoryHost())
        h.session.start()

        h.push({"event": "x"})
        h.session.clear()
        h.push({"event": "x"})
        h.scheduler.advance(0.1)

        assert len(h.events) == 1
        assert h.events[0].generation == 1


class TestDebugMode:
    def test_enabled_immediately(self):
        container = _click_container(introspection=False)
        h = Harness(MemoryHost(container=container))
        h.session.start()

        assert h.payloads(NotificationType.DEBUG_MODE) == [{"success": True, "error": None}]
        assert container.introspection is True
        assert h.session.debug_attempts == 1

    def test_enabled_after_retries(self):
        h = Harness(MemoryHost(debug_mode_available_after=3))
        h.session.start()

        h.scheduler.advance(1.0)
        assert h.payloads(NotificationType.DEBUG_MODE) == []

        h.scheduler.advance(0.5)
        assert h.payloads(NotificationType.DEBUG_MODE) == [{"success": True, "error": None}]
        assert h.session.debug_attempts == 4

        h.scheduler.advance(5.0)
        assert h.session.debug_attempts == 4

    def test_timeout_after_max_attempts(self):
        """20 failed attempts at 0.5 s intervals end with a timeout notice."""
        h = Harness(MemoryHost(debug_mode_available_after=100))
        h.session.start()

        h.scheduler.advance(20.0)

        assert h.payloads(NotificationType.DEBUG_MODE) == [{"success": False, "error": "timeout"}]
        assert h.session.debug_attempts == 20

    def test_missing_capability_counts_as_unavailable(self):
        h = Harness(MemoryHost(debug_mode_available_after=None))
        h.session.start()

        h.scheduler.advance(20.0)

        assert h.payloads(NotificationType.DEBUG_MODE) == [{"success": False, "error": "timeout"}]

    def test_disabled(self):
        h = Harness(MemoryHost(), debug_mode={"enabled": False})
        h.session.start()

        assert h.session.debug_attempts == 0
        assert h.payloads(NotificationType.DEBUG_MODE) == []


class TestLifecycle:
    def test_stop_detaches_everything(self):
        h = Harness(MemoryHost())
        h.session.start()
        h.session.stop()

        h.push({"event": "late"})
        h.scheduler.advance(2.0)

        assert h.events == []
        assert h.scheduler.pending() == 0
        assert h.session.running is False

    def test_start_twice_is_ignored(self):
        h = Harness(MemoryHost(collections={"_mtm": [{"event": "a"}]}))
        h.session.start()
        h.session.start()

        assert len(h.events) == 1

    def test_start_starts_bus(self):
        h = Harness(MemoryHost())
        h.session.start()

        assert h.bus.is_running()
