"""Unit tests for rule snapshots."""

from __future__ import annotations

from hosts import MemoryContainer, MemoryTag, MemoryTrigger
from monitor.rules import (
    Constant,
    CustomFunction,
    DataLayerField,
    PageUrl,
    UnknownVariable,
    parse_condition,
    parse_tag,
    parse_trigger,
    parse_variable,
    read_field,
    snapshot_rules,
)


def test_read_field_mapping_and_attribute() -> None:
    class Obj:
        version_name = "v1"

    assert read_field({"versionName": "v2"}, "versionName", "version_name") == "v2"
    assert read_field(Obj(), "versionName", "version_name") == "v1"
    assert read_field(None, "x", default=5) == 5


class TestParseVariable:
    def test_data_layer(self):
        ref = parse_variable(
            {"type": "DataLayer", "name": "Event", "parameters": {"dataLayerName": "event"}}
        )

        assert ref == DataLayerField(data_layer_name="event", name="Event")

    def test_simple_variants(self):
        assert isinstance(parse_variable({"type": "PageUrl"}), PageUrl)
        assert isinstance(parse_variable({"type": "Constant", "defaultValue": 1}), Constant)
        custom = parse_variable({"type": "CustomJsFunction", "defaultValue": "x"})
        assert isinstance(custom, CustomFunction)
        assert custom.default_value == "x"
        assert isinstance(parse_variable({"type": "CustomFunction"}), CustomFunction)

    def test_unknown_type(self):
        ref = parse_variable({"type": "ClickId", "defaultValue": "d"})

        assert ref == UnknownVariable(host_type="ClickId", default_value="d")

    def test_unusable_values(self):
        assert parse_variable(None) is None
        assert parse_variable("event") is None
        assert parse_variable(["DataLayer"]) is None


def test_malformed_condition() -> None:
    """Missing variable or comparison marks the condition malformed."""
    assert parse_condition({"comparison": "equals", "expected": "x"}).malformed
    assert parse_condition({"actual": {"type": "PageUrl"}, "expected": "x"}).malformed
    assert parse_condition("garbage").malformed
    assert not parse_condition(
        {"actual": {"type": "PageUrl"}, "comparison": "contains", "expected": "x"}
    ).malformed


def test_condition_describe() -> None:
    condition = parse_condition(
        {
            "actual": {"type": "DataLayer", "name": "Ev", "parameters": {"dataLayerName": "event"}},
            "comparison": "equals",
            "expected": "click",
        }
    )

    assert condition.describe() == {
        "actual": {"type": "DataLayer", "name": "Ev", "dataLayerName": "event"},
        "comparison": "equals",
        "expected": "click",
    }


def test_parse_tag_variants() -> None:
    assert parse_tag({"name": "GA4", "fireTriggerIds": [1, 2]}).fire_trigger_ids == (1, 2)
    assert parse_tag(MemoryTag("Pixel", [3])).fire_trigger_ids == (3,)
    assert parse_tag({}).name == "Unknown Tag"
    assert parse_tag({"name": "x", "fireTriggerIds": "bad"}).fire_trigger_ids == ()


def test_parse_trigger_keeps_callable_lookup_only() -> None:
    with_lookup = parse_trigger({"id": 1, "name": "T", "getReferencedTags": lambda: []})
    without = parse_trigger({"id": 1, "name": "T", "getReferencedTags": "nope"})

    assert with_lookup.tag_lookup is not None
    assert without.tag_lookup is None


def test_parse_trigger_ignores_non_list_conditions() -> None:
    assert parse_trigger({"id": 1, "name": "T", "conditions": "x"}).conditions == ()


class TestSnapshot:
    def test_no_container(self):
        snapshot = snapshot_rules(None)

        assert snapshot.debug_mode_active is False
        assert snapshot.triggers == ()

    def test_introspection_hidden(self):
        container = MemoryContainer(
            triggers=[MemoryTrigger(1, "T")], tags=[MemoryTag("G", [1])], introspection=False
        )

        snapshot = snapshot_rules(container)

        assert snapshot.debug_mode_active is False
        assert snapshot.total_triggers == 0

    def test_introspection_available(self):
        container = MemoryContainer(
            triggers=[MemoryTrigger(1, "T"), MemoryTrigger(2, "U")],
            tags=[MemoryTag("G", [1])],
        )

        snapshot = snapshot_rules(container)

        assert snapshot.debug_mode_active is True
        assert [t.name for t in snapshot.triggers] == ["T", "U"]
        assert snapshot.total_triggers == 2
        assert snapshot.total_tags == 1

    def test_empty_lists_still_count_as_introspection(self):
        snapshot = snapshot_rules({"triggers": [], "tags": []})

        assert snapshot.debug_mode_active is True
