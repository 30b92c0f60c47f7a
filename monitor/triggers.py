"""Trigger matching and tag association."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from .conditions import evaluate
from .events import ConditionOutcome, FiredTag, MatchResult, TriggeredTrigger
from .rules import Condition, DataLayerField, RuleSnapshot, Tag, Trigger, parse_tag
from .variables import EventContext, resolve

logger = logging.getLogger(__name__)

TIMER_EVENT = "timer"
TIMER_FIELD = "aEvent"


def format_fired_time(timestamp: float) -> str:
    """24h local wall-clock time with milliseconds, e.g. ``14:03:07.042``."""
    moment = datetime.fromtimestamp(timestamp)
    return f"{moment:%H:%M:%S}.{moment.microsecond // 1000:03d}"


def is_timer_gate(condition: Condition) -> bool:
    """A data-layer condition requiring ``aEvent`` to be ``"timer"``."""
    actual = condition.actual
    return (
        isinstance(actual, DataLayerField)
        and actual.data_layer_name == TIMER_FIELD
        and condition.expected == TIMER_EVENT
    )


def _actual_value(condition: Condition, ctx: EventContext) -> Any:
    if ctx.is_timer_tick and is_timer_gate(condition):
        # own payload only: a backlog hit or default must not satisfy the gate
        return ctx.data.get(TIMER_FIELD)
    return resolve(condition.actual, ctx)


def _variable_label(condition: Condition) -> str:
    actual = condition.actual
    if actual is None:
        return "Unknown Variable"
    return actual.name or getattr(actual, "data_layer_name", None) or "Unknown Variable"


def evaluate_condition(condition: Condition, ctx: EventContext) -> ConditionOutcome:
    """Resolve and compare one condition; malformed conditions never match."""
    if condition.malformed:
        return ConditionOutcome(
            variable=_variable_label(condition),
            variable_type=condition.actual.host_type if condition.actual else "Unknown",
            data_layer_name=getattr(condition.actual, "data_layer_name", None),
            comparison=condition.comparison,
            expected=condition.expected,
            actual=None,
            matched=False,
        )

    actual = _actual_value(condition, ctx)
    return ConditionOutcome(
        variable=_variable_label(condition),
        variable_type=condition.actual.host_type,
        data_layer_name=getattr(condition.actual, "data_layer_name", None),
        comparison=condition.comparison,
        expected=condition.expected,
        actual=actual,
        matched=evaluate(actual, condition.expected, condition.comparison),
    )


def matched_conditions(trigger: Trigger, ctx: EventContext) -> list[ConditionOutcome]:
    """One outcome per condition, in declaration order."""
    return [evaluate_condition(condition, ctx) for condition in trigger.conditions]


def match(trigger: Trigger, ctx: EventContext) -> bool:
    """True iff the trigger has conditions and every one of them holds."""
    if not trigger.conditions:
        return False
    return all(outcome.matched for outcome in matched_conditions(trigger, ctx))


def referenced_tags(trigger: Trigger, snapshot: RuleSnapshot) -> list[Tag]:
    """Tags fired by ``trigger``.

    Prefers the host's native lookup; otherwise filters the trigger's own tag
    list (or the container's) by firing trigger id.
    """
    try:
        if trigger.tag_lookup is not None:
            raw = trigger.tag_lookup()
            if not isinstance(raw, (list, tuple)):
                return []
            return [parse_tag(tag) for tag in raw]

        candidates: Sequence[Tag] = (
            trigger.referenced_tags if trigger.referenced_tags is not None else snapshot.tags
        )
        return [tag for tag in candidates if trigger.id in tag.fire_trigger_ids]
    except Exception:
        logger.warning("Could not collect tags for trigger %s", trigger.name, exc_info=True)
        return []


def analyze(snapshot: RuleSnapshot, ctx: EventContext, now: float) -> MatchResult:
    """Match every trigger of ``snapshot`` against one event context.

    Without introspection the result is a degraded one: ``debug_mode_active``
    is False and both lists stay empty.
    """
    result = MatchResult(
        debug_mode_active=snapshot.debug_mode_active,
        total_triggers=snapshot.total_triggers,
        total_tags=snapshot.total_tags,
    )
    if not snapshot.debug_mode_active:
        logger.debug("Rule introspection unavailable, skipping trigger analysis")
        return result

    fired_at = format_fired_time(now)
    for trigger in snapshot.triggers:
        if not trigger.conditions:
            continue
        outcomes = matched_conditions(trigger, ctx)
        if not all(outcome.matched for outcome in outcomes):
            continue

        result.triggered_triggers.append(
            TriggeredTrigger(
                id=trigger.id,
                name=trigger.name,
                type=trigger.type,
                conditions=[condition.describe() for condition in trigger.conditions],
                matched_conditions=outcomes,
            )
        )
        for tag in referenced_tags(trigger, snapshot):
            result.fired_tags.append(
                FiredTag(name=tag.name, trigger_name=trigger.name, time=fired_at)
            )

    logger.debug(
        "Trigger analysis for %s: %d triggers, %d tags",
        ctx.event_name,
        len(result.triggered_triggers),
        len(result.fired_tags),
    )
    return result
