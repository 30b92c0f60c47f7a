"""Event model, match-result records and notification types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .exceptions import EventSealedError

PROCESSED_MARKER = "__mtm_processed"
METADATA_KEYS = frozenset({PROCESSED_MARKER, "_debug", "customTimestamp"})


class EventSource(str, Enum):
    """Where an entry was observed."""

    COLLECTION_PUSH = "collection-push"
    COLLECTION_SCAN = "collection-scan"
    OTHER = "other"


class NotificationType(str, Enum):
    """Notifications emitted on the bus."""

    EVENT_DETECTED = "EVENT_DETECTED"
    DEBUG_MODE = "DEBUG_MODE"
    CLEARED = "CLEARED"
    START = "START"
    STOP = "STOP"


@dataclass(slots=True)
class ConditionOutcome:
    """Evaluation of one trigger condition against one event."""

    variable: str
    variable_type: str
    data_layer_name: str | None
    comparison: str | None
    expected: Any
    actual: Any
    matched: bool


@dataclass(slots=True)
class TriggeredTrigger:
    """A trigger whose conditions all matched."""

    id: Any
    name: str
    type: str | None
    conditions: list[dict[str, Any]] = field(default_factory=list)
    matched_conditions: list[ConditionOutcome] = field(default_factory=list)


@dataclass(slots=True)
class FiredTag:
    """A tag fired by a matched trigger."""

    name: str
    trigger_name: str
    time: str


@dataclass(slots=True)
class MatchResult:
    """Trigger analysis attached to an event before dispatch."""

    triggered_triggers: list[TriggeredTrigger] = field(default_factory=list)
    fired_tags: list[FiredTag] = field(default_factory=list)
    debug_mode_active: bool = False
    total_triggers: int = 0
    total_tags: int = 0

    @property
    def has_triggered_triggers(self) -> bool:
        return bool(self.triggered_triggers)

    @property
    def has_fired_tags(self) -> bool:
        return bool(self.fired_tags)


@dataclass(slots=True)
class ContainerInfo:
    """Snapshot of one host container taken at enrichment time."""

    id: Any
    version_name: str | None = None
    revision: Any = None
    environment: str | None = None
    debug_mode: bool = False
    total_triggers: int = 0
    total_tags: int = 0
    resolved_variables: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass(slots=True)
class Event:
    """Canonical record dispatched to consumers.

    Created by the normalizer, enriched in place, then sealed by the dispatch
    gate. Assigning to a sealed event raises ``EventSealedError``.
    """

    source: EventSource
    origin: str
    name: str
    details: dict[str, Any] = field(default_factory=dict)
    raw_data: Any = None
    historical: bool = False
    array_index: int | None = None
    fired_tags: list[str] = field(default_factory=list)
    source_type: str = "live-proxy"
    detection_method: str = "proxy-intercept"
    timestamp: datetime | None = None
    trigger_analysis: MatchResult | None = None
    container_info: list[ContainerInfo] = field(default_factory=list)
    collection_snapshot: list[Any] | None = None
    generation: int = 0
    _sealed: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_sealed", False):
            raise EventSealedError(
                "Dispatched events are immutable",
                context={"field": name, "event": self.name},
            )
        object.__setattr__(self, name, value)

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def has_index(self) -> bool:
        return self.array_index is not None

    def seal(self) -> None:
        object.__setattr__(self, "_sealed", True)

    def to_dict(self) -> dict[str, Any]:
        """Consumer-facing JSON-ready form."""
        analysis = self.trigger_analysis
        return {
            "source": self.source.value,
            "origin": self.origin,
            "historical": self.historical,
            "arrayIndex": self.array_index,
            "name": self.name,
            "details": self.details,
            "rawData": self.raw_data,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "firedTags": list(self.fired_tags),
            "sourceType": self.source_type,
            "detectionMethod": self.detection_method,
            "triggerAnalysis": _analysis_dict(analysis) if analysis else None,
            "containerInfo": [_container_dict(info) for info in self.container_info],
            "collectionSnapshot": self.collection_snapshot,
        }


def _analysis_dict(result: MatchResult) -> dict[str, Any]:
    return {
        "triggeredTriggers": [
            {
                "id": trig.id,
                "name": trig.name,
                "type": trig.type,
                "conditions": trig.conditions,
                "matchedConditions": [
                    {
                        "variable": c.variable,
                        "variableType": c.variable_type,
                        "dataLayerName": c.data_layer_name,
                        "comparison": c.comparison,
                        "expected": c.expected,
                        "actual": c.actual,
                        "matched": c.matched,
                    }
                    for c in trig.matched_conditions
                ],
            }
            for trig in result.triggered_triggers
        ],
        "firedTags": [
            {"name": tag.name, "trigger": tag.trigger_name, "time": tag.time}
            for tag in result.fired_tags
        ],
        "debugModeActive": result.debug_mode_active,
        "totalTriggers": result.total_triggers,
        "totalTags": result.total_tags,
    }


def _container_dict(info: ContainerInfo) -> dict[str, Any]:
    return {
        "id": info.id,
        "versionName": info.version_name,
        "revision": info.revision,
        "environment": info.environment,
        "debugMode": info.debug_mode,
        "totalTriggers": info.total_triggers,
        "totalTags": info.total_tags,
        "resolvedVariables": info.resolved_variables,
    }
