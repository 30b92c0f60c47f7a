"""Configuration management for the event monitor.

All durations are seconds.
"""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigError, wrap_exception

ENV_PREFIX = "MTM__"


class CollectionsConfig(BaseModel):
    """Names of the host collections to monitor."""

    model_config = ConfigDict(extra="forbid")

    primary: str = "_mtm"
    secondary: str = "dataLayer"
    aliases: list[str] = Field(default_factory=lambda: ["mtm", "_paq_mtm"])

    @model_validator(mode="after")
    def _validate_distinct(self) -> "CollectionsConfig":
        if self.primary == self.secondary:
            raise ValueError("collections.primary and collections.secondary must differ")
        if self.primary in self.aliases or self.secondary in self.aliases:
            raise ValueError("collections.aliases must not repeat primary/secondary")
        return self


class IntervalsConfig(BaseModel):
    """Scheduling intervals."""

    model_config = ConfigDict(extra="forbid")

    array_check: float = Field(default=0.2, gt=0)
    reinterception: float = Field(default=1.0, gt=0)
    cache_cleanup: float = Field(default=5.0, gt=0)
    enrichment_delay: float = Field(default=0.05, ge=0)
    historical_offset: float = Field(default=5.0, gt=0)
    secondary_historical_offset: float = Field(default=3.0, gt=0)


class DedupConfig(BaseModel):
    """Duplicate suppression windows."""

    model_config = ConfigDict(extra="forbid")

    global_window: float = Field(default=1.0, gt=0)
    presentation_window: float = Field(default=2.0, gt=0)


class DebugModeConfig(BaseModel):
    """Best-effort enabling of host rule introspection at startup."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_attempts: int = Field(default=20, ge=1)
    retry_interval: float = Field(default=0.5, gt=0)


class EventLogConfig(BaseModel):
    """Limits of the consumer-side event log."""

    model_config = ConfigDict(extra="allow")

    max_events: int = Field(default=1000, ge=1)
    console_logging: bool = False


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="allow")

    level: str = "INFO"
    format: str = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
    file_path: str | None = None
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()


class MonitorConfig(BaseModel):
    """Top-level monitor configuration model.

    The two watch flags also accept the camelCase names used by host pages.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    watch_primary_collection: bool = Field(default=True, alias="watchPrimaryCollection")
    watch_secondary_collection: bool = Field(default=False, alias="watchSecondaryCollection")

    collections: CollectionsConfig = Field(default_factory=CollectionsConfig)
    intervals: IntervalsConfig = Field(default_factory=IntervalsConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    debug_mode: DebugModeConfig = Field(default_factory=DebugModeConfig)
    event_log: EventLogConfig = Field(default_factory=EventLogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Load and validate monitor configuration from TOML files or dicts."""

    def __init__(self, defaults: MonitorConfig | None = None) -> None:
        self._defaults = defaults or MonitorConfig()

    @property
    def defaults(self) -> MonitorConfig:
        """Return default configuration."""
        return self._defaults

    def load(self, path: str | Path) -> MonitorConfig:
        """Load TOML file and merge with defaults before validation."""
        config_path = Path(path)
        with config_path.open("rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise wrap_exception(
                    exc,
                    ConfigError,
                    "Invalid TOML in config file",
                    context={"path": str(config_path)},
                ) from exc

        return self.from_dict(data)

    def from_dict(self, data: dict[str, Any]) -> MonitorConfig:
        """Validate configuration from dict, merged onto defaults and env vars.

        Raises:
            ConfigError: If the merged configuration does not validate.
        """
        merged = _deep_merge(
            self._defaults.model_dump(mode="python"),
            _canonical_keys(data),
        )
        merged_with_env = _apply_env_overrides(merged)
        try:
            return MonitorConfig.model_validate(merged_with_env)
        except ValidationError as exc:
            raise wrap_exception(
                exc,
                ConfigError,
                "Monitor configuration is invalid",
                context={"errors": exc.error_count()},
            ) from exc


_ALIASES = {
    "watchPrimaryCollection": "watch_primary_collection",
    "watchSecondaryCollection": "watch_secondary_collection",
}


def _canonical_keys(data: dict[str, Any]) -> dict[str, Any]:
    # defaults are dumped by field name, so host aliases must merge onto them
    return {_ALIASES.get(key, key): value for key, value in data.items()}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply env overrides using MTM__A__B style keys."""
    overridden = deepcopy(config)

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        path = key[len(ENV_PREFIX) :].strip("_")
        keys = [part.lower() for part in path.split("__") if part]
        if not keys:
            continue

        _set_nested(overridden, keys, _parse_env_value(raw_value))

    return overridden


def _set_nested(root: dict[str, Any], keys: list[str], value: Any) -> None:
    current: dict[str, Any] = root
    for key in keys[:-1]:
        child = current.get(key)
        if not isinstance(child, dict):
            child = {}
            current[key] = child
        current = child
    current[keys[-1]] = value


def _parse_env_value(raw: str) -> Any:
    lowered = raw.strip().lower()
    if lowered in {"true", "false"}:
        return lowered == "true"

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw
