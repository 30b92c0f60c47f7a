"""Container context attached to events for audit display."""

from __future__ import annotations

import logging
from typing import Any

from .events import ContainerInfo
from .rules import read_field

logger = logging.getLogger(__name__)

NO_GETTER = "get() method not available"


def _is_config_variable(variable: Any) -> bool:
    # tracker settings variables
    name = str(read_field(variable, "name") or "").lower()
    parameters = read_field(variable, "parameters")
    data_layer_name = str(read_field(parameters, "dataLayerName", "data_layer_name") or "")
    return "matomo" in name or "matomo" in data_layer_name.lower()


def resolve_live_variables(variables: Any) -> dict[str, dict[str, Any]]:
    """Current value of every named host variable, sampled once."""
    resolved: dict[str, dict[str, Any]] = {}
    if not isinstance(variables, (list, tuple)):
        return resolved

    for variable in variables:
        name = read_field(variable, "name")
        if not name or _is_config_variable(variable):
            continue

        getter = read_field(variable, "get")
        if callable(getter):
            try:
                current = getter()
            except Exception as exc:
                logger.debug("Variable %s: %s", name, exc)
                current = f"Error: {exc}"
        else:
            current = NO_GETTER

        parameters = read_field(variable, "parameters")
        resolved[str(name)] = {
            "currentValue": current,
            "defaultValue": read_field(variable, "defaultValue", "default_value"),
            "dataLayerName": read_field(parameters, "dataLayerName", "data_layer_name"),
            "type": read_field(variable, "type"),
        }
    return resolved


def collect_container_info(container: Any) -> list[ContainerInfo]:
    """Describe the host container; empty list when the page has none."""
    if container is None:
        return []

    triggers = read_field(container, "triggers")
    tags = read_field(container, "tags")
    return [
        ContainerInfo(
            id=read_field(container, "id"),
            version_name=read_field(container, "versionName", "version_name"),
            revision=read_field(container, "revision"),
            environment=read_field(container, "environment"),
            debug_mode=isinstance(triggers, (list, tuple)) and isinstance(tags, (list, tuple)),
            total_triggers=len(triggers) if isinstance(triggers, (list, tuple)) else 0,
            total_tags=len(tags) if isinstance(tags, (list, tuple)) else 0,
            resolved_variables=resolve_live_variables(read_field(container, "variables")),
        )
    ]
