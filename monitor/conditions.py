"""Condition operators.

Values compared here come from host pages, so coercion follows the host's
scripting conventions: ``None`` prints as ``"null"``, booleans as
``"true"``/``"false"``, integral floats without a fractional part, and
numeric coercion turns blank strings into ``0`` and garbage into NaN.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(
    r"[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|Infinity)"
)


def to_text(value: Any) -> str:
    """String form of a value as the host would render it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else to_text(item) for item in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    return str(value)


def to_number(value: Any) -> float:
    """Numeric coercion; NaN when the value has no numeric reading."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return 0.0
        if len(value) == 1:
            return to_number(to_text(value[0]))
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if _NUMBER_RE.fullmatch(text):
            return float(text.replace("Infinity", "inf"))
        return math.nan
    return math.nan


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(actual: Any, expected: Any) -> bool:
    if is_number(actual):
        number = to_number(expected)
        if not math.isnan(number):
            return float(actual) == number
    return to_text(actual) == to_text(expected)


def _matches_regex(actual: Any, expected: Any) -> bool:
    try:
        pattern = re.compile(to_text(expected))
    except (re.error, TypeError, ValueError):
        logger.debug("Invalid pattern in condition: %r", expected)
        return False
    return pattern.search(to_text(actual)) is not None


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": _equals,
    "notEquals": lambda a, e: not _equals(a, e),
    "contains": lambda a, e: to_text(e) in to_text(a),
    "notContains": lambda a, e: to_text(e) not in to_text(a),
    "startsWith": lambda a, e: to_text(a).startswith(to_text(e)),
    "endsWith": lambda a, e: to_text(a).endswith(to_text(e)),
    "matchesRegex": _matches_regex,
    "greaterThan": lambda a, e: to_number(a) > to_number(e),
    "lessThan": lambda a, e: to_number(a) < to_number(e),
    "greaterThanOrEqualTo": lambda a, e: to_number(a) >= to_number(e),
    "lessThanOrEqualTo": lambda a, e: to_number(a) <= to_number(e),
}


def evaluate(actual: Any, expected: Any, op: str | None) -> bool:
    """Apply one comparison operator. Unknown operators evaluate to False."""
    operator = OPERATORS.get(op) if isinstance(op, str) else None
    if operator is None:
        logger.debug("Unknown comparison operator: %s", op)
        return False
    try:
        return bool(operator(actual, expected))
    except Exception:
        logger.exception("Comparison %s failed", op)
        return False
