"""Exception hierarchy and helpers for the event monitor.

This module provides a consistent exception model used by monitor components:

- ``MonitorError`` as the base class with error code, context and root cause.
- Subclasses for config, serialization and sealed-event problems.
- Utility helpers to wrap external exceptions and to format errors.

Most of these are raised internally and recovered by the component that owns
the failure; only ``ConfigError`` and ``EventSealedError`` reach callers.
"""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

TMonitorError = TypeVar("TMonitorError", bound="MonitorError")


class MonitorError(Exception):
    """Base exception for all monitor-level errors.

    Attributes:
        message: Human-readable error message.
        code: Stable error code for programmatic processing.
        context: Extra metadata useful for debugging and logging.
        cause: Original exception that triggered this error.
    """

    default_code = "MONITOR_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message: str = message
        self.code: str = code or self.default_code
        self.context: dict[str, Any] = dict(context) if context is not None else {}
        self.cause: Exception | None = cause

        super().__init__(message)

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return format_exception(self)


class ConfigError(MonitorError):
    """Configuration could not be loaded or validated."""

    default_code = "CONFIG_ERROR"


class SerializationError(MonitorError):
    """An entry could not be copied into a JSON-safe form."""

    default_code = "SERIALIZATION_ERROR"


class EventSealedError(MonitorError):
    """An already dispatched event was modified."""

    default_code = "EVENT_SEALED"


def wrap_exception(
    exc: Exception,
    error_class: type[TMonitorError],
    message: str,
    *,
    code: str | None = None,
    context: Mapping[str, Any] | None = None,
) -> TMonitorError:
    """Wrap an external exception with a monitor exception class.

    Args:
        exc: Original exception raised by host code or a lower layer.
        error_class: Target ``MonitorError`` subclass to construct.
        message: Message for the wrapped exception.
        code: Optional explicit error code overriding class default.
        context: Optional context payload.

    Returns:
        An instance of ``error_class`` that chains ``exc`` as its cause.
    """
    return error_class(message, code=code, context=context, cause=exc)


def format_exception(exc: BaseException) -> str:
    """Format exception into a readable one-line text.

    For ``MonitorError`` it includes code, message, context and cause.
    For generic exceptions, it returns ``<Type>: <message>``.
    """
    if isinstance(exc, MonitorError):
        base = f"[{exc.code}] {exc.message}"
        context_part = ""
        if exc.context:
            context_items = ", ".join(
                f"{key}={value!r}" for key, value in sorted(exc.context.items())
            )
            context_part = f" | context: {context_items}"

        cause_part = ""
        if exc.cause is not None:
            cause_part = f" | cause: {type(exc.cause).__name__}: {exc.cause}"

        return f"{base}{context_part}{cause_part}"

    return f"{type(exc).__name__}: {exc}"


__all__ = [
    "MonitorError",
    "ConfigError",
    "SerializationError",
    "EventSealedError",
    "wrap_exception",
    "format_exception",
]
