"""Unit tests for the monitor exception hierarchy."""

from __future__ import annotations

import pytest

from monitor.exceptions import (
    ConfigError,
    EventSealedError,
    MonitorError,
    SerializationError,
    format_exception,
    wrap_exception,
)


def test_monitor_error_base_fields() -> None:
    """MonitorError should keep message/code/context/cause fields."""
    err = MonitorError(
        "base failure",
        code="BASE_001",
        context={"collection": "_mtm", "index": 3},
    )

    assert err.message == "base failure"
    assert err.code == "BASE_001"
    assert err.context == {"collection": "_mtm", "index": 3}
    assert err.cause is None


@pytest.mark.parametrize(
    ("error_class", "code"),
    [
        (ConfigError, "CONFIG_ERROR"),
        (SerializationError, "SERIALIZATION_ERROR"),
        (EventSealedError, "EVENT_SEALED"),
    ],
)
def test_subclasses_carry_default_codes(error_class: type[MonitorError], code: str) -> None:
    """Every subclass should be a MonitorError with its own default code."""
    err = error_class("failure")

    assert isinstance(err, MonitorError)
    assert err.code == code


def test_explicit_code_overrides_default() -> None:
    err = ConfigError("bad value", code="CONFIG_RANGE")

    assert err.code == "CONFIG_RANGE"


def test_context_is_copied() -> None:
    """Mutating the caller's mapping must not change the error context."""
    context = {"path": "monitor.toml"}
    err = ConfigError("invalid", context=context)
    context["path"] = "other.toml"

    assert err.context == {"path": "monitor.toml"}


def test_wrap_exception_chains_cause() -> None:
    """wrap_exception should build the target class and chain the original."""
    original = ValueError("not a number")

    wrapped = wrap_exception(
        original,
        ConfigError,
        "Config file unreadable",
        context={"path": "monitor.toml"},
    )

    assert isinstance(wrapped, ConfigError)
    assert wrapped.cause is original
    assert wrapped.__cause__ is original
    assert wrapped.context == {"path": "monitor.toml"}


def test_wrap_exception_with_explicit_code() -> None:
    wrapped = wrap_exception(KeyError("x"), ConfigError, "bad section", code="CONFIG_SECTION")

    assert wrapped.code == "CONFIG_SECTION"


def test_format_exception_for_monitor_error() -> None:
    """Formatted text should include code, message, sorted context and cause."""
    err = SerializationError(
        "cannot copy entry",
        context={"origin": "_mtm.push", "index": 2},
        cause=TypeError("circular"),
    )

    text = format_exception(err)

    assert text == (
        "[SERIALIZATION_ERROR] cannot copy entry"
        " | context: index=2, origin='_mtm.push'"
        " | cause: TypeError: circular"
    )
    assert str(err) == text


def test_format_exception_for_generic_exception() -> None:
    assert format_exception(RuntimeError("boom")) == "RuntimeError: boom"


def test_monitor_errors_can_be_caught_by_base_class() -> None:
    with pytest.raises(MonitorError) as exc_info:
        raise EventSealedError("sealed", context={"field": "name"})

    assert exc_info.value.code == "EVENT_SEALED"
