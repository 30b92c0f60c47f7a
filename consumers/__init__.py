"""Notification consumers."""

from .console import ConsoleReporter, display_name
from .event_log import EventLog

__all__ = ["ConsoleReporter", "EventLog", "display_name"]
