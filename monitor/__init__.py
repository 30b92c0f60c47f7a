"""
Tag manager event monitor engine.
"""

__version__ = "0.1.0"

from monitor.config import ConfigManager, MonitorConfig
from monitor.engine import EventEngine, Notification
from monitor.events import Event, EventSource, MatchResult, NotificationType
from monitor.scheduler import AsyncioScheduler, ManualScheduler
from monitor.session import MonitorSession

__all__ = [
    "ConfigManager",
    "Event",
    "EventEngine",
    "EventSource",
    "ManualScheduler",
    "AsyncioScheduler",
    "MatchResult",
    "MonitorConfig",
    "MonitorSession",
    "Notification",
    "NotificationType",
]
