"""
Notification bus between the monitor and its consumers.

Design:
- handlers registered per notification type, ordered by priority
- middleware chain that may transform or drop a notification
- error isolation: one failing consumer never affects another, nor the
  monitor pipeline that emitted the notification
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .events import NotificationType

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    """One message on the bus."""

    type: NotificationType
    payload: Any = None
    source: Optional[str] = None


Handler = Callable[[Notification], None]
Middleware = Callable[[Notification], Optional[Notification]]


@dataclass(slots=True)
class HandlerInfo:
    """Registered handler and its priority."""

    handler: Handler
    priority: int = 0  # higher runs first

    def __lt__(self, other: HandlerInfo) -> bool:
        return self.priority < other.priority


@dataclass(slots=True)
class _Stats:
    notification_count: int = 0
    error_count: int = 0
    dropped_count: int = 0
    per_type: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


class EventEngine:
    """
    Fire-and-forget notification bus.

    Example:
        engine = EventEngine()

        @engine.on(NotificationType.EVENT_DETECTED)
        def show(notification):
            print(notification.payload.name)

        engine.start()
        engine.put(Notification(NotificationType.EVENT_DETECTED, payload=event))
    """

    def __init__(self) -> None:
        self._handlers: Dict[NotificationType, List[HandlerInfo]] = defaultdict(list)
        self._middlewares: List[Middleware] = []
        self._running = False
        self._stats = _Stats()

    def on(self, notification_type: NotificationType, priority: int = 0) -> Callable:
        """Decorator form of :meth:`register`."""
        def decorator(handler: Handler) -> Handler:
            self.register(notification_type, handler, priority)
            return handler
        return decorator

    def register(
        self,
        notification_type: NotificationType,
        handler: Handler,
        priority: int = 0,
    ) -> None:
        """
        Register a handler.

        Raises:
            ValueError: If ``handler`` is not callable.
        """
        if not callable(handler):
            raise ValueError(f"Handler must be callable, got {type(handler)}")

        handlers = self._handlers[notification_type]
        handlers.append(HandlerInfo(handler=handler, priority=priority))
        handlers.sort(reverse=True)

        logger.debug(
            "Registered handler for %s with priority %d", notification_type.name, priority
        )

    def unregister(self, notification_type: NotificationType, handler: Handler) -> bool:
        """Remove a handler; return whether it was registered."""
        handlers = self._handlers.get(notification_type, [])
        for i, info in enumerate(handlers):
            if info.handler == handler:
                handlers.pop(i)
                return True
        return False

    def use(self, middleware: Middleware) -> None:
        """
        Add a middleware.

        A middleware returning ``None`` stops the notification.
        """
        if not callable(middleware):
            raise ValueError(f"Middleware must be callable, got {type(middleware)}")
        self._middlewares.append(middleware)

    def put(self, notification: Notification) -> None:
        """Deliver a notification to every handler of its type."""
        if not self._running:
            self._stats.dropped_count += 1
            logger.warning(
                "EventEngine not running, notification %s dropped", notification.type.name
            )
            return

        self._stats.notification_count += 1
        self._stats.per_type[notification.type.name] += 1

        current = notification
        for middleware in self._middlewares:
            try:
                result = middleware(current)
            except Exception as e:
                self._stats.error_count += 1
                logger.error("Middleware error: %s", e)
                continue
            if result is None:
                logger.debug("Notification %s filtered by middleware", notification.type.name)
                return
            current = result

        # copy: handlers may unregister themselves while running
        for info in list(self._handlers.get(current.type, [])):
            try:
                info.handler(current)
            except Exception:
                self._stats.error_count += 1
                logger.exception("Handler error for %s", current.type.name)

    def start(self) -> None:
        self._running = True
        self.put(Notification(NotificationType.START, source="EventEngine"))
        logger.info("EventEngine started")

    def stop(self) -> None:
        self.put(Notification(NotificationType.STOP, source="EventEngine"))
        self._running = False
        logger.info(
            "EventEngine stopped. Total notifications: %d, Errors: %d",
            self._stats.notification_count,
            self._stats.error_count,
        )

    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "notification_count": self._stats.notification_count,
            "error_count": self._stats.error_count,
            "dropped_count": self._stats.dropped_count,
            "per_type": dict(self._stats.per_type),
            "handlers": {
                t.name: len(handlers) for t, handlers in self._handlers.items()
            },
            "middlewares": len(self._middlewares),
        }
