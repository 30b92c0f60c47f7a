"""Monitor session: wires interceptors, enrichment and dispatch for one page."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from hosts.base import HostPage

from .config import MonitorConfig
from .container import collect_container_info
from .context import MonitorContext
from .dispatch import DispatchGate
from .engine import EventEngine, Notification
from .events import Event, EventSource, MatchResult, NotificationType
from .interceptor import CollectionInterceptor, mark_processed
from .normalizer import normalize_push, normalize_scan_entry
from .rules import snapshot_rules
from .scheduler import AsyncioScheduler, Scheduler, TaskHandle
from .triggers import analyze
from .variables import EventContext

logger = logging.getLogger(__name__)


class MonitorSession:
    """
    Observe one host page and emit enriched events on the bus.

    Lifecycle:
        start()  debug mode, backlog scan, interceptors, periodic tasks
        clear()  new generation; in-flight enrichment is dropped
        stop()   cancel tasks, detach interceptors

    Example:
        bus = EventEngine()
        session = MonitorSession(host, scheduler=ManualScheduler(), bus=bus)
        session.start()
    """

    def __init__(
        self,
        host: HostPage,
        config: MonitorConfig | None = None,
        scheduler: Scheduler | None = None,
        bus: EventEngine | None = None,
    ) -> None:
        self.context = MonitorContext(
            config=config or MonitorConfig(),
            host=host,
            scheduler=scheduler or AsyncioScheduler(),
            bus=bus or EventEngine(),
        )
        self.gate = DispatchGate(self.context)
        self.interceptors: list[CollectionInterceptor] = []
        self.debug_mode_enabled = False
        self.debug_attempts = 0
        self.enrichments = 0
        self._tasks: list[TaskHandle] = []
        self._debug_task: TaskHandle | None = None
        self._running = False

    @property
    def config(self) -> MonitorConfig:
        return self.context.config

    @property
    def host(self) -> HostPage:
        return self.context.host

    @property
    def scheduler(self) -> Scheduler:
        return self.context.scheduler

    @property
    def bus(self) -> EventEngine:
        return self.context.bus

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("Monitor session already running")
            return
        self._running = True
        if not self.bus.is_running():
            self.bus.start()

        self._start_debug_mode()
        self._build_interceptors()
        self.scan_backlog()
        for interceptor in self.interceptors:
            interceptor.install()

        intervals = self.config.intervals
        self._tasks = [
            self.scheduler.call_every(intervals.array_check, self.poll, name="poll"),
            self.scheduler.call_every(
                intervals.reinterception, self.ensure_interceptors, name="reinterception"
            ),
            self.scheduler.call_every(
                intervals.cache_cleanup, self.sweep_caches, name="cache-cleanup"
            ),
        ]
        logger.info(
            "Monitoring %s (%s)",
            self.host.page_url,
            ", ".join(i.name for i in self.interceptors) or "no collections",
        )

    def stop(self) -> None:
        if not self._running:
            return
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        if self._debug_task is not None:
            self._debug_task.cancel()
            self._debug_task = None
        for interceptor in self.interceptors:
            interceptor.uninstall()
        self.interceptors.clear()
        self._running = False
        logger.info("Monitor session stopped, %d events dispatched", self.gate.dispatched)

    def clear(self) -> int:
        """Start a new generation and tell consumers to drop their history."""
        generation = self.context.next_generation()
        self.context.global_dedup.clear()
        self._notify(NotificationType.CLEARED, {"generation": generation})
        logger.info("Cleared, now at generation %d", generation)
        return generation

    # debug mode

    def _start_debug_mode(self) -> None:
        settings = self.config.debug_mode
        if not settings.enabled:
            return
        if self._try_enable_debug_mode():
            return
        if self.debug_attempts >= settings.max_attempts:
            self._debug_timeout()
            return
        self._debug_task = self.scheduler.call_every(
            settings.retry_interval, self._retry_debug_mode, name="debug-mode"
        )

    def _retry_debug_mode(self) -> None:
        if self._try_enable_debug_mode():
            self._finish_debug_retries()
        elif self.debug_attempts >= self.config.debug_mode.max_attempts:
            self._finish_debug_retries()
            self._debug_timeout()

    def _finish_debug_retries(self) -> None:
        if self._debug_task is not None:
            self._debug_task.cancel()
            self._debug_task = None

    def _try_enable_debug_mode(self) -> bool:
        self.debug_attempts += 1
        enable = getattr(self.host, "enable_debug_mode", None)
        if not callable(enable):
            logger.debug("Debug mode not available yet (attempt %d)", self.debug_attempts)
            return False
        try:
            enable()
        except Exception as exc:
            logger.debug("Debug mode attempt %d failed: %s", self.debug_attempts, exc)
            return False

        self.debug_mode_enabled = True
        logger.info("Debug mode enabled after %d attempt(s)", self.debug_attempts)
        self._notify(NotificationType.DEBUG_MODE, {"success": True, "error": None})
        return True

    def _debug_timeout(self) -> None:
        logger.warning("Debug mode unavailable after %d attempts", self.debug_attempts)
        self._notify(NotificationType.DEBUG_MODE, {"success": False, "error": "timeout"})

    # backlog

    def scan_backlog(self) -> int:
        """Dispatch entries present before monitoring started, oldest first.

        Primary entries are stamped by their position in the whole collection,
        secondary ones by their position among the recognized entries.
        """
        now = self.scheduler.now()
        intervals = self.config.intervals
        count = 0

        primary = self._interceptors_by_name.get(self.config.collections.primary)
        if primary is not None:
            collection = self.host.collection(primary.name)
            length = collection.current_length() if collection is not None else 0
            for index, entry in primary.scan_backlog():
                event = normalize_push(
                    f"{primary.name}.push", entry, array_index=index, historical=True
                )
                mark_processed(entry)
                timestamp = now - (length - index) * intervals.historical_offset
                count += self._dispatch_now(event, timestamp)

        secondary = self._interceptors_by_name.get(self.config.collections.secondary)
        if secondary is not None:
            recognized = []
            for _, entry in secondary.scan_backlog():
                event = normalize_scan_entry(secondary.name, entry, historical=True)
                if event is None:
                    continue
                mark_processed(entry)
                recognized.append(event)
            for position, event in enumerate(recognized):
                offset = (len(recognized) - position) * intervals.secondary_historical_offset
                count += self._dispatch_now(event, now - offset)

        if count:
            logger.info("Backlog scan found %d events", count)
        return count

    def _dispatch_now(self, event: Event, timestamp: float) -> int:
        event.generation = self.context.generation
        if not self.context.global_dedup.admit(event):
            return 0
        self.enrich(event)
        return int(self.gate.dispatch(event, timestamp=timestamp))

    # live interception

    def _build_interceptors(self) -> None:
        names = self.config.collections
        self.interceptors = []
        if self.config.watch_primary_collection:
            self._add_interceptor(names.primary, self._report_primary, indexed=True, create=True)
            for alias in names.aliases:
                self._add_interceptor(
                    alias, self._alias_reporter(alias), indexed=False, create=False
                )
        if self.config.watch_secondary_collection:
            self._add_interceptor(
                names.secondary, self._report_secondary, indexed=False, create=True
            )

    def _add_interceptor(
        self, name: str, report: Callable[..., None], indexed: bool, create: bool
    ) -> None:
        self.interceptors.append(
            CollectionInterceptor(self.host, name, report, indexed=indexed, create=create)
        )

    @property
    def _interceptors_by_name(self) -> dict[str, CollectionInterceptor]:
        return {interceptor.name: interceptor for interceptor in self.interceptors}

    def _report_primary(self, entry: Any, index: int | None, method: str) -> None:
        event = normalize_push(f"{self.config.collections.primary}.push", entry, array_index=index)
        event.detection_method = method
        self.intake(event)

    def _report_secondary(self, entry: Any, index: int | None, method: str) -> None:
        event = normalize_scan_entry(self.config.collections.secondary, entry)
        if event is None:
            return
        event.detection_method = method
        self.intake(event)

    def _alias_reporter(self, alias: str) -> Callable[[Any, int | None, str], None]:
        def report(entry: Any, index: int | None, method: str) -> None:
            event = normalize_push(f"{alias}.push", entry, source=EventSource.OTHER)
            event.detection_method = method
            self.intake(event)

        return report

    def intake(self, event: Event) -> bool:
        """Filter a live event and schedule its enrichment.

        Returns:
            False when the event was suppressed as a duplicate.
        """
        event.generation = self.context.generation
        if not self.context.global_dedup.admit(event):
            logger.debug("Duplicate %s from %s suppressed", event.name, event.origin)
            return False
        self.scheduler.call_later(
            self.config.intervals.enrichment_delay,
            self._enrich_and_dispatch,
            event,
            name="enrich",
        )
        return True

    def _enrich_and_dispatch(self, event: Event) -> None:
        if self.gate.reject_stale(event):
            return
        self.enrich(event)
        self.gate.dispatch(event)

    def enrich(self, event: Event) -> None:
        """Attach trigger analysis and container context, sampled now."""
        self.enrichments += 1
        host = self.host
        try:
            container = host.container()
        except Exception:
            logger.warning("Could not read the tag manager container", exc_info=True)
            container = None

        try:
            snapshot = snapshot_rules(container)
            backlog = host.collection(self.config.collections.secondary)
            ctx = EventContext.from_event(event, page_url=host.page_url, backlog=backlog)
            event.trigger_analysis = analyze(snapshot, ctx, self.scheduler.now())
        except Exception:
            logger.warning("Trigger analysis failed for %s", event.name, exc_info=True)
            event.trigger_analysis = MatchResult()

        try:
            event.container_info = collect_container_info(container)
        except Exception:
            logger.warning("Could not collect container info", exc_info=True)
            event.container_info = []

    # periodic tasks

    def poll(self) -> int:
        return sum(interceptor.poll() for interceptor in self.interceptors)

    def ensure_interceptors(self) -> int:
        return sum(1 for interceptor in self.interceptors if interceptor.ensure_installed())

    def sweep_caches(self) -> int:
        removed = self.context.global_dedup.sweep()
        if removed:
            logger.debug("Swept %d signatures", removed)
        return removed

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "generation": self.context.generation,
            "dispatched": self.gate.dispatched,
            "stale_dropped": self.gate.stale_dropped,
            "duplicates_suppressed": self.context.global_dedup.suppressed,
            "enrichments": self.enrichments,
            "debug_mode_enabled": self.debug_mode_enabled,
            "debug_attempts": self.debug_attempts,
            "interceptors": {i.name: i.reported for i in self.interceptors},
        }

    def _notify(self, notification_type: NotificationType, payload: Any) -> None:
        self.bus.put(Notification(notification_type, payload=payload, source="MonitorSession"))
