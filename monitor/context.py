"""Per-session engine context.

One ``MonitorContext`` is built for each monitored page session and passed to
every component; nothing lives in module globals.
"""

from __future__ import annotations

from dataclasses import dataclass

from hosts.base import HostPage

from .config import MonitorConfig
from .dedup import GlobalDedupFilter
from .engine import EventEngine
from .scheduler import Scheduler


@dataclass(slots=True)
class MonitorContext:
    """Runtime state shared by monitor components for one page session.

    Attributes:
        config: Monitor configuration.
        host: Observed host page.
        scheduler: Cooperative scheduler (clock and timers).
        bus: Notification bus towards consumers.
        global_dedup: Engine-side duplicate filter.
        generation: Bumped when consumers clear their history.
    """

    config: MonitorConfig
    host: HostPage
    scheduler: Scheduler
    bus: EventEngine
    global_dedup: GlobalDedupFilter | None = None
    generation: int = 0

    def __post_init__(self) -> None:
        if self.global_dedup is None:
            self.global_dedup = GlobalDedupFilter(
                window=self.config.dedup.global_window, clock=self.scheduler.now
            )

    def next_generation(self) -> int:
        self.generation += 1
        return self.generation
