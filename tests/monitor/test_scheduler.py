"""Unit tests for the cooperative schedulers."""

from __future__ import annotations

import asyncio
import logging

import pytest

from monitor.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    """ManualScheduler runs callbacks against a virtual clock."""

    def setup_method(self):
        self.scheduler = ManualScheduler(start=1000.0)
        self.calls: list[tuple[str, float]] = []

    def _record(self, label: str) -> None:
        self.calls.append((label, self.scheduler.now()))

    def test_clock_starts_at_given_time(self):
        assert self.scheduler.now() == pytest.approx(1000.0)

    def test_call_later_runs_when_due(self):
        self.scheduler.call_later(0.5, self._record, "a")

        self.scheduler.advance(0.25)
        assert self.calls == []

        self.scheduler.advance(0.25)
        assert self.calls == [("a", pytest.approx(1000.5))]

    def test_same_due_time_runs_in_submission_order(self):
        self.scheduler.call_later(0.1, self._record, "first")
        self.scheduler.call_later(0.1, self._record, "second")
        self.scheduler.call_later(0.05, self._record, "earliest")

        self.scheduler.advance(0.2)

        assert [label for label, _ in self.calls] == ["earliest", "first", "second"]

    def test_call_every_repeats(self):
        self.scheduler.call_every(0.25, self._record, "tick")

        self.scheduler.advance(1.0)

        assert len(self.calls) == 4
        assert self.calls[-1][1] == pytest.approx(1001.0)

    def test_cancel_stops_periodic_task(self):
        handle = self.scheduler.call_every(0.25, self._record, "tick")
        self.scheduler.advance(0.5)
        handle.cancel()
        self.scheduler.advance(1.0)

        assert len(self.calls) == 2
        assert self.scheduler.pending() == 0

    def test_periodic_callback_may_cancel_itself(self):
        holder = {}

        def tick():
            self._record("tick")
            if len(self.calls) == 3:
                holder["handle"].cancel()

        holder["handle"] = self.scheduler.call_every(0.5, tick)
        self.scheduler.advance(5.0)

        assert len(self.calls) == 3

    def test_failing_callback_is_logged_and_loop_continues(self, caplog):
        def boom():
            raise RuntimeError("boom")

        self.scheduler.call_later(0.1, boom, name="boom-task")
        self.scheduler.call_later(0.2, self._record, "after")

        with caplog.at_level(logging.ERROR, logger="monitor.scheduler"):
            self.scheduler.advance(0.3)

        assert [label for label, _ in self.calls] == ["after"]
        assert "boom-task" in caplog.text

    def test_callbacks_scheduled_while_running_are_honoured(self):
        def outer():
            self._record("outer")
            self.scheduler.call_later(0.125, self._record, "inner")

        self.scheduler.call_later(0.25, outer)
        self.scheduler.advance(0.5)

        assert [label for label, _ in self.calls] == ["outer", "inner"]
        assert self.calls[1][1] == pytest.approx(1000.375)

    def test_run_until_idle_skips_periodic_tasks(self):
        self.scheduler.call_every(0.25, self._record, "tick")
        self.scheduler.call_later(1.0, self._record, "once")

        self.scheduler.run_until_idle()

        assert ("once", pytest.approx(1001.0)) in self.calls
        assert self.scheduler.now() == pytest.approx(1001.0)

    def test_negative_advance_rejected(self):
        with pytest.raises(ValueError):
            self.scheduler.advance(-1)

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValueError):
            self.scheduler.call_every(0, self._record, "x")


def test_asyncio_scheduler_runs_callbacks() -> None:
    """AsyncioScheduler should run one-shot and periodic callbacks on the loop."""
    calls: list[str] = []

    async def main() -> None:
        scheduler = AsyncioScheduler()
        scheduler.call_later(0.01, calls.append, "once")
        handle = scheduler.call_every(0.01, calls.append, "tick")
        await asyncio.sleep(0.06)
        handle.cancel()
        count = calls.count("tick")
        await asyncio.sleep(0.03)
        assert calls.count("tick") == count

    asyncio.run(main())

    assert "once" in calls
    assert calls.count("tick") >= 2
