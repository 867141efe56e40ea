"""Cancellable delayed-task scheduling for poll loops."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from parse_bench.obs.timing import ManualClock


class ScheduledTask(Protocol):
    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run `callback` once after `delay_seconds`."""


class ThreadingScheduler:
    """Runs each callback on a daemon timer thread."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledTask:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass(slots=True)
class _ManualTask:
    due: datetime
    seq: int
    callback: Callable[[], None]
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler driven by a `ManualClock`.

    Nothing runs until `advance` is called; due callbacks then run in order of
    due time, with the clock moved to each callback's due time first.
    """

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self._tasks: list[_ManualTask] = []
        self._seq = 0

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledTask:
        self._seq += 1
        task = _ManualTask(
            due=self.clock.now() + timedelta(seconds=delay_seconds),
            seq=self._seq,
            callback=callback,
        )
        self._tasks.append(task)
        return task

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward, running every callback that falls due. Returns the count run."""

        target = self.clock.now() + timedelta(seconds=seconds)
        ran = 0
        while True:
            due = [task for task in self._tasks if not task.cancelled and task.due <= target]
            if not due:
                break
            task = min(due, key=lambda item: (item.due, item.seq))
            self._tasks.remove(task)
            if task.due > self.clock.now():
                self.clock.advance((task.due - self.clock.now()).total_seconds())
            task.callback()
            ran += 1
        self._tasks = [task for task in self._tasks if not task.cancelled]
        if target > self.clock.now():
            self.clock.advance((target - self.clock.now()).total_seconds())
        return ran
