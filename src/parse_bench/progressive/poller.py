"""Per-method status polling for runs started in progressive mode."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from parse_bench.config import PassageConfig, PollingConfig
from parse_bench.history.store import RunHistoryStore
from parse_bench.obs.timing import Clock, SystemClock, elapsed_ms, parse_iso
from parse_bench.progressive.scheduler import ScheduledTask, Scheduler
from parse_bench.status import JobStatus, can_transition, is_terminal
from parse_bench.types import FileStatusResponse, Passage, PassagePage

logger = logging.getLogger(__name__)


class StatusSource(Protocol):
    """Where the poller reads file status and passages from."""

    def get_file_status(self, file_id: str, started_at: str | None = None) -> FileStatusResponse:
        """Return the current status of one file."""

    def get_file_passages(
        self,
        file_id: str,
        limit: int = 200,
        next_token: str | None = None,
    ) -> PassagePage:
        """Return one page of a file's passages."""


class ProgressivePoller:
    """Polls every in-flight method of one run until terminal or timed out.

    Loops are keyed by method name, so a method is never polled twice at
    once. `close` cancels all pending timers; a new poller for the same run
    picks up where the last one left off via `resume`, measuring the deadline
    from each method's persisted `started_at`.
    """

    def __init__(
        self,
        run_id: str,
        *,
        source: StatusSource,
        history: RunHistoryStore,
        scheduler: Scheduler,
        clock: Clock | None = None,
        polling: PollingConfig | None = None,
        passage_config: PassageConfig | None = None,
    ) -> None:
        self.run_id = run_id
        self.source = source
        self.history = history
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.polling = polling or PollingConfig()
        self.passage_config = passage_config or PassageConfig()
        self._mounted_at = self.clock.now()
        self._tasks: dict[str, ScheduledTask] = {}
        self._passages: dict[str, list[Passage]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def resume(self) -> list[str]:
        """Start loops for every method still in flight. Returns the methods tracked."""

        entry = self.history.get_by_id(self.run_id)
        if entry is None:
            return []
        tracked = []
        for record in entry.methods:
            if record.file_id and not is_terminal(record.status) and self.track(record.method):
                tracked.append(record.method)
        return tracked

    def track(self, method: str) -> bool:
        """Schedule an immediate status check for `method` unless one is already pending."""
        return self._schedule(method, 0.0)

    def active_methods(self) -> list[str]:
        with self._lock:
            return sorted(self._tasks)

    def passages(self, method: str) -> list[Passage] | None:
        return self._passages.get(method)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            for task in self._tasks.values():
                task.cancel()
            self._tasks.clear()

    def load_passages(self, method: str, file_id: str) -> list[Passage]:
        passages: list[Passage] = []
        next_token: str | None = None
        while True:
            page = self.source.get_file_passages(file_id, self.passage_config.page_size, next_token)
            passages.extend(page.passages)
            next_token = page.next_token
            if not next_token:
                break
        self._passages[method] = passages
        return passages

    def _schedule(self, method: str, delay_seconds: float) -> bool:
        with self._lock:
            if self._closed or method in self._tasks:
                return False
            self._tasks[method] = self.scheduler.call_later(
                delay_seconds, lambda: self._check(method)
            )
            return True

    def _check(self, method: str) -> None:
        with self._lock:
            if self._closed:
                return
            self._tasks.pop(method, None)

        entry = self.history.get_by_id(self.run_id)
        record = None
        if entry is not None:
            record = next((m for m in entry.methods if m.method == method), None)
        if record is None or is_terminal(record.status):
            return

        started = parse_iso(record.started_at) if record.started_at else self._mounted_at
        now = self.clock.now()
        if (now - started).total_seconds() > self.polling.timeout_seconds:
            logger.info("Method %s of run %s timed out", method, self.run_id)
            self.history.merge_method_update(
                self.run_id,
                method,
                {
                    "status": JobStatus.TIMEOUT,
                    "failedReason": self.polling.timeout_reason,
                    "processingTimeMs": elapsed_ms(started, now),
                },
            )
            return

        try:
            status = self.source.get_file_status(record.file_id, started_at=record.started_at)
        except Exception as exc:
            logger.warning("Status check failed for %s of run %s: %s", method, self.run_id, exc)
            self._schedule(method, self.polling.interval_seconds)
            return

        if not is_terminal(status.status):
            if status.status != record.status and can_transition(record.status, status.status):
                self.history.merge_method_update(self.run_id, method, {"status": status.status})
            self._schedule(method, self.polling.interval_seconds)
            return

        update = status.model_dump(exclude={"file_id"}, exclude_none=True)
        self.history.merge_method_update(self.run_id, method, update)
        logger.info("Method %s of run %s finished: %s", method, self.run_id, status.status.value)
        if status.status == JobStatus.INDEXING_COMPLETED:
            try:
                self.load_passages(method, record.file_id)
            except Exception as exc:
                logger.warning("Failed to load passages for %s of run %s: %s", method, self.run_id, exc)
