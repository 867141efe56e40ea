"""Client-side driver for progressive runs: start, poll, compare."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Protocol

from parse_bench.benchmark.methods import METHODS
from parse_bench.config import PassageConfig, PollingConfig
from parse_bench.errors import ComparisonNotReadyError
from parse_bench.history.store import RunHistoryStore
from parse_bench.obs.timing import Clock, SystemClock, new_run_id, to_iso
from parse_bench.progressive.poller import ProgressivePoller, StatusSource
from parse_bench.progressive.scheduler import Scheduler, ThreadingScheduler
from parse_bench.status import JobStatus
from parse_bench.types import (
    AiComparisonResult,
    MethodConfig,
    OriginalFile,
    StartMethodResponse,
)

logger = logging.getLogger(__name__)


class ProgressiveApi(StatusSource, Protocol):
    def start_method(
        self,
        method: str,
        data: bytes,
        file_name: str,
        content_type: str,
        *,
        run_id: str,
    ) -> StartMethodResponse:
        """Enqueue and upload one method without waiting for indexing."""

    def ai_compare(
        self,
        run_id: str,
        file_ids: dict[str, str],
        instructions: str | None = None,
    ) -> AiComparisonResult:
        """Rank the three methods' output."""


class ProgressiveSession:
    """What an upload page does in progressive mode.

    `start` records a pending run, starts every method in parallel and hands
    the run to a poller; `open` mounts a poller for an existing run (resuming
    any method still in flight).
    """

    def __init__(
        self,
        api: ProgressiveApi,
        history: RunHistoryStore,
        *,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        polling: PollingConfig | None = None,
        passage_config: PassageConfig | None = None,
        methods: tuple[MethodConfig, ...] = METHODS,
    ) -> None:
        self.api = api
        self.history = history
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock or SystemClock()
        self.polling = polling or PollingConfig()
        self.passage_config = passage_config or PassageConfig()
        self.methods = methods

    def start(self, data: bytes, file_name: str, content_type: str) -> ProgressivePoller:
        run_id = new_run_id(self.clock)
        self.history.create_pending(
            run_id,
            to_iso(self.clock.now()),
            OriginalFile(name=file_name, size=len(data), content_type=content_type),
            self.methods,
        )
        logger.info("Starting progressive run %s for %s", run_id, file_name)

        with ThreadPoolExecutor(max_workers=len(self.methods)) as pool:
            futures = {
                pool.submit(
                    self.api.start_method,
                    method.name,
                    data,
                    file_name,
                    content_type,
                    run_id=run_id,
                ): method
                for method in self.methods
            }
            for future in as_completed(futures):
                method = futures[future]
                try:
                    started = future.result()
                except Exception as exc:
                    logger.warning("Failed to start %s for run %s: %s", method.name, run_id, exc)
                    self.history.merge_method_update(
                        run_id,
                        method.name,
                        {"status": JobStatus.UPLOAD_FAILED, "failedReason": str(exc)},
                    )
                    continue
                self.history.merge_method_update(
                    run_id,
                    method.name,
                    {"fileId": started.file_id, "startedAt": started.started_at},
                )

        return self.open(run_id)

    def open(self, run_id: str) -> ProgressivePoller:
        poller = ProgressivePoller(
            run_id,
            source=self.api,
            history=self.history,
            scheduler=self.scheduler,
            clock=self.clock,
            polling=self.polling,
            passage_config=self.passage_config,
        )
        poller.resume()
        return poller

    def run_ai_comparison(self, run_id: str, instructions: str | None = None) -> AiComparisonResult:
        """Compare a run once every method completed; repeat calls return the stored result."""

        entry = self.history.get_by_id(run_id)
        if entry is None:
            raise ComparisonNotReadyError(f"Run not found: {run_id}")
        if entry.ai_comparison is not None:
            return entry.ai_comparison

        file_ids = {
            m.method: m.file_id
            for m in entry.methods
            if m.status == JobStatus.INDEXING_COMPLETED and m.file_id
        }
        missing = [method.name for method in self.methods if method.name not in file_ids]
        if missing:
            raise ComparisonNotReadyError(
                f"Cannot run AI comparison: some methods failed ({', '.join(missing)})"
            )

        comparison = self.api.ai_compare(run_id, file_ids, instructions)
        self.history.attach_ai_comparison(run_id, comparison)
        return comparison
