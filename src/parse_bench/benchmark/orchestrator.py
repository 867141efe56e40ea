"""Fans the method runner out across the method catalogue for one upload."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from parse_bench.benchmark.methods import METHODS, require_method
from parse_bench.benchmark.runner import MethodRunner
from parse_bench.config import PassageConfig, PollingConfig
from parse_bench.obs.timing import Clock, SystemClock, new_run_id, to_iso
from parse_bench.remote.files_api import FilesApi
from parse_bench.types import (
    BenchmarkRunResult,
    FileStatusResponse,
    MethodConfig,
    MethodResult,
    MethodSearchResult,
    OriginalFile,
    PassagePage,
    SearchResponse,
    StartMethodResponse,
)

logger = logging.getLogger(__name__)

RUN_TAG = "benchmarkRunId"
METHOD_TAG = "benchmarkMethod"


def run_tags(run_id: str, method: str) -> dict[str, str]:
    """File tags that scope search to one method's file within one run."""
    return {RUN_TAG: run_id, METHOD_TAG: method}


class BenchmarkOrchestrator:
    """Entry point for both the synchronous and the progressive modes."""

    def __init__(
        self,
        files_api: FilesApi,
        *,
        clock: Clock | None = None,
        polling: PollingConfig | None = None,
        passage_config: PassageConfig | None = None,
        methods: tuple[MethodConfig, ...] = METHODS,
    ) -> None:
        self.files_api = files_api
        self.clock = clock or SystemClock()
        self.methods = methods
        self.runner = MethodRunner(
            files_api,
            clock=self.clock,
            polling=polling,
            passage_config=passage_config,
        )

    def run_benchmark(self, data: bytes, file_name: str, content_type: str) -> BenchmarkRunResult:
        """Run every method to completion, strictly one after another.

        Methods never overlap so that their processing times are not skewed
        by sharing the network with each other.
        """

        run_id = new_run_id(self.clock)
        started_at = to_iso(self.clock.now())
        results: list[MethodResult] = []

        for method in self.methods:
            logger.info("[%s] Starting %s", run_id, method.label)
            result = self.runner.run_to_completion(
                data,
                file_name,
                content_type,
                method,
                tags=run_tags(run_id, method.name),
            )
            logger.info(
                "[%s] %s: %s in %dms",
                run_id,
                method.label,
                result.status.value,
                result.processing_time_ms,
            )
            results.append(result)

        return BenchmarkRunResult(
            run_id=run_id,
            started_at=started_at,
            completed_at=to_iso(self.clock.now()),
            original_file=OriginalFile(name=file_name, size=len(data), content_type=content_type),
            methods=results,
        )

    def start_method(
        self,
        data: bytes,
        file_name: str,
        content_type: str,
        method_name: str,
        *,
        run_id: str,
    ) -> StartMethodResponse:
        """Enqueue and upload one method, tagged so run-scoped search can find it."""

        method = require_method(method_name)
        if not run_id:
            raise ValueError("No runId provided")
        return self.runner.start_only(
            data, file_name, content_type, method, tags=run_tags(run_id, method.name)
        )

    def get_file_status(self, file_id: str, started_at: str | None = None) -> FileStatusResponse:
        return self.runner.file_status(file_id, started_at)

    def get_file_passages(
        self,
        file_id: str,
        limit: int = 200,
        next_token: str | None = None,
    ) -> PassagePage:
        return self.files_api.list_passages(file_id, limit, next_token)

    def search_all_methods(self, query: str, run_id: str, limit: int = 10) -> SearchResponse:
        """Search every method's file for one run in parallel.

        A failing method yields an entry with `error` set and no passages; it
        never cancels the others. Results keep catalogue order and the remote
        service's ranking within each method.
        """

        def _search(method: MethodConfig) -> MethodSearchResult:
            try:
                hits = self.files_api.search(query, limit, tags=run_tags(run_id, method.name))
            except Exception as exc:
                logger.warning("Search failed for %s: %s", method.name, exc)
                return MethodSearchResult(method=method.name, passages=[], error=str(exc) or "Search failed")
            return MethodSearchResult(method=method.name, passages=hits)

        with ThreadPoolExecutor(max_workers=len(self.methods)) as pool:
            results = list(pool.map(_search, self.methods))
        return SearchResponse(query=query, results=results)
