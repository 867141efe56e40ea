"""Drives one parsing method through enqueue -> upload -> poll -> metrics."""

from __future__ import annotations

import logging

from parse_bench.benchmark.metrics import compute_metrics
from parse_bench.config import PassageConfig, PollingConfig
from parse_bench.errors import MissingUploadUrlError, UploadError
from parse_bench.obs.timing import Clock, Stopwatch, SystemClock, epoch_ms, elapsed_ms, parse_iso, to_iso
from parse_bench.remote.files_api import EnqueuedFile, FilesApi
from parse_bench.status import FAILURE_STATUSES, JobStatus, is_pending, is_terminal
from parse_bench.types import (
    FileStatusResponse,
    MethodConfig,
    MethodResult,
    Passage,
    StartMethodResponse,
)

logger = logging.getLogger(__name__)

UNKNOWN_FAILURE = "Unknown error"


class MethodRunner:
    """Runs one `MethodConfig` against the files API.

    `run_to_completion` blocks until the method is terminal and never raises
    for expected failures; `start_only` returns as soon as the upload is done
    and leaves polling to the caller.
    """

    def __init__(
        self,
        files_api: FilesApi,
        *,
        clock: Clock | None = None,
        polling: PollingConfig | None = None,
        passage_config: PassageConfig | None = None,
    ) -> None:
        self.files_api = files_api
        self.clock = clock or SystemClock()
        self.polling = polling or PollingConfig()
        self.passage_config = passage_config or PassageConfig()

    def run_to_completion(
        self,
        data: bytes,
        file_name: str,
        content_type: str,
        method: MethodConfig,
        *,
        tags: dict[str, str] | None = None,
    ) -> MethodResult:
        started_at = self.clock.now()
        result = MethodResult(method=method.name, label=method.label, started_at=to_iso(started_at))

        with Stopwatch(self.clock) as stopwatch:
            try:
                enqueued = self._enqueue(len(data), file_name, content_type, method, tags)
                result.file_id = enqueued.file_id
                self._upload(enqueued, data, file_name, content_type, method)
                self._poll_until_terminal(enqueued, result)
                if result.status == JobStatus.INDEXING_COMPLETED:
                    passages = self.fetch_all_passages(result.file_id)
                    self._apply_metrics(result, passages)
            except UploadError as exc:
                logger.warning("Upload failed for method %s: %s", method.name, exc)
                result.status = JobStatus.UPLOAD_FAILED
                result.failed_reason = str(exc)
            except Exception as exc:
                logger.warning("Method %s failed: %s", method.name, exc, exc_info=True)
                result.status = JobStatus.INDEXING_FAILED
                result.failed_reason = str(exc)

        result.processing_time_ms = stopwatch.elapsed_ms
        return result

    def start_only(
        self,
        data: bytes,
        file_name: str,
        content_type: str,
        method: MethodConfig,
        *,
        tags: dict[str, str] | None = None,
    ) -> StartMethodResponse:
        started_at = to_iso(self.clock.now())
        enqueued = self._enqueue(len(data), file_name, content_type, method, tags)
        self._upload(enqueued, data, file_name, content_type, method)
        return StartMethodResponse(
            file_id=enqueued.file_id,
            method=method.name,
            label=method.label,
            started_at=started_at,
        )

    def file_status(self, file_id: str, started_at: str | None = None) -> FileStatusResponse:
        """Report one file's status; metrics are attached only on completion."""

        start = parse_iso(started_at) if started_at else None
        remote = self.files_api.get_status(file_id)
        response = FileStatusResponse(file_id=file_id, status=remote.status)

        if remote.status in FAILURE_STATUSES:
            response.failed_reason = remote.failed_reason or UNKNOWN_FAILURE
        if remote.status == JobStatus.INDEXING_COMPLETED:
            metrics = compute_metrics(self.fetch_all_passages(file_id), self.passage_config)
            response.passage_count = metrics.passage_count
            response.content_chars_total = metrics.content_chars_total
            response.meta_breakdown = metrics.meta_breakdown
            response.sample_text = metrics.sample_text
            response.cost_or_usage_raw = remote.usage
        if start is not None and is_terminal(remote.status):
            response.processing_time_ms = elapsed_ms(start, self.clock.now())
        return response

    def fetch_all_passages(self, file_id: str) -> list[Passage]:
        passages: list[Passage] = []
        next_token: str | None = None
        while True:
            page = self.files_api.list_passages(file_id, self.passage_config.page_size, next_token)
            passages.extend(page.passages)
            next_token = page.next_token
            if not next_token:
                return passages

    def _enqueue(
        self,
        size: int,
        file_name: str,
        content_type: str,
        method: MethodConfig,
        tags: dict[str, str] | None,
    ) -> EnqueuedFile:
        key = f"benchmark-{method.name}-{epoch_ms(self.clock.now())}-{file_name}"
        return self.files_api.enqueue(key, size, content_type, method.config, tags=tags)

    def _upload(
        self,
        enqueued: EnqueuedFile,
        data: bytes,
        file_name: str,
        content_type: str,
        method: MethodConfig,
    ) -> None:
        if not enqueued.upload_url:
            raise MissingUploadUrlError("No uploadUrl returned when enqueueing the file")
        self.files_api.upload_bytes(enqueued.upload_url, data, content_type)
        logger.info("Uploaded %s for method %s as file %s", file_name, method.name, enqueued.file_id)

    def _poll_until_terminal(self, enqueued: EnqueuedFile, result: MethodResult) -> None:
        status = JobStatus.UPLOAD_PENDING
        attempts = 0
        while is_pending(status) and attempts < self.polling.max_attempts:
            self.clock.sleep(self.polling.interval_seconds)
            remote = self.files_api.get_status(enqueued.file_id)
            status = remote.status
            result.failed_reason = remote.failed_reason
            result.cost_or_usage_raw = remote.usage
            attempts += 1

        if is_pending(status):
            result.status = JobStatus.TIMEOUT
            result.failed_reason = self.polling.timeout_reason
            result.cost_or_usage_raw = None
        elif status in FAILURE_STATUSES:
            result.status = status
            result.failed_reason = result.failed_reason or UNKNOWN_FAILURE
            result.cost_or_usage_raw = None
        else:
            result.status = status
            result.failed_reason = None

    def _apply_metrics(self, result: MethodResult, passages: list[Passage]) -> None:
        metrics = compute_metrics(passages, self.passage_config)
        result.passage_count = metrics.passage_count
        result.content_chars_total = metrics.content_chars_total
        result.meta_breakdown = metrics.meta_breakdown
        result.sample_text = metrics.sample_text
