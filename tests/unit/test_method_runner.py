import pytest

from parse_bench.benchmark.methods import require_method
from parse_bench.benchmark.runner import MethodRunner
from parse_bench.errors import MissingUploadUrlError, RemoteServiceError
from parse_bench.status import JobStatus


@pytest.fixture
def runner(files_api, clock) -> MethodRunner:
    return MethodRunner(files_api, clock=clock)


def test_run_to_completion_collects_all_passage_pages(runner, files_api, make_passages) -> None:
    files_api.plan(
        "basic",
        statuses=["indexing_pending", "indexing_pending", "indexing_completed"],
        passages=make_passages(450, type="text", page_number=1),
        usage={"pages": 4},
    )

    result = runner.run_to_completion(b"%PDF-1.7", "report.pdf", "application/pdf", require_method("basic"))

    assert result.status is JobStatus.INDEXING_COMPLETED
    assert result.passage_count == 450
    assert result.meta_breakdown.by_type == {"text": 450}
    assert result.meta_breakdown.page_count == 1
    assert result.processing_time_ms == 6000
    assert result.failed_reason is None
    assert result.cost_or_usage_raw == {"pages": 4}
    assert files_api.uploads[0][1:] == (8, "application/pdf")


def test_remote_failure_passes_reason_through(runner, files_api) -> None:
    files_api.plan("vision", statuses=["indexing_failed"], failed_reason="Unsupported file")

    result = runner.run_to_completion(b"x", "a.pdf", "application/pdf", require_method("vision"))

    assert result.status is JobStatus.INDEXING_FAILED
    assert result.failed_reason == "Unsupported file"
    assert result.passage_count == 0
    assert result.meta_breakdown.by_type == {}


def test_remote_failure_without_reason(runner, files_api) -> None:
    files_api.plan("vision", statuses=["upload_failed"])

    result = runner.run_to_completion(b"x", "a.pdf", "application/pdf", require_method("vision"))

    assert result.status is JobStatus.UPLOAD_FAILED
    assert result.failed_reason == "Unknown error"


def test_timeout_after_max_attempts(runner, files_api, make_passages) -> None:
    files_api.plan("agentic", statuses=["indexing_pending"], passages=make_passages(5))

    result = runner.run_to_completion(b"x", "a.pdf", "application/pdf", require_method("agentic"))

    assert result.status is JobStatus.TIMEOUT
    assert result.failed_reason == "Indexing timed out after 5 minutes"
    assert result.processing_time_ms == 300_000
    assert result.passage_count == 0
    assert files_api.file_for("agentic").status_calls == 150


def test_completion_on_last_attempt_is_not_a_timeout(runner, files_api) -> None:
    files_api.plan("agentic", statuses=["indexing_pending"] * 149 + ["indexing_completed"])

    result = runner.run_to_completion(b"x", "a.pdf", "application/pdf", require_method("agentic"))

    assert result.status is JobStatus.INDEXING_COMPLETED


def test_upload_error_is_recorded_as_upload_failed(runner, files_api, upload_error) -> None:
    files_api.plan("basic", upload_error=upload_error)

    result = runner.run_to_completion(b"x", "a.pdf", "application/pdf", require_method("basic"))

    assert result.status is JobStatus.UPLOAD_FAILED
    assert "403" in result.failed_reason
    assert result.file_id.startswith("file_basic")


def test_missing_upload_url_is_recorded_as_indexing_failed(runner, files_api) -> None:
    files_api.plan("basic", upload_url=None)

    result = runner.run_to_completion(b"x", "a.pdf", "application/pdf", require_method("basic"))

    assert result.status is JobStatus.INDEXING_FAILED
    assert "uploadUrl" in result.failed_reason


def test_start_only_returns_handle_without_polling(runner, files_api, clock) -> None:
    started = runner.start_only(b"x", "a.pdf", "application/pdf", require_method("vision"))

    assert started.method == "vision"
    assert started.label == "Vision"
    assert started.file_id in files_api.files
    assert started.started_at.startswith("2024-01-01T00:00:00")
    assert files_api.file_for("vision").status_calls == 0


def test_start_only_raises_contract_errors(runner, files_api) -> None:
    files_api.plan("vision", upload_url=None)

    with pytest.raises(MissingUploadUrlError):
        runner.start_only(b"x", "a.pdf", "application/pdf", require_method("vision"))


def test_file_status_includes_metrics_only_when_completed(runner, files_api, clock, make_passages) -> None:
    files_api.plan(
        "basic",
        statuses=["indexing_pending", "indexing_completed"],
        passages=make_passages(3, content="abcd"),
    )
    started = runner.start_only(b"x", "a.pdf", "application/pdf", require_method("basic"))

    pending = runner.file_status(started.file_id, started.started_at)
    assert pending.status is JobStatus.INDEXING_PENDING
    assert pending.passage_count is None
    assert pending.processing_time_ms is None

    clock.advance(12)
    done = runner.file_status(started.file_id, started.started_at)
    assert done.status is JobStatus.INDEXING_COMPLETED
    assert done.passage_count == 3
    assert done.content_chars_total == 12
    assert done.processing_time_ms == 12_000


def test_file_status_propagates_remote_errors() -> None:
    class _Broken:
        def get_status(self, file_id):
            raise RemoteServiceError("boom", status_code=502)

    with pytest.raises(RemoteServiceError):
        MethodRunner(_Broken()).file_status("file_1")
