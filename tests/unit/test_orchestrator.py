import pytest

from parse_bench.benchmark.orchestrator import BenchmarkOrchestrator
from parse_bench.errors import RemoteServiceError, UnknownMethodError
from parse_bench.status import JobStatus
from parse_bench.types import SearchHit


@pytest.fixture
def orchestrator(files_api, clock) -> BenchmarkOrchestrator:
    return BenchmarkOrchestrator(files_api, clock=clock)


def test_run_benchmark_runs_methods_sequentially_in_catalogue_order(orchestrator, files_api, make_passages) -> None:
    files_api.plan("basic", statuses=["indexing_completed"], passages=make_passages(2))
    files_api.plan("vision", statuses=["indexing_pending", "indexing_failed"], failed_reason="OCR error")
    files_api.plan("agentic", statuses=["indexing_completed"], passages=make_passages(4))

    run = orchestrator.run_benchmark(b"%PDF", "report.pdf", "application/pdf")

    assert [m.method for m in run.methods] == ["basic", "vision", "agentic"]
    assert [m.status for m in run.methods] == [
        JobStatus.INDEXING_COMPLETED,
        JobStatus.INDEXING_FAILED,
        JobStatus.INDEXING_COMPLETED,
    ]
    # Each method finishes polling before the next one is enqueued.
    assert files_api.events == [
        "enqueue:basic",
        "status:basic",
        "enqueue:vision",
        "status:vision",
        "status:vision",
        "enqueue:agentic",
        "status:agentic",
    ]
    assert run.original_file.name == "report.pdf"
    assert run.original_file.size == 4
    assert run.completed_at is not None
    assert run.completed_at > run.started_at
    assert files_api.file_for("vision").tags == {"benchmarkRunId": run.run_id, "benchmarkMethod": "vision"}


def test_run_ids_are_unique(orchestrator) -> None:
    ids = {orchestrator.run_benchmark(b"x", "a.txt", "text/plain").run_id for _ in range(20)}

    assert len(ids) == 20
    assert all(run_id.startswith("run-") for run_id in ids)


def test_start_method_validates_method_name(orchestrator) -> None:
    with pytest.raises(UnknownMethodError, match="Valid methods: basic, vision, agentic"):
        orchestrator.start_method(b"x", "a.pdf", "application/pdf", "landing", run_id="run-7")


def test_start_method_tags_file_with_run(orchestrator, files_api) -> None:
    started = orchestrator.start_method(b"x", "a.pdf", "application/pdf", "agentic", run_id="run-7")

    assert files_api.files[started.file_id].tags == {"benchmarkRunId": "run-7", "benchmarkMethod": "agentic"}
    assert files_api.files[started.file_id].config == {"parsing": {"mode": "agent"}}


def test_parallel_search_isolates_failures(orchestrator, files_api) -> None:
    files_api.plan("basic", hits=[SearchHit(content="Revenue table", score=0.91)])
    files_api.plan("vision", search_error=RemoteServiceError("search backend unavailable"))
    files_api.plan(
        "agentic",
        hits=[SearchHit(content="Q1 revenue", score=0.88), SearchHit(content="Q2 revenue", score=0.52)],
    )

    response = orchestrator.search_all_methods("revenue table", "run-1", limit=5)

    assert response.query == "revenue table"
    assert [r.method for r in response.results] == ["basic", "vision", "agentic"]
    errors = [r for r in response.results if r.error]
    assert len(errors) == 1
    assert errors[0].method == "vision"
    assert errors[0].passages == []
    assert [hit.content for hit in response.results[2].passages] == ["Q1 revenue", "Q2 revenue"]
    assert response.results[0].passages[0].score == 0.91


def test_start_method_rejects_missing_run_id(orchestrator, files_api) -> None:
    with pytest.raises(ValueError, match="No runId provided"):
        orchestrator.start_method(b"x", "a.pdf", "application/pdf", "basic", run_id="")

    assert files_api.files == {}
