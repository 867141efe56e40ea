import json

import httpx
import pytest

from parse_bench.errors import MissingCredentialsError, RemoteServiceError, UploadError
from parse_bench.remote.files_api import FilesApiClient
from parse_bench.status import JobStatus


def _client(handler) -> FilesApiClient:
    return FilesApiClient(
        token="tok",
        bot_id="bot",
        base_url="https://api.test",
        transport=httpx.MockTransport(handler),
    )


def test_enqueue_sends_indexing_configuration_and_tags() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["bot"] = request.headers["x-bot-id"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"file": {"id": "file_1", "uploadUrl": "https://s3.test/up", "status": "upload_pending"}},
        )

    enqueued = _client(handler).enqueue(
        "benchmark-vision-1-report.pdf",
        42,
        "application/pdf",
        {"vision": {"transcribePages": True}},
        tags={"benchmarkRunId": "run-1", "benchmarkMethod": "vision"},
    )

    assert enqueued.file_id == "file_1"
    assert enqueued.upload_url == "https://s3.test/up"
    assert enqueued.status is JobStatus.UPLOAD_PENDING
    assert seen["method"] == "PUT"
    assert seen["path"] == "/v1/files"
    assert seen["auth"] == "Bearer tok"
    assert seen["bot"] == "bot"
    assert seen["body"]["index"] is True
    assert seen["body"]["indexing"] == {"configuration": {"vision": {"transcribePages": True}}}
    assert seen["body"]["tags"]["benchmarkMethod"] == "vision"


def test_upload_does_not_leak_credentials_and_maps_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        assert request.headers["Content-Type"] == "application/pdf"
        return httpx.Response(403, text="denied")

    with pytest.raises(UploadError) as excinfo:
        _client(handler).upload_bytes("https://s3.test/up", b"%PDF", "application/pdf")
    assert excinfo.value.status_code == 403


def test_get_status_reads_failure_reason() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/files/file_9"
        return httpx.Response(
            200,
            json={"file": {"id": "file_9", "status": "indexing_failed", "failedStatusReason": "bad pdf"}},
        )

    status = _client(handler).get_status("file_9")

    assert status.status is JobStatus.INDEXING_FAILED
    assert status.failed_reason == "bad pdf"


def test_list_passages_normalizes_content_and_returns_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["limit"] == "2"
        assert request.url.params["nextToken"] == "abc"
        return httpx.Response(
            200,
            json={
                "passages": [
                    {"id": "p1", "content": "a\r\nb\n\n\n\nc", "meta": {"type": "text", "pageNumber": 3}},
                    {"id": "p2", "content": "\td"},
                ],
                "meta": {"nextToken": "def"},
            },
        )

    page = _client(handler).list_passages("file_1", 2, "abc")

    assert [p.content for p in page.passages] == ["a\nb\n\nc", "d"]
    assert page.passages[0].meta.page_number == 3
    assert page.next_token == "def"


def test_search_keeps_remote_order() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.url.params["tags"]) == {"benchmarkMethod": "basic"}
        return httpx.Response(
            200,
            json={"passages": [{"content": "first", "score": 0.2}, {"content": "second", "score": 0.9}]},
        )

    hits = _client(handler).search("revenue", 5, tags={"benchmarkMethod": "basic"})

    assert [hit.content for hit in hits] == ["first", "second"]


def test_error_status_raises_remote_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "File not found"})

    with pytest.raises(RemoteServiceError, match="File not found"):
        _client(handler).get_status("missing")


def test_from_env_fails_fast_without_credentials(monkeypatch) -> None:
    monkeypatch.delenv("BOTPRESS_TOKEN", raising=False)
    monkeypatch.setenv("BOTPRESS_BOT_ID", "bot")

    with pytest.raises(MissingCredentialsError):
        FilesApiClient.from_env()
