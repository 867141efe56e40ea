"""httpx client for the benchmark HTTP API, used by progressive sessions."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from parse_bench.errors import ApiError
from parse_bench.types import (
    AiComparisonResult,
    BenchmarkRunResult,
    FileStatusResponse,
    HealthResponse,
    PassagePage,
    SearchResponse,
    StartMethodResponse,
)


class BenchmarkApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        client: httpx.Client | None = None,
        timeout_seconds: float | None = 60.0,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )

    def close(self) -> None:
        self._client.close()

    def health(self) -> HealthResponse:
        return HealthResponse.model_validate(self._request("GET", "/api/health"))

    def run_benchmark(self, data: bytes, file_name: str, content_type: str) -> BenchmarkRunResult:
        # The synchronous benchmark can legitimately take one timeout per method.
        payload = self._request(
            "POST",
            "/api/benchmark",
            files={"file": (file_name, data, content_type)},
            timeout=None,
        )
        return BenchmarkRunResult.model_validate(payload)

    def start_method(
        self,
        method: str,
        data: bytes,
        file_name: str,
        content_type: str,
        *,
        run_id: str,
    ) -> StartMethodResponse:
        payload = self._request(
            "POST",
            f"/api/methods/{method}/start",
            files={"file": (file_name, data, content_type)},
            data={"runId": run_id},
        )
        return StartMethodResponse.model_validate(payload)

    def get_file_status(self, file_id: str, started_at: str | None = None) -> FileStatusResponse:
        params = {"startedAt": started_at} if started_at else None
        payload = self._request("GET", f"/api/files/{file_id}/status", params=params)
        return FileStatusResponse.model_validate(payload)

    def get_file_passages(
        self,
        file_id: str,
        limit: int = 200,
        next_token: str | None = None,
    ) -> PassagePage:
        params: dict[str, Any] = {"limit": limit}
        if next_token:
            params["nextToken"] = next_token
        payload = self._request("GET", f"/api/files/{file_id}/passages", params=params)
        return PassagePage.model_validate(payload)

    def search(self, query: str, run_id: str, limit: int = 10) -> SearchResponse:
        payload = self._request(
            "GET",
            "/api/search",
            params={"q": query, "runId": run_id, "limit": limit},
        )
        return SearchResponse.model_validate(payload)

    def ai_compare(
        self,
        run_id: str,
        file_ids: Mapping[str, str],
        instructions: str | None = None,
    ) -> AiComparisonResult:
        body: dict[str, Any] = {"runId": run_id, "fileIds": dict(file_ids)}
        if instructions:
            body["instructions"] = instructions
        payload = self._request("POST", "/api/ai-compare", json=body, timeout=None)
        return AiComparisonResult.model_validate(payload)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = self._client.request(method, path, **kwargs)
        if response.status_code >= 400:
            raise ApiError(_error_message(response), status_code=response.status_code)
        return response.json()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:400] or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"
