"""FastAPI entrypoint for benchmark, progressive, search and comparison routes."""

from __future__ import annotations

import argparse
import logging
from typing import Any

import uvicorn
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from parse_bench.benchmark.methods import METHOD_NAMES, require_method
from parse_bench.benchmark.orchestrator import BenchmarkOrchestrator
from parse_bench.compare.engine import ComparisonEngine, FileIds
from parse_bench.errors import (
    ConfigurationError,
    ExtractionUnavailableError,
    UnknownMethodError,
)
from parse_bench.obs.timing import Clock, SystemClock, parse_iso
from parse_bench.remote.extractor import StructuredExtractor, create_extractor_from_env
from parse_bench.remote.files_api import FilesApi, FilesApiClient, credential_flags
from parse_bench.types import HealthResponse, WireModel

logger = logging.getLogger(__name__)


class AiCompareRequest(WireModel):
    run_id: str | None = None
    file_ids: dict[str, str] = Field(default_factory=dict)
    instructions: str | None = None


class ServiceContainer:
    """Builds core services on demand so missing credentials fail per request."""

    def __init__(
        self,
        *,
        files_api: FilesApi | None = None,
        extractor: StructuredExtractor | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._files_api = files_api
        self._extractor = extractor
        self.clock = clock or SystemClock()

    def files_api(self) -> FilesApi:
        if self._files_api is None:
            self._files_api = FilesApiClient.from_env()
        return self._files_api

    def orchestrator(self) -> BenchmarkOrchestrator:
        return BenchmarkOrchestrator(self.files_api(), clock=self.clock)

    def comparison(self) -> ComparisonEngine:
        if self._extractor is None:
            self._extractor = create_extractor_from_env()
        return ComparisonEngine(self.files_api(), self._extractor, clock=self.clock)


def _to_http_error(exc: Exception, fallback: str) -> HTTPException:
    if isinstance(exc, HTTPException):
        return exc
    message = str(exc) or fallback
    if isinstance(exc, UnknownMethodError):
        return HTTPException(status_code=400, detail=message)
    if isinstance(exc, (ConfigurationError, ExtractionUnavailableError)):
        return HTTPException(status_code=503, detail=message)
    logger.exception("%s: %s", fallback, message)
    return HTTPException(status_code=500, detail=message)


def _read_upload(file: UploadFile | None) -> tuple[bytes, str, str]:
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")
    data = file.file.read()
    return data, file.filename or "upload.bin", file.content_type or "application/octet-stream"


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    services = container or ServiceContainer()
    app = FastAPI(title="Parse Benchmark", version="0.1.0")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        return JSONResponse({"error": problems or "Invalid request"}, status_code=400)

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        flags = credential_flags()
        configured = flags["has_bot_id"] and flags["has_token"]
        return HealthResponse(
            status="configured" if configured else "missing_credentials",
            **flags,
        ).to_wire()

    @app.post("/api/benchmark")
    def benchmark(file: UploadFile | None = File(default=None)) -> dict[str, Any]:
        data, file_name, content_type = _read_upload(file)
        logger.info("Starting benchmark for %s (%d bytes)", file_name, len(data))
        try:
            result = services.orchestrator().run_benchmark(data, file_name, content_type)
        except Exception as exc:
            raise _to_http_error(exc, "Benchmark failed") from exc
        logger.info("Benchmark completed: %s", result.run_id)
        return result.to_wire()

    @app.post("/api/methods/{method}/start")
    def start_method(
        method: str,
        file: UploadFile | None = File(default=None),
        run_id: str | None = Form(default=None, alias="runId"),
    ) -> dict[str, Any]:
        try:
            require_method(method)
        except UnknownMethodError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        data, file_name, content_type = _read_upload(file)
        if not run_id:
            raise HTTPException(status_code=400, detail="No runId provided")
        logger.info("Starting %s for %s (%d bytes) runId=%s", method, file_name, len(data), run_id)
        try:
            started = services.orchestrator().start_method(
                data, file_name, content_type, method, run_id=run_id
            )
        except Exception as exc:
            raise _to_http_error(exc, "Failed to start method") from exc
        logger.info("%s started: fileId=%s", method, started.file_id)
        return started.to_wire()

    @app.get("/api/files/{file_id}/status")
    def file_status(
        file_id: str,
        started_at: str | None = Query(default=None, alias="startedAt"),
    ) -> dict[str, Any]:
        if started_at:
            try:
                parse_iso(started_at)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=f"Invalid startedAt: {started_at}") from exc
        try:
            status = services.orchestrator().get_file_status(file_id, started_at)
        except Exception as exc:
            raise _to_http_error(exc, "Failed to get status") from exc
        return status.to_wire()

    @app.get("/api/files/{file_id}/passages")
    def file_passages(
        file_id: str,
        limit: int = Query(default=200, ge=1, le=1000),
        next_token: str | None = Query(default=None, alias="nextToken"),
    ) -> dict[str, Any]:
        try:
            page = services.orchestrator().get_file_passages(file_id, limit, next_token)
        except Exception as exc:
            raise _to_http_error(exc, "Failed to get passages") from exc
        return page.to_wire()

    @app.get("/api/search")
    def search(
        q: str | None = None,
        run_id: str | None = Query(default=None, alias="runId"),
        limit: int = Query(default=10, ge=1, le=100),
    ) -> dict[str, Any]:
        if not q or not run_id:
            raise HTTPException(status_code=400, detail="Missing query or runId")
        logger.info('Searching for "%s" in run %s', q, run_id)
        try:
            response = services.orchestrator().search_all_methods(q, run_id, limit)
        except Exception as exc:
            raise _to_http_error(exc, "Search failed") from exc
        return response.to_wire()

    @app.post("/api/ai-compare")
    def ai_compare(request: AiCompareRequest) -> dict[str, Any]:
        if not request.run_id:
            raise HTTPException(status_code=400, detail="Missing runId")
        missing = [name for name in METHOD_NAMES if not request.file_ids.get(name)]
        if missing:
            raise HTTPException(
                status_code=400,
                detail=f"Missing required fileIds: {', '.join(missing)}",
            )
        file_ids = FileIds(**{name: request.file_ids[name] for name in METHOD_NAMES})
        try:
            result = services.comparison().run_ai_comparison(
                request.run_id, file_ids, request.instructions
            )
        except Exception as exc:
            raise _to_http_error(exc, "AI comparison failed") from exc
        return result.to_wire()

    return app


app = create_app()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="parse-bench", description="Serve the parse benchmark API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("parse_bench.api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
