from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from parse_bench.errors import UploadError
from parse_bench.obs.timing import ManualClock
from parse_bench.remote.files_api import EnqueuedFile, RemoteFileStatus
from parse_bench.status import JobStatus
from parse_bench.types import Passage, PassageMeta, PassagePage, SearchHit


@dataclass
class _Plan:
    statuses: list[str] = field(default_factory=lambda: ["indexing_completed"])
    passages: list[Passage] = field(default_factory=list)
    failed_reason: str | None = None
    upload_url: str | None = "auto"
    upload_error: Exception | None = None
    usage: Any = None
    hits: list[SearchHit] = field(default_factory=list)
    search_error: Exception | None = None
    passages_error: Exception | None = None


@dataclass
class _FakeFile:
    file_id: str
    method: str
    key: str
    tags: dict[str, str] | None
    config: dict[str, Any]
    plan: _Plan
    upload_url: str | None = None
    status_calls: int = 0


class FakeFilesApi:
    """In-memory stand-in for the hosted files API, scripted per method."""

    def __init__(self) -> None:
        self.plans: dict[str, _Plan] = {}
        self.files: dict[str, _FakeFile] = {}
        self.uploads: list[tuple[str, int, str]] = []
        self.events: list[str] = []
        self.search_tags: list[dict[str, str] | None] = []
        self._ids = itertools.count(1)

    def plan(self, method: str, **kwargs: Any) -> None:
        self.plans[method] = _Plan(**kwargs)

    def file_for(self, method: str) -> _FakeFile:
        return next(f for f in self.files.values() if f.method == method)

    def enqueue(self, key, size, content_type, indexing_config, *, tags=None) -> EnqueuedFile:
        method = key.split("-")[1]
        plan = self.plans.setdefault(method, _Plan())
        file_id = f"file_{method}_{next(self._ids)}"
        upload_url = f"https://uploads.example/{file_id}" if plan.upload_url == "auto" else plan.upload_url
        self.files[file_id] = _FakeFile(file_id, method, key, tags, indexing_config, plan, upload_url)
        self.events.append(f"enqueue:{method}")
        return EnqueuedFile(file_id=file_id, upload_url=upload_url, status=JobStatus.UPLOAD_PENDING)

    def upload_bytes(self, upload_url, data, content_type) -> None:
        file = next(f for f in self.files.values() if f.upload_url == upload_url)
        if file.plan.upload_error is not None:
            raise file.plan.upload_error
        self.uploads.append((upload_url, len(data), content_type))

    def get_status(self, file_id) -> RemoteFileStatus:
        file = self.files[file_id]
        index = min(file.status_calls, len(file.plan.statuses) - 1)
        file.status_calls += 1
        self.events.append(f"status:{file.method}")
        return RemoteFileStatus(
            status=JobStatus(file.plan.statuses[index]),
            failed_reason=file.plan.failed_reason,
            usage=file.plan.usage,
        )

    def list_passages(self, file_id, limit, next_token=None) -> PassagePage:
        file = self.files[file_id]
        if file.plan.passages_error is not None:
            raise file.plan.passages_error
        offset = int(next_token or 0)
        chunk = file.plan.passages[offset : offset + limit]
        more = offset + limit < len(file.plan.passages)
        return PassagePage(passages=chunk, next_token=str(offset + limit) if more else None)

    def search(self, query, limit, *, tags=None) -> list[SearchHit]:
        self.search_tags.append(tags)
        method = (tags or {}).get("benchmarkMethod", "")
        plan = self.plans.setdefault(method, _Plan())
        if plan.search_error is not None:
            raise plan.search_error
        return plan.hits[:limit]


def _make_passages(count: int, *, content: str = "Passage {i} text", **meta: Any) -> list[Passage]:
    return [
        Passage(id=f"p{i}", content=content.format(i=i), meta=PassageMeta(**meta))
        for i in range(count)
    ]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def files_api() -> FakeFilesApi:
    return FakeFilesApi()


@pytest.fixture
def make_passages() -> Callable[..., list[Passage]]:
    return _make_passages


@pytest.fixture
def upload_error() -> UploadError:
    return UploadError("Upload failed with status 403", status_code=403)
