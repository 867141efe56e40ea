"""Shared domain models.

Every model serializes with camelCase keys, which is the shape persisted in
run history and exchanged over HTTP, and accepts snake_case names on input.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from parse_bench.status import JobStatus


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MethodConfig(WireModel):
    """One fixed parsing configuration of the hosted indexing pipeline."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    label: str
    config: dict[str, Any] = Field(default_factory=dict)


class PassageMeta(WireModel):
    type: str | None = None
    subtype: str | None = None
    page_number: int | None = None
    position: int | None = None
    source_url: str | None = None


class Passage(WireModel):
    """One extracted chunk plus its metadata, content already normalized."""

    id: str
    content: str
    meta: PassageMeta = Field(default_factory=PassageMeta)


class PassagePage(WireModel):
    passages: list[Passage] = Field(default_factory=list)
    next_token: str | None = None


class MetaBreakdown(WireModel):
    by_type: dict[str, int] = Field(default_factory=dict)
    by_subtype: dict[str, int] = Field(default_factory=dict)
    page_count: int = 0


class PassageMetrics(WireModel):
    """Aggregates computed from a complete passage list."""

    passage_count: int = 0
    content_chars_total: int = 0
    meta_breakdown: MetaBreakdown = Field(default_factory=MetaBreakdown)
    sample_text: str = ""


class MethodResult(WireModel):
    """Per-method outcome of one run; mutated by merges until terminal."""

    method: str
    label: str
    file_id: str = ""
    status: JobStatus = JobStatus.UPLOAD_PENDING
    failed_reason: str | None = None
    processing_time_ms: int = 0
    passage_count: int = 0
    content_chars_total: int = 0
    meta_breakdown: MetaBreakdown = Field(default_factory=MetaBreakdown)
    sample_text: str = ""
    cost_or_usage_raw: Any = None
    started_at: str | None = None


class OriginalFile(WireModel):
    name: str
    size: int = Field(ge=0)
    content_type: str


class RankingItem(WireModel):
    method: str
    rank: int = Field(ge=1, le=3)
    score: float | None = None


class AiComparisonResult(WireModel):
    run_id: str
    generated_at: str
    ranking: list[RankingItem]
    summary: str
    per_method_notes: dict[str, str]
    recommended_method: str


class BenchmarkRunResult(WireModel):
    run_id: str
    started_at: str
    completed_at: str | None = None
    original_file: OriginalFile
    methods: list[MethodResult]


class HistoryEntry(BenchmarkRunResult):
    ai_comparison: AiComparisonResult | None = None


class MethodStatusSummary(WireModel):
    method: str
    label: str
    status: JobStatus


class HistorySummary(WireModel):
    run_id: str
    file_name: str
    file_size: int
    started_at: str
    completed_at: str | None = None
    methods: list[MethodStatusSummary]
    has_ai_comparison: bool


class StartMethodResponse(WireModel):
    file_id: str
    method: str
    label: str
    started_at: str


class FileStatusResponse(WireModel):
    file_id: str
    status: JobStatus
    failed_reason: str | None = None
    processing_time_ms: int | None = None
    passage_count: int | None = None
    content_chars_total: int | None = None
    meta_breakdown: MetaBreakdown | None = None
    sample_text: str | None = None
    cost_or_usage_raw: Any = None


class SearchHit(WireModel):
    content: str
    score: float
    meta: PassageMeta = Field(default_factory=PassageMeta)


class MethodSearchResult(WireModel):
    method: str
    passages: list[SearchHit] = Field(default_factory=list)
    error: str | None = None


class SearchResponse(WireModel):
    query: str
    results: list[MethodSearchResult]


class HealthResponse(WireModel):
    status: str
    has_bot_id: bool
    has_token: bool
