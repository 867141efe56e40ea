"""Configuration models for benchmark runs, polling, and history."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PollingConfig(BaseModel):
    """Shared cadence and deadline for every status-polling path."""

    interval_seconds: float = Field(default=2.0, gt=0.0)
    timeout_seconds: float = Field(default=300.0, gt=0.0)

    @property
    def max_attempts(self) -> int:
        return max(1, int(self.timeout_seconds / self.interval_seconds))

    @property
    def timeout_reason(self) -> str:
        return f"Indexing timed out after {self.timeout_seconds / 60:g} minutes"


class PassageConfig(BaseModel):
    """Configures passage pagination and sample extraction."""

    page_size: int = Field(default=200, ge=1)
    sample_passages: int = Field(default=3, ge=1)
    sample_char_limit: int = Field(default=2000, ge=1)


class ComparisonConfig(BaseModel):
    """Configures excerpt budgeting for LLM comparisons."""

    excerpt_char_limit: int = Field(default=4000, ge=1)
    excerpt_passage_limit: int = Field(default=50, ge=1)


class HistoryConfig(BaseModel):
    """Configures the locally persisted run history."""

    max_entries: int = Field(default=25, ge=1)
    storage_key: str = Field(default="parser-benchmark-history", min_length=1)
