"""Metrics computed from a complete passage list."""

from __future__ import annotations

from collections import Counter

from parse_bench.config import PassageConfig
from parse_bench.types import MetaBreakdown, Passage, PassageMetrics

SAMPLE_SEPARATOR = "\n\n---\n\n"


def compute_metrics(passages: list[Passage], config: PassageConfig | None = None) -> PassageMetrics:
    """Aggregate counts, content size, meta breakdown and a sample.

    Passages without `meta.type` (or `meta.subtype`) are left out of that
    breakdown; `page_count` is the number of distinct page numbers seen.
    """

    config = config or PassageConfig()
    by_type: Counter[str] = Counter()
    by_subtype: Counter[str] = Counter()
    pages: set[int] = set()

    for passage in passages:
        if passage.meta.type:
            by_type[passage.meta.type] += 1
        if passage.meta.subtype:
            by_subtype[passage.meta.subtype] += 1
        if passage.meta.page_number is not None:
            pages.add(passage.meta.page_number)

    sample = SAMPLE_SEPARATOR.join(p.content for p in passages[: config.sample_passages])
    return PassageMetrics(
        passage_count=len(passages),
        content_chars_total=sum(len(p.content) for p in passages),
        meta_breakdown=MetaBreakdown(
            by_type=dict(by_type),
            by_subtype=dict(by_subtype),
            page_count=len(pages),
        ),
        sample_text=sample[: config.sample_char_limit],
    )
