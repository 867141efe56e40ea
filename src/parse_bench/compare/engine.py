"""LLM-ranked comparison of the three methods' extracted content."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Literal

from pydantic import BaseModel, Field

from parse_bench.config import ComparisonConfig
from parse_bench.obs.timing import Clock, SystemClock, to_iso
from parse_bench.remote.extractor import StructuredExtractor
from parse_bench.remote.files_api import FilesApi
from parse_bench.types import AiComparisonResult, RankingItem

logger = logging.getLogger(__name__)

NO_CONTENT = "[No content extracted]"
FETCH_FAILED = "[Failed to fetch content]"

MethodName = Literal["basic", "vision", "agentic"]

_SECTION_TITLES: dict[str, str] = {
    "basic": "BASIC PARSING",
    "vision": "VISION PARSING",
    "agentic": "AGENTIC PARSING",
}

_CRITERIA = """
Evaluate each based on:
1. Content completeness - does it capture all important information?
2. Structure preservation - are headings, lists, tables preserved?
3. Readability - is the text clean and well-formatted?
4. Accuracy - does the extracted text seem accurate to the original?

Rank them from best (1) to worst (3).
""".strip()


class FileIds(BaseModel):
    basic: str
    vision: str
    agentic: str


class RankedMethod(BaseModel):
    method: MethodName
    rank: int = Field(ge=1, le=3)
    score: float | None = Field(default=None, ge=1, le=10)


class ComparisonOutput(BaseModel):
    """Output schema handed to the structured-extraction model."""

    ranking: list[RankedMethod]
    summary: str = Field(description="A brief 2-3 sentence summary of the comparison")
    basic_notes: str = Field(description="Strengths and weaknesses of basic parsing")
    vision_notes: str = Field(description="Strengths and weaknesses of vision parsing")
    agentic_notes: str = Field(description="Strengths and weaknesses of agentic parsing")
    recommended_method: MethodName


class ComparisonEngine:
    def __init__(
        self,
        files_api: FilesApi,
        extractor: StructuredExtractor,
        *,
        config: ComparisonConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.files_api = files_api
        self.extractor = extractor
        self.config = config or ComparisonConfig()
        self.clock = clock or SystemClock()

    def get_excerpt(self, file_id: str) -> str:
        """Concatenate whole passages until the next one would exceed the budget.

        Fetch failures are absorbed into a placeholder so the comparison can
        proceed with partial information.
        """

        try:
            page = self.files_api.list_passages(file_id, self.config.excerpt_passage_limit)
        except Exception as exc:
            logger.warning("Failed to fetch excerpt for file %s: %s", file_id, exc)
            return FETCH_FAILED

        excerpt = ""
        for passage in page.passages:
            if len(excerpt) + len(passage.content) > self.config.excerpt_char_limit:
                break
            excerpt += passage.content + "\n\n"
        return excerpt.strip() or NO_CONTENT

    def build_prompt(self, excerpts: dict[str, str], instructions: str | None = None) -> str:
        parts = ["Compare these three document parsing results and rank them by quality.", ""]
        if instructions:
            parts.extend([f"User instructions: {instructions}", ""])
        for method, title in _SECTION_TITLES.items():
            parts.extend([f"=== {title} ===", excerpts[method], ""])
        parts.append(_CRITERIA)
        return "\n".join(parts)

    def run_ai_comparison(
        self,
        run_id: str,
        file_ids: FileIds,
        instructions: str | None = None,
    ) -> AiComparisonResult:
        ids = file_ids.model_dump()
        with ThreadPoolExecutor(max_workers=len(ids)) as pool:
            fetched = dict(zip(ids, pool.map(self.get_excerpt, ids.values()), strict=True))

        prompt = self.build_prompt(fetched, instructions)
        output = self.extractor.extract(prompt, ComparisonOutput)
        logger.info("AI comparison for %s recommends %s", run_id, output.recommended_method)

        ranking = sorted(output.ranking, key=lambda item: item.rank)
        return AiComparisonResult(
            run_id=run_id,
            generated_at=to_iso(self.clock.now()),
            ranking=[RankingItem(method=item.method, rank=item.rank, score=item.score) for item in ranking],
            summary=output.summary,
            per_method_notes={
                "basic": output.basic_notes,
                "vision": output.vision_notes,
                "agentic": output.agentic_notes,
            },
            recommended_method=output.recommended_method,
        )
