"""Structured extraction through a LangChain chat model."""

from __future__ import annotations

import os
from typing import Protocol, TypeVar

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel

from parse_bench.errors import ExtractionUnavailableError

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_SYSTEM_PROMPT = (
    "You are an expert evaluator of document parsing quality. "
    "Judge only the excerpts you are given and answer through the provided schema."
)


class StructuredExtractor(Protocol):
    """Turns a prompt into an instance of a pydantic output schema."""

    def extract(self, prompt: str, schema: type[SchemaT]) -> SchemaT:
        """Run one extraction call."""


class LangChainExtractor:
    """Adapter over any chat model exposing `with_structured_output`."""

    def __init__(self, llm: BaseChatModel) -> None:
        self.llm = llm
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", _SYSTEM_PROMPT), ("human", "{input}")]
        )

    def extract(self, prompt: str, schema: type[SchemaT]) -> SchemaT:
        chain = self.prompt | self.llm.with_structured_output(schema)
        result = chain.invoke({"input": prompt})
        if isinstance(result, schema):
            return result
        return schema.model_validate(result)


def create_extractor_from_env() -> LangChainExtractor:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ExtractionUnavailableError("OPENAI_API_KEY is not configured")

    from langchain_openai import ChatOpenAI

    llm = ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"), temperature=0)
    return LangChainExtractor(llm)
