"""Retrieval and Q&A result models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RetrievalStrategy(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Which ranking produced a RetrievalResult.

    Scores are only comparable within one strategy: cosine similarity for
    VECTOR, keyword overlap counts for LEXICAL, and zero for FIRST_K.
    """

    VECTOR = "vector"
    LEXICAL = "lexical"
    FIRST_K = "first_k"


class ScoredChunk(BaseModel):
    """One retrieved chunk with the score its strategy assigned."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int = Field(ge=0)
    text: str
    score: float


class RetrievalResult(BaseModel):
    """Chunks for one query in descending relevance."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    query: str
    strategy: RetrievalStrategy
    chunks: list[ScoredChunk] = Field(default_factory=list)

    @property
    def texts(self) -> list[str]:
        return [c.text for c in self.chunks]


class QualityReport(BaseModel):
    """Health summary of a document's stored chunks."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    total_chunks: int = Field(ge=0)
    binary_chunks: int = Field(default=0, ge=0)
    missing_embeddings: int = Field(default=0, ge=0)
    embedding_dimensions: list[int] = Field(default_factory=list)
    embedding_models: list[str] = Field(default_factory=list)
    needs_reprocessing: bool = False


class QAResponse(BaseModel):
    """An answer grounded in retrieved chunks."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    question: str
    answer: str
    strategy: RetrievalStrategy | None = None
    chunks: list[ScoredChunk] = Field(default_factory=list)
    degraded: bool = Field(
        default=False, description="True when context could not be retrieved or the LLM failed."
    )
