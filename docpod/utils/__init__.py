"""Utility modules for docpod.

- **errors** -- exception hierarchy rooted at DocPodError, with a
  ``retryable`` flag used by the embedding retry loop.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
- **concurrency** -- semaphore-bounded, order-preserving gather helpers.
- **vector_math** -- cosine similarity and top-K ranking.
- **text_normalizer** -- lexical tokens, binary sniffing, ``<think>``
  stripping and fuzzy question dedup.
"""

from docpod.utils.concurrency import throttled_gather
from docpod.utils.errors import (
    ConfigurationError,
    DocPodError,
    DocumentInputError,
    EmbeddingError,
    LLMError,
    PipelineError,
    RAGError,
    StageError,
    StorageError,
    is_retryable,
)
from docpod.utils.logging import configure_logging, get_logger
from docpod.utils.vector_math import cosine_similarity, top_k

__all__ = [
    "ConfigurationError",
    "DocPodError",
    "DocumentInputError",
    "EmbeddingError",
    "LLMError",
    "PipelineError",
    "RAGError",
    "StageError",
    "StorageError",
    "configure_logging",
    "cosine_similarity",
    "get_logger",
    "is_retryable",
    "throttled_gather",
    "top_k",
]
