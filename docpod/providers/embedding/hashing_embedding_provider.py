"""Offline bag-of-words hashing embedding provider.

Produces deterministic vectors without any network call: every word is
hashed into one of ``dimension`` buckets and weighted so that earlier words
count slightly more, then the vector is scaled to unit length.  The
quality is far below a trained model, but it is stable across processes
and lets docpod ingest and retrieve when no inference API is configured.
"""

from __future__ import annotations

import hashlib
import re

import structlog

from docpod.interfaces.embedding_provider import IEmbeddingProvider
from docpod.utils.vector_math import normalize

logger = structlog.get_logger(logger_name=__name__)

_WORD = re.compile(r"\w+")


class HashingEmbeddingProvider(IEmbeddingProvider):
    """Deterministic hashing embedder, always available."""

    def __init__(self, dimension: int = 384) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        vectors = [self._embed_text(t) for t in texts]
        if texts:
            logger.debug("hashing_embedding_batch", batch_size=len(texts), dimension=self._dimension)
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return self._embed_text(text)

    def get_dimension(self) -> int:
        return self._dimension

    def get_model_name(self) -> str:
        return f"docpod-hashing-{self._dimension}"

    def get_provider_name(self) -> str:
        return "hashing"

    def is_available(self) -> bool:
        return True

    def _embed_text(self, text: str) -> list[float]:
        words = _WORD.findall(text.lower())
        vector = [0.0] * self._dimension
        total = len(words)
        for position, word in enumerate(words):
            # blake2b is stable across processes, unlike the salted built-in hash().
            digest = hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "big")
            bucket = value % self._dimension
            sign = 1.0 if (value >> 63) == 0 else -1.0
            weight = 1.0 - (position / total) * 0.5
            vector[bucket] += sign * weight
        return normalize(vector)
