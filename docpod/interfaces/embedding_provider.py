"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-dimension vectors.
Implementations may wrap any OpenAI-compatible ``/embeddings`` endpoint
or a local deterministic embedder; the adapter pattern keeps ingestion
and retrieval provider-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider   - OpenAI-compatible API, batched with retry
#   HashingEmbeddingProvider  - offline bag-of-words hashing (no network)
# Located in: docpod/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval.

    The pair (:meth:`get_model_name`, :meth:`get_dimension`) identifies the
    vector space.  Every stored vector records the model name so the
    retriever can detect dimension mismatches before scoring.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a list of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  Implementations batch internally when
            the backend has a per-call limit.

        Returns
        -------
        list[list[float]]
            One vector per input text, in input order.  Each inner list has
            length :meth:`get_dimension`.

        Raises
        ------
        docpod.utils.errors.EmbeddingError
            If any batch fails after the retry policy is exhausted, or
            immediately on a non-retryable failure.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Convenience wrapper around :meth:`embed` for query embedding.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the produced vectors.

        Example values: ``384`` (``all-MiniLM-L6-v2``), ``1536``
        (``text-embedding-3-small``).
        """

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier stored alongside every vector."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Implementations check credentials without generating an embedding.
        """
