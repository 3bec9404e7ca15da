"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
Each stored chunk carries its vector and the model that produced it.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider  -- any OpenAI-compatible ``/embeddings``
       endpoint.  Defaults to all-MiniLM-L6-v2 (384 dims) behind a
       compatible gateway; batched with bounded retries.
    2. HashingEmbeddingProvider -- deterministic feature hashing, no
       network.  Used when no API key is configured and in tests.
"""

from docpod.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from docpod.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["HashingEmbeddingProvider", "OpenAIEmbeddingProvider"]
