"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Works against real OpenAI as well as any OpenAI-compatible ``/embeddings``
endpoint (hosted sentence-transformers, TogetherAI, local gateways) via a
custom ``base_url``.

Batches are sent sequentially.  Each batch gets its own retry loop:
transient failures (timeouts, connection errors, 5xx, 408/429) are retried
with a fixed delay up to ``embedding_max_retries`` attempts; anything else
aborts the whole ``embed`` call immediately.
"""

from __future__ import annotations

import asyncio

import openai
import structlog

from docpod.config.settings import Settings
from docpod.interfaces.embedding_provider import IEmbeddingProvider
from docpod.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Known embedding model dimensions.  Unknown models fall back to the
# configured ``openai_embedding_dimension``.
_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

# HTTP statuses worth another attempt besides the 5xx family.
_RETRYABLE_STATUS: frozenset[int] = frozenset({408, 429})


def _classify(exc: openai.APIError) -> bool:
    """Return ``True`` when an SDK error is transient."""
    if isinstance(exc, openai.APIConnectionError):
        # Includes APITimeoutError.
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code >= 500 or exc.status_code in _RETRYABLE_STATUS
    return False


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``sentence-transformers/all-MiniLM-L6-v2`` (384 dims) unless
    ``openai_embedding_model`` says otherwise.  The SDK's own retry loop is
    disabled so the retry policy lives in one place.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.embedding_timeout_seconds, connect=5.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(
            self._model, settings.openai_embedding_dimension
        )
        self._batch_size = max(1, settings.embedding_batch_size)
        self._max_attempts = max(1, settings.embedding_max_retries)
        self._retry_delay = settings.embedding_retry_delay
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches of ``embedding_batch_size``.

        A failed batch fails the whole call; vectors from earlier batches
        are discarded with it.
        """
        if not texts:
            return []

        batch_count = (len(texts) + self._batch_size - 1) // self._batch_size
        all_embeddings: list[list[float]] = []
        for batch_index, start in enumerate(range(0, len(texts), self._batch_size)):
            batch = texts[start : start + self._batch_size]
            vectors = await self._embed_batch_with_retry(batch, batch_index, batch_count)
            all_embeddings.extend(vectors)
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_batch_with_retry(
        self, batch: list[str], batch_index: int, batch_count: int
    ) -> list[list[float]]:
        last_error: EmbeddingError | None = None
        for attempt in range(1, self._max_attempts + 1):
            if attempt > 1:
                logger.warning(
                    "embedding_batch_retry",
                    batch=batch_index + 1,
                    batches=batch_count,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(last_error),
                )
                await asyncio.sleep(self._retry_delay)
            try:
                return await self._embed_batch(batch, batch_index, batch_count)
            except EmbeddingError as exc:
                if not exc.retryable:
                    logger.error(
                        "embedding_batch_failed",
                        batch=batch_index + 1,
                        batches=batch_count,
                        retryable=False,
                        error=str(exc),
                    )
                    raise
                last_error = exc

        logger.error(
            "embedding_batch_exhausted",
            batch=batch_index + 1,
            batches=batch_count,
            attempts=self._max_attempts,
            error=str(last_error),
        )
        raise EmbeddingError(
            message=(
                f"Batch {batch_index + 1}/{batch_count} failed after "
                f"{self._max_attempts} attempts: {last_error.message if last_error else 'unknown error'}"
            ),
            provider_name=self.get_provider_name(),
            retryable=True,
        )

    async def _embed_batch(
        self, batch: list[str], batch_index: int, batch_count: int
    ) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(
                input=batch,
                model=self._model,
            )
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
                retryable=_classify(exc),
            ) from exc

        data = getattr(response, "data", None)
        if not data or len(data) != len(batch):
            raise EmbeddingError(
                message=(
                    f"{self._provider_label} returned {len(data) if data else 0} vectors "
                    f"for a batch of {len(batch)}"
                ),
                provider_name=self.get_provider_name(),
            )

        # Some servers return items out of order; ``index`` is authoritative.
        ordered = sorted(data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in ordered]

        observed = len(vectors[0])
        if observed != self._dimension:
            logger.warning(
                "embedding_dimension_changed",
                model=self._model,
                configured=self._dimension,
                observed=observed,
            )
            self._dimension = observed

        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch=batch_index + 1,
            batches=batch_count,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if getattr(response, "usage", None) else None,
        )
        return vectors
