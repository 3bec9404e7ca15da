"""Custom exception hierarchy for docpod.

All application exceptions inherit from :class:`DocPodError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "filesystem", "sqlite") caused the failure.

The hierarchy is organized by subsystem:

    DocPodError  (base -- catch-all for any docpod error)
    +-- DocumentInputError       (malformed / empty / unsupported upload)
    +-- IngestionError           (ingestion aborted after extraction)
    +-- ChunkSchemaError         (stored chunk with an unknown schema)
    +-- StorageError             (object store failure)
    |   +-- ObjectNotFoundError  (reference not present in the store)
    +-- RAGError                 (embedding or retrieval failure)
    |   +-- EmbeddingError       (embedding inference failure)
    |   +-- DocumentNotFoundError
    +-- LLMError                 (any LLM API call failure)
    +-- TTSError                 (text-to-speech failure)
    +-- PipelineError            (podcast workflow orchestration)
    |   +-- StageError           (a workflow stage failed fatally)
    |       +-- StageTimeoutError (the run exceeded its time budget)
    +-- ConfigurationError       (startup / missing config)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- ProviderUnavailableError (external service down / unreachable)

Transient failures are marked with ``retryable=True`` so callers can decide
between retrying at the point of call and surfacing the error immediately.
"""


class DocPodError(Exception):
    """Base exception for all docpod errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input / ingestion errors
# ---------------------------------------------------------------------------

class DocumentInputError(DocPodError):
    """Raised for uploads that can never succeed: bad bytes, empty text, unknown type."""

    def __init__(
        self,
        message: str = "Document could not be read",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionError(DocPodError):
    """Raised when ingestion fails after text extraction (storage or embedding)."""

    def __init__(
        self,
        message: str = "Document ingestion failed",
        provider_name: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retryable = retryable


class ChunkSchemaError(DocPodError):
    """Raised when a stored chunk or chunk map carries an unknown schema version."""

    def __init__(
        self,
        message: str = "Unsupported chunk schema",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class StorageError(DocPodError):
    """Raised when the object store rejects or fails a read/write."""

    def __init__(
        self,
        message: str = "Object store operation failed",
        provider_name: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retryable = retryable


class ObjectNotFoundError(StorageError):
    """Raised when a reference is not present in the object store."""

    def __init__(
        self,
        message: str = "Object not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# RAG errors
# ---------------------------------------------------------------------------

class RAGError(DocPodError):
    """Raised when a RAG operation fails (embedding or retrieval)."""

    def __init__(
        self,
        message: str = "RAG pipeline operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(RAGError):
    """Raised when embedding inference fails.

    ``retryable`` is ``True`` for timeouts, connection resets and 5xx
    responses; the embedding provider retries those and gives up
    immediately on everything else.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retryable = retryable


class DocumentNotFoundError(RAGError):
    """Raised when a document id has no registry entry and no fallback chunk map."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(DocPodError):
    """Raised when an external service or provider is unreachable."""

    retryable = True

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(DocPodError):
    """Raised when an API rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(DocPodError):
    """Raised when an LLM API call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.retryable = retryable


class TTSError(DocPodError):
    """Raised when text-to-speech synthesis fails."""

    def __init__(
        self,
        message: str = "Speech synthesis failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(DocPodError):
    """Raised when podcast workflow orchestration fails."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StageError(PipelineError):
    """Raised when a workflow stage fails fatally.

    ``stage`` names the phase that failed (e.g. ``"RETRIEVING"``) so the
    API can report where the job stopped.
    """

    def __init__(
        self,
        stage: str,
        message: str = "Workflow stage failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._stage = stage

    @property
    def stage(self) -> str:
        return self._stage


class StageTimeoutError(StageError):
    """Raised when a workflow run exceeds its time budget.

    ``stage`` is the phase that was running when the budget ran out.
    """

    retryable = True


class ConfigurationError(DocPodError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is a transient failure worth retrying.

    Project errors answer through their ``retryable`` flag; bare
    ``TimeoutError`` and ``ConnectionError`` from the standard library are
    always transient.
    """
    if isinstance(exc, DocPodError):
        return exc.retryable
    return isinstance(exc, (TimeoutError, ConnectionError))
