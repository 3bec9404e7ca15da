"""docpod API layer - routes, schemas, and middleware."""

from docpod.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docpod.api.routes import router
from docpod.api.schemas import (
    DocumentIngestResponse,
    DocumentListResponse,
    DuplicateCheckResponse,
    ErrorResponse,
    HealthResponse,
    PodcastRequest,
    PodcastResponse,
    QueryRequest,
    QueryResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "DocumentIngestResponse",
    "DocumentListResponse",
    "DuplicateCheckResponse",
    "ErrorResponse",
    "HealthResponse",
    "PodcastRequest",
    "PodcastResponse",
    "QueryRequest",
    "QueryResponse",
]
