"""API middleware: CORS, request logging, and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), and automatic
conversion of ``DocPodError`` subclasses into JSON ``ErrorResponse``
bodies with a status code chosen by error type.

# ─── MIDDLEWARE EXECUTION ORDER ───────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)   # added 1st → inner
#     app.add_middleware(RequestLoggingMiddleware)  # added 2nd → outermost
#
#   Request flow:
#     Client → RequestLogging → ErrorHandling → route handler
#
# So RequestLoggingMiddleware sees the *final* status code, including the
# one ErrorHandling chose for a DocPodError.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from docpod.api.schemas import ErrorResponse
from docpod.utils.errors import (
    ChunkSchemaError,
    DocPodError,
    DocumentInputError,
    DocumentNotFoundError,
    EmbeddingError,
    LLMError,
    ObjectNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
    StageError,
    StageTimeoutError,
    StorageError,
    TTSError,
)
from docpod.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First match wins, so subclasses come before their bases.
_STATUS_BY_ERROR: list[tuple[type[DocPodError], int]] = [
    (DocumentInputError, 400),
    (DocumentNotFoundError, 404),
    (ObjectNotFoundError, 404),
    (StageTimeoutError, 504),
    (ChunkSchemaError, 500),
    (EmbeddingError, 502),
    (LLMError, 502),
    (TTSError, 502),
    (StorageError, 502),
    (ProviderUnavailableError, 502),
    (RateLimitError, 502),
    (StageError, 502),
]


def status_for(exc: DocPodError) -> int:
    """Return the HTTP status code reported for *exc*."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_response(exc: DocPodError) -> JSONResponse:
    """Render *exc* as a JSON :class:`ErrorResponse`."""
    body = ErrorResponse(
        error=type(exc).__name__,
        detail=exc.message,
        stage=exc.stage if isinstance(exc, StageError) else None,
    )
    return JSONResponse(status_code=status_for(exc), content=body.model_dump())


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; override with specific origins in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``DocPodError`` subclasses and return structured JSON errors.

    The status code follows the error type: 400 for bad input, 404 for
    unknown documents or objects, 502 for upstream providers and storage,
    504 for a workflow that ran out of time, 500 otherwise.  Stack traces
    are logged server-side only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except DocPodError as exc:
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(exc)
