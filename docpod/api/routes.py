"""FastAPI API routes for docpod.

Provides REST endpoints for document upload and dedup checks, document
listing and chunk quality, grounded question answering (plain and
server-sent events), podcast generation and retrieval, and health.
Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/documents                          POST    Upload → extract → chunk → embed
# /api/v1/documents                          GET     List registered documents
# /api/v1/documents/check-duplicate          POST    Is this content already stored?
# /api/v1/documents/{id}                     GET     One document's registry record
# /api/v1/documents/{id}/resync              POST    Re-ingest as a new version
# /api/v1/documents/{id}/quality             GET     Chunk health + recommendation
# /api/v1/query                              POST    Grounded Q&A over one document
# /api/v1/query/stream                       POST    Same, as text/event-stream
# /api/v1/podcasts                           POST    Generate (or fetch) a podcast
# /api/v1/podcasts/{id}                      GET     Stored podcast artifact
# /api/v1/podcasts/{id}                      DELETE  Forget the stored podcast
# /api/v1/podcasts/{id}/status               GET     Poll workflow progress
# /api/v1/podcasts/{id}/cancel               POST    Stop a running workflow
# /api/v1/podcasts/{id}/audio                GET     Stored audio bytes
# /api/v1/health                             GET     Health check + provider status
#
# Errors raised by services (DocPodError subclasses) are turned into JSON
# ErrorResponse bodies by ErrorHandlingMiddleware; only route-level
# validation (size limits, missing providers) raises HTTPException here.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response, StreamingResponse

from docpod import __version__
from docpod.api.schemas import (
    DocumentIngestResponse,
    DocumentListResponse,
    DocumentQualityResponse,
    DocumentSummary,
    DuplicateCheckResponse,
    ErrorResponse,
    HealthResponse,
    PodcastArtifactResponse,
    PodcastCancelResponse,
    PodcastDeleteResponse,
    PodcastRequest,
    PodcastResponse,
    PodcastStatusResponse,
    ProcessingStats,
    QueryRequest,
    QueryResponse,
)
from docpod.interfaces.artifact_store import IArtifactStore
from docpod.interfaces.object_store import IObjectStore
from docpod.models.document import IngestionResult
from docpod.pipeline.podcast_workflow import PodcastWorkflow
from docpod.pipeline.progress_tracker import ProgressTracker
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.services.ingestion.ingestion_service import IngestionService
from docpod.services.qa_service import QAService
from docpod.services.retriever import Retriever
from docpod.utils.errors import DocumentNotFoundError, StageError, StageTimeoutError
from docpod.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# All routes in this file are prefixed with /api/v1.
router = APIRouter(prefix="/api/v1")

_MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB, overridable via api.max_upload_bytes

# Read uploads in 64 KB increments so oversized files are rejected
# without buffering the whole payload.
_UPLOAD_CHUNK_SIZE = 64 * 1024

# Ingestion holds extracted text, every chunk and every vector in memory;
# cap how many run at once.
_UPLOAD_SEMAPHORE = asyncio.Semaphore(2)

_RECOMMEND_REPROCESS = (
    "This document has binary PDF chunks and should be reprocessed with the new PDF parser"
)
_RECOMMEND_REEMBED = (
    "Some chunks have no usable embedding; reprocess the document to enable vector retrieval"
)
_RECOMMEND_OK = "Document chunks are in good quality, no reprocessing needed"


# ---------------------------------------------------------------------------
# Dependency injection helpers - resolve singletons from app.state
# ---------------------------------------------------------------------------
# FastAPI uses Depends() to inject services into route handlers:
#   1. A helper function extracts a service from app.state
#   2. An Annotated alias binds it: XDep = Annotated[XType, Depends(helper)]
#   3. Declaring XDep as a route param makes FastAPI call helper()
#
# Tests build a bare FastAPI app, include this router and set app.state
# attributes to mocks.
# ---------------------------------------------------------------------------


def _get_ingestion_service(request: Request) -> IngestionService:
    """Return the ingestion service from application state."""
    return request.app.state.ingestion_service


def _get_registry(request: Request) -> DocumentRegistry:
    """Return the document registry from application state."""
    return request.app.state.registry


def _get_retriever(request: Request) -> Retriever:
    """Return the retriever from application state."""
    return request.app.state.retriever


def _get_artifact_store(request: Request) -> IArtifactStore:
    """Return the podcast artifact store from application state."""
    return request.app.state.artifact_store


def _get_object_store(request: Request) -> IObjectStore:
    """Return the object store from application state."""
    return request.app.state.object_store


def _get_progress_tracker(request: Request) -> ProgressTracker:
    """Return the progress tracker from application state."""
    return request.app.state.progress_tracker


def _get_qa_service(request: Request) -> QAService | None:
    """Return the Q&A service from application state, or ``None`` without an LLM."""
    return getattr(request.app.state, "qa_service", None)


def _get_workflow(request: Request) -> PodcastWorkflow | None:
    """Return the podcast workflow from application state, or ``None`` without an LLM."""
    return getattr(request.app.state, "podcast_workflow", None)


IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
RegistryDep = Annotated[DocumentRegistry, Depends(_get_registry)]
RetrieverDep = Annotated[Retriever, Depends(_get_retriever)]
ArtifactStoreDep = Annotated[IArtifactStore, Depends(_get_artifact_store)]
ObjectStoreDep = Annotated[IObjectStore, Depends(_get_object_store)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]
QAServiceDep = Annotated[Any, Depends(_get_qa_service)]
WorkflowDep = Annotated[Any, Depends(_get_workflow)]


async def _read_upload(request: Request, file: UploadFile) -> bytes:
    """Read *file* in chunks, rejecting it with 413 once it passes the size limit."""
    max_size = getattr(request.app.state, "max_upload_bytes", _MAX_FILE_SIZE)
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum: {max_size} bytes.",
            )
        chunks.append(chunk)
    return b"".join(chunks)


def _ingest_response(result: IngestionResult) -> DocumentIngestResponse:
    return DocumentIngestResponse(
        document_id=result.document_id,
        deduplicated=result.deduplicated,
        chunk_count=result.chunk_count,
        processing_time_ms=result.processing_time_ms,
        content_hash=result.content_hash,
        version=result.version,
    )


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=DocumentIngestResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    summary="Upload a document for chunking and indexing",
)
async def upload_document(
    request: Request,
    file: UploadFile,
    ingestion: IngestionDep,
    bypass_dedup: Annotated[bool, Form()] = False,
) -> DocumentIngestResponse:
    """Ingest an uploaded document, or return the existing id for known content."""
    data = await _read_upload(request, file)
    async with _UPLOAD_SEMAPHORE:
        result = await ingestion.ingest(
            data,
            media_type=file.content_type or "",
            filename=file.filename or "",
            bypass_dedup=bypass_dedup,
        )
    return _ingest_response(result)


@router.post(
    "/documents/check-duplicate",
    response_model=DuplicateCheckResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    summary="Check whether a document's content is already registered",
)
async def check_duplicate(
    request: Request,
    file: UploadFile,
    ingestion: IngestionDep,
) -> DuplicateCheckResponse:
    """Extract and hash the upload without storing anything."""
    data = await _read_upload(request, file)
    check = await ingestion.check_duplicate(
        data, media_type=file.content_type or "", filename=file.filename or ""
    )
    if not check.exists:
        return DuplicateCheckResponse(exists=False, content_hash=check.content_hash)

    stats = ProcessingStats(
        chunk_count=check.metadata.chunk_count if check.metadata else 0,
        processing_time_ms=check.processing_time_ms,
        file_size=check.metadata.file_size if check.metadata else len(data),
    )
    return DuplicateCheckResponse(
        exists=True,
        document_id=check.document_id,
        metadata=check.metadata,
        processing_stats=stats,
        content_hash=check.content_hash,
    )


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List registered documents",
)
async def list_documents(registry: RegistryDep) -> DocumentListResponse:
    """Return every registry entry, newest first."""
    entries = await registry.list_entries()
    documents = [DocumentSummary.from_entry(entry) for entry in entries]
    return DocumentListResponse(documents=documents, total=len(documents))


@router.get(
    "/documents/{document_id}",
    response_model=DocumentSummary,
    responses={404: {"model": ErrorResponse}},
    summary="Get one registered document",
)
async def get_document(document_id: str, registry: RegistryDep) -> DocumentSummary:
    entry = await registry.find_by_document_id(document_id)
    if entry is None:
        raise DocumentNotFoundError(message=f"Document {document_id} is not registered")
    return DocumentSummary.from_entry(entry)


@router.post(
    "/documents/{document_id}/resync",
    response_model=DocumentIngestResponse,
    responses={404: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
    summary="Re-ingest a document as a new version",
)
async def resync_document(
    document_id: str,
    request: Request,
    file: UploadFile,
    ingestion: IngestionDep,
) -> DocumentIngestResponse:
    """Store the upload as a new version that supersedes *document_id*."""
    data = await _read_upload(request, file)
    async with _UPLOAD_SEMAPHORE:
        result = await ingestion.resync(
            document_id,
            data,
            media_type=file.content_type or "",
            filename=file.filename or "",
        )
    return _ingest_response(result)


@router.get(
    "/documents/{document_id}/quality",
    response_model=DocumentQualityResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Inspect a document's stored chunks",
)
async def document_quality(document_id: str, retriever: RetrieverDep) -> DocumentQualityResponse:
    """Report binary chunks and missing embeddings with a recommendation."""
    report = await retriever.check_quality(document_id)
    if report.binary_chunks:
        recommendation = _RECOMMEND_REPROCESS
    elif report.needs_reprocessing:
        recommendation = _RECOMMEND_REEMBED
    else:
        recommendation = _RECOMMEND_OK
    return DocumentQualityResponse(report=report, recommendation=recommendation)


# ---------------------------------------------------------------------------
# Question answering endpoints
# ---------------------------------------------------------------------------


def _require_qa(qa_service: QAService | None) -> QAService:
    if qa_service is None:
        raise HTTPException(
            status_code=503,
            detail="Question answering is not available (no LLM provider configured).",
        )
    return qa_service


@router.post(
    "/query",
    response_model=QueryResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Ask a question about one document",
)
async def query_document(body: QueryRequest, qa_service: QAServiceDep) -> QueryResponse:
    """Answer from the document's most relevant chunks.

    Retrieval or LLM trouble yields a ``degraded`` answer rather than an
    error; only an unknown document is a 404.
    """
    qa = _require_qa(qa_service)
    response = await qa.query(body.document_id, body.question, top_k=body.top_k)
    return QueryResponse.from_qa(response)


@router.post(
    "/query/stream",
    responses={503: {"model": ErrorResponse}},
    summary="Ask a question and stream progress as server-sent events",
)
async def query_document_stream(body: QueryRequest, qa_service: QAServiceDep) -> StreamingResponse:
    """Stream ``start``, ``context``, ``answer`` (or ``error``) and ``end`` events."""
    qa = _require_qa(qa_service)

    async def _events() -> AsyncIterator[str]:
        async for event, payload in qa.stream_answer(
            body.document_id, body.question, top_k=body.top_k
        ):
            yield f"event: {event}\ndata: {json.dumps(payload)}\n\n"

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ---------------------------------------------------------------------------
# Podcast endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/podcasts",
    response_model=PodcastResponse,
    response_model_exclude_unset=True,
    responses={
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
    summary="Generate the podcast for a document",
)
async def generate_podcast(body: PodcastRequest, workflow: WorkflowDep) -> PodcastResponse:
    """Run the workflow, or return the stored podcast if one exists.

    A failed run surfaces as an error naming the stage that stopped it.
    """
    if workflow is None:
        raise HTTPException(
            status_code=503,
            detail="Podcast generation is not available (no LLM provider configured).",
        )

    job = await workflow.run(body.document_id, script_only=body.script_only)
    if job.is_failed and job.error is not None:
        error_cls = StageTimeoutError if job.error.timed_out else StageError
        raise error_cls(stage=job.error.stage.value, message=job.error.message)
    return PodcastResponse.from_job(job)


@router.get(
    "/podcasts/{document_id}",
    response_model=PodcastArtifactResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get the stored podcast for a document",
)
async def get_podcast(document_id: str, artifacts: ArtifactStoreDep) -> PodcastArtifactResponse:
    artifact = await artifacts.get(document_id)
    if artifact is None:
        raise HTTPException(status_code=404, detail=f"No podcast for document {document_id}")
    return PodcastArtifactResponse.from_artifact(artifact)


@router.delete(
    "/podcasts/{document_id}",
    response_model=PodcastDeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete the stored podcast so the next request regenerates it",
)
async def delete_podcast(
    document_id: str,
    artifacts: ArtifactStoreDep,
    tracker: TrackerDep,
) -> PodcastDeleteResponse:
    deleted = await artifacts.delete(document_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"No podcast for document {document_id}")
    tracker.clear(document_id)
    _logger.info("podcast_deleted", document_id=document_id)
    return PodcastDeleteResponse(document_id=document_id, deleted=True)


@router.get(
    "/podcasts/{document_id}/status",
    response_model=PodcastStatusResponse,
    summary="Poll podcast workflow progress",
)
async def podcast_status(document_id: str, tracker: TrackerDep) -> PodcastStatusResponse:
    return PodcastStatusResponse(document_id=document_id, **tracker.get_status(document_id))


@router.post(
    "/podcasts/{document_id}/cancel",
    response_model=PodcastCancelResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Cancel a running podcast workflow",
)
async def cancel_podcast(document_id: str, workflow: WorkflowDep) -> PodcastCancelResponse:
    """Ask the running job to stop before its next stage or question."""
    if workflow is None:
        raise HTTPException(status_code=503, detail="Podcast generation is not available.")
    workflow.cancel(document_id)
    return PodcastCancelResponse(document_id=document_id, cancelled=True)


@router.get(
    "/podcasts/{document_id}/audio",
    responses={404: {"model": ErrorResponse}},
    summary="Download the podcast audio",
)
async def podcast_audio(
    document_id: str,
    artifacts: ArtifactStoreDep,
    store: ObjectStoreDep,
) -> Response:
    artifact = await artifacts.get(document_id)
    if artifact is None or not artifact.audio_ref:
        raise HTTPException(status_code=404, detail=f"No podcast audio for document {document_id}")
    data = await store.get(artifact.audio_ref)
    return Response(content=data, media_type="audio/mpeg")


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability.

    ``healthy`` needs both embeddings and an LLM; with embeddings alone
    the service still ingests and retrieves, so it reports ``degraded``.
    """
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    if providers.get("embedding", False) and providers.get("llm", False):
        status = "healthy"
    elif providers.get("embedding", False):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=__version__, providers=providers)
