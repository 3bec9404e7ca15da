"""Pydantic request/response schemas for the docpod API.

Defines the public contract for all REST endpoints: document upload and
dedup checks, document listing and quality, question answering, podcast
generation, and health.

Convention: request schemas end with "Request", response schemas end with
"Response".  The duplicate-check response keeps the camelCase keys that
upload clients already consume (``documentId``, ``processingStats``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docpod.models.document import DocumentMetadata, RegistryEntry
from docpod.models.podcast import PodcastArtifact, SynthesisJob
from docpod.models.retrieval import QAResponse, QualityReport, ScoredChunk


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
    stage: str | None = Field(default=None, description="Workflow phase that failed, if any.")


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentIngestResponse(BaseModel):
    """Result of uploading a document."""

    document_id: str
    deduplicated: bool
    chunk_count: int
    processing_time_ms: int
    content_hash: str
    version: int = 1


class ProcessingStats(BaseModel):
    chunk_count: int
    processing_time_ms: int | None = None
    file_size: int


class DuplicateCheckResponse(BaseModel):
    """Whether uploaded content is already registered."""

    model_config = ConfigDict(populate_by_name=True)

    exists: bool
    document_id: str | None = Field(default=None, alias="documentId")
    metadata: DocumentMetadata | None = None
    processing_stats: ProcessingStats | None = Field(
        default=None, alias="processingStats"
    )
    content_hash: str | None = Field(default=None, alias="contentHash")


class DocumentSummary(BaseModel):
    """One registered document."""

    document_id: str
    title: str
    filename: str
    media_type: str
    file_size: int
    chunk_count: int
    version: int
    supersedes: str | None = None
    uploaded_at: datetime
    content_hash: str
    processing_time_ms: int

    @classmethod
    def from_entry(cls, entry: RegistryEntry) -> DocumentSummary:
        meta = entry.metadata
        return cls(
            document_id=entry.document_id,
            title=meta.title,
            filename=meta.filename,
            media_type=meta.media_type,
            file_size=meta.file_size,
            chunk_count=entry.chunk_count,
            version=meta.version,
            supersedes=meta.supersedes,
            uploaded_at=meta.uploaded_at,
            content_hash=entry.content_hash,
            processing_time_ms=entry.processing_time_ms,
        )


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary] = Field(default_factory=list)
    total: int = 0


class DocumentQualityResponse(BaseModel):
    """Chunk health for one document plus a plain-language recommendation."""

    report: QualityReport
    recommendation: str


# ---------------------------------------------------------------------------
# Question answering
# ---------------------------------------------------------------------------


class QueryRequest(BaseModel):
    """A question about one document."""

    document_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, max_length=2000)
    top_k: int = Field(default=3, ge=1, le=20)


class QueryResponse(BaseModel):
    document_id: str
    question: str
    answer: str
    strategy: str | None = None
    chunks: list[ScoredChunk] = Field(default_factory=list)
    degraded: bool = False

    @classmethod
    def from_qa(cls, response: QAResponse) -> QueryResponse:
        return cls(
            document_id=response.document_id,
            question=response.question,
            answer=response.answer,
            strategy=response.strategy.value if response.strategy else None,
            chunks=response.chunks,
            degraded=response.degraded,
        )


# ---------------------------------------------------------------------------
# Podcasts
# ---------------------------------------------------------------------------


class PodcastRequest(BaseModel):
    """Generate (or fetch) the podcast for a document."""

    document_id: str = Field(..., min_length=1)
    script_only: bool = False


class PodcastResponse(BaseModel):
    """Outcome of a podcast run."""

    document_id: str
    podcast_id: str | None = None
    status: str
    phase: str
    title: str = ""
    script: str = ""
    audio_ref: str | None = None
    duration_seconds: float | None = None
    questions: list[str] = Field(default_factory=list)
    failed_questions: list[int] = Field(default_factory=list)
    from_cache: bool = False
    persisted: bool = False
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_job(cls, job: SynthesisJob) -> PodcastResponse:
        """Build the response; script-only jobs leave the audio fields unset."""
        audio = (
            {}
            if job.script_only
            else {"audio_ref": job.audio_ref, "duration_seconds": job.audio_duration_seconds}
        )
        return cls(
            document_id=job.document_id,
            podcast_id=job.podcast_id,
            status=job.status.value,
            phase=job.phase.value,
            title=job.title,
            script=job.script,
            questions=job.questions,
            failed_questions=job.failed_indices,
            from_cache=job.from_cache,
            persisted=job.persisted,
            warnings=job.warnings,
            **audio,
        )


class PodcastArtifactResponse(BaseModel):
    """A stored podcast."""

    podcast_id: str
    document_id: str
    title: str
    description: str
    script: str
    audio_ref: str | None = None
    duration_seconds: float | None = None
    created_at: datetime

    @classmethod
    def from_artifact(cls, artifact: PodcastArtifact) -> PodcastArtifactResponse:
        return cls(**artifact.model_dump())


class PodcastStatusResponse(BaseModel):
    """Latest progress snapshot of a document's podcast job."""

    document_id: str
    phase: str
    progress: float
    message: str = ""
    updated_at: str | None = None


class PodcastDeleteResponse(BaseModel):
    document_id: str
    deleted: bool


class PodcastCancelResponse(BaseModel):
    document_id: str
    cancelled: bool
