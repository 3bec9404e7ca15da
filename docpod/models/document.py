"""Document, chunk and registry data models for the docpod knowledge base.

Defines Pydantic v2 models for everything the ingestion pipeline writes to
the object store and the registry.  All models use frozen config; a new
version of a document is a new record, never a mutation of the old one.

Storage layout per document:
    - one raw-text object
    - N ``ChunkRecord`` JSON objects (one per chunk)
    - one ``ChunkMap`` JSON object listing the chunk references in order
    - one ``DocumentMetadata`` JSON object
    - one ``RegistryEntry`` row keyed by content hash
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docpod.utils.errors import ChunkSchemaError

# Bump when the on-disk JSON shape of ChunkRecord / ChunkMap changes.
CHUNK_SCHEMA_VERSION = 1


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# DocumentMetadata - one record per ingested document version.
# ---------------------------------------------------------------------------
class DocumentMetadata(BaseModel):
    """Descriptive metadata for an ingested document.

    A document re-ingested through ``resync`` gets a fresh ``document_id``
    with ``version`` incremented and ``supersedes`` pointing at the
    previous id.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(description="UUID assigned at ingestion time.")
    content_hash: str = Field(description="SHA-256 hex digest of the extracted text.")
    title: str = Field(default="", description="Human-readable title (filename stem by default).")
    filename: str = Field(default="", description="Original upload filename.")
    media_type: str = Field(default="text/plain", description="Declared media type of the upload.")
    file_size: int = Field(default=0, ge=0, description="Upload size in bytes.")
    uploaded_at: datetime = Field(default_factory=_utcnow)
    chunk_count: int = Field(default=0, ge=0)
    version: int = Field(default=1, ge=1)
    supersedes: str | None = Field(
        default=None, description="document_id of the version this one replaces."
    )


# ---------------------------------------------------------------------------
# ChunkRecord - a single stored chunk with its embedding.
# ---------------------------------------------------------------------------
class ChunkRecord(BaseModel):
    """A stored chunk of document text plus the vector computed for it.

    ``embedding`` may be empty when no vector could be computed; the
    retriever treats such chunks as incompatible and ranks them lexically.
    ``embedding_model`` is always recorded alongside the vector so a
    dimension change between models is detectable later.
    """

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=CHUNK_SCHEMA_VERSION)
    document_id: str
    chunk_index: int = Field(ge=0)
    text: str
    embedding: list[float] = Field(default_factory=list)
    embedding_model: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


class ChunkMap(BaseModel):
    """Ordered references to a document's chunk objects (index i → chunk i)."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=CHUNK_SCHEMA_VERSION)
    document_id: str
    chunk_refs: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# RegistryEntry - the dedup record keyed by content hash.
# ---------------------------------------------------------------------------
class RegistryEntry(BaseModel):
    """Registry row mapping a content hash to the document that holds it.

    At most one entry exists per ``content_hash``; registering again
    overwrites it.
    """

    model_config = ConfigDict(frozen=True)

    content_hash: str
    document_id: str
    metadata: DocumentMetadata
    chunk_map_ref: str
    text_ref: str = ""
    metadata_ref: str = ""
    chunk_count: int = Field(default=0, ge=0)
    processing_time_ms: int = Field(default=0, ge=0)
    registered_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Versioned (de)serialization
# ---------------------------------------------------------------------------

def load_chunk_record(raw: bytes) -> ChunkRecord:
    """Parse a stored chunk, rejecting unknown schema versions explicitly."""
    return _load_versioned(ChunkRecord, raw)


def load_chunk_map(raw: bytes) -> ChunkMap:
    """Parse a stored chunk map, rejecting unknown schema versions explicitly."""
    return _load_versioned(ChunkMap, raw)


def _load_versioned(model: type[ChunkRecord] | type[ChunkMap], raw: bytes):  # noqa: ANN202
    try:
        record = model.model_validate_json(raw)
    except ValidationError as exc:
        raise ChunkSchemaError(
            message=f"Stored {model.__name__} does not match the current schema: {exc.error_count()} errors"
        ) from exc
    if record.schema_version != CHUNK_SCHEMA_VERSION:
        raise ChunkSchemaError(
            message=(
                f"Unsupported {model.__name__} schema_version {record.schema_version}"
                f" (expected {CHUNK_SCHEMA_VERSION})"
            )
        )
    return record


# ---------------------------------------------------------------------------
# Ingestion outcomes
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Outcome of one ``IngestionService.ingest`` call."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    content_hash: str
    deduplicated: bool = False
    chunk_count: int = Field(default=0, ge=0)
    processing_time_ms: int = Field(default=0, ge=0)
    version: int = Field(default=1, ge=1)


class DuplicateCheck(BaseModel):
    """Answer to "has this content been ingested already?" without writing anything."""

    model_config = ConfigDict(frozen=True)

    exists: bool
    content_hash: str
    document_id: str | None = None
    metadata: DocumentMetadata | None = None
    processing_time_ms: int | None = None
