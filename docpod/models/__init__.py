"""docpod domain models - re-exports all public model classes.

The models are organized across three submodules by domain concern:
    - document.py   - documents, chunks, chunk maps and registry entries
    - retrieval.py  - retrieval results, quality reports and Q&A answers
    - podcast.py    - podcast workflow state and persisted artifacts
"""

from __future__ import annotations

from docpod.models.document import (
    CHUNK_SCHEMA_VERSION,
    ChunkMap,
    ChunkRecord,
    DocumentMetadata,
    DuplicateCheck,
    IngestionResult,
    RegistryEntry,
    load_chunk_map,
    load_chunk_record,
)
from docpod.models.podcast import (
    JobStatus,
    PodcastArtifact,
    PodcastPhase,
    StageFailure,
    SynthesisJob,
)
from docpod.models.retrieval import (
    QAResponse,
    QualityReport,
    RetrievalResult,
    RetrievalStrategy,
    ScoredChunk,
)

__all__ = [
    "CHUNK_SCHEMA_VERSION",
    "ChunkMap",
    "ChunkRecord",
    "DocumentMetadata",
    "DuplicateCheck",
    "IngestionResult",
    "JobStatus",
    "PodcastArtifact",
    "PodcastPhase",
    "QAResponse",
    "QualityReport",
    "RegistryEntry",
    "RetrievalResult",
    "RetrievalStrategy",
    "ScoredChunk",
    "StageFailure",
    "SynthesisJob",
    "load_chunk_map",
    "load_chunk_record",
]
