"""Shared pytest fixtures for the docpod test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from docpod.interfaces.embedding_provider import IEmbeddingProvider
from docpod.interfaces.llm_provider import ILLMProvider
from docpod.models.document import ChunkMap, ChunkRecord, DocumentMetadata, RegistryEntry
from docpod.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from docpod.providers.registry.sqlite_registry_provider import SQLiteRegistryProvider
from docpod.providers.storage.memory_object_store import MemoryObjectStore
from docpod.services.ingestion.chunker import TextChunker
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.services.ingestion.ingestion_service import IngestionService
from docpod.services.ingestion.text_extractor import TextExtractor
from docpod.services.retriever import Retriever

# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

SOLAR_TEXT = (
    "Solar panels convert sunlight into electricity using photovoltaic cells. "
    "Each cell is made of silicon layers that release electrons when struck by light.\n\n"
    "Battery storage lets households keep surplus energy for the evening. "
    "Lithium iron phosphate batteries are common because they tolerate many charge cycles.\n\n"
    "Grid operators balance supply and demand every second. "
    "Rooftop solar changes the shape of daily demand, a pattern known as the duck curve."
)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Return a minimal configuration dict shaped like config/config.yaml."""
    return {
        "api": {"cors_origins": ["*"], "max_upload_bytes": 1024 * 1024},
        "storage": {"backend": "memory", "dir": "data/objects"},
        "podcast": {"custom_question_count": 0},
    }


@pytest.fixture
def sample_text() -> str:
    return SOLAR_TEXT


# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM provider mock; ``complete`` returns a fixed answer."""
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(return_value="A grounded answer. According to Chunk 0, it works.")
    llm.get_provider_name.return_value = "mock-llm"
    llm.is_available.return_value = True
    return llm


@pytest.fixture
def mock_embedding_provider() -> MagicMock:
    """Embedding provider mock returning 3-dimensional unit vectors."""
    provider = MagicMock(spec=IEmbeddingProvider)
    provider.embed = AsyncMock(side_effect=lambda texts: [[1.0, 0.0, 0.0] for _ in texts])
    provider.embed_single = AsyncMock(return_value=[1.0, 0.0, 0.0])
    provider.get_dimension.return_value = 3
    provider.get_model_name.return_value = "mock-embed"
    provider.get_provider_name.return_value = "mock_embedding"
    provider.is_available.return_value = True
    return provider


# ---------------------------------------------------------------------------
# Real in-process components
# ---------------------------------------------------------------------------


@pytest.fixture
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest_asyncio.fixture
async def registry(tmp_path: Path) -> DocumentRegistry:
    """A DocumentRegistry over a fresh SQLite file."""
    reg = DocumentRegistry(SQLiteRegistryProvider(db_path=tmp_path / "registry.db"))
    await reg.initialize()
    return reg


@pytest.fixture
def hashing_embedder() -> HashingEmbeddingProvider:
    return HashingEmbeddingProvider(dimension=64)


@pytest.fixture
def ingestion_service(
    object_store: MemoryObjectStore,
    registry: DocumentRegistry,
    hashing_embedder: HashingEmbeddingProvider,
) -> IngestionService:
    return IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(max_size=200),
        embedding_provider=hashing_embedder,
        object_store=object_store,
        registry=registry,
    )


@pytest.fixture
def retriever(
    object_store: MemoryObjectStore,
    registry: DocumentRegistry,
    hashing_embedder: HashingEmbeddingProvider,
) -> Retriever:
    return Retriever(
        registry=registry,
        object_store=object_store,
        embedding_provider=hashing_embedder,
    )


# ---------------------------------------------------------------------------
# Helpers for seeding stored chunks directly
# ---------------------------------------------------------------------------


async def store_document(
    store: MemoryObjectStore,
    registry: DocumentRegistry,
    document_id: str,
    chunks: list[tuple[str, list[float]]],
    content_hash: str | None = None,
) -> RegistryEntry:
    """Write ChunkRecords + ChunkMap for *chunks* and register the document.

    Each item of *chunks* is ``(text, embedding)``; use an empty embedding
    to simulate a chunk that was never embedded.
    """
    refs = []
    for idx, (text, embedding) in enumerate(chunks):
        record = ChunkRecord(
            document_id=document_id,
            chunk_index=idx,
            text=text,
            embedding=embedding,
            embedding_model="test-model" if embedding else "",
        )
        refs.append(await store.put(record.model_dump_json().encode(), "application/json"))
    chunk_map = ChunkMap(document_id=document_id, chunk_refs=refs)
    map_ref = await store.put(chunk_map.model_dump_json().encode(), "application/json")

    content_hash = content_hash or f"hash-{document_id}"
    entry = RegistryEntry(
        content_hash=content_hash,
        document_id=document_id,
        metadata=DocumentMetadata(
            document_id=document_id,
            content_hash=content_hash,
            title=document_id,
            filename=f"{document_id}.txt",
            chunk_count=len(chunks),
        ),
        chunk_map_ref=map_ref,
        chunk_count=len(chunks),
    )
    await registry.register(entry)
    return entry


@pytest.fixture
def seed_document(object_store: MemoryObjectStore, registry: DocumentRegistry):  # noqa: ANN201
    """Return an async helper that stores and registers a document's chunks."""

    async def _seed(
        document_id: str,
        chunks: list[tuple[str, list[float]]],
        content_hash: str | None = None,
    ) -> RegistryEntry:
        return await store_document(object_store, registry, document_id, chunks, content_hash)

    return _seed
