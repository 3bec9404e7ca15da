"""Unit tests for Retriever ranking strategies and quality checks."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from docpod.models.document import ChunkMap
from docpod.models.retrieval import RetrievalStrategy
from docpod.providers.storage.memory_object_store import MemoryObjectStore
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.services.retriever import Retriever
from docpod.utils.errors import ChunkSchemaError, DocumentNotFoundError, EmbeddingError


@pytest.fixture
def vector_retriever(
    object_store: MemoryObjectStore,
    registry: DocumentRegistry,
    mock_embedding_provider: MagicMock,
) -> Retriever:
    """Retriever whose query embedding is always [1, 0, 0]."""
    return Retriever(
        registry=registry,
        object_store=object_store,
        embedding_provider=mock_embedding_provider,
        concurrency=2,
    )


class TestVectorStrategy:
    @pytest.mark.asyncio
    async def test_ranks_by_cosine(self, vector_retriever: Retriever, seed_document) -> None:  # noqa: ANN001
        await seed_document(
            "doc-1",
            [
                ("alpha", [1.0, 0.0, 0.0]),
                ("beta", [0.0, 1.0, 0.0]),
                ("gamma", [0.9, 0.1, 0.0]),
            ],
        )

        result = await vector_retriever.retrieve("doc-1", "query", top_k=2)

        assert result.strategy == RetrievalStrategy.VECTOR
        assert [c.chunk_index for c in result.chunks] == [0, 2]
        assert result.chunks[0].score == pytest.approx(1.0)
        assert result.chunks[0].score >= result.chunks[1].score

    @pytest.mark.asyncio
    async def test_incompatible_dimensions_skipped(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        await seed_document(
            "doc-1",
            [
                ("three dims", [1.0, 0.0, 0.0]),
                ("two dims", [1.0, 0.0]),
                ("three dims again", [0.0, 1.0, 0.0]),
            ],
        )

        result = await vector_retriever.retrieve("doc-1", "query", top_k=2)

        assert result.strategy == RetrievalStrategy.VECTOR
        assert [c.chunk_index for c in result.chunks] == [0, 2]

    @pytest.mark.asyncio
    async def test_too_few_compatible_chunks_ranks_lexically(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        await seed_document(
            "doc-1",
            [
                ("three dims", [1.0, 0.0, 0.0]),
                ("two dims", [1.0, 0.0]),
            ],
        )

        result = await vector_retriever.retrieve("doc-1", "query", top_k=2)

        assert result.strategy != RetrievalStrategy.VECTOR
        assert len(result.chunks) == 2
        assert {c.chunk_index for c in result.chunks} == {0, 1}

    @pytest.mark.asyncio
    async def test_top_k_larger_than_document(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        await seed_document("doc-1", [("only chunk", [1.0, 0.0, 0.0])])
        result = await vector_retriever.retrieve("doc-1", "query", top_k=10)
        assert len(result.chunks) == 1

    @pytest.mark.asyncio
    async def test_no_compatible_embeddings_falls_back_to_lexical(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        await seed_document(
            "doc-1",
            [
                ("Solar panels convert sunlight", [1.0, 0.0]),
                ("Batteries store surplus energy", [0.0, 1.0]),
                ("Grid operators balance load", []),
            ],
        )

        result = await vector_retriever.retrieve("doc-1", "How do batteries store energy?", top_k=1)

        assert result.strategy == RetrievalStrategy.LEXICAL
        assert [c.chunk_index for c in result.chunks] == [1]
        assert result.chunks[0].score == 3.0


class TestDegradedStrategies:
    @pytest.mark.asyncio
    async def test_binary_chunks_use_lexical_without_embedding(
        self,
        vector_retriever: Retriever,
        mock_embedding_provider: MagicMock,
        seed_document,  # noqa: ANN001
    ) -> None:
        await seed_document(
            "doc-1",
            [
                ("%PDF-1.4 1 0 obj << /Type /Page >> endobj", [1.0, 0.0, 0.0]),
                ("battery storage keeps energy for later", [0.0, 1.0, 0.0]),
            ],
        )

        result = await vector_retriever.retrieve("doc-1", "battery storage", top_k=1)

        assert result.strategy == RetrievalStrategy.LEXICAL
        assert result.chunks[0].chunk_index == 1
        # two shared tokens plus the exact-phrase bonus
        assert result.chunks[0].score == 7.0
        mock_embedding_provider.embed_single.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_embedding_failure_uses_lexical(
        self,
        vector_retriever: Retriever,
        mock_embedding_provider: MagicMock,
        seed_document,  # noqa: ANN001
    ) -> None:
        mock_embedding_provider.embed_single = AsyncMock(
            side_effect=EmbeddingError(message="timeout", retryable=True)
        )
        await seed_document(
            "doc-1",
            [
                ("panels on the roof", [1.0, 0.0, 0.0]),
                ("inverters convert current", [0.0, 1.0, 0.0]),
            ],
        )

        result = await vector_retriever.retrieve("doc-1", "what do inverters do", top_k=1)

        assert result.strategy == RetrievalStrategy.LEXICAL
        assert result.chunks[0].chunk_index == 1

    @pytest.mark.asyncio
    async def test_no_lexical_match_returns_first_k(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        await seed_document(
            "doc-1",
            [("first", []), ("second", []), ("third", [])],
        )

        result = await vector_retriever.retrieve("doc-1", "zzz qqq", top_k=2)

        assert result.strategy == RetrievalStrategy.FIRST_K
        assert [c.chunk_index for c in result.chunks] == [0, 1]
        assert all(c.score == 0.0 for c in result.chunks)

    @pytest.mark.asyncio
    async def test_empty_chunk_map_returns_no_chunks(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        await seed_document("doc-1", [])
        result = await vector_retriever.retrieve("doc-1", "anything")
        assert result.chunks == []


class TestResolution:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("top_k", [0, -3])
    async def test_invalid_top_k(self, vector_retriever: Retriever, top_k: int) -> None:
        with pytest.raises(ValueError):
            await vector_retriever.retrieve("doc-1", "query", top_k=top_k)

    @pytest.mark.asyncio
    async def test_unknown_document(self, vector_retriever: Retriever) -> None:
        with pytest.raises(DocumentNotFoundError):
            await vector_retriever.retrieve("missing", "query")

    @pytest.mark.asyncio
    async def test_fallback_chunk_map_ref(
        self, vector_retriever: Retriever, seed_document  # noqa: ANN001
    ) -> None:
        entry = await seed_document("doc-old", [("archived chunk", [1.0, 0.0, 0.0])])

        result = await vector_retriever.retrieve(
            "doc-superseded", "query", chunk_map_ref=entry.chunk_map_ref
        )

        assert result.texts == ["archived chunk"]

    @pytest.mark.asyncio
    async def test_unknown_schema_version_rejected(
        self,
        vector_retriever: Retriever,
        object_store: MemoryObjectStore,
    ) -> None:
        future_map = ChunkMap(schema_version=99, document_id="doc-x", chunk_refs=[])
        ref = await object_store.put(future_map.model_dump_json().encode(), "application/json")

        with pytest.raises(ChunkSchemaError, match="schema_version 99"):
            await vector_retriever.retrieve("doc-x", "query", chunk_map_ref=ref)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_ingested_document_is_retrievable(
        self, ingestion_service, retriever: Retriever, sample_text: str  # noqa: ANN001
    ) -> None:
        ingested = await ingestion_service.ingest(sample_text.encode(), "text/plain", "solar.txt")

        result = await retriever.retrieve(ingested.document_id, "duck curve", top_k=3)

        assert result.strategy == RetrievalStrategy.VECTOR
        assert sorted(c.chunk_index for c in result.chunks) == [0, 1, 2]


class TestCheckQuality:
    @pytest.mark.asyncio
    async def test_healthy_document(self, vector_retriever: Retriever, seed_document) -> None:  # noqa: ANN001
        await seed_document("doc-1", [("a", [1.0, 0.0, 0.0]), ("b", [0.0, 1.0, 0.0])])

        report = await vector_retriever.check_quality("doc-1")

        assert report.total_chunks == 2
        assert report.binary_chunks == 0
        assert report.missing_embeddings == 0
        assert report.embedding_dimensions == [3]
        assert report.embedding_models == ["test-model"]
        assert report.needs_reprocessing is False

    @pytest.mark.asyncio
    async def test_problem_document(self, vector_retriever: Retriever, seed_document) -> None:  # noqa: ANN001
        await seed_document(
            "doc-1",
            [
                ("stream ... endstream endobj", [1.0, 0.0, 0.0]),
                ("never embedded", []),
                ("two dims", [1.0, 0.0]),
            ],
        )

        report = await vector_retriever.check_quality("doc-1")

        assert report.binary_chunks == 1
        assert report.missing_embeddings == 1
        assert report.embedding_dimensions == [2, 3]
        assert report.needs_reprocessing is True

    @pytest.mark.asyncio
    async def test_unknown_document(self, vector_retriever: Retriever) -> None:
        with pytest.raises(DocumentNotFoundError):
            await vector_retriever.check_quality("missing")
