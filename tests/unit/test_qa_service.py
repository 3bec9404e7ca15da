"""Unit tests for QAService grounded answering, degradation and streaming."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from docpod.models.retrieval import RetrievalResult, RetrievalStrategy, ScoredChunk
from docpod.providers.cache.memory_cache import MemoryCacheProvider
from docpod.services.qa_service import NO_CONTEXT_ANSWER, RETRIEVAL_FAILED_ANSWER, QAService
from docpod.services.retriever import Retriever
from docpod.utils.errors import DocumentNotFoundError, LLMError, StorageError


def _retrieval(document_id: str = "doc-1", chunks: list[ScoredChunk] | None = None):  # noqa: ANN202
    if chunks is None:
        chunks = [
            ScoredChunk(chunk_index=0, text="Solar panels use silicon cells.", score=0.9),
            ScoredChunk(chunk_index=2, text="The duck curve reshapes demand.", score=0.4),
        ]
    return RetrievalResult(
        document_id=document_id,
        query="q",
        strategy=RetrievalStrategy.VECTOR,
        chunks=chunks,
    )


@pytest.fixture
def mock_retriever() -> MagicMock:
    retriever = MagicMock(spec=Retriever)
    retriever.retrieve = AsyncMock(return_value=_retrieval())
    return retriever


@pytest.fixture
def cache() -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=10, ttl=60)


@pytest.fixture
def qa(mock_llm: MagicMock, mock_retriever: MagicMock, cache: MemoryCacheProvider) -> QAService:
    return QAService(llm=mock_llm, retriever=mock_retriever, cache=cache)


class TestAnswer:
    @pytest.mark.asyncio
    async def test_answer_uses_numbered_chunks(
        self, qa: QAService, mock_llm: MagicMock, mock_retriever: MagicMock
    ) -> None:
        response = await qa.answer("doc-1", "How do panels work?", top_k=2)

        assert response.answer == "A grounded answer. According to Chunk 0, it works."
        assert response.strategy == RetrievalStrategy.VECTOR
        assert [c.chunk_index for c in response.chunks] == [0, 2]
        assert response.degraded is False
        mock_retriever.retrieve.assert_awaited_once_with("doc-1", "How do panels work?", top_k=2)

        kwargs = mock_llm.complete.await_args.kwargs
        assert "Chunk 0: Solar panels use silicon cells." in kwargs["user_prompt"]
        assert "Chunk 2: The duck curve reshapes demand." in kwargs["user_prompt"]
        assert kwargs["user_prompt"].startswith("How do panels work?")
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(
        self, qa: QAService, mock_llm: MagicMock, mock_retriever: MagicMock
    ) -> None:
        first = await qa.answer("doc-1", "How do panels work?")
        second = await qa.answer("doc-1", "How do panels work?")

        assert second == first
        assert mock_llm.complete.await_count == 1
        assert mock_retriever.retrieve.await_count == 1

    @pytest.mark.asyncio
    async def test_cache_key_includes_top_k(
        self, qa: QAService, mock_llm: MagicMock
    ) -> None:
        await qa.answer("doc-1", "How do panels work?", top_k=2)
        await qa.answer("doc-1", "How do panels work?", top_k=3)
        assert mock_llm.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_no_chunks_gives_fixed_answer_without_llm(
        self, qa: QAService, mock_llm: MagicMock, mock_retriever: MagicMock
    ) -> None:
        mock_retriever.retrieve.return_value = _retrieval(chunks=[])

        response = await qa.answer("doc-1", "Anything?")

        assert response.answer == NO_CONTEXT_ANSWER
        mock_llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_answer_propagates_llm_failure(
        self, qa: QAService, mock_llm: MagicMock
    ) -> None:
        mock_llm.complete.side_effect = LLMError(message="model overloaded")
        with pytest.raises(LLMError):
            await qa.answer("doc-1", "Why?")

    @pytest.mark.asyncio
    async def test_works_without_cache(
        self, mock_llm: MagicMock, mock_retriever: MagicMock
    ) -> None:
        service = QAService(llm=mock_llm, retriever=mock_retriever)
        await service.answer("doc-1", "Why?")
        await service.answer("doc-1", "Why?")
        assert mock_llm.complete.await_count == 2


class TestQuery:
    @pytest.mark.asyncio
    async def test_retrieval_failure_degrades(
        self, qa: QAService, mock_retriever: MagicMock, mock_llm: MagicMock
    ) -> None:
        mock_retriever.retrieve.side_effect = StorageError(message="gateway down")

        response = await qa.query("doc-1", "Why?")

        assert response.degraded is True
        assert response.answer == RETRIEVAL_FAILED_ANSWER
        mock_llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_llm_failure_degrades_with_apology(
        self, qa: QAService, mock_llm: MagicMock, cache: MemoryCacheProvider
    ) -> None:
        mock_llm.complete.side_effect = LLMError(message="model overloaded")

        response = await qa.query("doc-1", "Why?")

        assert response.degraded is True
        assert response.answer.startswith("I encountered an error while generating a response")
        assert "model overloaded" in response.answer
        assert len(response.chunks) == 2
        # degraded answers are not cached
        assert await cache.exists(QAService._cache_key("doc-1", "Why?", 3)) is False

    @pytest.mark.asyncio
    async def test_unknown_document_still_raises(
        self, qa: QAService, mock_retriever: MagicMock
    ) -> None:
        mock_retriever.retrieve.side_effect = DocumentNotFoundError(message="nope")
        with pytest.raises(DocumentNotFoundError):
            await qa.query("missing", "Why?")

    @pytest.mark.asyncio
    async def test_successful_query_is_cached(
        self, qa: QAService, mock_llm: MagicMock
    ) -> None:
        await qa.query("doc-1", "Why?")
        response = await qa.query("doc-1", "Why?")

        assert response.degraded is False
        assert mock_llm.complete.await_count == 1


class TestStreamAnswer:
    @pytest.mark.asyncio
    async def test_event_sequence(self, qa: QAService) -> None:
        events = [event async for event in qa.stream_answer("doc-1", "Why?")]

        assert [name for name, _ in events] == ["start", "context", "answer", "end"]
        assert events[1][1]["contextSize"] == 2
        assert events[1][1]["strategy"] == "vector"
        assert events[2][1]["answer"].startswith("A grounded answer")
        assert events[3][1] == {"status": "completed"}

    @pytest.mark.asyncio
    async def test_failure_yields_error_then_end(
        self, qa: QAService, mock_retriever: MagicMock
    ) -> None:
        mock_retriever.retrieve.side_effect = DocumentNotFoundError(message="nope")

        events = [event async for event in qa.stream_answer("missing", "Why?")]

        assert [name for name, _ in events] == ["start", "error", "end"]
        assert events[1][1]["error"] == "nope"


class TestCacheKey:
    def test_stable_and_scoped_to_document(self) -> None:
        key = QAService._cache_key("doc-1", "Why?", 3)
        assert key == QAService._cache_key("doc-1", "Why?", 3)
        assert key.startswith("qa:doc-1:")
        assert key != QAService._cache_key("doc-2", "Why?", 3)
