"""Grounded question answering over a single document.

Accepts a question about one ingested document, retrieves the most
relevant chunks through the :class:`Retriever`, and asks the LLM to
answer from those chunks alone, citing chunk numbers.

Two surfaces share the same core:

- :meth:`QAService.answer` raises on retrieval or LLM failure.  The
  podcast workflow uses it so each question's failure is isolated and
  recorded per question.
- :meth:`QAService.query` never raises for transient trouble: a retrieval
  failure yields "I couldn't retrieve context from this document..." and
  an LLM failure yields an apology, both flagged ``degraded=True``.

The data flow follows a classic RAG pattern:
  1. CACHE CHECK   -- (document, question, top_k) seen recently?
  2. RETRIEVE      -- Retriever picks the top chunks (vector, lexical or first-K).
  3. LLM SYNTHESIS -- chunks formatted as ``Chunk {i}: {text}``, temperature 0.2.
  4. CACHE STORE   -- successful answers only.

:meth:`QAService.stream_answer` exposes the same steps as a sequence of
``(event, payload)`` pairs for the server-sent-events endpoint.
"""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator
from typing import Any

import structlog

from docpod.interfaces.cache_provider import ICacheProvider
from docpod.interfaces.llm_provider import ILLMProvider
from docpod.models.retrieval import QAResponse, RetrievalResult
from docpod.services.retriever import DEFAULT_TOP_K, Retriever
from docpod.utils.errors import DocumentNotFoundError
from docpod.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

NO_CONTEXT_ANSWER = (
    "I don't have enough information to answer that question based on the available documents."
)
RETRIEVAL_FAILED_ANSWER = (
    "I couldn't retrieve context from this document to answer that question. "
    "Please try again later."
)


class QAService:
    """Answers questions about one document using retrieval + LLM.

    Parameters
    ----------
    llm:
        LLM provider used for generating answers.
    retriever:
        Ranks the document's chunks against the question.
    cache:
        Optional cache provider to avoid re-asking identical questions.
    """

    _SYSTEM_PROMPT = (
        "You are a helpful assistant that answers questions based on the provided context.\n"
        "Your task is to answer questions using ONLY the information from the provided "
        "document chunks.\n"
        "If the context doesn't contain enough information to answer the question, "
        "acknowledge this limitation and don't make up information.\n"
        "Include specific details from the context to support your answer.\n"
        'If quoting directly, cite the specific chunk number (e.g., "According to Chunk 3...").'
    )

    _TEMPERATURE = 0.2
    _MAX_TOKENS = 1000

    def __init__(
        self,
        llm: ILLMProvider,
        retriever: Retriever,
        cache: ICacheProvider | None = None,
    ) -> None:
        self._llm = llm
        self._retriever = retriever
        self._cache = cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def answer(
        self,
        document_id: str,
        question: str,
        top_k: int = DEFAULT_TOP_K,
    ) -> QAResponse:
        """Answer *question* from *document_id*'s chunks.

        Raises
        ------
        DocumentNotFoundError
            The document is not registered.
        DocPodError
            Retrieval or the LLM call failed.
        """
        cache_key = self._cache_key(document_id, question, top_k)
        if self._cache:
            cached = await self._cache.get(cache_key)
            if cached:
                logger.debug("qa_cache_hit", document_id=document_id, question=question[:50])
                return QAResponse.model_validate_json(cached)

        retrieval = await self._retriever.retrieve(document_id, question, top_k=top_k)
        response = await self._synthesize(document_id, question, retrieval)

        if self._cache:
            await self._cache.set(cache_key, response.model_dump_json())

        logger.info(
            "qa_answered",
            document_id=document_id,
            question=question[:80],
            strategy=retrieval.strategy.value,
            chunks=len(retrieval.chunks),
        )
        return response

    async def query(
        self,
        document_id: str,
        question: str,
        top_k: int = DEFAULT_TOP_K,
    ) -> QAResponse:
        """Like :meth:`answer`, but degrades to an explanatory answer instead of raising.

        An unknown document still raises :class:`DocumentNotFoundError`;
        that is a caller error, not a transient one.
        """
        cache_key = self._cache_key(document_id, question, top_k)
        if self._cache:
            cached = await self._cache.get(cache_key)
            if cached:
                logger.debug("qa_cache_hit", document_id=document_id, question=question[:50])
                return QAResponse.model_validate_json(cached)

        try:
            retrieval = await self._retriever.retrieve(document_id, question, top_k=top_k)
        except (DocumentNotFoundError, ValueError):
            raise
        except Exception as exc:
            logger.error(
                "qa_retrieval_failed",
                document_id=document_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return QAResponse(
                document_id=document_id,
                question=question,
                answer=RETRIEVAL_FAILED_ANSWER,
                degraded=True,
            )

        try:
            response = await self._synthesize(document_id, question, retrieval)
        except Exception as exc:
            logger.error("qa_llm_failed", document_id=document_id, error=str(exc))
            return QAResponse(
                document_id=document_id,
                question=question,
                answer=(
                    f"I encountered an error while generating a response: {exc}. "
                    "Please try again later."
                ),
                strategy=retrieval.strategy,
                chunks=retrieval.chunks,
                degraded=True,
            )

        if self._cache:
            await self._cache.set(cache_key, response.model_dump_json())
        logger.info(
            "qa_answered",
            document_id=document_id,
            question=question[:80],
            strategy=retrieval.strategy.value,
            chunks=len(retrieval.chunks),
        )
        return response

    async def stream_answer(
        self,
        document_id: str,
        question: str,
        top_k: int = DEFAULT_TOP_K,
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event, payload)`` pairs: start, context, answer or error, end."""
        yield "start", {"status": "started"}
        try:
            retrieval = await self._retriever.retrieve(document_id, question, top_k=top_k)
            yield "context", {
                "status": "context_retrieved",
                "contextSize": len(retrieval.chunks),
                "documentId": document_id,
                "strategy": retrieval.strategy.value,
            }
            response = await self._synthesize(document_id, question, retrieval)
            yield "answer", {"status": "answer", "answer": response.answer}
        except Exception as exc:
            logger.error("qa_stream_failed", document_id=document_id, error=str(exc))
            yield "error", {"status": "error", "error": str(exc)}
        yield "end", {"status": "completed"}

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _synthesize(
        self,
        document_id: str,
        question: str,
        retrieval: RetrievalResult,
    ) -> QAResponse:
        if not retrieval.chunks:
            logger.warning("qa_no_context", document_id=document_id, question=question[:80])
            return QAResponse(
                document_id=document_id,
                question=question,
                answer=NO_CONTEXT_ANSWER,
                strategy=retrieval.strategy,
            )

        context = "\n\n".join(f"Chunk {c.chunk_index}: {c.text}" for c in retrieval.chunks)
        user_prompt = (
            f"{question}\n\n"
            f"Here is relevant context to help answer the question:\n\n{context}\n\n"
            "Based on the context, answer my question thoroughly and accurately."
        )
        answer = await self._llm.complete(
            system_prompt=self._SYSTEM_PROMPT,
            user_prompt=user_prompt,
            temperature=self._TEMPERATURE,
            max_tokens=self._MAX_TOKENS,
        )
        return QAResponse(
            document_id=document_id,
            question=question,
            answer=answer.strip(),
            strategy=retrieval.strategy,
            chunks=retrieval.chunks,
        )

    @staticmethod
    def _cache_key(document_id: str, question: str, top_k: int) -> str:
        digest = hashlib.sha256(f"{question}|{top_k}".encode()).hexdigest()[:16]
        return f"qa:{document_id}:{digest}"
