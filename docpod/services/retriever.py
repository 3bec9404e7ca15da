"""Chunk retrieval for a single document with graceful degradation.

The retriever answers "which chunks of document D best match query Q?".
It never keeps a process-local index: every call resolves the document's
ChunkMap through the registry and reads the chunk objects from the
content-addressed store.

Ranking strategies, tried in order:

1. **vector** -- cosine similarity between the query embedding and every
   chunk whose stored embedding has the same dimension as the query
   vector.  Chunks embedded by a different model are skipped rather than
   compared across dimensions.
2. **lexical** -- keyword overlap, used when the chunks look like
   un-extracted binary/PDF syntax, when no stored embedding is compatible,
   or when embedding the query failed.
3. **first_k** -- the first K chunks in document order, when lexical
   scoring finds nothing at all.

Scores are only comparable within one strategy.
"""

from __future__ import annotations

import asyncio

import structlog

from docpod.interfaces.embedding_provider import IEmbeddingProvider
from docpod.interfaces.object_store import IObjectStore
from docpod.models.document import ChunkMap, ChunkRecord, load_chunk_map, load_chunk_record
from docpod.models.retrieval import QualityReport, RetrievalResult, RetrievalStrategy, ScoredChunk
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.utils.concurrency import throttled_gather
from docpod.utils.errors import DocumentNotFoundError
from docpod.utils.text_normalizer import lexical_tokens, looks_binary, normalize_for_match
from docpod.utils.vector_math import top_k as rank_by_cosine

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_TOP_K = 3

# Added to the lexical score when the whole normalized query appears
# verbatim in the normalized chunk.
EXACT_MATCH_BONUS = 5


class Retriever:
    """Ranks one document's chunks against a query.

    Parameters
    ----------
    registry:
        Resolves a document id to its authoritative chunk map.
    object_store:
        Holds the chunk map and chunk records.
    embedding_provider:
        Embeds the query for vector ranking.
    concurrency:
        Maximum number of chunk objects fetched at once.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        object_store: IObjectStore,
        embedding_provider: IEmbeddingProvider,
        concurrency: int = 8,
    ) -> None:
        self._registry = registry
        self._store = object_store
        self._embedding_provider = embedding_provider
        self._concurrency = max(1, concurrency)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        document_id: str,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        chunk_map_ref: str | None = None,
    ) -> RetrievalResult:
        """Return up to *top_k* chunks of *document_id* ranked against *query*.

        Parameters
        ----------
        document_id:
            The document to search.
        query:
            Natural-language query text.
        top_k:
            Maximum number of chunks to return; must be at least 1.
        chunk_map_ref:
            Fallback chunk map reference, used only when the registry has
            no entry for *document_id* (e.g. a superseded version).

        Raises
        ------
        ValueError
            If *top_k* is less than 1.
        DocumentNotFoundError
            If the document is unknown and no fallback was supplied.
        ChunkSchemaError
            If a stored chunk uses an unsupported schema version.
        """
        if top_k < 1:
            raise ValueError("top_k must be at least 1")

        chunks = await self._load_chunks(document_id, chunk_map_ref)
        if not chunks:
            return RetrievalResult(
                document_id=document_id, query=query, strategy=RetrievalStrategy.FIRST_K
            )

        binary = sum(1 for c in chunks if looks_binary(c.text))
        if binary:
            logger.warning(
                "retrieval_binary_chunks",
                document_id=document_id,
                binary_chunks=binary,
                total_chunks=len(chunks),
            )
            return self._lexical(document_id, query, chunks, top_k)

        try:
            query_vector = await self._embedding_provider.embed_single(query)
        except Exception as exc:
            logger.warning(
                "retrieval_query_embedding_failed",
                document_id=document_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return self._lexical(document_id, query, chunks, top_k)

        return self._vector(document_id, query, query_vector, chunks, top_k)

    async def check_quality(
        self,
        document_id: str,
        chunk_map_ref: str | None = None,
    ) -> QualityReport:
        """Summarize whether a document's stored chunks are usable for retrieval."""
        chunks = await self._load_chunks(document_id, chunk_map_ref)
        binary = sum(1 for c in chunks if looks_binary(c.text))
        missing = sum(1 for c in chunks if not c.embedding)
        dimensions = sorted({c.dimension for c in chunks if c.embedding})
        models = sorted({c.embedding_model for c in chunks if c.embedding_model})

        report = QualityReport(
            document_id=document_id,
            total_chunks=len(chunks),
            binary_chunks=binary,
            missing_embeddings=missing,
            embedding_dimensions=dimensions,
            embedding_models=models,
            needs_reprocessing=bool(binary or missing),
        )
        logger.info(
            "quality_checked",
            document_id=document_id,
            total_chunks=report.total_chunks,
            binary_chunks=binary,
            missing_embeddings=missing,
        )
        return report

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _resolve_chunk_map(self, document_id: str, fallback_ref: str | None) -> ChunkMap:
        entry = await self._registry.find_by_document_id(document_id)
        ref = entry.chunk_map_ref if entry is not None else fallback_ref
        if not ref:
            raise DocumentNotFoundError(message=f"Document {document_id} is not registered")
        return load_chunk_map(await self._store.get(ref))

    async def _load_chunks(self, document_id: str, fallback_ref: str | None) -> list[ChunkRecord]:
        chunk_map = await self._resolve_chunk_map(document_id, fallback_ref)

        async def _fetch(ref: str) -> ChunkRecord:
            return load_chunk_record(await self._store.get(ref))

        results = await throttled_gather(
            [_fetch(ref) for ref in chunk_map.chunk_refs],
            semaphore=asyncio.Semaphore(self._concurrency),
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def _vector(
        self,
        document_id: str,
        query: str,
        query_vector: list[float],
        chunks: list[ChunkRecord],
        top_k: int,
    ) -> RetrievalResult:
        dimension = len(query_vector)
        compatible = [c for c in chunks if c.dimension == dimension]
        if not compatible:
            logger.warning(
                "retrieval_no_compatible_embeddings",
                document_id=document_id,
                query_dimension=dimension,
                stored_dimensions=sorted({c.dimension for c in chunks}),
            )
            return self._lexical(document_id, query, chunks, top_k)

        # Too few compatible chunks to fill the result: rank everything
        # lexically rather than mixing unranked chunks into a vector result.
        if len(compatible) < min(top_k, len(chunks)):
            logger.warning(
                "retrieval_partial_embeddings",
                document_id=document_id,
                compatible=len(compatible),
                total=len(chunks),
                top_k=top_k,
            )
            return self._lexical(document_id, query, chunks, top_k)

        ranked = rank_by_cosine(query_vector, [c.embedding for c in compatible], top_k)
        scored = [
            ScoredChunk(
                chunk_index=compatible[idx].chunk_index,
                text=compatible[idx].text,
                score=score,
            )
            for idx, score in ranked
        ]

        logger.debug(
            "retrieval_vector",
            document_id=document_id,
            compatible=len(compatible),
            total=len(chunks),
            returned=len(scored),
        )
        return RetrievalResult(
            document_id=document_id,
            query=query,
            strategy=RetrievalStrategy.VECTOR,
            chunks=scored,
        )

    def _lexical(
        self,
        document_id: str,
        query: str,
        chunks: list[ChunkRecord],
        top_k: int,
    ) -> RetrievalResult:
        query_tokens = set(lexical_tokens(query))
        normalized_query = normalize_for_match(query)

        scored: list[ScoredChunk] = []
        for c in chunks:
            chunk_tokens = set(lexical_tokens(c.text))
            score = len(query_tokens & chunk_tokens)
            if normalized_query and normalized_query in normalize_for_match(c.text):
                score += EXACT_MATCH_BONUS
            scored.append(ScoredChunk(chunk_index=c.chunk_index, text=c.text, score=float(score)))

        if not any(s.score > 0 for s in scored):
            logger.info("retrieval_first_k", document_id=document_id, total=len(chunks))
            return RetrievalResult(
                document_id=document_id,
                query=query,
                strategy=RetrievalStrategy.FIRST_K,
                chunks=scored[:top_k],
            )

        # sorted() is stable: equal scores keep document order.
        ranked = sorted(scored, key=lambda s: s.score, reverse=True)
        logger.info(
            "retrieval_lexical",
            document_id=document_id,
            total=len(chunks),
            best_score=ranked[0].score,
        )
        return RetrievalResult(
            document_id=document_id,
            query=query,
            strategy=RetrievalStrategy.LEXICAL,
            chunks=ranked[:top_k],
        )
