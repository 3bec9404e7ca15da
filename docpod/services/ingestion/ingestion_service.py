"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **extract -> hash/dedup -> chunk -> embed -> store -> register**.

The :class:`IngestionService` implements the **Orchestrator pattern**: it
coordinates the text extractor, the chunker, the embedding provider, the
object store and the registry without any of them knowing about each
other.  ``ingest`` follows a strict order where every step is a hard
dependency of the next:

    1. TextExtractor -- upload bytes to plain text
    2. DocumentRegistry.hash -- SHA-256 of the text; a registered hash
       short-circuits with the existing document id
    3. IObjectStore -- raw text stored
    4. TextChunker -- paragraph/sentence chunks
    5. IEmbeddingProvider -- one vector per chunk
    6. IObjectStore -- one ChunkRecord per chunk, then the ChunkMap,
       then the DocumentMetadata
    7. DocumentRegistry.register -- the document becomes visible

Nothing is registered unless every write succeeded.  When a write fails
part-way, the objects this ingestion created are deleted again before the
error propagates; objects that already existed (content addressing means
a resync can share its raw-text object with the previous version) are
left alone.  Cancellation rolls back the same way.  Concurrent runs for the
same content hash are serialized, so identical uploads racing each other
still produce one document.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import PurePath
from typing import TYPE_CHECKING

import structlog

from docpod.interfaces.object_store import content_ref
from docpod.models.document import (
    ChunkMap,
    ChunkRecord,
    DocumentMetadata,
    DuplicateCheck,
    IngestionResult,
    RegistryEntry,
)
from docpod.services.ingestion.chunker import TextChunker
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.services.ingestion.text_extractor import TextExtractor
from docpod.utils.concurrency import throttled_gather
from docpod.utils.errors import DocumentNotFoundError, IngestionError

if TYPE_CHECKING:
    from docpod.interfaces.embedding_provider import IEmbeddingProvider
    from docpod.interfaces.object_store import IObjectStore

logger = structlog.get_logger(logger_name=__name__)

_JSON = "application/json"


class _WriteLog:
    """Records the object references one ingestion run created."""

    def __init__(self, store: IObjectStore) -> None:
        self._store = store
        self.created: list[str] = []

    async def put(self, data: bytes, content_type: str) -> str:
        existed = await self._store.exists(content_ref(data))
        ref = await self._store.put(data, content_type)
        if not existed:
            self.created.append(ref)
        return ref

    async def rollback(self) -> None:
        for ref in reversed(self.created):
            try:
                await self._store.delete(ref)
            except Exception as exc:
                # Keep deleting; the original failure is what the caller sees.
                logger.warning("ingestion_rollback_delete_failed", ref=ref, error=str(exc))
        logger.info("ingestion_rolled_back", deleted=len(self.created))


class IngestionService:
    """Turns uploaded bytes into a registered, chunked and embedded document.

    Parameters
    ----------
    extractor:
        Converts upload bytes into plain text.
    chunker:
        Splits text into embedding-sized chunks.
    embedding_provider:
        Computes one vector per chunk.
    object_store:
        Content-addressed store for raw text, chunks, chunk map and metadata.
    registry:
        Dedup gate and source of truth for each document's chunk map.
    storage_concurrency:
        Maximum number of chunk objects written at once.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        object_store: IObjectStore,
        registry: DocumentRegistry,
        storage_concurrency: int = 8,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._store = object_store
        self._registry = registry
        self._storage_concurrency = max(1, storage_concurrency)
        # One lock per content hash with a pending run, dropped when unused.
        self._hash_locks: dict[str, asyncio.Lock] = {}
        self._hash_lock_users: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        data: bytes,
        media_type: str,
        filename: str = "",
        bypass_dedup: bool = False,
    ) -> IngestionResult:
        """Ingest one uploaded document.

        Returns
        -------
        IngestionResult
            The new document id, or the existing one with
            ``deduplicated=True`` when identical content is already
            registered and *bypass_dedup* is false.

        Raises
        ------
        DocumentInputError
            The upload could not be turned into text.
        EmbeddingError, StorageError, IngestionError
            A later step failed; objects written so far were removed.
        """
        return await self._ingest(data, media_type, filename, bypass_dedup=bypass_dedup)

    async def resync(
        self,
        document_id: str,
        data: bytes,
        media_type: str,
        filename: str = "",
    ) -> IngestionResult:
        """Re-ingest *document_id* from fresh bytes as a new document version.

        The new record gets ``version = previous + 1`` and
        ``supersedes = document_id``; the registry entry for the content
        hash is overwritten to point at it.
        """
        previous = await self._registry.find_by_document_id(document_id)
        if previous is None:
            raise DocumentNotFoundError(
                message=f"Document {document_id} is not registered",
            )
        return await self._ingest(
            data,
            media_type,
            filename or previous.metadata.filename,
            bypass_dedup=True,
            previous=previous.metadata,
        )

    async def check_duplicate(
        self,
        data: bytes,
        media_type: str,
        filename: str = "",
    ) -> DuplicateCheck:
        """Report whether this content is already registered.  Writes nothing."""
        text = await self._extractor.extract(data, media_type, filename)
        content_hash = self._registry.hash(text)
        entry = await self._registry.find_by_hash(content_hash)
        if entry is None:
            return DuplicateCheck(exists=False, content_hash=content_hash)
        return DuplicateCheck(
            exists=True,
            content_hash=content_hash,
            document_id=entry.document_id,
            metadata=entry.metadata,
            processing_time_ms=entry.processing_time_ms,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _ingest(
        self,
        data: bytes,
        media_type: str,
        filename: str,
        bypass_dedup: bool,
        previous: DocumentMetadata | None = None,
    ) -> IngestionResult:
        start = time.monotonic()

        # Step 1: extract.
        text = await self._extractor.extract(data, media_type, filename)

        # Step 2: dedup.  Runs for the same content are serialized from the
        # registry check through registration.
        content_hash = self._registry.hash(text)
        async with self._content_lock(content_hash):
            return await self._ingest_locked(
                data, text, content_hash, media_type, filename, bypass_dedup, previous, start
            )

    @asynccontextmanager
    async def _content_lock(self, content_hash: str) -> AsyncIterator[None]:
        lock = self._hash_locks.setdefault(content_hash, asyncio.Lock())
        self._hash_lock_users[content_hash] = self._hash_lock_users.get(content_hash, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._hash_lock_users[content_hash] -= 1
            if not self._hash_lock_users[content_hash]:
                del self._hash_lock_users[content_hash]
                del self._hash_locks[content_hash]

    async def _ingest_locked(
        self,
        data: bytes,
        text: str,
        content_hash: str,
        media_type: str,
        filename: str,
        bypass_dedup: bool,
        previous: DocumentMetadata | None,
        start: float,
    ) -> IngestionResult:
        if not bypass_dedup:
            existing = await self._registry.find_by_hash(content_hash)
            if existing is not None:
                logger.info(
                    "ingestion_deduplicated",
                    document_id=existing.document_id,
                    content_hash=content_hash[:12],
                    filename=filename,
                )
                return IngestionResult(
                    document_id=existing.document_id,
                    content_hash=content_hash,
                    deduplicated=True,
                    chunk_count=existing.chunk_count,
                    processing_time_ms=existing.processing_time_ms,
                    version=existing.metadata.version,
                )

        # Step 3: identity.
        document_id = str(uuid.uuid4())
        writes = _WriteLog(self._store)

        try:
            # Step 4: raw text.
            text_ref = await writes.put(text.encode("utf-8"), "text/plain; charset=utf-8")

            # Step 5: chunk.
            chunks = self._chunker.chunk(text)
            if not chunks:
                raise IngestionError(message="Chunking produced no chunks")

            # Step 6: embed.
            embeddings = await self._embedding_provider.embed(chunks)
            if len(embeddings) != len(chunks):
                raise IngestionError(
                    message=f"Embedding provider returned {len(embeddings)} vectors for {len(chunks)} chunks",
                    provider_name=self._embedding_provider.get_provider_name(),
                )

            # Step 7: chunk objects and chunk map.
            chunk_refs = await self._store_chunks(writes, document_id, chunks, embeddings)
            chunk_map = ChunkMap(document_id=document_id, chunk_refs=chunk_refs)
            chunk_map_ref = await writes.put(chunk_map.model_dump_json().encode("utf-8"), _JSON)

            # Step 8: metadata.
            metadata = DocumentMetadata(
                document_id=document_id,
                content_hash=content_hash,
                title=PurePath(filename).stem if filename else "",
                filename=filename,
                media_type=media_type,
                file_size=len(data),
                chunk_count=len(chunks),
                version=previous.version + 1 if previous else 1,
                supersedes=previous.document_id if previous else None,
            )
            metadata_ref = await writes.put(metadata.model_dump_json().encode("utf-8"), _JSON)
        except BaseException as exc:
            logger.error(
                "ingestion_failed",
                document_id=document_id,
                filename=filename,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await writes.rollback()
            raise

        # Step 9: register.
        processing_time_ms = int((time.monotonic() - start) * 1000)
        entry = RegistryEntry(
            content_hash=content_hash,
            document_id=document_id,
            metadata=metadata,
            chunk_map_ref=chunk_map_ref,
            text_ref=text_ref,
            metadata_ref=metadata_ref,
            chunk_count=len(chunks),
            processing_time_ms=processing_time_ms,
        )
        try:
            await self._registry.register(entry)
        except BaseException:
            await writes.rollback()
            raise

        logger.info(
            "ingestion_complete",
            document_id=document_id,
            filename=filename,
            chunks=len(chunks),
            embedding_model=self._embedding_provider.get_model_name(),
            version=metadata.version,
            processing_time_ms=processing_time_ms,
        )
        return IngestionResult(
            document_id=document_id,
            content_hash=content_hash,
            deduplicated=False,
            chunk_count=len(chunks),
            processing_time_ms=processing_time_ms,
            version=metadata.version,
        )

    async def _store_chunks(
        self,
        writes: _WriteLog,
        document_id: str,
        chunks: list[str],
        embeddings: list[list[float]],
    ) -> list[str]:
        """Write one ChunkRecord per chunk; returns refs in chunk-index order."""
        model_name = self._embedding_provider.get_model_name()
        records = [
            ChunkRecord(
                document_id=document_id,
                chunk_index=i,
                text=text,
                embedding=vector,
                embedding_model=model_name,
            )
            for i, (text, vector) in enumerate(zip(chunks, embeddings))
        ]
        semaphore = asyncio.Semaphore(self._storage_concurrency)
        results = await throttled_gather(
            [writes.put(r.model_dump_json().encode("utf-8"), _JSON) for r in records],
            semaphore=semaphore,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)
