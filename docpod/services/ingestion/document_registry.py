"""Content-hash registry: the dedup gate at the top of ingestion.

Thin service over an :class:`IRegistryProvider`.  Owns the hashing rule
(SHA-256 of the UTF-8 extracted text) so every caller computes the same
key for the same content, and exposes the lookups the ingestion pipeline
and the retriever need.
"""

from __future__ import annotations

import hashlib

import structlog

from docpod.interfaces.registry_provider import IRegistryProvider
from docpod.models.document import RegistryEntry

logger = structlog.get_logger(logger_name=__name__)


class DocumentRegistry:
    """Maps content hashes to the document that holds that content."""

    def __init__(self, provider: IRegistryProvider) -> None:
        self._provider = provider

    @staticmethod
    def hash(text: str) -> str:
        """Return the SHA-256 hex digest of *text* encoded as UTF-8."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    async def initialize(self) -> None:
        await self._provider.initialize()

    async def find_by_hash(self, content_hash: str) -> RegistryEntry | None:
        return await self._provider.get_by_hash(content_hash)

    async def find_by_document_id(self, document_id: str) -> RegistryEntry | None:
        return await self._provider.get_by_document_id(document_id)

    async def register(self, entry: RegistryEntry) -> None:
        """Add *entry*, overwriting any existing entry for the same hash."""
        await self._provider.upsert(entry)
        logger.info(
            "document_registered",
            document_id=entry.document_id,
            content_hash=entry.content_hash[:12],
            chunk_count=entry.chunk_count,
            version=entry.metadata.version,
        )

    async def list_entries(self) -> list[RegistryEntry]:
        return await self._provider.list_entries()
