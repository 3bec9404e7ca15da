"""Abstract base class for document-registry persistence.

The registry maps a content hash to the document that holds that content.
It is the dedup gate at the top of ingestion and the authoritative
source of a document's latest chunk map.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docpod.models.document import RegistryEntry


# Concrete implementation: SQLiteRegistryProvider
# Located in: docpod/providers/registry/
class IRegistryProvider(ABC):
    """Contract for registry storage backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / files needed by the backend.  Idempotent."""

    @abstractmethod
    async def get_by_hash(self, content_hash: str) -> RegistryEntry | None:
        """Return the entry for *content_hash*, or ``None``."""

    @abstractmethod
    async def get_by_document_id(self, document_id: str) -> RegistryEntry | None:
        """Return the entry currently pointing at *document_id*, or ``None``."""

    @abstractmethod
    async def upsert(self, entry: RegistryEntry) -> None:
        """Insert *entry*, replacing any existing entry with the same hash."""

    @abstractmethod
    async def list_entries(self) -> list[RegistryEntry]:
        """Return all entries, newest registration first."""
