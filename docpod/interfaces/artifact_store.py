"""Abstract base class for podcast artifact persistence.

One artifact per document id.  The podcast workflow consults it before
doing any work, so a second request for the same document is served from
storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docpod.models.podcast import PodcastArtifact


# Concrete implementation: SQLiteArtifactProvider
# Located in: docpod/providers/artifact/
class IArtifactStore(ABC):
    """Contract for podcast artifact storage backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / files needed by the backend.  Idempotent."""

    @abstractmethod
    async def get(self, document_id: str) -> PodcastArtifact | None:
        """Return the artifact stored for *document_id*, or ``None``."""

    @abstractmethod
    async def save(self, artifact: PodcastArtifact) -> None:
        """Store *artifact*, replacing any artifact for the same document id."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Remove the artifact for *document_id*; return whether one existed."""
