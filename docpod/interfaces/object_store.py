"""Abstract base class for content-addressed object stores.

Everything the ingestion pipeline writes (raw text, chunk records, chunk
maps, document metadata, synthesized audio) goes through this contract.
References are derived from the bytes themselves, so storing the same
bytes twice yields the same reference.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod

# Prefix identifying the digest algorithm inside a reference string.
REF_PREFIX = "sha256-"


def content_ref(data: bytes) -> str:
    """Return the content-addressed reference for *data*."""
    return REF_PREFIX + hashlib.sha256(data).hexdigest()


# Concrete implementations:
#   MemoryObjectStore      - process-local dict (tests, ephemeral runs)
#   FileSystemObjectStore  - sharded directory tree on local disk
#   HTTPObjectStore        - remote storage gateway over httpx
# Located in: docpod/providers/storage/
class IObjectStore(ABC):
    """Contract for durable byte-blob storage keyed by content reference."""

    @abstractmethod
    async def put(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store *data* and return its reference.

        Raises
        ------
        docpod.utils.errors.StorageError
            If the write fails.  ``retryable`` is set for transient
            failures; an unparseable or unexpected backend response is
            never treated as success.
        """

    @abstractmethod
    async def get(self, ref: str) -> bytes:
        """Return the bytes stored under *ref*.

        Raises
        ------
        docpod.utils.errors.ObjectNotFoundError
            If nothing is stored under *ref*.
        docpod.utils.errors.StorageError
            On any other read failure.
        """

    @abstractmethod
    async def exists(self, ref: str) -> bool:
        """Return ``True`` if *ref* is present in the store."""

    @abstractmethod
    async def delete(self, ref: str) -> None:
        """Remove *ref*; a no-op if it is absent."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
