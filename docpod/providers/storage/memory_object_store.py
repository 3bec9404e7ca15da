"""Process-local content-addressed object store.

Used by the test suite and for throwaway runs; nothing survives a restart.
"""

from __future__ import annotations

import structlog

from docpod.interfaces.object_store import IObjectStore, content_ref
from docpod.utils.errors import ObjectNotFoundError

logger = structlog.get_logger(logger_name=__name__)


class MemoryObjectStore(IObjectStore):
    """Dict-backed object store keyed by content reference."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str]] = {}

    async def put(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        ref = content_ref(data)
        self._objects[ref] = (data, content_type)
        logger.debug("object_put", ref=ref, size=len(data), content_type=content_type)
        return ref

    async def get(self, ref: str) -> bytes:
        try:
            return self._objects[ref][0]
        except KeyError:
            raise ObjectNotFoundError(
                message=f"No object stored under {ref}",
                provider_name=self.get_provider_name(),
            ) from None

    async def exists(self, ref: str) -> bool:
        return ref in self._objects

    async def delete(self, ref: str) -> None:
        self._objects.pop(ref, None)

    def get_provider_name(self) -> str:
        return "memory_store"

    def __len__(self) -> int:
        return len(self._objects)
