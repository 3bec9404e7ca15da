"""Local-disk content-addressed object store.

Objects live at ``<root>/<first two hex chars>/<reference>`` so no single
directory grows unbounded.  Writes go to a temporary file in the same
directory and are renamed into place, so a reader never sees a partially
written object.  Blocking file I/O runs via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

import structlog

from docpod.interfaces.object_store import REF_PREFIX, IObjectStore, content_ref
from docpod.utils.errors import ObjectNotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)


class FileSystemObjectStore(IObjectStore):
    """Object store rooted at a local directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    # ------------------------------------------------------------------
    # IObjectStore implementation
    # ------------------------------------------------------------------

    async def put(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        ref = content_ref(data)
        path = self._path_for(ref)
        try:
            await asyncio.to_thread(self._write_sync, path, data)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to write {ref}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("object_put", ref=ref, size=len(data), content_type=content_type)
        return ref

    async def get(self, ref: str) -> bytes:
        path = self._path_for(ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ObjectNotFoundError(
                message=f"No object stored under {ref}",
                provider_name=self.get_provider_name(),
            ) from None
        except OSError as exc:
            raise StorageError(
                message=f"Failed to read {ref}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def exists(self, ref: str) -> bool:
        return await asyncio.to_thread(self._path_for(ref).exists)

    async def delete(self, ref: str) -> None:
        path = self._path_for(ref)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to delete {ref}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "filesystem_store"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _path_for(self, ref: str) -> Path:
        if not ref.startswith(REF_PREFIX) or "/" in ref or ".." in ref:
            raise StorageError(
                message=f"Malformed object reference: {ref!r}",
                provider_name=self.get_provider_name(),
            )
        digest = ref[len(REF_PREFIX):]
        return self._root / digest[:2] / ref

    @staticmethod
    def _write_sync(path: Path, data: bytes) -> None:
        if path.exists():
            # Same reference means same bytes.
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
