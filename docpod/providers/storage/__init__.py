"""Content-addressed object stores.

Three implementations of IObjectStore:
    1. MemoryObjectStore      -- process-local dict; tests and throwaway runs.
    2. FileSystemObjectStore  -- sharded directory tree with atomic writes.
    3. HTTPObjectStore        -- remote blob gateway over httpx, with
       explicit response classification and bounded retries.
"""

from docpod.providers.storage.filesystem_object_store import FileSystemObjectStore
from docpod.providers.storage.http_object_store import HTTPObjectStore
from docpod.providers.storage.memory_object_store import MemoryObjectStore

__all__ = ["FileSystemObjectStore", "HTTPObjectStore", "MemoryObjectStore"]
