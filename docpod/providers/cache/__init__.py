"""Cache providers.

In-memory TTL-based cache used to avoid repeating identical Q&A calls
(the same question against the same document within the TTL returns the
cached answer).

MemoryCacheProvider is a dict-based cache, fast but not shared across
processes.  For multi-worker deployments, swap in a Redis adapter
implementing ICacheProvider without changing any business logic.
"""

from docpod.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
