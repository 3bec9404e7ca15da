"""Document registry persistence."""

from docpod.providers.registry.sqlite_registry_provider import SQLiteRegistryProvider

__all__ = ["SQLiteRegistryProvider"]
