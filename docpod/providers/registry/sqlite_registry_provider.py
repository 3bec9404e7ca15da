"""SQLite-backed document registry provider.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Providers (concrete adapter implementing IRegistryProvider).
# Database: ``data/registry.db`` - one row per content hash.
#
# The PRIMARY KEY on content_hash is what enforces "at most one entry
# per content hash"; registering an existing hash is an upsert.
# Document metadata is stored as a JSON column so the row can be turned
# back into a RegistryEntry without joins.
#
# Uses ``aiosqlite`` for async I/O and ``PRAGMA journal_mode=WAL`` for
# concurrent read safety.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from docpod.interfaces.registry_provider import IRegistryProvider
from docpod.models.document import DocumentMetadata, RegistryEntry

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/registry.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_REGISTRY_TABLE = """\
CREATE TABLE IF NOT EXISTS document_registry (
    content_hash        TEXT    PRIMARY KEY,
    document_id         TEXT    NOT NULL,
    metadata_json       TEXT    NOT NULL,
    chunk_map_ref       TEXT    NOT NULL,
    text_ref            TEXT    NOT NULL DEFAULT '',
    metadata_ref        TEXT    NOT NULL DEFAULT '',
    chunk_count         INTEGER NOT NULL DEFAULT 0,
    processing_time_ms  INTEGER NOT NULL DEFAULT 0,
    registered_at       TEXT    NOT NULL
);
"""

_CREATE_INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_registry_document ON document_registry(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_registry_registered ON document_registry(registered_at);",
]

# ── DML ───────────────────────────────────────────────────────────────

_UPSERT_ENTRY = """\
INSERT INTO document_registry (
    content_hash, document_id, metadata_json, chunk_map_ref, text_ref,
    metadata_ref, chunk_count, processing_time_ms, registered_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(content_hash)
DO UPDATE SET document_id = excluded.document_id,
              metadata_json = excluded.metadata_json,
              chunk_map_ref = excluded.chunk_map_ref,
              text_ref = excluded.text_ref,
              metadata_ref = excluded.metadata_ref,
              chunk_count = excluded.chunk_count,
              processing_time_ms = excluded.processing_time_ms,
              registered_at = excluded.registered_at;
"""

_SELECT_COLUMNS = """\
SELECT content_hash, document_id, metadata_json, chunk_map_ref, text_ref,
       metadata_ref, chunk_count, processing_time_ms, registered_at
FROM document_registry
"""

_SELECT_BY_HASH = _SELECT_COLUMNS + "WHERE content_hash = ?;"
_SELECT_BY_DOCUMENT = _SELECT_COLUMNS + "WHERE document_id = ? ORDER BY registered_at DESC LIMIT 1;"
_SELECT_ALL = _SELECT_COLUMNS + "ORDER BY registered_at DESC;"


class SQLiteRegistryProvider(IRegistryProvider):
    """SQLite-backed registry of ingested documents, keyed by content hash."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the registry table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_REGISTRY_TABLE)
            for idx_sql in _CREATE_INDICES:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("registry_db_initialized", path=str(self._db_path))

    def get_provider_name(self) -> str:
        return "sqlite_registry"

    async def get_by_hash(self, content_hash: str) -> RegistryEntry | None:
        return await self._fetch_one(_SELECT_BY_HASH, (content_hash,))

    async def get_by_document_id(self, document_id: str) -> RegistryEntry | None:
        return await self._fetch_one(_SELECT_BY_DOCUMENT, (document_id,))

    async def upsert(self, entry: RegistryEntry) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_ENTRY, (
                entry.content_hash,
                entry.document_id,
                entry.metadata.model_dump_json(),
                entry.chunk_map_ref,
                entry.text_ref,
                entry.metadata_ref,
                entry.chunk_count,
                entry.processing_time_ms,
                entry.registered_at.isoformat(),
            ))
            await db.commit()
        logger.info(
            "registry_entry_upserted",
            content_hash=entry.content_hash[:12],
            document_id=entry.document_id,
            chunks=entry.chunk_count,
        )

    async def list_entries(self) -> list[RegistryEntry]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_ALL)
            rows = await cursor.fetchall()
        return [self._row_to_entry(dict(row)) for row in rows]

    # ── Helpers ────────────────────────────────────────────────────────

    async def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> RegistryEntry | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(dict(row))

    @staticmethod
    def _row_to_entry(row: dict[str, Any]) -> RegistryEntry:
        return RegistryEntry(
            content_hash=row["content_hash"],
            document_id=row["document_id"],
            metadata=DocumentMetadata.model_validate_json(row["metadata_json"]),
            chunk_map_ref=row["chunk_map_ref"],
            text_ref=row["text_ref"],
            metadata_ref=row["metadata_ref"],
            chunk_count=row["chunk_count"],
            processing_time_ms=row["processing_time_ms"],
            registered_at=datetime.fromisoformat(row["registered_at"]),
        )
