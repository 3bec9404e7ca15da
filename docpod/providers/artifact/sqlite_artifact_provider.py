"""SQLite-backed podcast artifact provider.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Providers (concrete adapter implementing IArtifactStore).
# Database: ``data/artifacts.db`` - one row per document id.
#
# The podcast workflow reads this table before doing any work, so the
# UNIQUE document_id column doubles as the idempotence key.  Audio is
# never stored here, only the object-store reference to it.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from docpod.interfaces.artifact_store import IArtifactStore
from docpod.models.podcast import PodcastArtifact

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/artifacts.db")

# ── Schema DDL ────────────────────────────────────────────────────────

_CREATE_ARTIFACTS_TABLE = """\
CREATE TABLE IF NOT EXISTS podcast_artifacts (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    podcast_id       TEXT    NOT NULL UNIQUE,
    document_id      TEXT    NOT NULL UNIQUE,
    title            TEXT    NOT NULL,
    description      TEXT    NOT NULL DEFAULT '',
    script           TEXT    NOT NULL,
    audio_ref        TEXT,
    duration_seconds REAL,
    created_at       TEXT    NOT NULL
);
"""

# ── DML ───────────────────────────────────────────────────────────────

_UPSERT_ARTIFACT = """\
INSERT INTO podcast_artifacts (
    podcast_id, document_id, title, description, script, audio_ref,
    duration_seconds, created_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(document_id)
DO UPDATE SET podcast_id = excluded.podcast_id,
              title = excluded.title,
              description = excluded.description,
              script = excluded.script,
              audio_ref = excluded.audio_ref,
              duration_seconds = excluded.duration_seconds,
              created_at = excluded.created_at;
"""

_SELECT_BY_DOCUMENT = """\
SELECT podcast_id, document_id, title, description, script, audio_ref,
       duration_seconds, created_at
FROM podcast_artifacts
WHERE document_id = ?;
"""

_DELETE_BY_DOCUMENT = "DELETE FROM podcast_artifacts WHERE document_id = ?;"


class SQLiteArtifactProvider(IArtifactStore):
    """SQLite-backed store of generated podcast scripts."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the artifacts table if it doesn't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_ARTIFACTS_TABLE)
            await db.commit()
        logger.info("artifact_db_initialized", path=str(self._db_path))

    def get_provider_name(self) -> str:
        return "sqlite_artifact"

    async def get(self, document_id: str) -> PodcastArtifact | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_BY_DOCUMENT, (document_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_artifact(dict(row))

    async def save(self, artifact: PodcastArtifact) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_ARTIFACT, (
                artifact.podcast_id,
                artifact.document_id,
                artifact.title,
                artifact.description,
                artifact.script,
                artifact.audio_ref,
                artifact.duration_seconds,
                artifact.created_at.isoformat(),
            ))
            await db.commit()
        logger.info(
            "podcast_artifact_saved",
            podcast_id=artifact.podcast_id,
            document_id=artifact.document_id,
            has_audio=artifact.audio_ref is not None,
        )

    async def delete(self, document_id: str) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_DELETE_BY_DOCUMENT, (document_id,))
            await db.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_artifact(row: dict[str, Any]) -> PodcastArtifact:
        return PodcastArtifact(
            podcast_id=row["podcast_id"],
            document_id=row["document_id"],
            title=row["title"],
            description=row["description"],
            script=row["script"],
            audio_ref=row["audio_ref"],
            duration_seconds=row["duration_seconds"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
