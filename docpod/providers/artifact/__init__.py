"""Podcast artifact persistence."""

from docpod.providers.artifact.sqlite_artifact_provider import SQLiteArtifactProvider

__all__ = ["SQLiteArtifactProvider"]
