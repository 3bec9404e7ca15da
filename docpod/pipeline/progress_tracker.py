"""Podcast workflow progress tracking with callback-based listener notification.

Tracks the current phase and progress percentage of each podcast job and
broadcasts updates to registered listener callbacks.  Jobs are keyed by
document id: at most one podcast exists per document, so the document id
is also the natural job id, and two documents can be processed
concurrently without cross-talk.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
#   PodcastWorkflow ──update()──→ ProgressTracker ──callback()──→ listener
#
#   1. The workflow calls tracker.update(document_id, phase, progress, msg)
#      at the start of every stage.
#   2. ProgressTracker stores the snapshot and calls the document's
#      listeners (sync or async callables).
#   3. GET /podcasts/{document_id}/status reads the latest snapshot.
#
# A listener that raises is logged and skipped; it never stops the
# workflow or the other listeners.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from docpod.models.podcast import PodcastPhase
from docpod.utils.logging import get_logger


@dataclass
class _JobStatus:
    """Internal snapshot of one document's podcast progress."""

    phase: PodcastPhase = PodcastPhase.PENDING
    progress: float = 0.0
    message: str = ""
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))  # noqa: UP017


class ProgressTracker:
    """Tracks and broadcasts podcast workflow progress per document."""

    def __init__(self) -> None:
        self._statuses: dict[str, _JobStatus] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        document_id: str,
        phase: PodcastPhase,
        progress: float,
        message: str = "",
    ) -> None:
        """Record a progress update and notify the document's listeners.

        Parameters
        ----------
        document_id:
            The document whose podcast job is running.
        phase:
            The phase that just started (or the terminal phase).
        progress:
            Completion percentage, clamped to 0.0 – 100.0.
        message:
            Human-readable status message.
        """
        progress = max(0.0, min(100.0, progress))
        self._statuses[document_id] = _JobStatus(phase=phase, progress=progress, message=message)

        self._logger.debug(
            "podcast_progress",
            document_id=document_id,
            phase=phase.value,
            progress=round(progress, 1),
            message=message,
        )
        await self._notify_listeners(document_id, phase, progress, message)

    def register_listener(self, document_id: str, callback: Callable) -> None:
        """Register ``callback(document_id, phase, progress, message)`` for a document."""
        listeners = self._listeners.setdefault(document_id, [])
        if callback not in listeners:
            listeners.append(callback)

    def unregister_listener(self, document_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(document_id, [])
        if callback in listeners:
            listeners.remove(callback)
        if not listeners:
            self._listeners.pop(document_id, None)

    def get_status(self, document_id: str) -> dict:
        """Return ``{phase, progress, message, updated_at}`` for *document_id*.

        A document with no recorded progress reports PENDING at 0%.
        """
        status = self._statuses.get(document_id)
        if status is None:
            return {
                "phase": PodcastPhase.PENDING.value,
                "progress": 0.0,
                "message": "",
                "updated_at": None,
            }
        return {
            "phase": status.phase.value,
            "progress": status.progress,
            "message": status.message,
            "updated_at": status.updated_at.isoformat(),
        }

    def clear(self, document_id: str) -> None:
        """Forget the snapshot for *document_id*."""
        self._statuses.pop(document_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(
        self,
        document_id: str,
        phase: PodcastPhase,
        progress: float,
        message: str,
    ) -> None:
        for callback in list(self._listeners.get(document_id, [])):
            try:
                result = callback(document_id, phase, progress, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    document_id=document_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
