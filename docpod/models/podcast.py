"""Podcast workflow state models.

Defines Pydantic v2 models for workflow phases, stage failures, the
transient ``SynthesisJob`` and the persisted ``PodcastArtifact``.  All
models use frozen config - stages produce new SynthesisJob instances via
model_copy(update={...}).

Architecture note:
    SynthesisJob is the single source of truth for one podcast request.
    The workflow (docpod/pipeline/podcast_workflow.py) threads it through
    an ordered list of stage functions; a stage that fails records a
    StageFailure on the job instead of raising, and the workflow stops
    running stages once the job is FAILED.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# PodcastPhase - the stages of the content-synthesis workflow.
# ---------------------------------------------------------------------------
class PodcastPhase(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Phases of the podcast workflow, in execution order.

        PENDING → GENERATING_QUESTIONS → RETRIEVING → SYNTHESIZING_SCRIPT →
        SYNTHESIZING_AUDIO → PERSISTING → DONE

    FAILED is terminal and can follow any working phase.
    """

    PENDING = "PENDING"
    GENERATING_QUESTIONS = "GENERATING_QUESTIONS"
    RETRIEVING = "RETRIEVING"
    SYNTHESIZING_SCRIPT = "SYNTHESIZING_SCRIPT"
    SYNTHESIZING_AUDIO = "SYNTHESIZING_AUDIO"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"


class JobStatus(str, Enum):  # noqa: UP042
    """Terminal status tag of a SynthesisJob."""

    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# StageFailure - the structured error a failed stage leaves on the job.
# ---------------------------------------------------------------------------
class StageFailure(BaseModel):
    """A stage-fatal error recorded on the job."""

    model_config = ConfigDict(frozen=True)

    stage: PodcastPhase
    message: str
    timed_out: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# SynthesisJob - state threaded through the workflow stages.
# ---------------------------------------------------------------------------
class SynthesisJob(BaseModel):
    """The current state of one podcast generation request.

    ``questions`` and ``answers`` are parallel lists: once the RETRIEVING
    stage has run they have the same length and ``answers[i]`` answers
    ``questions[i]``.  Indices whose answer is an error placeholder are
    listed in ``failed_indices``.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    script_only: bool = False
    context: str = ""
    questions: list[str] = Field(default_factory=list)
    answers: list[str] = Field(default_factory=list)
    failed_indices: list[int] = Field(default_factory=list)
    script: str = ""
    title: str = ""
    audio_ref: str | None = None
    audio_duration_seconds: float | None = None
    podcast_id: str | None = None
    phase: PodcastPhase = PodcastPhase.PENDING
    status: JobStatus = JobStatus.PENDING
    error: StageFailure | None = None
    from_cache: bool = False
    persisted: bool = False
    warnings: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @property
    def is_failed(self) -> bool:
        return self.status == JobStatus.FAILED

    def answered_pairs(self) -> list[tuple[str, str]]:
        """Return (question, answer) pairs whose answer is not a placeholder."""
        failed = set(self.failed_indices)
        return [
            (q, a)
            for idx, (q, a) in enumerate(zip(self.questions, self.answers))
            if idx not in failed
        ]

    def fail(self, stage: PodcastPhase, message: str, timed_out: bool = False) -> SynthesisJob:
        """Return a copy of this job marked FAILED at *stage*."""
        return self.model_copy(
            update={
                "phase": PodcastPhase.FAILED,
                "status": JobStatus.FAILED,
                "error": StageFailure(stage=stage, message=message, timed_out=timed_out),
                "completed_at": _utcnow(),
            }
        )


# ---------------------------------------------------------------------------
# PodcastArtifact - what the artifact store keeps per document.
# ---------------------------------------------------------------------------
class PodcastArtifact(BaseModel):
    """Persisted result of a podcast job, one per document id."""

    model_config = ConfigDict(frozen=True)

    podcast_id: str = Field(default_factory=lambda: f"podcast-{uuid.uuid4()}")
    document_id: str
    title: str
    description: str = ""
    script: str
    audio_ref: str | None = None
    duration_seconds: float | None = None
    created_at: datetime = Field(default_factory=_utcnow)
