"""Content-synthesis workflow: document -> questions -> answers -> script -> audio.

Coordinates the question generator (LLM), the Q&A service, the script
writer (LLM), text-to-speech and the artifact store into one bounded run.
Each stage receives the frozen :class:`SynthesisJob` and returns a new one
via ``model_copy``; a stage that cannot continue records a
:class:`StageFailure` on the job instead of raising, and the workflow
stops running stages once the job is FAILED.

ARCHITECTURE NOTE:
    The stages are a plain ordered list, not a graph:

        GENERATING_QUESTIONS → RETRIEVING → SYNTHESIZING_SCRIPT →
        (SYNTHESIZING_AUDIO) → PERSISTING → DONE | FAILED

    Failure policy per stage:
        - GENERATING_QUESTIONS: LLM trouble degrades to the baseline
          questions; never fatal.
        - RETRIEVING: one question failing leaves an error placeholder at
          its index; only all questions failing is fatal.
        - SYNTHESIZING_SCRIPT: an LLM error or a script under 50
          characters is fatal.
        - SYNTHESIZING_AUDIO: failure is logged and the job continues
          script-only.
        - PERSISTING: failure is logged; the job still finishes DONE with
          ``persisted=False``.

    The whole run is bounded by ``asyncio.wait_for``; on timeout the job
    fails at whichever phase was running.  ``cancel(document_id)`` stops
    new per-question work from starting; in-flight calls finish.

    A document that already has a stored artifact is served from the
    artifact store without any LLM calls.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from docpod.interfaces.artifact_store import IArtifactStore
from docpod.interfaces.llm_provider import ILLMProvider
from docpod.interfaces.object_store import IObjectStore
from docpod.interfaces.tts_provider import AudioClip, ITTSProvider
from docpod.models.podcast import JobStatus, PodcastArtifact, PodcastPhase, SynthesisJob
from docpod.pipeline.progress_tracker import ProgressTracker
from docpod.services.qa_service import QAService
from docpod.services.retriever import Retriever
from docpod.utils.concurrency import gather_until_cancelled
from docpod.utils.errors import DocumentNotFoundError, PipelineError
from docpod.utils.logging import get_logger
from docpod.utils.text_normalizer import (
    dedupe_questions,
    parse_numbered_questions,
    strip_think_blocks,
)

BASELINE_QUESTIONS: tuple[str, ...] = (
    "What is this document about and why is it important?",
    "What are the most exciting aspects of this topic?",
    "What challenges or controversies exist in this area?",
    "How might this topic evolve in the future?",
    "What practical applications or implications does this have for our audience?",
)

# Query used to pull representative chunks for the context preview.
CONTEXT_QUERY = "What is this document about? Summarize its main topic and key points."

PREVIEW_CHARS = 2000
TITLE_PREVIEW_CHARS = 50
MIN_SCRIPT_CHARS = 50
ANSWER_PLACEHOLDER = "[Error: Could not get an answer for this question due to: {reason}]"

# Byte rates used to estimate duration when the TTS provider does not report one.
_PCM_BYTES_PER_SECOND = 44100 * 2  # 44.1kHz, 16-bit, mono
_MP3_BYTES_PER_SECOND = 128000 / 8  # 128 kbps

# Phases whose failure leaves a usable script-only podcast.
_OPTIONAL_PHASES = frozenset({PodcastPhase.SYNTHESIZING_AUDIO, PodcastPhase.PERSISTING})


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def estimate_duration(clip: AudioClip) -> float:
    """Return the clip's duration in seconds, estimating from size when unknown."""
    if clip.duration_seconds is not None:
        return clip.duration_seconds
    if "mpeg" in clip.content_type or "mp3" in clip.content_type:
        return round(len(clip.data) / _MP3_BYTES_PER_SECOND, 2)
    return round(len(clip.data) / _PCM_BYTES_PER_SECOND, 2)


def make_title(preview: str, fallback: str) -> str:
    """``"Podcast: "`` plus the first 50 characters of *preview* (``...`` if cut)."""
    head = " ".join(preview[:TITLE_PREVIEW_CHARS].split())
    if not head:
        return f"Podcast: {fallback}"
    suffix = "..." if len(preview) > TITLE_PREVIEW_CHARS else ""
    return f"Podcast: {head}{suffix}"


@dataclass
class _Run:
    """Mutable handle on the in-flight job, read when the time budget runs out."""

    job: SynthesisJob
    phase: PodcastPhase = PodcastPhase.PENDING


class PodcastWorkflow:
    """Turns one document into a narrative podcast script (and optionally audio).

    Parameters
    ----------
    qa_service:
        Answers each question from the document's chunks.
    retriever:
        Supplies representative chunks for the context preview.
    llm:
        Generates custom questions and writes the script.
    artifact_store:
        Holds one finished podcast per document.
    object_store:
        Receives synthesized audio.
    progress_tracker:
        Receives a progress update at the start of every phase.
    tts_provider:
        Optional; without one every job is script-only.
    question_count:
        Number of questions asked per job (the first baseline question
        is always included).
    custom_question_count:
        Document-specific questions requested from the LLM; 0 disables.
    question_concurrency:
        Maximum number of questions answered at once.
    timeout_seconds:
        Time budget for one run.
    rng:
        Random source used to sample questions; inject a seeded
        ``random.Random`` for reproducible selection.
    """

    _QUESTION_SYSTEM_PROMPT = (
        "You are a podcast host preparing to talk about a document. Generate {count} "
        "additional specific, insightful questions based on the document summary provided. "
        "Return them as a numbered list, one question per line."
    )

    _SCRIPT_SYSTEM_PROMPT = (
        "You are a podcast script writer. Write an engaging, roughly 3-minute podcast "
        "episode about a document as a single first-person monologue spoken by one "
        "narrator. Do NOT write a dialogue or transcript: no HOST:, GUEST: or other "
        "speaker labels, no stage directions.\n\n"
        "Open with a short introduction of the topic, work through the key points from "
        "the questions and answers provided, and close with a brief conclusion. Keep it "
        "conversational, informative and faithful to the answers; do not invent facts "
        "that are not in them. Aim for about 450-500 words."
    )

    def __init__(
        self,
        qa_service: QAService,
        retriever: Retriever,
        llm: ILLMProvider,
        artifact_store: IArtifactStore,
        object_store: IObjectStore,
        progress_tracker: ProgressTracker,
        tts_provider: ITTSProvider | None = None,
        question_count: int = 5,
        custom_question_count: int = 3,
        question_concurrency: int = 3,
        timeout_seconds: float = 300.0,
        voice: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._qa = qa_service
        self._retriever = retriever
        self._llm = llm
        self._artifacts = artifact_store
        self._store = object_store
        self._progress = progress_tracker
        self._tts = tts_provider
        self._question_count = max(1, question_count)
        self._custom_question_count = max(0, custom_question_count)
        self._question_concurrency = max(1, question_concurrency)
        self._timeout_seconds = timeout_seconds
        self._voice = voice
        self._rng = rng or random.Random()
        self._cancelled: set[str] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

        # (phase, stage, progress percent when the phase starts)
        self._stages = [
            (PodcastPhase.GENERATING_QUESTIONS, self._generate_questions, 10.0),
            (PodcastPhase.RETRIEVING, self._answer_questions, 25.0),
            (PodcastPhase.SYNTHESIZING_SCRIPT, self._write_script, 60.0),
            (PodcastPhase.SYNTHESIZING_AUDIO, self._synthesize_audio, 75.0),
            (PodcastPhase.PERSISTING, self._persist, 90.0),
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, document_id: str, script_only: bool = False) -> SynthesisJob:
        """Generate (or fetch) the podcast for *document_id*.

        Returns
        -------
        SynthesisJob
            DONE with a script, or FAILED with ``error`` naming the stage.

        Raises
        ------
        DocumentNotFoundError
            If the document is not registered.
        """
        self._cancelled.discard(document_id)

        cached = await self._load_cached(document_id, script_only)
        if cached is not None:
            return cached

        run = _Run(job=SynthesisJob(document_id=document_id, script_only=script_only))
        try:
            job = await asyncio.wait_for(self._execute(run), timeout=self._timeout_seconds)
        except asyncio.TimeoutError:
            job = self._timed_out(run)
        finally:
            self._cancelled.discard(document_id)

        if job.is_failed:
            await self._progress.update(
                document_id, PodcastPhase.FAILED, 100.0, job.error.message if job.error else ""
            )
        else:
            await self._progress.update(document_id, PodcastPhase.DONE, 100.0, "Podcast ready")
        return job

    def cancel(self, document_id: str) -> None:
        """Stop starting new work for *document_id*'s running job."""
        self._cancelled.add(document_id)
        self._logger.info("podcast_cancel_requested", document_id=document_id)

    def is_cancelled(self, document_id: str) -> bool:
        return document_id in self._cancelled

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def _load_cached(self, document_id: str, script_only: bool) -> SynthesisJob | None:
        try:
            artifact = await self._artifacts.get(document_id)
        except Exception as exc:
            self._logger.warning(
                "podcast_cache_lookup_failed", document_id=document_id, error=str(exc)
            )
            return None
        if artifact is None:
            return None

        self._logger.info(
            "podcast_served_from_store",
            document_id=document_id,
            podcast_id=artifact.podcast_id,
            script_only=script_only,
        )
        # A script-only request never hands out the stored audio.
        return SynthesisJob(
            document_id=document_id,
            script_only=script_only,
            script=artifact.script,
            title=artifact.title,
            audio_ref=None if script_only else artifact.audio_ref,
            audio_duration_seconds=None if script_only else artifact.duration_seconds,
            podcast_id=artifact.podcast_id,
            phase=PodcastPhase.DONE,
            status=JobStatus.DONE,
            from_cache=True,
            persisted=True,
            completed_at=artifact.created_at,
        )

    def _timed_out(self, run: _Run) -> SynthesisJob:
        """Resolve a run whose time budget ran out during ``run.phase``.

        Audio and persistence are optional once a script exists, so running
        out of time there keeps the script (unsaved) instead of failing.
        """
        message = f"Podcast generation timed out after {self._timeout_seconds:g}s"
        self._logger.error(
            "podcast_timeout",
            document_id=run.job.document_id,
            phase=run.phase.value,
            timeout_seconds=self._timeout_seconds,
        )
        if run.phase not in _OPTIONAL_PHASES or not run.job.script:
            return run.job.fail(run.phase, message, timed_out=True)

        return run.job.model_copy(
            update={
                "title": run.job.title or make_title(run.job.context, fallback=run.job.document_id),
                "phase": PodcastPhase.DONE,
                "status": JobStatus.DONE,
                "persisted": False,
                "warnings": [*run.job.warnings, f"{message} during {run.phase.value}"],
                "completed_at": _utcnow(),
            }
        )

    async def _execute(self, run: _Run) -> SynthesisJob:
        document_id = run.job.document_id
        self._logger.info("podcast_start", document_id=document_id, script_only=run.job.script_only)

        await self._progress.update(document_id, PodcastPhase.PENDING, 0.0, "Preparing context...")
        run.job = await self._prepare_context(run.job)

        for phase, stage, progress in self._stages:
            if phase == PodcastPhase.SYNTHESIZING_AUDIO and not self._audio_wanted(run.job):
                continue
            if self.is_cancelled(document_id):
                run.job = run.job.fail(phase, "Podcast generation was cancelled")
                self._logger.info("podcast_cancelled", document_id=document_id, phase=phase.value)
                break

            run.phase = phase
            run.job = run.job.model_copy(update={"phase": phase})
            await self._progress.update(document_id, phase, progress, f"{phase.value}...")

            run.job = await stage(run.job)
            if run.job.is_failed:
                self._logger.error(
                    "podcast_stage_failed",
                    document_id=document_id,
                    stage=phase.value,
                    error=run.job.error.message if run.job.error else "",
                )
                break

        if run.job.is_failed:
            return run.job

        job = run.job.model_copy(
            update={
                "phase": PodcastPhase.DONE,
                "status": JobStatus.DONE,
                "completed_at": _utcnow(),
            }
        )
        self._logger.info(
            "podcast_complete",
            document_id=document_id,
            questions=len(job.questions),
            failed_questions=len(job.failed_indices),
            script_chars=len(job.script),
            has_audio=job.audio_ref is not None,
            persisted=job.persisted,
        )
        return job

    async def _prepare_context(self, job: SynthesisJob) -> SynthesisJob:
        """Fill ``job.context`` with the document's most representative chunks."""
        try:
            retrieval = await self._retriever.retrieve(job.document_id, CONTEXT_QUERY)
        except DocumentNotFoundError:
            raise
        except Exception as exc:
            self._logger.warning(
                "podcast_context_failed", document_id=job.document_id, error=str(exc)
            )
            return job.model_copy(
                update={"warnings": [*job.warnings, f"Context preview unavailable: {exc}"]}
            )
        context = "\n\n".join(c.text for c in sorted(retrieval.chunks, key=lambda c: c.chunk_index))
        return job.model_copy(update={"context": context})

    def _audio_wanted(self, job: SynthesisJob) -> bool:
        return not job.script_only and self._tts is not None

    # ------------------------------------------------------------------
    # Stage 1: questions
    # ------------------------------------------------------------------

    async def _generate_questions(self, job: SynthesisJob) -> SynthesisJob:
        custom: list[str] = []
        warnings = list(job.warnings)
        preview = job.context[:PREVIEW_CHARS]

        if self._custom_question_count and preview:
            try:
                raw = await self._llm.complete(
                    system_prompt=self._QUESTION_SYSTEM_PROMPT.format(
                        count=self._custom_question_count
                    ),
                    user_prompt=f"Document summary: {preview}",
                    temperature=0.7,
                    max_tokens=500,
                )
                parsed = parse_numbered_questions(strip_think_blocks(raw))
                custom = dedupe_questions(parsed, list(BASELINE_QUESTIONS))
                custom = custom[: self._custom_question_count]
            except Exception as exc:
                self._logger.warning(
                    "podcast_custom_questions_failed",
                    document_id=job.document_id,
                    error=str(exc),
                )
                warnings.append(f"Custom questions unavailable: {exc}")

        pool = list(BASELINE_QUESTIONS[1:]) + custom
        sample_size = min(self._question_count - 1, len(pool))
        questions = [BASELINE_QUESTIONS[0], *self._rng.sample(pool, sample_size)]

        self._logger.info(
            "podcast_questions_selected",
            document_id=job.document_id,
            custom=len(custom),
            selected=len(questions),
        )
        return job.model_copy(update={"questions": questions, "warnings": warnings})

    # ------------------------------------------------------------------
    # Stage 2: answers
    # ------------------------------------------------------------------

    async def _answer_questions(self, job: SynthesisJob) -> SynthesisJob:
        document_id = job.document_id

        def _factory(question: str):  # noqa: ANN202
            async def _ask() -> str:
                response = await self._qa.answer(document_id, question)
                return response.answer

            return _ask

        results = await gather_until_cancelled(
            [_factory(q) for q in job.questions],
            is_cancelled=lambda: self.is_cancelled(document_id),
            semaphore=asyncio.Semaphore(self._question_concurrency),
            cancelled_error=lambda: PipelineError(message="cancelled before the question was asked"),
        )

        answers: list[str] = []
        failed: list[int] = []
        for idx, result in enumerate(results):
            if isinstance(result, BaseException):
                reason = getattr(result, "message", None) or str(result) or type(result).__name__
                answers.append(ANSWER_PLACEHOLDER.format(reason=reason))
                failed.append(idx)
                self._logger.warning(
                    "podcast_question_failed",
                    document_id=document_id,
                    index=idx,
                    error=reason,
                )
            else:
                answers.append(result)

        job = job.model_copy(update={"answers": answers, "failed_indices": failed})
        if job.questions and len(failed) == len(job.questions):
            return job.fail(
                PodcastPhase.RETRIEVING,
                f"All {len(failed)} questions failed to get an answer",
            )
        return job

    # ------------------------------------------------------------------
    # Stage 3: script
    # ------------------------------------------------------------------

    async def _write_script(self, job: SynthesisJob) -> SynthesisJob:
        qa_pairs = "\n\n".join(f"Q: {q}\nA: {a}" for q, a in job.answered_pairs())
        user_prompt = (
            "Write the podcast script based on the following document summary and Q&A.\n\n"
            f"Document context:\n{job.context[:1000]}\n\n"
            f"Questions and answers:\n{qa_pairs}"
        )
        try:
            raw = await self._llm.complete(
                system_prompt=self._SCRIPT_SYSTEM_PROMPT,
                user_prompt=user_prompt,
                temperature=0.7,
                max_tokens=2000,
            )
        except Exception as exc:
            return job.fail(PodcastPhase.SYNTHESIZING_SCRIPT, f"Script generation failed: {exc}")

        script = strip_think_blocks(raw)
        if len(script) < MIN_SCRIPT_CHARS:
            return job.fail(
                PodcastPhase.SYNTHESIZING_SCRIPT,
                f"Generated script is too short or empty ({len(script)} characters)",
            )
        return job.model_copy(update={"script": script})

    # ------------------------------------------------------------------
    # Stage 4: audio
    # ------------------------------------------------------------------

    async def _synthesize_audio(self, job: SynthesisJob) -> SynthesisJob:
        try:
            if self._tts is None:
                raise PipelineError(message="No TTS provider is configured")
            clip = await self._tts.synthesize(job.script, voice=self._voice)
            if not clip.data:
                raise PipelineError(
                    message="TTS returned empty audio",
                    provider_name=self._tts.get_provider_name(),
                )
            audio_ref = await self._store.put(clip.data, clip.content_type)
        except Exception as exc:
            self._logger.warning(
                "podcast_audio_failed", document_id=job.document_id, error=str(exc)
            )
            return job.model_copy(
                update={"warnings": [*job.warnings, f"Audio unavailable: {exc}"]}
            )
        return job.model_copy(
            update={"audio_ref": audio_ref, "audio_duration_seconds": estimate_duration(clip)}
        )

    # ------------------------------------------------------------------
    # Stage 5: persist
    # ------------------------------------------------------------------

    async def _persist(self, job: SynthesisJob) -> SynthesisJob:
        title = make_title(job.context, fallback=job.document_id)
        answered = len(job.questions) - len(job.failed_indices)
        artifact = PodcastArtifact(
            document_id=job.document_id,
            title=title,
            description=f"Narrated overview drawn from {answered} answered questions about the document.",
            script=job.script,
            audio_ref=job.audio_ref,
            duration_seconds=job.audio_duration_seconds,
        )
        job = job.model_copy(update={"title": title, "podcast_id": artifact.podcast_id})
        try:
            await self._artifacts.save(artifact)
        except Exception as exc:
            self._logger.warning(
                "podcast_persist_failed", document_id=job.document_id, error=str(exc)
            )
            return job.model_copy(
                update={"persisted": False, "warnings": [*job.warnings, f"Not persisted: {exc}"]}
            )
        return job.model_copy(update={"persisted": True})
