"""Unit tests for PodcastWorkflow stage sequencing and failure policy."""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from docpod.interfaces.artifact_store import IArtifactStore
from docpod.interfaces.tts_provider import AudioClip, ITTSProvider
from docpod.models.podcast import JobStatus, PodcastArtifact, PodcastPhase, SynthesisJob
from docpod.models.retrieval import QAResponse, RetrievalResult, RetrievalStrategy, ScoredChunk
from docpod.pipeline.podcast_workflow import (
    ANSWER_PLACEHOLDER,
    BASELINE_QUESTIONS,
    PodcastWorkflow,
    estimate_duration,
    make_title,
)
from docpod.pipeline.progress_tracker import ProgressTracker
from docpod.providers.storage.memory_object_store import MemoryObjectStore
from docpod.services.qa_service import QAService
from docpod.services.retriever import Retriever
from docpod.utils.errors import DocumentNotFoundError, LLMError, StorageError, TTSError

DOC_ID = "doc-1"
CONTEXT_CHUNKS = [
    ScoredChunk(chunk_index=1, text="Battery storage keeps surplus energy.", score=0.5),
    ScoredChunk(chunk_index=0, text="Solar panels convert sunlight into electricity.", score=0.9),
]
SCRIPT = (
    "Welcome to today's episode. We are talking about solar panels, batteries and the "
    "grid, and why the duck curve matters for everyone with a rooftop array."
)
CUSTOM_QUESTIONS_RAW = (
    "<think>let me plan</think>\n"
    "1. How do silicon layers release electrons in a solar cell?\n"
    "2. Why do households pair panels with battery storage?\n"
)


def _llm_reply(system_prompt: str, **_kwargs) -> str:  # noqa: ANN003
    if "podcast host" in system_prompt:
        return CUSTOM_QUESTIONS_RAW
    return SCRIPT


@pytest.fixture
def llm(mock_llm: MagicMock) -> MagicMock:
    mock_llm.complete = AsyncMock(side_effect=_llm_reply)
    return mock_llm


@pytest.fixture
def qa_service() -> MagicMock:
    service = MagicMock(spec=QAService)

    async def _answer(document_id: str, question: str, top_k: int = 3) -> QAResponse:
        return QAResponse(document_id=document_id, question=question, answer=f"Answer to {question}")

    service.answer = AsyncMock(side_effect=_answer)
    return service


@pytest.fixture
def workflow_retriever() -> MagicMock:
    retriever = MagicMock(spec=Retriever)
    retriever.retrieve = AsyncMock(
        return_value=RetrievalResult(
            document_id=DOC_ID,
            query="context",
            strategy=RetrievalStrategy.VECTOR,
            chunks=CONTEXT_CHUNKS,
        )
    )
    return retriever


@pytest.fixture
def artifact_store() -> MagicMock:
    store = MagicMock(spec=IArtifactStore)
    store.get = AsyncMock(return_value=None)
    store.save = AsyncMock()
    return store


@pytest.fixture
def tts() -> MagicMock:
    provider = MagicMock(spec=ITTSProvider)
    provider.synthesize = AsyncMock(
        return_value=AudioClip(data=b"\x00" * 16000, content_type="audio/mpeg")
    )
    provider.get_provider_name.return_value = "mock_tts"
    provider.is_available.return_value = True
    return provider


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def make_workflow(
    qa_service: MagicMock,
    workflow_retriever: MagicMock,
    llm: MagicMock,
    artifact_store: MagicMock,
    object_store: MemoryObjectStore,
    tracker: ProgressTracker,
):  # noqa: ANN201
    def _make(**overrides) -> PodcastWorkflow:  # noqa: ANN003
        kwargs = {
            "qa_service": qa_service,
            "retriever": workflow_retriever,
            "llm": llm,
            "artifact_store": artifact_store,
            "object_store": object_store,
            "progress_tracker": tracker,
            "tts_provider": None,
            "question_count": 5,
            "custom_question_count": 0,
            "question_concurrency": 3,
            "timeout_seconds": 5.0,
            "rng": random.Random(7),
        }
        kwargs.update(overrides)
        return PodcastWorkflow(**kwargs)

    return _make


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_script_only_job_completes(
        self,
        make_workflow,  # noqa: ANN001
        llm: MagicMock,
        artifact_store: MagicMock,
        tracker: ProgressTracker,
    ) -> None:
        job = await make_workflow().run(DOC_ID, script_only=True)

        assert job.status == JobStatus.DONE
        assert job.phase == PodcastPhase.DONE
        assert job.script == SCRIPT
        assert len(job.questions) == 5
        assert job.questions[0] == BASELINE_QUESTIONS[0]
        assert len(set(job.questions)) == 5
        assert job.answers == [f"Answer to {q}" for q in job.questions]
        assert job.failed_indices == []
        assert job.persisted is True
        assert job.podcast_id is not None
        assert job.completed_at is not None
        # custom questions disabled: the only LLM call writes the script
        assert llm.complete.await_count == 1
        artifact_store.save.assert_awaited_once()
        assert tracker.get_status(DOC_ID)["phase"] == "DONE"
        assert tracker.get_status(DOC_ID)["progress"] == 100.0

    @pytest.mark.asyncio
    async def test_context_is_in_document_order(
        self, make_workflow, llm: MagicMock  # noqa: ANN001
    ) -> None:
        job = await make_workflow().run(DOC_ID)

        assert job.context == (
            "Solar panels convert sunlight into electricity.\n\n"
            "Battery storage keeps surplus energy."
        )
        assert job.title == "Podcast: Solar panels convert sunlight into electricity. B..."

    @pytest.mark.asyncio
    async def test_custom_questions_join_the_pool(
        self, make_workflow, llm: MagicMock  # noqa: ANN001
    ) -> None:
        job = await make_workflow(question_count=10, custom_question_count=2).run(DOC_ID)

        assert len(job.questions) == 7
        assert "How do silicon layers release electrons in a solar cell?" in job.questions
        assert "Why do households pair panels with battery storage?" in job.questions
        assert llm.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_custom_question_failure_is_not_fatal(
        self, make_workflow, llm: MagicMock  # noqa: ANN001
    ) -> None:
        async def _reply(system_prompt: str, **_kwargs) -> str:  # noqa: ANN003
            if "podcast host" in system_prompt:
                raise LLMError(message="question model down")
            return SCRIPT

        llm.complete.side_effect = _reply

        job = await make_workflow(custom_question_count=3).run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert set(job.questions) <= set(BASELINE_QUESTIONS)
        assert any("Custom questions unavailable" in w for w in job.warnings)

    @pytest.mark.asyncio
    async def test_phases_reported_in_order(
        self, make_workflow, tracker: ProgressTracker  # noqa: ANN001
    ) -> None:
        seen: list[PodcastPhase] = []
        tracker.register_listener(DOC_ID, lambda _doc, phase, _pct, _msg: seen.append(phase))

        await make_workflow().run(DOC_ID, script_only=True)

        assert seen == [
            PodcastPhase.PENDING,
            PodcastPhase.GENERATING_QUESTIONS,
            PodcastPhase.RETRIEVING,
            PodcastPhase.SYNTHESIZING_SCRIPT,
            PodcastPhase.PERSISTING,
            PodcastPhase.DONE,
        ]


class TestQuestionFailures:
    @pytest.mark.asyncio
    async def test_one_failed_question_leaves_placeholder(
        self,
        make_workflow,  # noqa: ANN001
        qa_service: MagicMock,
        llm: MagicMock,
    ) -> None:
        async def _answer(document_id: str, question: str, top_k: int = 3) -> QAResponse:
            if question == BASELINE_QUESTIONS[0]:
                raise StorageError(message="chunk fetch failed")
            return QAResponse(document_id=document_id, question=question, answer="fine")

        qa_service.answer.side_effect = _answer

        job = await make_workflow().run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.failed_indices == [0]
        assert job.answers[0] == ANSWER_PLACEHOLDER.format(reason="chunk fetch failed")
        assert job.answers[1:] == ["fine"] * 4
        script_prompt = llm.complete.await_args.kwargs["user_prompt"]
        assert BASELINE_QUESTIONS[0] not in script_prompt
        assert script_prompt.count("Q: ") == 4

    @pytest.mark.asyncio
    async def test_all_questions_failing_is_fatal(
        self,
        make_workflow,  # noqa: ANN001
        qa_service: MagicMock,
        llm: MagicMock,
        artifact_store: MagicMock,
        tracker: ProgressTracker,
    ) -> None:
        qa_service.answer.side_effect = LLMError(message="model down")

        job = await make_workflow().run(DOC_ID)

        assert job.status == JobStatus.FAILED
        assert job.error is not None
        assert job.error.stage == PodcastPhase.RETRIEVING
        assert "All 5 questions failed" in job.error.message
        llm.complete.assert_not_awaited()
        artifact_store.save.assert_not_awaited()
        assert tracker.get_status(DOC_ID)["phase"] == "FAILED"


class TestScriptStage:
    @pytest.mark.asyncio
    async def test_short_script_fails(
        self, make_workflow, llm: MagicMock, artifact_store: MagicMock  # noqa: ANN001
    ) -> None:
        llm.complete.side_effect = None
        llm.complete.return_value = "<think>hmm</think> Too short."

        job = await make_workflow().run(DOC_ID)

        assert job.is_failed
        assert job.error.stage == PodcastPhase.SYNTHESIZING_SCRIPT
        assert "too short" in job.error.message
        artifact_store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_llm_error_fails(self, make_workflow, llm: MagicMock) -> None:  # noqa: ANN001
        llm.complete.side_effect = LLMError(message="context length exceeded")

        job = await make_workflow().run(DOC_ID)

        assert job.is_failed
        assert job.error.stage == PodcastPhase.SYNTHESIZING_SCRIPT
        assert "context length exceeded" in job.error.message


class TestAudioStage:
    @pytest.mark.asyncio
    async def test_audio_stored_with_estimated_duration(
        self,
        make_workflow,  # noqa: ANN001
        tts: MagicMock,
        object_store: MemoryObjectStore,
        artifact_store: MagicMock,
    ) -> None:
        job = await make_workflow(tts_provider=tts, voice="nova").run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.audio_ref is not None
        assert await object_store.get(job.audio_ref) == b"\x00" * 16000
        assert job.audio_duration_seconds == 1.0
        tts.synthesize.assert_awaited_once_with(SCRIPT, voice="nova")
        saved = artifact_store.save.await_args.args[0]
        assert saved.audio_ref == job.audio_ref

    @pytest.mark.asyncio
    async def test_script_only_skips_audio(
        self, make_workflow, tts: MagicMock  # noqa: ANN001
    ) -> None:
        job = await make_workflow(tts_provider=tts).run(DOC_ID, script_only=True)

        assert job.audio_ref is None
        tts.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audio_failure_is_a_warning(
        self, make_workflow, tts: MagicMock  # noqa: ANN001
    ) -> None:
        tts.synthesize.side_effect = TTSError(message="voice unavailable")

        job = await make_workflow(tts_provider=tts).run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.audio_ref is None
        assert job.script == SCRIPT
        assert any("Audio unavailable" in w for w in job.warnings)

    @pytest.mark.asyncio
    async def test_missing_tts_provider_is_a_warning(self, make_workflow) -> None:  # noqa: ANN001
        job = SynthesisJob(document_id=DOC_ID, script=SCRIPT)

        result = await make_workflow(tts_provider=None)._synthesize_audio(job)

        assert result.audio_ref is None
        assert result.script == SCRIPT
        assert any("No TTS provider is configured" in w for w in result.warnings)


class TestPersistence:
    @pytest.mark.asyncio
    async def test_persist_failure_still_done(
        self, make_workflow, artifact_store: MagicMock  # noqa: ANN001
    ) -> None:
        artifact_store.save.side_effect = StorageError(message="disk full")

        job = await make_workflow().run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.persisted is False
        assert any("Not persisted" in w for w in job.warnings)

    @pytest.mark.asyncio
    async def test_stored_artifact_served_without_llm(
        self,
        make_workflow,  # noqa: ANN001
        artifact_store: MagicMock,
        llm: MagicMock,
        qa_service: MagicMock,
        workflow_retriever: MagicMock,
    ) -> None:
        artifact = PodcastArtifact(
            document_id=DOC_ID,
            title="Podcast: Solar",
            script=SCRIPT,
            audio_ref="sha256-audio",
            duration_seconds=12.0,
        )
        artifact_store.get.return_value = artifact

        job = await make_workflow().run(DOC_ID)

        assert job.from_cache is True
        assert job.status == JobStatus.DONE
        assert job.podcast_id == artifact.podcast_id
        assert job.script == SCRIPT
        assert job.audio_duration_seconds == 12.0
        llm.complete.assert_not_awaited()
        qa_service.answer.assert_not_awaited()
        workflow_retriever.retrieve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stored_artifact_script_only_hides_audio(
        self, make_workflow, artifact_store: MagicMock  # noqa: ANN001
    ) -> None:
        artifact_store.get.return_value = PodcastArtifact(
            document_id=DOC_ID,
            title="Podcast: Solar",
            script=SCRIPT,
            audio_ref="sha256-audio",
            duration_seconds=12.0,
        )

        job = await make_workflow().run(DOC_ID, script_only=True)

        assert job.from_cache is True
        assert job.script_only is True
        assert job.script == SCRIPT
        assert job.audio_ref is None
        assert job.audio_duration_seconds is None


class TestBoundsAndCancellation:
    @pytest.mark.asyncio
    async def test_timeout_fails_at_running_phase(
        self,
        make_workflow,  # noqa: ANN001
        qa_service: MagicMock,
        tracker: ProgressTracker,
    ) -> None:
        async def _slow(document_id: str, question: str, top_k: int = 3) -> QAResponse:
            await asyncio.sleep(5)
            return QAResponse(document_id=document_id, question=question, answer="late")

        qa_service.answer.side_effect = _slow

        job = await make_workflow(timeout_seconds=0.05).run(DOC_ID)

        assert job.is_failed
        assert job.error.timed_out is True
        assert job.error.stage == PodcastPhase.RETRIEVING
        assert "timed out" in job.error.message
        assert tracker.get_status(DOC_ID)["phase"] == "FAILED"

    @pytest.mark.asyncio
    async def test_timeout_during_audio_keeps_script(
        self,
        make_workflow,  # noqa: ANN001
        tts: MagicMock,
        artifact_store: MagicMock,
        tracker: ProgressTracker,
    ) -> None:
        async def _slow_speech(text: str, voice: str | None = None) -> AudioClip:
            await asyncio.sleep(5)
            return AudioClip(data=b"late")

        tts.synthesize.side_effect = _slow_speech

        job = await make_workflow(tts_provider=tts, timeout_seconds=0.2).run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.error is None
        assert job.script == SCRIPT
        assert job.title.startswith("Podcast: ")
        assert job.audio_ref is None
        assert job.persisted is False
        assert any("SYNTHESIZING_AUDIO" in w for w in job.warnings)
        artifact_store.save.assert_not_awaited()
        assert tracker.get_status(DOC_ID)["phase"] == "DONE"

    @pytest.mark.asyncio
    async def test_timeout_during_persist_keeps_script(
        self, make_workflow, artifact_store: MagicMock  # noqa: ANN001
    ) -> None:
        async def _slow_save(artifact: PodcastArtifact) -> None:
            await asyncio.sleep(5)

        artifact_store.save.side_effect = _slow_save

        job = await make_workflow(timeout_seconds=0.2).run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.script == SCRIPT
        assert job.persisted is False
        assert any("PERSISTING" in w for w in job.warnings)

    @pytest.mark.asyncio
    async def test_cancel_stops_remaining_questions(
        self, make_workflow, qa_service: MagicMock  # noqa: ANN001
    ) -> None:
        workflow = make_workflow(question_concurrency=1)

        async def _answer_then_cancel(document_id: str, question: str, top_k: int = 3):  # noqa: ANN202
            workflow.cancel(document_id)
            return QAResponse(document_id=document_id, question=question, answer="first")

        qa_service.answer.side_effect = _answer_then_cancel

        job = await workflow.run(DOC_ID)

        assert qa_service.answer.await_count == 1
        assert job.is_failed
        assert job.error.stage == PodcastPhase.SYNTHESIZING_SCRIPT
        assert "cancelled" in job.error.message
        # a later run starts clean
        assert workflow.is_cancelled(DOC_ID) is False

    @pytest.mark.asyncio
    async def test_unknown_document_raises(
        self, make_workflow, workflow_retriever: MagicMock  # noqa: ANN001
    ) -> None:
        workflow_retriever.retrieve.side_effect = DocumentNotFoundError(message="nope")
        with pytest.raises(DocumentNotFoundError):
            await make_workflow().run("missing")

    @pytest.mark.asyncio
    async def test_context_failure_degrades(
        self,
        make_workflow,  # noqa: ANN001
        workflow_retriever: MagicMock,
        llm: MagicMock,
    ) -> None:
        workflow_retriever.retrieve.side_effect = StorageError(message="gateway down")

        job = await make_workflow(custom_question_count=3).run(DOC_ID)

        assert job.status == JobStatus.DONE
        assert job.context == ""
        assert any("Context preview unavailable" in w for w in job.warnings)
        # no preview, so no custom-question call; only the script
        assert llm.complete.await_count == 1
        assert job.title == f"Podcast: {DOC_ID}"


class TestHelpers:
    def test_estimate_duration_prefers_reported_value(self) -> None:
        clip = AudioClip(data=b"x" * 10, duration_seconds=3.5)
        assert estimate_duration(clip) == 3.5

    def test_estimate_duration_mp3(self) -> None:
        assert estimate_duration(AudioClip(data=b"x" * 32000, content_type="audio/mpeg")) == 2.0

    def test_estimate_duration_pcm(self) -> None:
        assert estimate_duration(AudioClip(data=b"x" * 88200, content_type="audio/wav")) == 1.0

    def test_make_title_truncates(self) -> None:
        preview = "a" * 60
        assert make_title(preview, "doc") == "Podcast: " + "a" * 50 + "..."

    def test_make_title_short_preview(self) -> None:
        assert make_title("Short intro", "doc") == "Podcast: Short intro"

    def test_make_title_fallback(self) -> None:
        assert make_title("   ", "doc-9") == "Podcast: doc-9"
