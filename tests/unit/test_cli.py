"""Unit tests for the docpod command-line interface."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from docpod.cli.commands import build_parser, run_command
from docpod.models.document import DocumentMetadata, IngestionResult, RegistryEntry
from docpod.models.podcast import PodcastPhase, SynthesisJob
from docpod.models.retrieval import QAResponse, RetrievalStrategy, ScoredChunk
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.utils.errors import DocumentNotFoundError


def _args(*argv: str) -> argparse.Namespace:
    return build_parser().parse_args(list(argv))


@pytest.fixture
def components() -> dict[str, Any]:
    ingestion = MagicMock()
    ingestion.ingest = AsyncMock(
        return_value=IngestionResult(
            document_id="doc-1", content_hash="h" * 64, chunk_count=3, processing_time_ms=12
        )
    )
    registry = MagicMock(spec=DocumentRegistry)
    registry.list_entries = AsyncMock(return_value=[])
    return {"ingestion_service": ingestion, "registry": registry}


class TestBuildParser:
    def test_json_flag_maps_to_json_output(self) -> None:
        args = _args("--json", "documents")
        assert args.json_output is True
        assert args.command == "documents"

    def test_ingest_defaults(self) -> None:
        args = _args("ingest", "report.pdf")
        assert args.file == "report.pdf"
        assert args.bypass_dedup is False
        assert args.media_type == ""
        assert args.json_output is False

    def test_query_arguments(self) -> None:
        args = _args("query", "doc-1", "What is it?", "--top-k", "5")
        assert (args.document_id, args.question, args.top_k) == ("doc-1", "What is it?", 5)

    def test_podcast_script_only(self) -> None:
        assert _args("podcast", "doc-1", "--script-only").script_only is True

    def test_no_command(self) -> None:
        assert _args().command is None


class TestIngestCommand:
    @pytest.mark.asyncio
    async def test_ingests_file(
        self, tmp_path: Path, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("Some notes about solar power.")

        code = await run_command(_args("ingest", str(path), "--bypass-dedup"), components)

        assert code == 0
        components["ingestion_service"].ingest.assert_awaited_once_with(
            b"Some notes about solar power.",
            media_type="",
            filename="notes.txt",
            bypass_dedup=True,
        )
        out = capsys.readouterr().out
        assert "Ingested: doc-1" in out
        assert "Chunks:          3" in out

    @pytest.mark.asyncio
    async def test_deduplicated_message(
        self, tmp_path: Path, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("x")
        components["ingestion_service"].ingest.return_value = IngestionResult(
            document_id="doc-1", content_hash="h" * 64, deduplicated=True
        )

        await run_command(_args("ingest", str(path)), components)

        assert "Already ingested: doc-1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_json_output(
        self, tmp_path: Path, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("x")

        await run_command(_args("--json", "ingest", str(path)), components)

        data = json.loads(capsys.readouterr().out)
        assert data["document_id"] == "doc-1"
        assert data["chunk_count"] == 3

    @pytest.mark.asyncio
    async def test_missing_file(
        self, tmp_path: Path, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = await run_command(_args("ingest", str(tmp_path / "nope.txt")), components)

        assert code == 1
        assert "file not found" in capsys.readouterr().err
        components["ingestion_service"].ingest.assert_not_awaited()


class TestDocumentsCommand:
    @pytest.mark.asyncio
    async def test_empty_registry(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert await run_command(_args("documents"), components) == 0
        assert "No documents registered." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_lists_entries(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        meta = DocumentMetadata(
            document_id="doc-1", content_hash="h" * 64, title="solar", filename="solar.txt"
        )
        components["registry"].list_entries.return_value = [
            RegistryEntry(
                content_hash="h" * 64,
                document_id="doc-1",
                metadata=meta,
                chunk_map_ref="sha256-" + "0" * 64,
                chunk_count=3,
            )
        ]

        await run_command(_args("documents"), components)

        out = capsys.readouterr().out
        assert "doc-1  v1" in out
        assert "solar" in out
        assert "Total: 1" in out


class TestQueryCommand:
    @pytest.mark.asyncio
    async def test_without_llm(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        code = await run_command(_args("query", "doc-1", "Why?"), components)

        assert code == 1
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_prints_answer_and_chunks(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        qa = MagicMock()
        qa.query = AsyncMock(
            return_value=QAResponse(
                document_id="doc-1",
                question="Why?",
                answer="Because of photons.",
                strategy=RetrievalStrategy.VECTOR,
                chunks=[
                    ScoredChunk(chunk_index=2, text="photons", score=0.9),
                    ScoredChunk(chunk_index=0, text="cells", score=0.5),
                ],
            )
        )
        components["qa_service"] = qa

        code = await run_command(_args("query", "doc-1", "Why?", "--top-k", "2"), components)

        assert code == 0
        qa.query.assert_awaited_once_with("doc-1", "Why?", top_k=2)
        out = capsys.readouterr().out
        assert "Because of photons." in out
        assert "[vector] chunks: 2, 0" in out

    @pytest.mark.asyncio
    async def test_unknown_document_exits_1(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        qa = MagicMock()
        qa.query = AsyncMock(side_effect=DocumentNotFoundError(message="Document nope not found"))
        components["qa_service"] = qa

        code = await run_command(_args("query", "nope", "Why?"), components)

        assert code == 1
        assert "Error: Document nope not found" in capsys.readouterr().err


class TestPodcastCommand:
    @pytest.mark.asyncio
    async def test_without_llm(self, components: dict[str, Any]) -> None:
        assert await run_command(_args("podcast", "doc-1"), components) == 1

    @pytest.mark.asyncio
    async def test_prints_script(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        workflow = MagicMock()
        workflow.run = AsyncMock(
            return_value=SynthesisJob(
                document_id="doc-1",
                title="Podcast: Solar",
                script="Welcome to the show.",
                warnings=["Audio unavailable: quota"],
            )
        )
        components["podcast_workflow"] = workflow

        code = await run_command(_args("podcast", "doc-1", "--script-only"), components)

        assert code == 0
        workflow.run.assert_awaited_once_with("doc-1", script_only=True)
        captured = capsys.readouterr()
        assert captured.out.startswith("Podcast: Solar\n==============\n")
        assert "Welcome to the show." in captured.out
        assert "Warning: Audio unavailable: quota" in captured.err

    @pytest.mark.asyncio
    async def test_failed_job_exits_1(
        self, components: dict[str, Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        workflow = MagicMock()
        workflow.run = AsyncMock(
            return_value=SynthesisJob(document_id="doc-1").fail(
                PodcastPhase.SYNTHESIZING_SCRIPT, "Script generation failed: boom"
            )
        )
        components["podcast_workflow"] = workflow

        code = await run_command(_args("podcast", "doc-1"), components)

        assert code == 1
        assert "Podcast failed at SYNTHESIZING_SCRIPT" in capsys.readouterr().err
