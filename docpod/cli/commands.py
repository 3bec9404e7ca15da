"""Command-line interface for docpod.

Usage::

    python -m docpod.cli ingest report.pdf
    python -m docpod.cli ingest notes.txt --bypass-dedup
    python -m docpod.cli documents
    python -m docpod.cli query <document_id> "What is the main finding?" --top-k 5
    python -m docpod.cli podcast <document_id> --script-only

Every handler receives the component dict produced by
``docpod.main.build_components`` and returns a process exit code.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from docpod.utils.errors import DocPodError


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    result = await components["ingestion_service"].ingest(
        path.read_bytes(),
        media_type=args.media_type or "",
        filename=path.name,
        bypass_dedup=args.bypass_dedup,
    )
    if args.json_output:
        print(result.model_dump_json(indent=2))
        return 0

    if result.deduplicated:
        print(f"Already ingested: {result.document_id}")
    else:
        print(f"Ingested: {result.document_id}")
        print(f"  Chunks:          {result.chunk_count}")
        print(f"  Processing time: {result.processing_time_ms} ms")
    return 0


async def _handle_documents(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entries = await components["registry"].list_entries()
    if args.json_output:
        print(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return 0

    if not entries:
        print("No documents registered.")
        return 0
    for entry in entries:
        meta = entry.metadata
        print(
            f"{entry.document_id}  v{meta.version}  {entry.chunk_count:>4} chunks  "
            f"{meta.title or meta.filename}"
        )
    print(f"\nTotal: {len(entries)}")
    return 0


async def _handle_query(args: argparse.Namespace, components: dict[str, Any]) -> int:
    qa_service = components.get("qa_service")
    if qa_service is None:
        print("Error: question answering needs OPENAI_API_KEY.", file=sys.stderr)
        return 1

    response = await qa_service.query(args.document_id, args.question, top_k=args.top_k)
    if args.json_output:
        print(response.model_dump_json(indent=2))
        return 0

    print(response.answer)
    if response.chunks:
        strategy = response.strategy.value if response.strategy else "?"
        indices = ", ".join(str(c.chunk_index) for c in response.chunks)
        print(f"\n[{strategy}] chunks: {indices}")
    return 0


async def _handle_podcast(args: argparse.Namespace, components: dict[str, Any]) -> int:
    workflow = components.get("podcast_workflow")
    if workflow is None:
        print("Error: podcast generation needs OPENAI_API_KEY.", file=sys.stderr)
        return 1

    job = await workflow.run(args.document_id, script_only=args.script_only)
    if args.json_output:
        print(job.model_dump_json(indent=2))
        return 1 if job.is_failed else 0

    if job.is_failed:
        stage = job.error.stage.value if job.error else "?"
        message = job.error.message if job.error else ""
        print(f"Podcast failed at {stage}: {message}", file=sys.stderr)
        return 1

    print(job.title or "Podcast")
    print("=" * len(job.title or "Podcast"))
    print()
    print(job.script)
    if job.audio_ref:
        print(f"\nAudio: {job.audio_ref}")
    for warning in job.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return 0


_HANDLERS = {
    "ingest": _handle_ingest,
    "documents": _handle_documents,
    "query": _handle_query,
    "podcast": _handle_podcast,
}


async def run_command(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Dispatch *args* to its handler, turning docpod errors into exit code 1."""
    handler = _HANDLERS[args.command]
    try:
        return await handler(args, components)
    except DocPodError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the docpod CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m docpod.cli",
        description="Ingest documents, ask questions about them, and generate podcasts.",
    )
    parser.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print results as JSON.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a local document")
    ingest_parser.add_argument("file", help="Path to a .txt, .md, .html or .pdf file")
    ingest_parser.add_argument(
        "--bypass-dedup",
        action="store_true",
        help="Reprocess even if identical content is already registered",
    )
    ingest_parser.add_argument(
        "--media-type",
        default="",
        help="Override the media type (default: inferred from the extension)",
    )

    # -- documents --
    subparsers.add_parser("documents", help="List registered documents")

    # -- query --
    query_parser = subparsers.add_parser("query", help="Ask a question about a document")
    query_parser.add_argument("document_id", help="Document id returned by ingest")
    query_parser.add_argument("question", help="The question to answer")
    query_parser.add_argument("--top-k", type=int, default=3, help="Chunks to retrieve (default: 3)")

    # -- podcast --
    podcast_parser = subparsers.add_parser("podcast", help="Generate a podcast for a document")
    podcast_parser.add_argument("document_id", help="Document id returned by ingest")
    podcast_parser.add_argument(
        "--script-only",
        action="store_true",
        help="Skip audio synthesis",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace) -> int:
    from docpod.main import build_components, config, initialize_components, settings

    components = build_components(settings, config)
    try:
        await initialize_components(components)
        return await run_command(args, components)
    finally:
        await components["http_client"].aclose()


def main() -> None:
    """CLI entry point.

    Parses the subcommand, builds the provider graph from the environment /
    ``.env`` / ``config/config.yaml``, runs the command and exits with its
    status code.
    """
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    if args.command == "query" and args.top_k < 1:
        parser.error("--top-k must be at least 1")

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
