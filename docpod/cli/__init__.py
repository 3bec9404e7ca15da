# =============================================================================
# docpod/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line access to the same services the HTTP API exposes, for
# operators who want to ingest or query documents without running the
# web server. Everything lives in commands.py:
#
#   ingest FILE [--bypass-dedup]         upload a local file
#   documents                            list registered documents
#   query DOCUMENT_ID QUESTION [--top-k] grounded Q&A
#   podcast DOCUMENT_ID [--script-only]  generate (or fetch) the podcast
#
# Architecture Notes:
#   - argparse, like the rest of the house tooling (no Click/Typer).
#   - The object graph comes from docpod.main.build_components, so the CLI
#     and the API always agree on providers and storage locations. The
#     import is deferred until a command actually runs.
# =============================================================================

"""CLI tools for docpod.

- ``python -m docpod.cli ingest FILE`` - ingest a local document.
- ``python -m docpod.cli documents`` - list registered documents.
- ``python -m docpod.cli query DOCUMENT_ID QUESTION`` - ask a question.
- ``python -m docpod.cli podcast DOCUMENT_ID`` - generate a podcast script.
"""
