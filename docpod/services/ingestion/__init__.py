"""Document ingestion pipeline for the docpod knowledge base.

Orchestrates the full pipeline: **extract -> dedup -> chunk -> embed -> store -> register**.

Pipeline stages overview:

1. **Extract** (text_extractor.py / TextExtractor) -- plain text, HTML and
   PDF uploads become one plain-text string.

2. **Dedup** (document_registry.py / DocumentRegistry) -- the SHA-256 of
   the text is looked up; known content returns the existing document.

3. **Chunk** (chunker.py / TextChunker) -- splits the text into
   non-overlapping chunks along paragraph and sentence boundaries.

4. **Embed** (via IEmbeddingProvider) -- one vector per chunk, batched
   with bounded retries.

5. **Store** (via IObjectStore) -- raw text, chunk records, the chunk map
   and metadata are written as content-addressed objects, then the
   document is registered.

The IngestionService class orchestrates all five stages.
"""

from docpod.services.ingestion.chunker import TextChunker
from docpod.services.ingestion.document_registry import DocumentRegistry
from docpod.services.ingestion.ingestion_service import IngestionService
from docpod.services.ingestion.text_extractor import TextExtractor

__all__ = [
    "DocumentRegistry",
    "IngestionService",
    "TextChunker",
    "TextExtractor",
]
