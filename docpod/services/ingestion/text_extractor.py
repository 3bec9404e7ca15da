"""Raw-text extraction for uploaded documents.

Turns upload bytes into a single plain-text string ready for hashing and
chunking.  Three formats are understood:

- **Plain text** (``text/plain``, ``text/markdown``, ``.txt``/``.md``) --
  strict UTF-8 decode (a leading BOM is dropped).
- **HTML** (``text/html``, ``.html``/``.htm``) -- BeautifulSoup
  ``get_text`` after removing script/style/nav boilerplate.
- **PDF** (``application/pdf``, ``.pdf``) -- PyMuPDF page text, each page
  prefixed with a ``--- Page N ---`` marker so page provenance survives
  chunking.

The declared media type wins; when it is missing or generic
(``application/octet-stream``) the filename extension decides.  Anything
else, bytes that do not decode, or an empty result raises
:class:`~docpod.utils.errors.DocumentInputError`.
"""

from __future__ import annotations

import asyncio
from pathlib import PurePath

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup

from docpod.utils.errors import DocumentInputError

logger = structlog.get_logger(logger_name=__name__)

PLAIN_TEXT = "text/plain"
HTML = "text/html"
PDF = "application/pdf"

_MEDIA_TYPE_ALIASES: dict[str, str] = {
    "text/plain": PLAIN_TEXT,
    "text/markdown": PLAIN_TEXT,
    "text/x-markdown": PLAIN_TEXT,
    "text/html": HTML,
    "application/xhtml+xml": HTML,
    "application/pdf": PDF,
}

_EXTENSION_TYPES: dict[str, str] = {
    ".txt": PLAIN_TEXT,
    ".text": PLAIN_TEXT,
    ".md": PLAIN_TEXT,
    ".markdown": PLAIN_TEXT,
    ".html": HTML,
    ".htm": HTML,
    ".pdf": PDF,
}

_GENERIC_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

# Tags whose text content is boilerplate rather than document content.
_HTML_STRIP_TAGS = ("script", "style", "noscript", "nav", "header", "footer")


class TextExtractor:
    """Extract plain text from plain-text, HTML and PDF uploads."""

    def resolve_media_type(self, media_type: str, filename: str = "") -> str:
        """Map a declared media type (and filename fallback) to a supported type.

        Raises
        ------
        DocumentInputError
            If neither the media type nor the extension is supported.
        """
        base = (media_type or "").split(";", 1)[0].strip().lower()
        if base in _MEDIA_TYPE_ALIASES:
            return _MEDIA_TYPE_ALIASES[base]

        if base in _GENERIC_TYPES or base.startswith("text/"):
            suffix = PurePath(filename).suffix.lower() if filename else ""
            if suffix in _EXTENSION_TYPES:
                return _EXTENSION_TYPES[suffix]
            if base.startswith("text/"):
                return PLAIN_TEXT

        raise DocumentInputError(
            message=f"Unsupported media type {media_type or 'unknown'!r} for {filename or 'upload'}",
        )

    async def extract(self, data: bytes, media_type: str, filename: str = "") -> str:
        """Return the plain text of *data*.

        PDF parsing is CPU-bound and runs in a worker thread.
        """
        if not data:
            raise DocumentInputError(message="Uploaded document is empty")

        resolved = self.resolve_media_type(media_type, filename)
        if resolved == PDF:
            text = await asyncio.to_thread(self._extract_pdf, data)
        elif resolved == HTML:
            text = self._extract_html(self._decode(data))
        else:
            text = self._decode(data)

        if not text.strip():
            raise DocumentInputError(
                message=f"No text could be extracted from {filename or 'upload'}",
            )

        logger.debug(
            "text_extracted",
            media_type=resolved,
            filename=filename,
            bytes=len(data),
            chars=len(text),
        )
        return text

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(data: bytes) -> str:
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DocumentInputError(
                message=f"Document is not valid UTF-8 text (byte {exc.start})",
            ) from exc

    @staticmethod
    def _extract_html(html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(_HTML_STRIP_TAGS):
            tag.decompose()
        lines = (line.strip() for line in soup.get_text("\n").splitlines())
        # Collapse runs of blank lines into single paragraph breaks.
        paragraphs: list[str] = []
        current: list[str] = []
        for line in lines:
            if line:
                current.append(line)
            elif current:
                paragraphs.append(" ".join(current))
                current = []
        if current:
            paragraphs.append(" ".join(current))
        return "\n\n".join(paragraphs)

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise DocumentInputError(message=f"Could not open PDF: {exc}") from exc

        pages: list[str] = []
        try:
            for page_num in range(len(doc)):
                text = doc[page_num].get_text("text").strip()
                if text:
                    pages.append(f"--- Page {page_num + 1} ---\n\n{text}")
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", size=len(data))
        return "\n\n".join(pages)
