"""Deterministic text chunking along paragraph and sentence boundaries.

Splits extracted document text into segments of at most ``max_size``
characters for embedding.

The chunking strategy has two key properties:

1. **Paragraph-preserving** -- chunk boundaries fall on paragraph breaks
   (blank lines) wherever possible, so a chunk rarely starts or ends
   mid-thought.  Only a paragraph that is longer than ``max_size`` on its
   own is broken up, and then at sentence boundaries using an
   abbreviation-aware splitter that does not break on "Dr.", "e.g." etc.

2. **Deterministic, no overlap** -- the same text always yields the same
   chunks in the same order, and every character of content lands in
   exactly one chunk.  Chunk indices are used as stable keys in the chunk
   map, so re-chunking the same text must reproduce them.

A single sentence longer than ``max_size`` is emitted as its own chunk
rather than being cut mid-sentence.
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_SIZE = 1000

_PARAGRAPH_SEP = "\n\n"
_SENTENCE_SEP = " "

# Common abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = (
    "Dr",
    "Mr",
    "Mrs",
    "Ms",
    "Prof",
    "Jr",
    "Sr",
    "St",
    "Ave",
    "Blvd",
    "Vol",
    "No",
    "Fig",
    "vs",
    "etc",
    "approx",
    "dept",
    "est",
    "govt",
    "Inc",
    "Ltd",
    "Co",
)

_ABBREVIATION_PATTERN = re.compile(r"\b(" + "|".join(_ABBREVIATIONS) + r")\.")
_LATIN_PATTERN = re.compile(r"\b(e\.g|i\.e|cf)\.", re.IGNORECASE)
_SENTENCE_END = re.compile(r"[.!?](?:\s|$)")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


def chunk(text: str, max_size: int = DEFAULT_MAX_SIZE) -> list[str]:
    """Split *text* into ordered, non-empty chunks of at most *max_size* characters.

    Parameters
    ----------
    text:
        The full extracted text of a document.
    max_size:
        Upper bound on chunk length in characters.  Exceeded only by a
        single sentence that is itself longer than this.

    Returns
    -------
    list[str]
        Chunks in document order.  Empty or whitespace-only input returns
        an empty list.

    Raises
    ------
    ValueError
        If *max_size* is not positive.
    """
    return TextChunker(max_size=max_size).chunk(text)


class TextChunker:
    """Greedy paragraph-then-sentence chunker.

    The algorithm keeps one running buffer:
    1. Split text into paragraphs (blank-line boundaries).
    2. Append each paragraph to the buffer, flushing the buffer first if
       the paragraph would push it past ``max_size``.
    3. A paragraph longer than ``max_size`` is fed in sentence by sentence
       through the same buffer.

    Parameters
    ----------
    max_size:
        Maximum chunk length in characters (default 1000).
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be a positive number of characters")
        self._max_size = max_size

    @property
    def max_size(self) -> int:
        return self._max_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[str]:
        """Split *text* into chunks; see :func:`chunk`."""
        if not text or not text.strip():
            return []

        paragraphs = self._split_paragraphs(text)
        chunks = self._accumulate(paragraphs)

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            max_size=self._max_size,
            chars=len(text),
        )
        return chunks

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split *text* on blank lines, discarding empty paragraphs."""
        parts = _PARAGRAPH_SPLIT.split(text)
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* at sentence boundaries while respecting abbreviations.

        Periods after known abbreviations are masked with ``\\x00`` (same
        length, so indices stay aligned with the original text) before
        searching for ``.``, ``!`` or ``?`` followed by whitespace or the
        end of the string.
        """
        masked = _ABBREVIATION_PATTERN.sub(lambda m: m.group(1) + "\x00", text)
        masked = _LATIN_PATTERN.sub(lambda m: m.group(0)[:-1] + "\x00", masked)

        sentences: list[str] = []
        last = 0
        for match in _SENTENCE_END.finditer(masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)

        return sentences if sentences else [text.strip()]

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _accumulate(self, paragraphs: list[str]) -> list[str]:
        chunks: list[str] = []
        buffer = ""

        def _add(piece: str, separator: str) -> None:
            nonlocal buffer
            if not buffer:
                buffer = piece
                return
            if len(buffer) + len(separator) + len(piece) > self._max_size:
                chunks.append(buffer)
                buffer = piece
            else:
                buffer = buffer + separator + piece

        for para in paragraphs:
            if len(para) <= self._max_size:
                _add(para, _PARAGRAPH_SEP)
                continue

            for position, sentence in enumerate(self._split_sentences(para)):
                _add(sentence, _PARAGRAPH_SEP if position == 0 else _SENTENCE_SEP)

        if buffer:
            chunks.append(buffer)

        oversized = sum(1 for c in chunks if len(c) > self._max_size)
        if oversized:
            logger.debug("chunking_oversized_sentences", count=oversized, max_size=self._max_size)
        return chunks
