"""Text normalization utilities shared by retrieval and the podcast workflow.

This module handles four distinct concerns:

1. **Lexical normalization** -- lowercases, strips punctuation and drops
   short tokens so the retriever's keyword fallback compares like with like.

2. **Binary sniffing** -- detects chunks that are really un-extracted PDF
   syntax or other binary noise, which must never be vector-ranked.

3. **Model output cleanup** -- removes ``<think>`` deliberation blocks
   that reasoning models emit ahead of their actual answer.

4. **Question deduplication** -- uses rapidfuzz to drop generated podcast
   questions that merely restate a baseline question.
"""

import re

from rapidfuzz import fuzz, process

# Tokens of this length or shorter carry no lexical signal ("a", "of", "is").
MIN_TOKEN_LENGTH = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]+")
_WHITESPACE = re.compile(r"\s+")


def normalize_for_match(text: str) -> str:
    """Lowercase *text*, replace non-alphanumerics with spaces, collapse whitespace."""
    lowered = text.lower()
    stripped = _NON_ALNUM.sub(" ", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def lexical_tokens(text: str) -> list[str]:
    """Return the normalized tokens of *text* longer than two characters, in order."""
    return [t for t in normalize_for_match(text).split(" ") if len(t) >= MIN_TOKEN_LENGTH]


# ---------------------------------------------------------------------------
# Binary sniffing
# ---------------------------------------------------------------------------

# Fragments of raw PDF object syntax that survive a failed text extraction.
_BINARY_MARKERS: tuple[str, ...] = (
    "%PDF-",
    "endobj",
    "endstream",
    "/Type /Page",
    "/Type/Page",
    "/Filter /FlateDecode",
    "/FlateDecode",
    "startxref",
    "/MediaBox",
)

# Share of control / replacement characters above which text is treated as binary.
_CONTROL_CHAR_RATIO = 0.1


def looks_binary(text: str) -> bool:
    """Heuristically decide whether *text* is un-extracted binary or PDF markup."""
    if not text:
        return False

    if any(marker in text for marker in _BINARY_MARKERS):
        return True

    suspicious = sum(
        1
        for ch in text
        if ch == "\ufffd" or (ord(ch) < 32 and ch not in "\n\r\t")
    )
    return suspicious / len(text) > _CONTROL_CHAR_RATIO


# ---------------------------------------------------------------------------
# Model output cleanup
# ---------------------------------------------------------------------------

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
# A reply cut off mid-deliberation leaves an opening tag with no close.
_UNCLOSED_THINK = re.compile(r"<think>.*\Z", re.DOTALL | re.IGNORECASE)
_STRAY_CLOSE = re.compile(r"</think>", re.IGNORECASE)


def strip_think_blocks(text: str) -> str:
    """Remove ``<think>...</think>`` sections (and an unclosed trailing one) from *text*."""
    cleaned = _THINK_BLOCK.sub("", text)
    cleaned = _UNCLOSED_THINK.sub("", cleaned)
    cleaned = _STRAY_CLOSE.sub("", cleaned)
    return cleaned.strip()


# ---------------------------------------------------------------------------
# Question handling
# ---------------------------------------------------------------------------

_NUMBERED_ITEM = re.compile(r"\d+\.\s+")


def parse_numbered_questions(raw: str, min_length: int = 10) -> list[str]:
    """Split an LLM's numbered list into questions.

    Keeps items longer than *min_length* characters that contain a
    question mark.
    """
    parts = _NUMBERED_ITEM.split(raw)
    questions: list[str] = []
    for part in parts:
        item = _WHITESPACE.sub(" ", part).strip()
        if len(item) > min_length and "?" in item:
            questions.append(item)
    return questions


def dedupe_questions(
    candidates: list[str],
    existing: list[str],
    threshold: float = 0.85,
) -> list[str]:
    """Drop candidates that fuzzily restate a question in *existing* or an earlier candidate.

    Uses rapidfuzz ``token_sort_ratio`` so word-order changes still count
    as duplicates.
    """
    kept: list[str] = []
    for question in candidates:
        pool = existing + kept
        if pool and process.extractOne(
            question,
            pool,
            scorer=fuzz.token_sort_ratio,
            score_cutoff=threshold * 100,
        ):
            continue
        kept.append(question)
    return kept
