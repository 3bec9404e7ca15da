"""Vector similarity helpers for the retriever.

Pure functions over plain float sequences; numpy does the arithmetic.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of *a* and *b* in ``[-1.0, 1.0]``.

    A zero-magnitude vector has no direction, so its similarity to
    anything is ``0.0``.

    Raises
    ------
    ValueError
        If the vectors have different dimensions.  Callers must filter
        incompatible embeddings before scoring.
    """
    if len(a) != len(b):
        raise ValueError(f"Dimension mismatch: {len(a)} != {len(b)}")

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push |similarity| a hair past 1.0.
    return max(-1.0, min(1.0, similarity))


def top_k(
    query: Sequence[float],
    vectors: Sequence[Sequence[float]],
    k: int,
) -> list[tuple[int, float]]:
    """Rank *vectors* by cosine similarity to *query*.

    Returns up to *k* ``(index, score)`` pairs, highest score first.  Ties
    keep the original order of *vectors* so results are deterministic.
    """
    if k <= 0 or not vectors:
        return []

    scored = [(idx, cosine_similarity(query, vec)) for idx, vec in enumerate(vectors)]
    # sorted() is stable, so equal scores stay in index order.
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return scored[:k]


def normalize(vector: Sequence[float]) -> list[float]:
    """Scale *vector* to unit length; a zero vector is returned unchanged."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        return arr.tolist()
    return (arr / norm).tolist()
