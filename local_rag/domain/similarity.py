"""Pure vector similarity functions.

Vectors of different length are never comparable; they score 0.0 instead of
raising so that mixed-model candidates can still flow through MMR.
"""

from collections.abc import Sequence
from math import sqrt

from .types import Score


def cosine(u: Sequence[float], v: Sequence[float]) -> Score:
    """Compute cosine similarity between two vectors.

    Args:
        u: First vector
        v: Second vector

    Returns:
        Cosine similarity score between -1 and 1 (0.0 for empty, zero-norm
        or dimension-mismatched inputs)
    """
    if not u or len(u) != len(v):
        return 0.0
    dot = sum(a * b for a, b in zip(u, v))
    nu = sqrt(sum(a * a for a in u))
    nv = sqrt(sum(b * b for b in v))
    if nu == 0.0 or nv == 0.0:
        return 0.0
    return dot / (nu * nv)


def max_similarity(v: Sequence[float], others: Sequence[Sequence[float]]) -> Score:
    """Highest cosine similarity between `v` and any vector in `others` (0.0 if none)."""
    if not others:
        return 0.0
    return max(cosine(v, o) for o in others)
