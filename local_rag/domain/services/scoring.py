"""Pure domain functions for hybrid score fusion.

Functions:
- minmax_normalize: Scale scores linearly to [0,1] range
- fuse_scores: Weighted vector + lexical composite per candidate
- retrieval_confidence: Scalar confidence of a RetrievalResult
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from local_rag.domain.models import ScoreBreakdown

if TYPE_CHECKING:
    from local_rag.domain.models import RetrievalResult

VECTOR_WEIGHT = 0.6
LEXICAL_WEIGHT = 0.4
DEGRADED_CONFIDENCE_FACTOR = 0.7


def minmax_normalize(scores: Sequence[float]) -> list[float]:
    """Pure function: scales scores linearly to [0,1].

    Args:
        scores: Raw scores to normalize

    Returns:
        Normalized scores in [0,1] range. Empty input returns empty list.
        All equal scores return 1.0 each when positive, 0.0 otherwise.

    Examples:
        >>> minmax_normalize([1.0, 2.0, 3.0])
        [0.0, 0.5, 1.0]
        >>> minmax_normalize([5.0, 5.0])
        [1.0, 1.0]
        >>> minmax_normalize([0.0, 0.0])
        [0.0, 0.0]
    """
    if not scores:
        return []
    lo, hi = min(scores), max(scores)
    if hi == lo:
        return [1.0 if hi > 0 else 0.0] * len(scores)
    return [(s - lo) / (hi - lo) for s in scores]


def fuse_scores(
    vector_scores: Sequence[float] | None,
    lexical_scores: Sequence[float],
    *,
    vector_weight: float = VECTOR_WEIGHT,
    lexical_weight: float = LEXICAL_WEIGHT,
) -> list[ScoreBreakdown]:
    """Normalize both distributions independently and combine them.

    `vector_scores=None` means lexical-only scoring: the composite is the
    normalized lexical score alone.
    """
    lex_norm = minmax_normalize(lexical_scores)
    if vector_scores is None:
        return [
            ScoreBreakdown(vector=0.0, lexical=lx, vector_norm=0.0, lexical_norm=ln, composite=ln)
            for lx, ln in zip(lexical_scores, lex_norm)
        ]
    if len(vector_scores) != len(lexical_scores):
        raise ValueError("vector_scores and lexical_scores must have the same length")
    vec_norm = minmax_normalize(vector_scores)
    return [
        ScoreBreakdown(
            vector=vs,
            lexical=lx,
            vector_norm=vn,
            lexical_norm=ln,
            composite=vector_weight * vn + lexical_weight * ln,
        )
        for vs, lx, vn, ln in zip(vector_scores, lexical_scores, vec_norm, lex_norm)
    ]


def retrieval_confidence(result: RetrievalResult) -> float:
    """Top composite score scaled to [0,1]; reduced when the result is degraded."""
    if result.is_empty:
        return 0.0
    top = max(item.composite for item in result.items)
    if result.degraded:
        top *= DEGRADED_CONFIDENCE_FACTOR
    return min(1.0, max(0.0, top))
