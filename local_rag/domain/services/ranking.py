# local_rag/domain/services/ranking.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from local_rag.domain.errors import ValidationError
from local_rag.domain.models import Candidate, RetrievedChunk, ScoreBreakdown
from local_rag.domain.similarity import max_similarity


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    scores: ScoreBreakdown

    @property
    def composite(self) -> float:
        return self.scores.composite

    @property
    def vector(self) -> tuple[float, ...]:
        return self.candidate.vector.values

    def sort_key(self) -> tuple[float, str, int]:
        # Highest composite first; ties by document id, then chunk ordinal.
        chunk = self.candidate.chunk
        return (-self.composite, chunk.document_id, chunk.ordinal)


def select_pool(scored: Sequence[ScoredCandidate], pool_size: int) -> list[ScoredCandidate]:
    """Top `pool_size` candidates by composite score, deterministically ordered."""
    if pool_size <= 0:
        return []
    return sorted(scored, key=ScoredCandidate.sort_key)[:pool_size]


def mmr(
    pool: Sequence[ScoredCandidate],
    top_k: int,
    lambda_mult: float = 0.5,
) -> list[RetrievedChunk]:
    """
    Maximal Marginal Relevance (MMR) selection over the over-fetch pool.

    Each step picks the remaining candidate maximising
    `lambda * composite - (1 - lambda) * max_sim(candidate, selected)`.
    Ties keep pool order, so the output is a pure function of the pool.
    """
    if not 0.0 <= lambda_mult <= 1.0:
        raise ValidationError(f"lambda must be within [0, 1], got {lambda_mult}")
    if top_k <= 0:
        return []

    selected: list[tuple[int, float]] = []
    remaining: list[int] = list(range(len(pool)))

    while remaining and len(selected) < top_k:
        best_idx: int | None = None
        best_score = -math.inf
        chosen_vectors = [pool[j].vector for j, _ in selected]

        for i in remaining:
            diversity = max_similarity(pool[i].vector, chosen_vectors) if selected else 0.0
            score = lambda_mult * pool[i].composite - (1.0 - lambda_mult) * diversity
            if score > best_score:
                best_score = score
                best_idx = i

        assert best_idx is not None
        selected.append((best_idx, best_score))
        remaining.remove(best_idx)

    return [
        RetrievedChunk(
            chunk=pool[i].candidate.chunk,
            document_title=pool[i].candidate.document_title,
            subject=pool[i].candidate.subject,
            scores=pool[i].scores,
            marginal_gain=gain,
        )
        for i, gain in selected
    ]
