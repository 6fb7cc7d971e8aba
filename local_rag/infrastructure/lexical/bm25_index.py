from __future__ import annotations

import re
import threading
from collections.abc import Collection, Sequence
from typing import Any

from rank_bm25 import BM25Plus

from local_rag.application.ports.lexical_index_port import LexicalIndexPort

TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# BM25 parameters
K1 = 1.5
B = 0.75
DELTA = 1.0


def tokenize(text: str, min_token_len: int = 1) -> list[str]:
    tokens = [t.lower() for t in TOKEN_RE.findall(text)]
    if min_token_len > 1:
        tokens = [t for t in tokens if len(t) >= min_token_len]
    return tokens


class BM25LexicalIndex(LexicalIndexPort):
    """In-memory BM25+ index over chunk text, backed by rank-bm25.

    BM25+ keeps every IDF positive, so a chunk sharing a query term scores
    above zero even in a one- or two-chunk collection. Chunks sharing no
    term with the query are left out of the result (score 0).

    Rebuilt wholesale from the store at a given revision; scoring is
    read-only and safe to call from several threads.
    """

    def __init__(self, k1: float = K1, b: float = B, delta: float = DELTA) -> None:
        self.k1 = k1
        self.b = b
        self.delta = delta
        self._lock = threading.Lock()
        self._revision: int | None = None
        self._ids: list[str] = []
        self._terms: list[frozenset[str]] = []
        self._bm25: Any | None = None

    @property
    def revision(self) -> int | None:
        return self._revision

    def __len__(self) -> int:
        return len(self._ids)

    def rebuild(self, revision: int, entries: Sequence[tuple[str, str]]) -> None:
        ids = [chunk_id for chunk_id, _ in entries]
        corpus = [tokenize(text) for _, text in entries]
        # BM25Plus divides by the average document length.
        bm25 = BM25Plus(corpus, k1=self.k1, b=self.b, delta=self.delta) if any(corpus) else None
        with self._lock:
            self._ids = ids
            self._terms = [frozenset(tokens) for tokens in corpus]
            self._bm25 = bm25
            self._revision = revision

    def score(self, query: str, restrict_to: Collection[str] | None = None) -> dict[str, float]:
        with self._lock:
            ids, terms_by_chunk, bm25 = self._ids, self._terms, self._bm25
        terms = tokenize(query)
        if bm25 is None or not terms:
            return {}
        query_terms = set(terms)
        raw = bm25.get_scores(terms)
        scores: dict[str, float] = {}
        for chunk_id, chunk_terms, s in zip(ids, terms_by_chunk, raw):
            if query_terms.isdisjoint(chunk_terms):
                continue
            if restrict_to is not None and chunk_id not in restrict_to:
                continue
            scores[chunk_id] = float(s)
        return scores
