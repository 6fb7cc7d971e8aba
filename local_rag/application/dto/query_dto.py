# local_rag/application/dto/query_dto.py
from __future__ import annotations

from dataclasses import dataclass

from local_rag.domain.models import ComposedAnswer, RetrievalResult


@dataclass(frozen=True)
class QueryRequest:
    """
    DTO for searching / asking the collection.

    - query:       user question (non-empty)
    - subject:     optional subject filter; None searches every subject
    - top_k:       number of chunks to return
    - lambda_mult: MMR trade-off, 1.0 = pure relevance, 0.0 = pure diversity
    """

    query: str
    subject: str | None = None
    top_k: int = 5
    lambda_mult: float = 0.5


@dataclass(frozen=True)
class AskResponse:
    """Composed answer plus the retrieval it was built from."""

    answer: ComposedAnswer
    retrieval: RetrievalResult
