# local_rag/domain/services/composition.py
# Pure answer composition: context bundles, citations and templated answers.
from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum

from local_rag.domain.models import (
    Citation,
    ComposedAnswer,
    ContextBundle,
    RetrievalResult,
    RetrievedChunk,
)

TEMPLATE_CONFIDENCE_FACTOR = 0.75
DEFAULT_MAX_CHARS = 2000
DEFAULT_CONFIDENCE_THRESHOLD = 0.3

LOW_CONFIDENCE_PREFIX = (
    "I found some information but I'm not very confident it directly answers your question."
)
NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information in the indexed documents to answer your "
    "question. Try rephrasing it or check that the relevant material has been ingested."
)


class QueryShape(str, Enum):
    COMPARISON = "comparison"
    DEFINITION = "definition"
    EXPLANATION = "explanation"
    STEP_BY_STEP = "step_by_step"
    GENERAL = "general"


# Checked in order; the first match wins.
_SHAPE_PATTERNS: list[tuple[QueryShape, re.Pattern[str]]] = [
    (
        QueryShape.COMPARISON,
        re.compile(r"\b(compare|comparison|difference|differences|differ|versus|vs\.?)\b"),
    ),
    (
        QueryShape.DEFINITION,
        re.compile(r"\b(what is|what are|what's|define|definition|meaning of|stands? for)\b"),
    ),
    (QueryShape.EXPLANATION, re.compile(r"\b(how|why|explain|describe)\b")),
    (QueryShape.STEP_BY_STEP, re.compile(r"\b(step|steps|process|procedure|stages)\b")),
]

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def detect_query_shape(query: str) -> QueryShape:
    q = " ".join(query.lower().split())
    for shape, pat in _SHAPE_PATTERNS:
        if pat.search(q):
            return shape
    return QueryShape.GENERAL


def citation_for(item: RetrievedChunk) -> Citation:
    return Citation(
        chunk_id=item.chunk.id,
        document_id=item.document_id,
        document_title=item.document_title,
        page_start=item.chunk.page_start,
        page_end=item.chunk.page_end,
        score=item.composite,
    )


def build_context_bundle(result: RetrievalResult) -> ContextBundle:
    """Concatenate chunk texts in citation order, each tagged with its source."""
    blocks = [
        f"[{i}] {item.document_title}, {item.chunk.page_label}\n{item.chunk.text}"
        for i, item in enumerate(result.items, start=1)
    ]
    return ContextBundle(
        text="\n\n".join(blocks),
        citations=tuple(citation_for(item) for item in result.items),
    )


def format_sources(citations: Sequence[Citation]) -> str:
    lines = [f"{i}. {c.label}" for i, c in enumerate(citations, start=1)]
    return "Sources:\n" + "\n".join(lines)


def annotate_with_sources(text: str, citations: Sequence[Citation]) -> str:
    if not citations:
        return text
    return f"{text.rstrip()}\n\n{format_sources(citations)}"


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    cut = text[: max(0, max_chars - 3)]
    space = cut.rfind(" ")
    if space > max_chars // 2:
        cut = cut[:space]
    return cut.rstrip() + "..."


def _sentences(text: str) -> list[str]:
    flat = " ".join(text.split())
    return [s for s in _SENTENCE_SPLIT.split(flat) if s]


def _excerpt(text: str, limit: int = 600) -> str:
    return truncate(" ".join(text.split()), limit)


def _source_line(item: RetrievedChunk) -> str:
    return f"Source: {citation_for(item).label}"


# ---------- Templates ----------


def _definition(items: Sequence[RetrievedChunk]) -> str:
    top = items[0]
    sentences = _sentences(top.chunk.text)
    first = sentences[0] if sentences else _excerpt(top.chunk.text)
    return f"Definition: {first}\n\n{_source_line(top)}"


def _explanation(items: Sequence[RetrievedChunk]) -> str:
    top = items[0]
    body = " ".join(_sentences(top.chunk.text)[:3])
    return f"Explanation:\n\n{body}\n\n{_source_line(top)}"


def _step_by_step(items: Sequence[RetrievedChunk]) -> str:
    top = items[0]
    steps = _sentences(top.chunk.text)[:5]
    numbered = "\n".join(f"{i}. {s}" for i, s in enumerate(steps, start=1))
    return f"Step-by-step:\n\n{numbered}\n\n{_source_line(top)}"


def _comparison(items: Sequence[RetrievedChunk]) -> str:
    parts = [
        f"Source {i} ({citation_for(item).label}): {_excerpt(item.chunk.text, 500)}"
        for i, item in enumerate(items[:2], start=1)
    ]
    return "Comparison:\n\n" + "\n\n".join(parts)


def _general(items: Sequence[RetrievedChunk]) -> str:
    top = items[0]
    return f"Answer:\n\n{_excerpt(top.chunk.text)}\n\n{_source_line(top)}"


_TEMPLATES = {
    QueryShape.DEFINITION: _definition,
    QueryShape.EXPLANATION: _explanation,
    QueryShape.STEP_BY_STEP: _step_by_step,
    QueryShape.COMPARISON: _comparison,
    QueryShape.GENERAL: _general,
}


def synthesize_answer(
    query: str,
    result: RetrievalResult,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    degraded: bool = False,
) -> ComposedAnswer:
    """Deterministic templated answer built from the top-ranked chunk(s).

    Confidence is the retrieval confidence scaled by TEMPLATE_CONFIDENCE_FACTOR,
    so a templated answer always ranks below a delegated one for the same
    retrieval. Citations list exactly the chunks the template used.
    """
    if result.is_empty:
        return ComposedAnswer(
            text=NO_RESULTS_ANSWER,
            citations=(),
            confidence=0.0,
            degraded=degraded or result.degraded,
            low_confidence=True,
        )

    shape = detect_query_shape(query)
    if shape is QueryShape.COMPARISON and len(result.items) < 2:
        shape = QueryShape.GENERAL
    used = result.items[:2] if shape is QueryShape.COMPARISON else result.items[:1]
    text = _TEMPLATES[shape](used)

    confidence = result.confidence * TEMPLATE_CONFIDENCE_FACTOR
    low = confidence < confidence_threshold
    if low:
        text = f"{LOW_CONFIDENCE_PREFIX}\n\n{text}"

    return ComposedAnswer(
        text=truncate(text, max_chars),
        citations=tuple(citation_for(item) for item in used),
        confidence=confidence,
        delegated=False,
        degraded=degraded or result.degraded,
        low_confidence=low,
    )
