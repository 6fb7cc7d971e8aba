# local_rag/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from local_rag.domain.errors import InvalidStatusTransitionError
from local_rag.domain.types import Vector


class DocumentStatus(str, Enum):
    PENDING = "pending"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.FAILED)

    def can_transition_to(self, target: DocumentStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.CHUNKING, DocumentStatus.FAILED}),
    DocumentStatus.CHUNKING: frozenset({DocumentStatus.EMBEDDING, DocumentStatus.FAILED}),
    DocumentStatus.EMBEDDING: frozenset({DocumentStatus.READY, DocumentStatus.FAILED}),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class Page:
    """One decoded page: 1-based page number plus its text (may be empty)."""

    number: int
    text: str


@dataclass(frozen=True)
class Document:
    """
    One ingested source.

    Owned by the store; only the ingestion pipeline advances `status`.
    `error` is set when the document ends up `failed`.
    """

    id: str
    title: str
    subject: str
    page_count: int
    byte_size: int
    status: DocumentStatus
    created_at: datetime
    error: str | None = None

    def with_status(self, status: DocumentStatus, error: str | None = None) -> Document:
        if not self.status.can_transition_to(status):
            raise InvalidStatusTransitionError(
                f"document '{self.id}': {self.status.value} -> {status.value} not allowed"
            )
        return replace(self, status=status, error=error)


@dataclass(frozen=True)
class DocumentSummary:
    """Document plus the aggregate chunk count returned by store lookups."""

    document: Document
    chunk_count: int

    @property
    def is_ready(self) -> bool:
        return self.document.status is DocumentStatus.READY

    @property
    def is_failed(self) -> bool:
        return self.document.status is DocumentStatus.FAILED


@dataclass(frozen=True)
class Chunk:
    """
    Contiguous span of one document's text, the unit of retrieval.

    - id:          "{document_id}::chunk::{ordinal}" (deterministic)
    - ordinal:     0-based position within the document
    - page_start / page_end: equal unless the chunk spans a page boundary
    - section:     heading in effect at the chunk's first new word, if any
    """

    id: str
    document_id: str
    ordinal: int
    page_start: int
    page_end: int
    text: str
    word_count: int
    section: str | None = None

    @property
    def page_label(self) -> str:
        if self.page_start == self.page_end:
            return f"p. {self.page_start}"
        return f"pp. {self.page_start}-{self.page_end}"


def chunk_id_for(document_id: str, ordinal: int) -> str:
    return f"{document_id}::chunk::{ordinal}"


@dataclass(frozen=True)
class Embedding:
    """Embedder output: the vector plus the id of the model that produced it."""

    vector: Vector
    model_id: str

    @property
    def dim(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class StoredVector:
    """The embedding of exactly one chunk (1:1 with Chunk)."""

    chunk_id: str
    values: Vector
    model_id: str

    @property
    def dim(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class Candidate:
    """A ready chunk with its vector and owning document's title/subject."""

    chunk: Chunk
    vector: StoredVector
    document_title: str
    subject: str


@dataclass(frozen=True)
class ScoreBreakdown:
    vector: float
    lexical: float
    vector_norm: float
    lexical_norm: float
    composite: float


class RetrievalMode(str, Enum):
    HYBRID = "hybrid"
    LEXICAL_ONLY = "lexical_only"


@dataclass(frozen=True)
class RetrievedChunk:
    """A selected chunk with its score breakdown and MMR marginal gain."""

    chunk: Chunk
    document_title: str
    subject: str
    scores: ScoreBreakdown
    marginal_gain: float

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def page_start(self) -> int:
        return self.chunk.page_start

    @property
    def composite(self) -> float:
        return self.scores.composite


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked chunks for one query, in MMR selection (citation) order."""

    query: str
    items: tuple[RetrievedChunk, ...] = ()
    mode: RetrievalMode = RetrievalMode.HYBRID
    warnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def degraded(self) -> bool:
        return self.mode is RetrievalMode.LEXICAL_ONLY or bool(self.warnings)

    @property
    def confidence(self) -> float:
        from local_rag.domain.services.scoring import retrieval_confidence

        return retrieval_confidence(self)


@dataclass(frozen=True)
class Citation:
    """Citation reference for a composed answer."""

    chunk_id: str
    document_id: str
    document_title: str
    page_start: int
    page_end: int
    score: float

    @property
    def label(self) -> str:
        if self.page_start == self.page_end:
            return f"{self.document_title}, p. {self.page_start}"
        return f"{self.document_title}, pp. {self.page_start}-{self.page_end}"


@dataclass(frozen=True)
class ContextBundle:
    """Concatenated, source-tagged chunk texts handed to an answerer."""

    text: str
    citations: tuple[Citation, ...]


@dataclass(frozen=True)
class ComposedAnswer:
    text: str
    citations: tuple[Citation, ...]
    confidence: float
    delegated: bool = False
    degraded: bool = False
    low_confidence: bool = False


@dataclass(frozen=True)
class CollectionSnapshot:
    """Everything an archive carries: documents, chunks and vectors."""

    documents: tuple[Document, ...] = ()
    chunks: tuple[Chunk, ...] = ()
    vectors: tuple[StoredVector, ...] = ()


@dataclass(frozen=True)
class StoreStats:
    """Aggregate counts for the whole collection."""

    documents: int
    ready_documents: int
    failed_documents: int
    chunks: int
    vectors: int
    total_bytes: int
    subjects: tuple[str, ...] = ()
    model_ids: tuple[str, ...] = ()
