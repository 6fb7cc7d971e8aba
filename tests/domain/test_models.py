from datetime import datetime, timezone

import pytest

from local_rag.domain.errors import InvalidStatusTransitionError
from local_rag.domain.models import (
    Chunk,
    Citation,
    Document,
    DocumentStatus,
    DocumentSummary,
    Embedding,
    RetrievalMode,
    RetrievalResult,
    chunk_id_for,
)


def _doc(status: DocumentStatus = DocumentStatus.PENDING) -> Document:
    return Document(
        id="d1",
        title="Doc",
        subject="bio",
        page_count=2,
        byte_size=10,
        status=status,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_status_lifecycle_happy_path():
    doc = _doc()
    for status in (DocumentStatus.CHUNKING, DocumentStatus.EMBEDDING, DocumentStatus.READY):
        doc = doc.with_status(status)
    assert doc.status is DocumentStatus.READY
    assert doc.status.is_terminal


def test_any_non_terminal_status_can_fail():
    for status in (DocumentStatus.PENDING, DocumentStatus.CHUNKING, DocumentStatus.EMBEDDING):
        failed = _doc(status).with_status(DocumentStatus.FAILED, error="boom")
        assert failed.error == "boom"


def test_terminal_and_skipping_transitions_are_rejected():
    with pytest.raises(InvalidStatusTransitionError):
        _doc(DocumentStatus.READY).with_status(DocumentStatus.CHUNKING)
    with pytest.raises(InvalidStatusTransitionError):
        _doc(DocumentStatus.FAILED).with_status(DocumentStatus.READY)
    with pytest.raises(InvalidStatusTransitionError):
        _doc(DocumentStatus.PENDING).with_status(DocumentStatus.READY)


def test_summary_flags():
    assert DocumentSummary(_doc(DocumentStatus.READY), 3).is_ready
    assert DocumentSummary(_doc(DocumentStatus.FAILED), 0).is_failed


def test_chunk_ids_and_page_labels():
    assert chunk_id_for("abc", 4) == "abc::chunk::4"
    single = Chunk("abc::chunk::0", "abc", 0, 3, 3, "t", 1)
    spanning = Chunk("abc::chunk::1", "abc", 1, 3, 4, "t", 1)
    assert single.page_label == "p. 3"
    assert spanning.page_label == "pp. 3-4"


def test_citation_label():
    c = Citation("c", "d", "Cell Biology", 2, 2, 0.5)
    assert c.label == "Cell Biology, p. 2"
    assert Citation("c", "d", "Cell Biology", 2, 5, 0.5).label == "Cell Biology, pp. 2-5"


def test_embedding_dim():
    assert Embedding((0.1, 0.2, 0.3), "m").dim == 3


def test_retrieval_result_degraded_flag():
    assert not RetrievalResult(query="q").degraded
    assert RetrievalResult(query="q", mode=RetrievalMode.LEXICAL_ONLY).degraded
    assert RetrievalResult(query="q", warnings=("w",)).degraded
    assert RetrievalResult(query="q").is_empty
