import time

import pytest

from local_rag.application.dto.ingest_dto import IngestDocumentRequest
from local_rag.application.dto.query_dto import QueryRequest
from local_rag.application.use_cases.hybrid_search import HybridSearch
from local_rag.application.use_cases.ingest_document import IngestDocument
from local_rag.domain.errors import StoreUnavailableError, ValidationError
from local_rag.domain.models import Page, RetrievalMode
from local_rag.domain.services.chunking import ChunkingParams
from local_rag.infrastructure.lexical.bm25_index import BM25LexicalIndex
from tests.fakes import FakeEmbedder

SMALL = ChunkingParams(
    target_words=40, overlap_words=8, boundary_window=6, max_words=60, min_tail_words=5
)


def _ingest(store, embedder, clock, doc_id, title, subject, pages) -> None:
    uc = IngestDocument(store, embedder, clock, params=SMALL, batch_size=4)
    uc.execute(IngestDocumentRequest(doc_id, title, subject, tuple(pages))).unwrap()


@pytest.fixture
def corpus(store, embedder, clock, bio_pages, history_pages):
    _ingest(store, embedder, clock, "bio", "Biology", "science", bio_pages)
    _ingest(store, embedder, clock, "rome", "Rome", "history", history_pages)
    return store


def _search(store, embedder=None, **kwargs) -> HybridSearch:
    return HybridSearch(store, BM25LexicalIndex(), embedder=embedder, **kwargs)


def test_empty_store_returns_empty_result(store, embedder):
    res = _search(store, embedder).execute(QueryRequest("photosynthesis"))
    assert res.ok
    assert res.value.is_empty
    assert res.value.confidence == 0.0


def test_hybrid_search_ranks_relevant_document_first(corpus, embedder):
    result = _search(corpus, embedder).execute(
        QueryRequest("chlorophyll absorbs light in the chloroplast", top_k=3)
    ).unwrap()

    assert result.mode is RetrievalMode.HYBRID
    assert result.warnings == ()
    assert result.items[0].document_id == "bio"
    assert 0 < len(result.items) <= 3
    assert len({i.chunk.id for i in result.items}) == len(result.items)
    assert 0.0 < result.confidence <= 1.0


def test_search_is_deterministic(corpus, embedder):
    search = _search(corpus, embedder)
    req = QueryRequest("Roman emperor Augustus", top_k=4, lambda_mult=0.6)
    first = search.execute(req).unwrap()
    second = _search(corpus, embedder).execute(req).unwrap()

    assert [i.chunk.id for i in first.items] == [i.chunk.id for i in second.items]
    assert [i.composite for i in first.items] == [i.composite for i in second.items]


def test_subject_filter(corpus, embedder):
    result = _search(corpus, embedder).execute(
        QueryRequest("chlorophyll photosynthesis", subject="history")
    ).unwrap()
    assert result.items
    assert {i.subject for i in result.items} == {"history"}

    none = _search(corpus, embedder).execute(QueryRequest("anything", subject="math")).unwrap()
    assert none.is_empty


def test_lambda_one_returns_chunks_in_relevance_order(corpus, embedder):
    result = _search(corpus, embedder).execute(
        QueryRequest("energy glucose ATP", top_k=4, lambda_mult=1.0)
    ).unwrap()
    composites = [i.composite for i in result.items]
    assert composites == sorted(composites, reverse=True)


def test_newly_ingested_document_is_searchable(store, embedder, clock, bio_pages, history_pages):
    _ingest(store, embedder, clock, "bio", "Biology", "science", bio_pages)
    search = _search(store, embedder)
    assert search.execute(QueryRequest("Constantinople Ottoman")).unwrap().items[0].document_id == "bio"

    _ingest(store, embedder, clock, "rome", "Rome", "history", history_pages)
    result = search.execute(QueryRequest("Constantinople Ottoman")).unwrap()
    assert result.items[0].document_id == "rome"


def test_deleted_document_disappears_from_results(corpus, embedder):
    search = _search(corpus, embedder)
    search.execute(QueryRequest("Roman empire")).unwrap()
    corpus.delete_document("rome")
    result = search.execute(QueryRequest("Roman empire")).unwrap()
    assert all(i.document_id != "rome" for i in result.items)


def test_without_embedder_search_is_lexical_only(corpus):
    result = _search(corpus, None).execute(QueryRequest("mitochondria respiration")).unwrap()

    assert result.mode is RetrievalMode.LEXICAL_ONLY
    assert result.degraded
    assert result.items[0].document_id == "bio"
    assert all(i.scores.lexical > 0 for i in result.items)


def test_lexical_only_finds_term_in_single_chunk_collection(store, embedder, clock):
    pages = [Page(1, "Photosynthesis converts light into chemical energy.")]
    _ingest(store, embedder, clock, "leaf", "Leaf", "science", pages)

    result = _search(store, None).execute(QueryRequest("photosynthesis")).unwrap()

    assert result.mode is RetrievalMode.LEXICAL_ONLY
    assert [i.document_id for i in result.items] == ["leaf"]
    assert result.items[0].scores.lexical > 0


def test_lexical_only_two_chunk_collection(store, embedder, clock):
    _ingest(store, embedder, clock, "leaf", "Leaf", "science", [Page(1, "photosynthesis light energy")])
    _ingest(store, embedder, clock, "rome", "Rome", "history", [Page(1, "roman empire legions")])

    result = _search(store, None).execute(QueryRequest("photosynthesis")).unwrap()

    assert [i.document_id for i in result.items] == ["leaf"]


def test_lexical_only_without_matching_terms_is_empty(corpus):
    result = _search(corpus, None).execute(QueryRequest("quantum chromodynamics")).unwrap()
    assert result.is_empty
    assert result.confidence == 0.0


def test_failing_query_embedder_degrades_to_lexical(corpus):
    class BrokenEmbedder(FakeEmbedder):
        def embed(self, text):  # type: ignore[no-untyped-def]
            raise RuntimeError("GPU on fire")

    result = _search(corpus, BrokenEmbedder()).execute(QueryRequest("Augustus emperor")).unwrap()

    assert result.mode is RetrievalMode.LEXICAL_ONLY
    assert any("GPU on fire" in w for w in result.warnings)
    assert result.items[0].document_id == "rome"


def test_slow_query_embedder_times_out(corpus):
    class SlowEmbedder(FakeEmbedder):
        def embed(self, text):  # type: ignore[no-untyped-def]
            time.sleep(1.0)
            return super().embed(text)

    search = _search(corpus, SlowEmbedder(), embed_timeout_s=0.05)
    try:
        result = search.execute(QueryRequest("Augustus emperor")).unwrap()
    finally:
        search.close()

    assert result.mode is RetrievalMode.LEXICAL_ONLY
    assert any("timed out" in w for w in result.warnings)


def test_different_query_model_degrades_to_lexical(corpus):
    result = _search(corpus, FakeEmbedder(model_id="other-model")).execute(
        QueryRequest("Augustus emperor")
    ).unwrap()

    assert result.mode is RetrievalMode.LEXICAL_ONLY
    assert any("different model" in w for w in result.warnings)


def test_stale_model_chunks_are_excluded(store, clock, bio_pages, history_pages):
    old, new = FakeEmbedder(model_id="old"), FakeEmbedder(model_id="new")
    _ingest(store, old, clock, "bio", "Biology", "science", bio_pages)
    _ingest(store, new, clock, "rome", "Rome", "history", history_pages)

    result = _search(store, new).execute(QueryRequest("energy and empire", top_k=10)).unwrap()

    assert result.mode is RetrievalMode.HYBRID
    assert any("stale" in w for w in result.warnings)
    assert {i.document_id for i in result.items} == {"rome"}


@pytest.mark.parametrize(
    "req",
    [
        QueryRequest("   "),
        QueryRequest("ok", top_k=0),
        QueryRequest("ok", lambda_mult=1.5),
    ],
)
def test_invalid_queries_are_rejected(store, embedder, req):
    res = _search(store, embedder).execute(req)
    assert isinstance(res.error, ValidationError)


def test_store_failure_is_returned_as_error(embedder):
    class DownStore:
        def revision(self) -> int:
            raise StoreUnavailableError("disk gone")

    res = HybridSearch(DownStore(), BM25LexicalIndex(), embedder).execute(QueryRequest("x"))
    assert isinstance(res.error, StoreUnavailableError)
