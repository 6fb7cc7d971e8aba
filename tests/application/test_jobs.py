import threading

import pytest

from local_rag.application.dto.ingest_dto import IngestDocumentRequest
from local_rag.application.jobs import IngestionJobRunner, JobState
from local_rag.application.use_cases.ingest_document import IngestDocument
from local_rag.domain.errors import (
    DocumentNotFoundError,
    EmptyInputError,
    IngestionCancelledError,
)
from local_rag.domain.models import Page
from local_rag.domain.services.chunking import ChunkingParams
from tests.fakes import FakeEmbedder

SMALL = ChunkingParams(
    target_words=40, overlap_words=8, boundary_window=6, max_words=60, min_tail_words=5
)


class BlockingEmbedder(FakeEmbedder):
    """Blocks inside the first batch until released."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def embed_texts(self, texts):  # type: ignore[no-untyped-def]
        self.started.set()
        self.release.wait(timeout=10)
        return super().embed_texts(texts)


@pytest.fixture
def runner_factory(store, clock):
    runners = []

    def make(embedder) -> IngestionJobRunner:
        runner = IngestionJobRunner(IngestDocument(store, embedder, clock, params=SMALL, batch_size=1))
        runners.append(runner)
        return runner

    yield make
    for r in runners:
        r.shutdown()


def _req(doc_id: str, pages) -> IngestDocumentRequest:
    return IngestDocumentRequest(doc_id, "Title", "science", tuple(pages))


def test_job_runs_to_success(runner_factory, embedder, store, bio_pages):
    runner = runner_factory(embedder)
    job = runner.submit(_req("bio", bio_pages))

    summary = job.wait(timeout=10)

    assert summary.is_ready
    assert job.state is JobState.SUCCEEDED
    assert job.done
    assert job.error is None
    assert job.progress is not None
    assert runner.get(job.job_id) is job
    assert store.get_document("bio").is_ready


def test_failed_job_exposes_error(runner_factory, embedder):
    runner = runner_factory(embedder)
    job = runner.submit(_req("empty", [Page(1, "")]))

    with pytest.raises(EmptyInputError):
        job.wait(timeout=10)
    assert job.state is JobState.FAILED
    assert isinstance(job.error, EmptyInputError)
    assert job.cancel() is False


def test_cancel_running_job_removes_partial_document(runner_factory, store, bio_pages):
    embedder = BlockingEmbedder()
    runner = runner_factory(embedder)
    job = runner.submit(_req("bio", bio_pages))
    assert embedder.started.wait(timeout=10)
    assert job.state is JobState.RUNNING

    assert job.cancel() is True
    embedder.release.set()

    with pytest.raises(IngestionCancelledError):
        job.wait(timeout=10)
    assert job.state is JobState.CANCELLED
    with pytest.raises(DocumentNotFoundError):
        store.get_document("bio")
    assert store.stats().chunks == 0


def test_cancel_queued_job_never_starts(runner_factory, store, bio_pages, history_pages):
    embedder = BlockingEmbedder()
    runner = runner_factory(embedder)
    first = runner.submit(_req("bio", bio_pages))
    assert embedder.started.wait(timeout=10)
    second = runner.submit(_req("rome", history_pages))

    assert second.cancel() is True
    assert second.state is JobState.CANCELLED
    embedder.release.set()

    first.wait(timeout=10)
    with pytest.raises(IngestionCancelledError):
        second.wait(timeout=10)
    assert [s.document.id for s in store.list_documents()] == ["bio"]
    assert len(runner.jobs()) == 2


def test_oldest_finished_jobs_are_evicted(store, clock, embedder, bio_pages):
    runner = IngestionJobRunner(
        IngestDocument(store, embedder, clock, params=SMALL, batch_size=4), max_finished_jobs=2
    )
    try:
        done = []
        for i in range(3):
            job = runner.submit(_req(f"doc{i}", bio_pages))
            job.wait(timeout=10)
            done.append(job)

        latest = runner.submit(_req("doc3", bio_pages))
        latest.wait(timeout=10)

        assert runner.get(done[0].job_id) is None
        assert runner.get(done[1].job_id) is done[1]
        assert runner.get(done[2].job_id) is done[2]
        assert runner.get(latest.job_id) is latest
    finally:
        runner.shutdown()
