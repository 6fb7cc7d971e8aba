import pytest

from local_rag.config.composition import build_engine
from local_rag.config.settings import AppSettings
from local_rag.infrastructure.store.sqlalchemy_store import SQLAlchemyDocumentStore
from tests.fakes import BIOLOGY_PAGES, HISTORY_PAGES, FakeEmbedder, FixedClock


@pytest.fixture
def bio_pages():
    return BIOLOGY_PAGES


@pytest.fixture
def history_pages():
    return HISTORY_PAGES


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def settings(tmp_path):
    return AppSettings(
        database_url=f"sqlite:///{tmp_path / 'store.db'}",
        embedder_backend="none",
        answerer_backend="none",
        embedding_batch_size=4,
        chunk_target_words=40,
        chunk_overlap_words=8,
        chunk_boundary_window=6,
        chunk_max_words=60,
        chunk_min_tail_words=5,
        query_top_k=3,
        query_mmr_lambda=0.7,
        query_overfetch_factor=4,
        query_embed_timeout_s=None,
        query_confidence_threshold=0.3,
        answer_max_chars=2000,
    )


@pytest.fixture
def store(settings):
    s = SQLAlchemyDocumentStore(settings.database_url)
    yield s
    s.close()


@pytest.fixture
def engine(settings, store, embedder, clock):
    eng = build_engine(settings, store=store, embedder=embedder, clock=clock)
    yield eng
    eng.close()
