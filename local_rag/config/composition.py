import logging

from local_rag.application.engine import RetrievalEngine
from local_rag.application.ports.answerer_port import AnswererPort
from local_rag.application.ports.clock_port import ClockPort
from local_rag.application.ports.document_store_port import DocumentStorePort
from local_rag.application.ports.embedding_port import EmbeddingPort
from local_rag.application.ports.lexical_index_port import LexicalIndexPort
from local_rag.application.use_cases.compose_answer import ComposeAnswer
from local_rag.application.use_cases.hybrid_search import HybridSearch
from local_rag.application.use_cases.ingest_document import IngestDocument
from local_rag.config.settings import AppSettings
from local_rag.domain.errors import ValidationError
from local_rag.domain.services.chunking import ChunkingParams
from local_rag.infrastructure.answerer.openai_answerer import OpenAIAnswerer
from local_rag.infrastructure.archive.json_archive import JsonArchiveCodec
from local_rag.infrastructure.embeddings.sentence_transformers_embedder import (
    SentenceTransformersEmbedder,
)
from local_rag.infrastructure.lexical.bm25_index import BM25LexicalIndex
from local_rag.infrastructure.store.sqlalchemy_store import SQLAlchemyDocumentStore
from local_rag.infrastructure.time.system_clock import SystemClock

logger = logging.getLogger(__name__)

EMBEDDER_BACKENDS = ("sentence-transformers", "none")
ANSWERER_BACKENDS = ("openai", "none")


def build_store(settings: AppSettings) -> DocumentStorePort:
    """Open the store and drop documents an interrupted session left half-ingested."""
    store = SQLAlchemyDocumentStore(settings.database_url)
    store.purge_incomplete()
    return store


def build_embedder(settings: AppSettings) -> EmbeddingPort | None:
    backend = settings.embedder_backend
    if backend == "none":
        logger.info("No embedder configured; search runs lexical-only")
        return None
    if backend == "sentence-transformers":
        return SentenceTransformersEmbedder(
            model_name=settings.embedding_model,
            device=settings.embedding_device,
            batch_size=settings.embedding_batch_size,
            local_files_only=settings.embedding_local_files_only,
        )
    raise ValidationError(f"unknown EMBEDDER_BACKEND '{backend}' (expected {EMBEDDER_BACKENDS})")


def build_answerer(settings: AppSettings) -> AnswererPort | None:
    backend = settings.answerer_backend
    if backend == "none":
        return None
    if backend == "openai":
        return OpenAIAnswerer(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            timeout_s=settings.llm_timeout_s,
        )
    raise ValidationError(f"unknown ANSWERER_BACKEND '{backend}' (expected {ANSWERER_BACKENDS})")


def build_lexical_index() -> LexicalIndexPort:
    return BM25LexicalIndex()


def build_clock() -> ClockPort:
    """Tests inject a fixed clock instead."""
    return SystemClock()


def build_chunking_params(settings: AppSettings) -> ChunkingParams:
    params = ChunkingParams(
        target_words=settings.chunk_target_words,
        overlap_words=settings.chunk_overlap_words,
        boundary_window=settings.chunk_boundary_window,
        max_words=settings.chunk_max_words,
        min_tail_words=settings.chunk_min_tail_words,
        heading_max_words=settings.chunk_heading_max_words,
    )
    params.validate()
    return params


def build_engine(
    settings: AppSettings | None = None,
    *,
    store: DocumentStorePort | None = None,
    embedder: EmbeddingPort | None = None,
    answerer: AnswererPort | None = None,
    clock: ClockPort | None = None,
) -> RetrievalEngine:
    """Wire a RetrievalEngine; explicitly passed collaborators win over settings."""
    settings = settings or AppSettings()
    store = store if store is not None else build_store(settings)
    embedder = embedder if embedder is not None else build_embedder(settings)
    answerer = answerer if answerer is not None else build_answerer(settings)

    ingest = IngestDocument(
        store=store,
        embedder=embedder,
        clock=clock or build_clock(),
        params=build_chunking_params(settings),
        batch_size=settings.embedding_batch_size,
    )
    search = HybridSearch(
        store=store,
        lexical_index=build_lexical_index(),
        embedder=embedder,
        overfetch_factor=settings.query_overfetch_factor,
        embed_timeout_s=settings.query_embed_timeout_s,
    )
    compose = ComposeAnswer(
        search=search,
        answerer=answerer,
        max_chars=settings.answer_max_chars,
        confidence_threshold=settings.query_confidence_threshold,
    )
    return RetrievalEngine(
        store=store,
        ingest=ingest,
        search=search,
        compose=compose,
        archive=JsonArchiveCodec(),
        default_top_k=settings.query_top_k,
        default_lambda=settings.query_mmr_lambda,
    )
