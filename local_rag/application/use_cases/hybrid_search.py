# local_rag/application/use_cases/hybrid_search.py
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from local_rag.application.dto.query_dto import QueryRequest
from local_rag.application.ports.document_store_port import DocumentStorePort
from local_rag.application.ports.embedding_port import EmbeddingPort
from local_rag.application.ports.lexical_index_port import LexicalIndexPort
from local_rag.domain.errors import DomainError, ModelMismatchError, ValidationError
from local_rag.domain.models import Candidate, Embedding, RetrievalMode, RetrievalResult
from local_rag.domain.services.ranking import ScoredCandidate, mmr, select_pool
from local_rag.domain.services.scoring import LEXICAL_WEIGHT, VECTOR_WEIGHT, fuse_scores
from local_rag.domain.similarity import cosine
from local_rag.domain.types import Result

logger = logging.getLogger(__name__)


class HybridSearch:
    """
    Application use case: vector + lexical scoring, then MMR re-ranking.

    Query-time problems with the embedder (missing, failing, timing out, or a
    different model than the stored vectors) degrade to lexical-only scoring
    and are reported as warnings on the result. Store failures are returned
    as errors.
    """

    def __init__(
        self,
        store: DocumentStorePort,
        lexical_index: LexicalIndexPort,
        embedder: EmbeddingPort | None = None,
        overfetch_factor: int = 4,
        embed_timeout_s: float | None = None,
        vector_weight: float = VECTOR_WEIGHT,
        lexical_weight: float = LEXICAL_WEIGHT,
    ) -> None:
        self.store = store
        self.lexical_index = lexical_index
        self.embedder = embedder
        self.overfetch_factor = overfetch_factor
        self.embed_timeout_s = embed_timeout_s
        self.vector_weight = vector_weight
        self.lexical_weight = lexical_weight
        self._lock = threading.Lock()
        # subject -> candidates, valid for _cache_revision only
        self._cache: dict[str | None, list[Candidate]] = {}
        self._cache_revision: int | None = None
        self._executor: ThreadPoolExecutor | None = None

    def execute(self, req: QueryRequest) -> Result[RetrievalResult, DomainError]:
        # 1) Validate
        if not req.query or not req.query.strip():
            return Result.failure(ValidationError("query must not be empty"))
        if req.top_k <= 0:
            return Result.failure(ValidationError("top_k must be > 0"))
        if not 0.0 <= req.lambda_mult <= 1.0:
            return Result.failure(ValidationError("lambda must be within [0, 1]"))

        # 2) Candidates + lexical index at the current store revision
        try:
            candidates = self._prepare(req.subject)
        except DomainError as ex:
            return Result.failure(ex)
        if not candidates:
            return Result.success(RetrievalResult(query=req.query))

        # 3) Embed query (degrades instead of failing)
        warnings: list[str] = []
        query_emb = self._embed_query(req.query, warnings)

        mode = RetrievalMode.HYBRID
        if query_emb is None:
            mode = RetrievalMode.LEXICAL_ONLY
        else:
            matching = [
                c
                for c in candidates
                if c.vector.model_id == query_emb.model_id and c.vector.dim == query_emb.dim
            ]
            if not matching:
                err = ModelMismatchError(
                    "stored vectors were embedded with a different model; "
                    "using lexical scoring only",
                    expected=query_emb.model_id,
                    actual=candidates[0].vector.model_id,
                )
                warnings.append(str(err))
                logger.warning("%s (query model %s)", err, query_emb.model_id)
                mode = RetrievalMode.LEXICAL_ONLY
            elif len(matching) < len(candidates):
                stale = len(candidates) - len(matching)
                msg = f"{stale} chunk(s) embedded with a stale model were excluded"
                warnings.append(msg)
                logger.warning(msg)
                candidates = matching

        # 4) Score, fuse, pool, MMR
        lexical = self.lexical_index.score(req.query, restrict_to={c.chunk.id for c in candidates})
        if mode is RetrievalMode.HYBRID:
            assert query_emb is not None
            vec_scores = [cosine(query_emb.vector, c.vector.values) for c in candidates]
            lex_scores = [lexical.get(c.chunk.id, 0.0) for c in candidates]
            breakdowns = fuse_scores(
                vec_scores,
                lex_scores,
                vector_weight=self.vector_weight,
                lexical_weight=self.lexical_weight,
            )
        else:
            # Lexical-only: chunks sharing no term with the query are not candidates
            candidates = [c for c in candidates if c.chunk.id in lexical]
            breakdowns = fuse_scores(None, [lexical[c.chunk.id] for c in candidates])

        scored = [ScoredCandidate(c, b) for c, b in zip(candidates, breakdowns)]
        pool = select_pool(scored, self.overfetch_factor * req.top_k)
        items = mmr(pool, req.top_k, req.lambda_mult)

        return Result.success(
            RetrievalResult(
                query=req.query,
                items=tuple(items),
                mode=mode,
                warnings=tuple(warnings),
            )
        )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # ---------- helpers ----------

    def _prepare(self, subject: str | None) -> list[Candidate]:
        revision = self.store.revision()
        with self._lock:
            if self._cache_revision != revision:
                self._cache = {}
                self._cache_revision = revision
            if None not in self._cache:
                self._cache[None] = self.store.fetch_candidates(None)
            if self.lexical_index.revision != revision:
                entries = [(c.chunk.id, c.chunk.text) for c in self._cache[None]]
                self.lexical_index.rebuild(revision, entries)
                logger.info("Lexical index rebuilt at revision %d (%d chunks)", revision, len(entries))
            if subject not in self._cache:
                self._cache[subject] = self.store.fetch_candidates(subject)
            return list(self._cache[subject])

    def _embed_query(self, text: str, warnings: list[str]) -> Embedding | None:
        if self.embedder is None:
            warnings.append("no embedding model configured; using lexical scoring only")
            return None
        try:
            if self.embed_timeout_s is None:
                return self.embedder.embed(text)
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="query-embed")
            future = self._executor.submit(self.embedder.embed, text)
            return future.result(timeout=self.embed_timeout_s)
        except FutureTimeout:
            msg = f"query embedding timed out after {self.embed_timeout_s}s; using lexical scoring only"
        except Exception as ex:  # noqa: BLE001
            msg = f"query embedding failed ({ex}); using lexical scoring only"
        warnings.append(msg)
        logger.warning(msg)
        return None
