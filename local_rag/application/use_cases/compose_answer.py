from __future__ import annotations

import logging

from local_rag.application.dto.query_dto import AskResponse, QueryRequest
from local_rag.application.ports.answerer_port import AnswererPort
from local_rag.application.use_cases.hybrid_search import HybridSearch
from local_rag.domain.errors import AnswererError, DomainError
from local_rag.domain.models import ComposedAnswer, RetrievalResult
from local_rag.domain.services.composition import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_MAX_CHARS,
    annotate_with_sources,
    build_context_bundle,
    synthesize_answer,
)
from local_rag.domain.types import Result

logger = logging.getLogger(__name__)


class ComposeAnswer:
    """
    Application use case: retrieve, then answer with citations.

    With an answerer configured the context bundle is delegated to it;
    otherwise (or when it fails) a templated answer is synthesized from the
    top chunk(s) at reduced confidence.
    """

    def __init__(
        self,
        search: HybridSearch,
        answerer: AnswererPort | None = None,
        max_chars: int = DEFAULT_MAX_CHARS,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self.search = search
        self.answerer = answerer
        self.max_chars = max_chars
        self.confidence_threshold = confidence_threshold

    def execute(self, req: QueryRequest) -> Result[AskResponse, DomainError]:
        retrieved = self.search.execute(req)
        if not retrieved.ok:
            assert retrieved.error is not None
            return Result.failure(retrieved.error)
        result = retrieved.value
        assert result is not None

        if self.answerer is None or result.is_empty:
            return Result.success(AskResponse(self._template(req.query, result), result))

        bundle = build_context_bundle(result)
        try:
            text = self.answerer.answer(req.query, bundle)
            if not text or not text.strip():
                raise AnswererError("answerer returned an empty answer")
        except Exception as ex:  # noqa: BLE001
            logger.warning("Answerer failed (%s); falling back to templated answer", ex)
            answer = self._template(req.query, result, degraded=True)
            return Result.success(AskResponse(answer, result))

        confidence = result.confidence
        answer = ComposedAnswer(
            text=annotate_with_sources(text.strip(), bundle.citations),
            citations=bundle.citations,
            confidence=confidence,
            delegated=True,
            degraded=result.degraded,
            low_confidence=confidence < self.confidence_threshold,
        )
        return Result.success(AskResponse(answer, result))

    def _template(
        self, query: str, result: RetrievalResult, degraded: bool = False
    ) -> ComposedAnswer:
        return synthesize_answer(
            query,
            result,
            max_chars=self.max_chars,
            confidence_threshold=self.confidence_threshold,
            degraded=degraded,
        )
