from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from local_rag.application.dto.ingest_dto import (
    IngestDocumentRequest,
    IngestProgress,
    IngestStage,
    ProgressCallback,
)
from local_rag.application.ports.clock_port import ClockPort
from local_rag.application.ports.document_store_port import DocumentStorePort
from local_rag.application.ports.embedding_port import EmbeddingPort
from local_rag.domain.errors import (
    DocumentNotFoundError,
    DomainError,
    EmbeddingError,
    IngestionCancelledError,
    ModelMismatchError,
    ValidationError,
)
from local_rag.domain.models import (
    Chunk,
    Document,
    DocumentStatus,
    DocumentSummary,
    Embedding,
    StoredVector,
)
from local_rag.domain.services.chunking import ChunkingParams, chunk_pages, validate_pages
from local_rag.domain.types import Result

logger = logging.getLogger(__name__)


class IngestDocument:
    """
    Application use case: decoded pages -> chunks -> vectors -> store.

    The document advances pending -> chunking -> embedding -> ready; any
    error marks it failed (terminal for this document only). Cancellation is
    cooperative, checked between embedding batches, and removes the partial
    document.
    """

    def __init__(
        self,
        store: DocumentStorePort,
        embedder: EmbeddingPort | None,
        clock: ClockPort,
        params: ChunkingParams | None = None,
        batch_size: int = 32,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.clock = clock
        self.params = params or ChunkingParams()
        self.batch_size = batch_size

    def execute(
        self,
        req: IngestDocumentRequest,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> Result[DocumentSummary, DomainError]:
        # 1) Validate request (nothing is written for an invalid request)
        try:
            self._validate(req)
        except ValidationError as ex:
            return Result.failure(ex)
        if self.embedder is None:
            return Result.failure(EmbeddingError("ingestion requires an embedding backend"))

        doc_id = req.document_id
        report = progress or (lambda _p: None)

        try:
            # 2) Same id ingested again: replace the previous version
            if self._exists(doc_id):
                logger.info("Re-ingesting document '%s'; removing previous version", doc_id)
                self.store.delete_document(doc_id)

            self.store.create_document(
                Document(
                    id=doc_id,
                    title=req.title.strip(),
                    subject=req.subject.strip(),
                    page_count=req.page_count,
                    byte_size=req.resolved_byte_size,
                    status=DocumentStatus.PENDING,
                    created_at=self.clock.now(),
                )
            )
        except DomainError as ex:
            return Result.failure(ex)

        try:
            self._check_cancel(doc_id, cancel)

            # 3) Chunking (pure domain)
            self._advance(doc_id, DocumentStatus.CHUNKING)
            report(IngestProgress(IngestStage.CHUNKING, 0, 1, "splitting pages into chunks"))
            chunks = chunk_pages(doc_id, req.pages, self.params)
            report(IngestProgress(IngestStage.CHUNKING, 1, 1, f"{len(chunks)} chunks"))

            # 4) Embeddings, batch by batch
            self._advance(doc_id, DocumentStatus.EMBEDDING)
            vectors = self._embed_chunks(doc_id, chunks, report, cancel)

            # 5) Persist chunks + vectors and flip to READY in one transaction
            self._check_cancel(doc_id, cancel)
            report(IngestProgress(IngestStage.STORING, 0, len(chunks), "writing to store"))
            self.store.commit_document(doc_id, chunks, vectors)
            report(IngestProgress(IngestStage.STORING, len(chunks), len(chunks), "ready"))
            logger.info("Document '%s' ready (%d chunks)", doc_id, len(chunks))
            return Result.success(self.store.get_document(doc_id))
        except IngestionCancelledError as ex:
            self._discard(doc_id)
            logger.warning("Ingestion of document '%s' cancelled; partial data removed", doc_id)
            return Result.failure(ex)
        except DomainError as ex:
            self._mark_failed(doc_id, ex)
            return Result.failure(ex)

    # ---------- helpers ----------

    @staticmethod
    def _validate(req: IngestDocumentRequest) -> None:
        if not req.document_id or not req.document_id.strip():
            raise ValidationError("document_id must not be empty")
        if not req.title or not req.title.strip():
            raise ValidationError("title must not be empty")
        if not req.subject or not req.subject.strip():
            raise ValidationError("subject must not be empty")
        validate_pages(req.pages)

    def _exists(self, doc_id: str) -> bool:
        try:
            self.store.get_document(doc_id)
        except DocumentNotFoundError:
            return False
        return True

    def _advance(self, doc_id: str, status: DocumentStatus) -> None:
        self.store.update_status(doc_id, status)
        logger.info("Document '%s' -> %s", doc_id, status.value)

    @staticmethod
    def _check_cancel(doc_id: str, cancel: threading.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise IngestionCancelledError(doc_id)

    def _embed_chunks(
        self,
        doc_id: str,
        chunks: Sequence[Chunk],
        report: ProgressCallback,
        cancel: threading.Event | None,
    ) -> list[StoredVector]:
        assert self.embedder is not None
        total = len(chunks)
        vectors: list[StoredVector] = []
        model_id: str | None = None
        report(IngestProgress(IngestStage.EMBEDDING, 0, total, "embedding chunks"))

        for start in range(0, total, self.batch_size):
            self._check_cancel(doc_id, cancel)
            batch = chunks[start : start + self.batch_size]
            try:
                embeddings: list[Embedding] = self.embedder.embed_texts([c.text for c in batch])
            except DomainError:
                raise
            except Exception as ex:  # noqa: BLE001
                raise EmbeddingError(f"embedding failed: {ex}") from ex
            if len(embeddings) != len(batch):
                raise EmbeddingError(
                    f"embedder returned {len(embeddings)} vectors for {len(batch)} chunks"
                )
            for chunk, emb in zip(batch, embeddings):
                if model_id is None:
                    model_id = emb.model_id
                elif emb.model_id != model_id:
                    raise ModelMismatchError(
                        "embedder switched models during ingestion",
                        expected=model_id,
                        actual=emb.model_id,
                    )
                vectors.append(StoredVector(chunk.id, tuple(emb.vector), emb.model_id))
            report(IngestProgress(IngestStage.EMBEDDING, len(vectors), total))
        return vectors

    def _mark_failed(self, doc_id: str, ex: DomainError) -> None:
        logger.warning("Ingestion of document '%s' failed: %s", doc_id, ex)
        try:
            self.store.update_status(doc_id, DocumentStatus.FAILED, error=str(ex))
        except DomainError as mark_ex:
            logger.warning("Could not mark document '%s' as failed: %s", doc_id, mark_ex)

    def _discard(self, doc_id: str) -> None:
        try:
            self.store.delete_document(doc_id)
        except DomainError as ex:
            logger.warning("Could not remove cancelled document '%s': %s", doc_id, ex)
