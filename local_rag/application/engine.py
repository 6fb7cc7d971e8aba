"""RetrievalEngine: the library-facing facade over the use cases.

Use cases return Result values; the facade unwraps them so callers get the
domain error raised. The store is passed in explicitly and is the only state
shared between calls.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from local_rag.application.dto.ingest_dto import IngestDocumentRequest, ProgressCallback
from local_rag.application.dto.query_dto import AskResponse, QueryRequest
from local_rag.application.jobs import IngestionJob, IngestionJobRunner
from local_rag.application.ports.archive_port import ArchiveCodecPort
from local_rag.application.ports.document_store_port import DocumentStorePort
from local_rag.application.use_cases.compose_answer import ComposeAnswer
from local_rag.application.use_cases.hybrid_search import HybridSearch
from local_rag.application.use_cases.ingest_document import IngestDocument
from local_rag.domain.errors import DocumentNotFoundError
from local_rag.domain.models import (
    Chunk,
    DocumentSummary,
    Page,
    RetrievalResult,
    StoreStats,
)

logger = logging.getLogger(__name__)


def new_document_id() -> str:
    return uuid.uuid4().hex


class RetrievalEngine:
    def __init__(
        self,
        store: DocumentStorePort,
        ingest: IngestDocument,
        search: HybridSearch,
        compose: ComposeAnswer,
        archive: ArchiveCodecPort,
        default_top_k: int = 5,
        default_lambda: float = 0.5,
    ) -> None:
        self.store = store
        self._ingest = ingest
        self._search = search
        self._compose = compose
        self._archive = archive
        self._jobs = IngestionJobRunner(ingest)
        self.default_top_k = default_top_k
        self.default_lambda = default_lambda

    # ---------- ingestion ----------

    def _request(
        self,
        title: str,
        subject: str,
        pages: Sequence[Page],
        document_id: str | None,
        byte_size: int | None,
    ) -> IngestDocumentRequest:
        return IngestDocumentRequest(
            document_id=document_id or new_document_id(),
            title=title,
            subject=subject,
            pages=tuple(pages),
            byte_size=byte_size,
        )

    def ingest(
        self,
        title: str,
        subject: str,
        pages: Sequence[Page],
        document_id: str | None = None,
        byte_size: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> str:
        """Ingest synchronously and return the document id.

        Raises the ingestion error (the document is then recorded as failed).
        """
        req = self._request(title, subject, pages, document_id, byte_size)
        self._ingest.execute(req, progress=progress).unwrap()
        return req.document_id

    def ingest_async(
        self,
        title: str,
        subject: str,
        pages: Sequence[Page],
        document_id: str | None = None,
        byte_size: int | None = None,
    ) -> IngestionJob:
        return self._jobs.submit(self._request(title, subject, pages, document_id, byte_size))

    def job(self, job_id: str) -> IngestionJob | None:
        return self._jobs.get(job_id)

    # ---------- query ----------

    def _query(
        self, query: str, subject: str | None, top_k: int | None, lambda_mult: float | None
    ) -> QueryRequest:
        return QueryRequest(
            query=query,
            subject=subject,
            top_k=self.default_top_k if top_k is None else top_k,
            lambda_mult=self.default_lambda if lambda_mult is None else lambda_mult,
        )

    def search(
        self,
        query: str,
        subject: str | None = None,
        top_k: int | None = None,
        lambda_mult: float | None = None,
    ) -> RetrievalResult:
        return self._search.execute(self._query(query, subject, top_k, lambda_mult)).unwrap()

    def ask(
        self,
        query: str,
        subject: str | None = None,
        top_k: int | None = None,
        lambda_mult: float | None = None,
    ) -> AskResponse:
        return self._compose.execute(self._query(query, subject, top_k, lambda_mult)).unwrap()

    # ---------- collection ----------

    def delete(self, document_id: str) -> None:
        if not self.store.delete_document(document_id):
            raise DocumentNotFoundError(document_id)
        logger.info("Deleted document '%s'", document_id)

    def get_document(self, document_id: str) -> DocumentSummary:
        return self.store.get_document(document_id)

    def get_chunks(self, document_id: str) -> list[Chunk]:
        self.store.get_document(document_id)
        return self.store.fetch_chunks(document_id)

    def list_documents(self, subject: str | None = None) -> list[DocumentSummary]:
        return self.store.list_documents(subject)

    def list_subjects(self) -> list[str]:
        return self.store.list_subjects()

    def stats(self) -> StoreStats:
        return self.store.stats()

    def export_archive(self) -> bytes:
        snapshot = self.store.export_snapshot()
        data = self._archive.encode(snapshot)
        logger.info(
            "Exported archive: %d documents, %d chunks (%d bytes)",
            len(snapshot.documents),
            len(snapshot.chunks),
            len(data),
        )
        return data

    def import_archive(self, data: bytes) -> int:
        """Replace the whole collection with the archive's; returns the document count."""
        snapshot = self._archive.decode(data)
        self.store.import_snapshot(snapshot)
        logger.info(
            "Imported archive: %d documents, %d chunks",
            len(snapshot.documents),
            len(snapshot.chunks),
        )
        return len(snapshot.documents)

    def close(self) -> None:
        self._jobs.shutdown(wait=True)
        self._search.close()
        self.store.close()
