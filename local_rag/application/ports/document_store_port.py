from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from local_rag.domain.models import (
    Candidate,
    Chunk,
    CollectionSnapshot,
    Document,
    DocumentStatus,
    DocumentSummary,
    StoreStats,
    StoredVector,
)


@runtime_checkable
class DocumentStorePort(Protocol):
    """Durable documents, chunks and vectors; the only component doing I/O.

    Writes are serialized (one writer at a time); reads may run concurrently.
    All failures surface as StoreUnavailableError or a more specific
    DomainError.
    """

    def create_document(self, document: Document) -> None: ...

    def update_status(
        self, document_id: str, status: DocumentStatus, error: str | None = None
    ) -> Document: ...

    def commit_document(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[StoredVector],
    ) -> Document:
        """Persist all chunks and vectors and flip the document to READY atomically."""
        ...

    def get_document(self, document_id: str) -> DocumentSummary: ...

    def list_documents(self, subject: str | None = None) -> list[DocumentSummary]: ...

    def list_subjects(self) -> list[str]: ...

    def stats(self) -> StoreStats: ...

    def fetch_candidates(self, subject: str | None = None) -> list[Candidate]:
        """Chunk+vector pairs of READY documents, ordered by (document id, ordinal)."""
        ...

    def fetch_chunks(self, document_id: str) -> list[Chunk]: ...

    def delete_document(self, document_id: str) -> bool: ...

    def export_snapshot(self) -> CollectionSnapshot: ...

    def import_snapshot(self, snapshot: CollectionSnapshot) -> None: ...

    def revision(self) -> int: ...

    def purge_incomplete(self) -> list[str]: ...

    def close(self) -> None: ...
