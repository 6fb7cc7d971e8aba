from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from local_rag.application.ports.document_store_port import DocumentStorePort
from local_rag.domain.errors import (
    DimensionMismatchError,
    DocumentNotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from local_rag.domain.models import (
    Candidate,
    Chunk,
    CollectionSnapshot,
    Document,
    DocumentStatus,
    DocumentSummary,
    StoredVector,
    StoreStats,
)
from local_rag.infrastructure.store.orm_models import (
    REVISION_KEY,
    Base,
    ChunkRow,
    DocumentRow,
    StoreMetaRow,
    VectorRow,
)

logger = logging.getLogger(__name__)

_INCOMPLETE = (DocumentStatus.PENDING, DocumentStatus.CHUNKING, DocumentStatus.EMBEDDING)
_TERMINAL = (DocumentStatus.READY, DocumentStatus.FAILED)


def _sqlite_pragmas(dbapi_conn: Any, _record: Any) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.execute("PRAGMA journal_mode=WAL")
    cur.close()


def _utc(dt: datetime) -> datetime:
    # SQLite drops tzinfo; everything is stored in UTC.
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _to_document(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        title=row.title,
        subject=row.subject,
        page_count=row.page_count,
        byte_size=row.byte_size,
        status=DocumentStatus(row.status),
        created_at=_utc(row.created_at),
        error=row.error,
    )


def _to_chunk(row: ChunkRow) -> Chunk:
    return Chunk(
        id=row.id,
        document_id=row.document_id,
        ordinal=row.ordinal,
        page_start=row.page_start,
        page_end=row.page_end,
        text=row.text,
        word_count=row.word_count,
        section=row.section,
    )


def _to_vector(row: VectorRow) -> StoredVector:
    return StoredVector(
        chunk_id=row.chunk_id,
        values=tuple(float(v) for v in row.values),
        model_id=row.model_id,
    )


class SQLAlchemyDocumentStore(DocumentStorePort):
    """
    Durable store over SQLAlchemy (SQLite by default).

    - One re-entrant write lock serializes writers; every write runs in a
      single transaction, so a document's chunks and vectors become visible
      together with its READY status, and a delete removes them as one unit.
    - Reads open independent sessions and may run concurrently, except on
      an in-memory database, where they queue behind the write lock.
    - SQLAlchemy / OS failures surface as StoreUnavailableError.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self._write_lock = threading.RLock()
        try:
            self._engine = self._create_engine(url, echo)
            # Threads share one DBAPI connection: reads must not interleave with a write.
            self._shared_connection = isinstance(self._engine.pool, StaticPool)
            Base.metadata.create_all(self._engine)
            self._sessions = sessionmaker(
                bind=self._engine, autoflush=False, expire_on_commit=False
            )
            with self._sessions() as session, session.begin():
                if session.get(StoreMetaRow, REVISION_KEY) is None:
                    session.add(StoreMetaRow(key=REVISION_KEY, value=0))
        except (SQLAlchemyError, OSError) as ex:
            raise StoreUnavailableError(f"Failed to open store at '{url}': {ex}") from ex

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        parsed = make_url(url)
        if parsed.get_backend_name() != "sqlite":
            return create_engine(url, echo=echo, pool_pre_ping=True)

        database = parsed.database
        if database and database != ":memory:":
            Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(url, echo=echo)
        else:
            # One shared connection so every thread sees the same in-memory database.
            engine = create_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        event.listen(engine, "connect", _sqlite_pragmas)
        return engine

    @contextmanager
    def _session(self, write: bool = False) -> Iterator[Session]:
        lock = self._write_lock if write or self._shared_connection else nullcontext()
        with lock:
            try:
                with self._sessions() as session:
                    if write:
                        with session.begin():
                            yield session
                    else:
                        yield session
            except (SQLAlchemyError, OSError) as ex:
                raise StoreUnavailableError(f"Store operation failed: {ex}") from ex

    @staticmethod
    def _bump_revision(session: Session) -> None:
        meta = session.get(StoreMetaRow, REVISION_KEY)
        if meta is None:
            session.add(StoreMetaRow(key=REVISION_KEY, value=1))
        else:
            meta.value += 1

    @staticmethod
    def _get_row(session: Session, document_id: str) -> DocumentRow:
        row = session.get(DocumentRow, document_id)
        if row is None:
            raise DocumentNotFoundError(document_id)
        return row

    @staticmethod
    def _delete_rows(session: Session, document_ids: Sequence[str]) -> None:
        # Children first, so no vector ever outlives its chunk.
        chunk_ids = select(ChunkRow.id).where(ChunkRow.document_id.in_(document_ids))
        session.execute(delete(VectorRow).where(VectorRow.chunk_id.in_(chunk_ids)))
        session.execute(delete(ChunkRow).where(ChunkRow.document_id.in_(document_ids)))
        session.execute(delete(DocumentRow).where(DocumentRow.id.in_(document_ids)))

    @staticmethod
    def _check_dimensions(session: Session, vectors: Sequence[StoredVector]) -> None:
        dims: dict[str, int] = {}
        for v in vectors:
            if v.dim == 0:
                raise ValidationError(f"vector for chunk '{v.chunk_id}' is empty")
            expected = dims.setdefault(v.model_id, v.dim)
            if v.dim != expected:
                raise DimensionMismatchError(
                    f"model '{v.model_id}' produced vectors of dimension {v.dim} and {expected}",
                    expected=str(expected),
                    actual=str(v.dim),
                )
        for model_id, dim in dims.items():
            stored = session.scalar(
                select(VectorRow.dim).where(VectorRow.model_id == model_id).limit(1)
            )
            if stored is not None and stored != dim:
                raise DimensionMismatchError(
                    f"model '{model_id}' vectors have dimension {dim}, store holds {stored}",
                    expected=str(stored),
                    actual=str(dim),
                )

    @staticmethod
    def _add_chunks(
        session: Session, chunks: Sequence[Chunk], vectors: Sequence[StoredVector]
    ) -> None:
        by_chunk = {v.chunk_id: v for v in vectors}
        if len(by_chunk) != len(vectors) or set(by_chunk) != {c.id for c in chunks}:
            raise ValidationError("every chunk needs exactly one vector")
        session.add_all(
            ChunkRow(
                id=c.id,
                document_id=c.document_id,
                ordinal=c.ordinal,
                page_start=c.page_start,
                page_end=c.page_end,
                text=c.text,
                word_count=c.word_count,
                section=c.section,
            )
            for c in chunks
        )
        session.flush()
        session.add_all(
            VectorRow(
                chunk_id=c.id,
                model_id=by_chunk[c.id].model_id,
                dim=by_chunk[c.id].dim,
                values=list(by_chunk[c.id].values),
            )
            for c in chunks
        )

    # ---------- writes ----------

    def create_document(self, document: Document) -> None:
        with self._session(write=True) as session:
            if session.get(DocumentRow, document.id) is not None:
                raise ValidationError(f"document '{document.id}' already exists")
            session.add(
                DocumentRow(
                    id=document.id,
                    title=document.title,
                    subject=document.subject,
                    page_count=document.page_count,
                    byte_size=document.byte_size,
                    status=document.status,
                    error=document.error,
                    created_at=_utc(document.created_at),
                )
            )

    def update_status(
        self, document_id: str, status: DocumentStatus, error: str | None = None
    ) -> Document:
        with self._session(write=True) as session:
            row = self._get_row(session, document_id)
            updated = _to_document(row).with_status(status, error)
            row.status = updated.status
            row.error = updated.error
            if status is DocumentStatus.READY:
                self._bump_revision(session)
            return updated

    def commit_document(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[StoredVector],
    ) -> Document:
        if any(c.document_id != document_id for c in chunks):
            raise ValidationError(f"chunks do not all belong to document '{document_id}'")
        with self._session(write=True) as session:
            row = self._get_row(session, document_id)
            ready = _to_document(row).with_status(DocumentStatus.READY)
            self._check_dimensions(session, vectors)
            self._add_chunks(session, chunks, vectors)
            row.status = ready.status
            row.error = None
            self._bump_revision(session)
            return ready

    def delete_document(self, document_id: str) -> bool:
        with self._session(write=True) as session:
            if session.get(DocumentRow, document_id) is None:
                return False
            self._delete_rows(session, [document_id])
            self._bump_revision(session)
            return True

    def import_snapshot(self, snapshot: CollectionSnapshot) -> None:
        with self._session(write=True) as session:
            session.execute(delete(VectorRow))
            session.execute(delete(ChunkRow))
            session.execute(delete(DocumentRow))
            session.flush()
            self._check_dimensions(session, snapshot.vectors)
            session.add_all(
                DocumentRow(
                    id=d.id,
                    title=d.title,
                    subject=d.subject,
                    page_count=d.page_count,
                    byte_size=d.byte_size,
                    status=d.status,
                    error=d.error,
                    created_at=_utc(d.created_at),
                )
                for d in snapshot.documents
            )
            session.flush()
            self._add_chunks(session, snapshot.chunks, snapshot.vectors)
            self._bump_revision(session)

    def purge_incomplete(self) -> list[str]:
        """Remove documents an interrupted session left half-ingested."""
        with self._session(write=True) as session:
            ids = list(
                session.scalars(select(DocumentRow.id).where(DocumentRow.status.in_(_INCOMPLETE)))
            )
            if ids:
                self._delete_rows(session, ids)
                logger.warning("Removed %d interrupted ingestion(s): %s", len(ids), ", ".join(ids))
            return ids

    # ---------- reads ----------

    def revision(self) -> int:
        with self._session() as session:
            meta = session.get(StoreMetaRow, REVISION_KEY)
            return meta.value if meta is not None else 0

    def get_document(self, document_id: str) -> DocumentSummary:
        with self._session() as session:
            row = self._get_row(session, document_id)
            count = session.scalar(
                select(func.count(ChunkRow.id)).where(ChunkRow.document_id == document_id)
            )
            return DocumentSummary(_to_document(row), int(count or 0))

    def list_documents(self, subject: str | None = None) -> list[DocumentSummary]:
        with self._session() as session:
            stmt = select(DocumentRow).order_by(DocumentRow.created_at, DocumentRow.id)
            if subject is not None:
                stmt = stmt.where(DocumentRow.subject == subject)
            counts = dict(
                session.execute(
                    select(ChunkRow.document_id, func.count(ChunkRow.id)).group_by(
                        ChunkRow.document_id
                    )
                ).all()
            )
            return [
                DocumentSummary(_to_document(row), int(counts.get(row.id, 0)))
                for row in session.scalars(stmt)
            ]

    def list_subjects(self) -> list[str]:
        with self._session() as session:
            stmt = select(DocumentRow.subject).distinct().order_by(DocumentRow.subject)
            return list(session.scalars(stmt))

    def stats(self) -> StoreStats:
        with self._session() as session:
            by_status = dict(
                session.execute(
                    select(DocumentRow.status, func.count(DocumentRow.id)).group_by(
                        DocumentRow.status
                    )
                ).all()
            )
            return StoreStats(
                documents=int(sum(by_status.values())),
                ready_documents=int(by_status.get(DocumentStatus.READY, 0)),
                failed_documents=int(by_status.get(DocumentStatus.FAILED, 0)),
                chunks=int(session.scalar(select(func.count(ChunkRow.id))) or 0),
                vectors=int(session.scalar(select(func.count(VectorRow.chunk_id))) or 0),
                total_bytes=int(session.scalar(select(func.sum(DocumentRow.byte_size))) or 0),
                subjects=tuple(
                    session.scalars(
                        select(DocumentRow.subject).distinct().order_by(DocumentRow.subject)
                    )
                ),
                model_ids=tuple(
                    session.scalars(
                        select(VectorRow.model_id).distinct().order_by(VectorRow.model_id)
                    )
                ),
            )

    def fetch_candidates(self, subject: str | None = None) -> list[Candidate]:
        with self._session() as session:
            stmt = (
                select(ChunkRow, VectorRow, DocumentRow.title, DocumentRow.subject)
                .join(VectorRow, VectorRow.chunk_id == ChunkRow.id)
                .join(DocumentRow, DocumentRow.id == ChunkRow.document_id)
                .where(DocumentRow.status == DocumentStatus.READY)
                .order_by(ChunkRow.document_id, ChunkRow.ordinal)
            )
            if subject is not None:
                stmt = stmt.where(DocumentRow.subject == subject)
            return [
                Candidate(
                    chunk=_to_chunk(chunk),
                    vector=_to_vector(vector),
                    document_title=title,
                    subject=subj,
                )
                for chunk, vector, title, subj in session.execute(stmt).all()
            ]

    def fetch_chunks(self, document_id: str) -> list[Chunk]:
        with self._session() as session:
            stmt = (
                select(ChunkRow)
                .where(ChunkRow.document_id == document_id)
                .order_by(ChunkRow.ordinal)
            )
            return [_to_chunk(row) for row in session.scalars(stmt)]

    def export_snapshot(self) -> CollectionSnapshot:
        # Under the write lock so documents, chunks and vectors are read consistently.
        with self._session(write=True) as session:
            docs = list(
                session.scalars(
                    select(DocumentRow)
                    .where(DocumentRow.status.in_(_TERMINAL))
                    .order_by(DocumentRow.created_at, DocumentRow.id)
                )
            )
            ids = [d.id for d in docs]
            chunks = list(
                session.scalars(
                    select(ChunkRow)
                    .where(ChunkRow.document_id.in_(ids))
                    .order_by(ChunkRow.document_id, ChunkRow.ordinal)
                )
            )
            vectors = list(
                session.scalars(
                    select(VectorRow)
                    .join(ChunkRow, ChunkRow.id == VectorRow.chunk_id)
                    .where(ChunkRow.document_id.in_(ids))
                    .order_by(ChunkRow.document_id, ChunkRow.ordinal)
                )
            )
            return CollectionSnapshot(
                documents=tuple(_to_document(d) for d in docs),
                chunks=tuple(_to_chunk(c) for c in chunks),
                vectors=tuple(_to_vector(v) for v in vectors),
            )

    def close(self) -> None:
        self._engine.dispose()
