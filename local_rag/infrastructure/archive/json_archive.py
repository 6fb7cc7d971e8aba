"""
Portable collection archive: gzip-compressed JSON validated with pydantic.

Layout:
    {"format": "local-rag-archive", "format_version": 1, "exported_at": ...,
     "documents": [...], "chunks": [...], "vectors": [...]}

Dependencies: pydantic
"""

from __future__ import annotations

import gzip
import json
import zlib
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from local_rag.application.ports.archive_port import ArchiveCodecPort
from local_rag.domain.errors import ArchiveCorruptError, ArchiveVersionUnsupportedError
from local_rag.domain.models import (
    Chunk,
    CollectionSnapshot,
    Document,
    DocumentStatus,
    StoredVector,
)

ARCHIVE_FORMAT = "local-rag-archive"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS: tuple[int, ...] = (1,)


class DocumentRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    title: str
    subject: str
    page_count: int = Field(ge=0)
    byte_size: int = Field(ge=0)
    status: DocumentStatus
    created_at: datetime
    error: str | None = None


class ChunkRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    document_id: str
    ordinal: int = Field(ge=0)
    page_start: int = Field(ge=1)
    page_end: int = Field(ge=1)
    text: str
    word_count: int = Field(ge=0)
    section: str | None = None


class VectorRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chunk_id: str
    model_id: str = Field(min_length=1)
    values: list[float] = Field(min_length=1)


class ArchiveV1(BaseModel):
    format: str
    format_version: int
    exported_at: datetime
    documents: list[DocumentRecord]
    chunks: list[ChunkRecord]
    vectors: list[VectorRecord]


class JsonArchiveCodec(ArchiveCodecPort):
    """Encodes a CollectionSnapshot to archive bytes and back."""

    format_version = FORMAT_VERSION

    def __init__(self, compresslevel: int = 6) -> None:
        self.compresslevel = compresslevel

    def encode(self, snapshot: CollectionSnapshot) -> bytes:
        archive = ArchiveV1(
            format=ARCHIVE_FORMAT,
            format_version=FORMAT_VERSION,
            exported_at=datetime.now(timezone.utc),
            documents=[
                DocumentRecord(
                    id=d.id,
                    title=d.title,
                    subject=d.subject,
                    page_count=d.page_count,
                    byte_size=d.byte_size,
                    status=d.status,
                    created_at=d.created_at,
                    error=d.error,
                )
                for d in snapshot.documents
            ],
            chunks=[
                ChunkRecord(
                    id=c.id,
                    document_id=c.document_id,
                    ordinal=c.ordinal,
                    page_start=c.page_start,
                    page_end=c.page_end,
                    text=c.text,
                    word_count=c.word_count,
                    section=c.section,
                )
                for c in snapshot.chunks
            ],
            vectors=[
                VectorRecord(chunk_id=v.chunk_id, model_id=v.model_id, values=list(v.values))
                for v in snapshot.vectors
            ],
        )
        raw = archive.model_dump_json().encode("utf-8")
        return gzip.compress(raw, compresslevel=self.compresslevel, mtime=0)

    def decode(self, data: bytes) -> CollectionSnapshot:
        payload = self._load_json(data)

        # Version gate before schema validation: never misread a newer layout.
        if not isinstance(payload, dict) or payload.get("format") != ARCHIVE_FORMAT:
            found = payload.get("format") if isinstance(payload, dict) else None
            raise ArchiveVersionUnsupportedError(found, SUPPORTED_VERSIONS)
        version = payload.get("format_version")
        if version not in SUPPORTED_VERSIONS:
            raise ArchiveVersionUnsupportedError(version, SUPPORTED_VERSIONS)

        try:
            archive = ArchiveV1.model_validate(payload)
        except SchemaError as ex:
            raise ArchiveCorruptError(f"archive does not match format v{version}: {ex}") from ex

        snapshot = CollectionSnapshot(
            documents=tuple(
                Document(
                    id=d.id,
                    title=d.title,
                    subject=d.subject,
                    page_count=d.page_count,
                    byte_size=d.byte_size,
                    status=d.status,
                    created_at=d.created_at,
                    error=d.error,
                )
                for d in archive.documents
            ),
            chunks=tuple(
                Chunk(
                    id=c.id,
                    document_id=c.document_id,
                    ordinal=c.ordinal,
                    page_start=c.page_start,
                    page_end=c.page_end,
                    text=c.text,
                    word_count=c.word_count,
                    section=c.section,
                )
                for c in archive.chunks
            ),
            vectors=tuple(
                StoredVector(chunk_id=v.chunk_id, values=tuple(v.values), model_id=v.model_id)
                for v in archive.vectors
            ),
        )
        check_references(snapshot)
        return snapshot

    @staticmethod
    def _load_json(data: bytes) -> Any:
        try:
            return json.loads(gzip.decompress(data).decode("utf-8"))
        except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as ex:
            raise ArchiveCorruptError(f"archive is not readable: {ex}") from ex


def check_references(snapshot: CollectionSnapshot) -> None:
    """Reject snapshots that would leave orphans or half-ingested documents."""
    docs = {d.id: d for d in snapshot.documents}
    if len(docs) != len(snapshot.documents):
        raise ArchiveCorruptError("duplicate document ids")
    for d in snapshot.documents:
        if not d.status.is_terminal:
            raise ArchiveCorruptError(f"document '{d.id}' is not in a terminal status")

    chunk_ids: set[str] = set()
    for c in snapshot.chunks:
        if c.document_id not in docs:
            raise ArchiveCorruptError(f"chunk '{c.id}' references missing document")
        if docs[c.document_id].status is not DocumentStatus.READY:
            raise ArchiveCorruptError(f"chunk '{c.id}' belongs to a document that is not ready")
        if c.id in chunk_ids:
            raise ArchiveCorruptError(f"duplicate chunk id '{c.id}'")
        chunk_ids.add(c.id)

    vector_ids: set[str] = set()
    for v in snapshot.vectors:
        if v.chunk_id not in chunk_ids:
            raise ArchiveCorruptError(f"vector references missing chunk '{v.chunk_id}'")
        if v.chunk_id in vector_ids:
            raise ArchiveCorruptError(f"duplicate vector for chunk '{v.chunk_id}'")
        vector_ids.add(v.chunk_id)
    missing = chunk_ids - vector_ids
    if missing:
        raise ArchiveCorruptError(f"{len(missing)} chunk(s) have no vector")
