from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from local_rag.domain.models import Page


class IngestStage(str, Enum):
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    STORING = "storing"


@dataclass(frozen=True)
class IngestProgress:
    stage: IngestStage
    current: int
    total: int
    message: str = ""

    @property
    def fraction(self) -> float:
        return self.current / self.total if self.total else 0.0


ProgressCallback = Callable[[IngestProgress], None]


@dataclass(frozen=True)
class IngestDocumentRequest:
    """
    DTO for ingesting one decoded document.

    - document_id: caller-chosen id; re-ingesting under the same id replaces it
    - pages:       decoder output, page numbers positive and non-decreasing
    - byte_size:   size of the source file; defaults to the UTF-8 size of the pages
    """

    document_id: str
    title: str
    subject: str
    pages: tuple[Page, ...]
    byte_size: int | None = None

    @property
    def page_count(self) -> int:
        return max((p.number for p in self.pages), default=0)

    @property
    def resolved_byte_size(self) -> int:
        if self.byte_size is not None:
            return self.byte_size
        return sum(len(p.text.encode("utf-8")) for p in self.pages)
