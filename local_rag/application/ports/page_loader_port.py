from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from local_rag.domain.models import Page


@dataclass(frozen=True)
class LoadedDocument:
    title: str
    pages: tuple[Page, ...]
    byte_size: int
    source_path: str | None = None


class PageLoaderPort(Protocol):
    def load(self, path: str) -> LoadedDocument: ...
