from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from pathlib import Path

from local_rag.application.ports.page_loader_port import LoadedDocument, PageLoaderPort
from local_rag.domain.errors import DocumentError
from local_rag.domain.models import Page

FORM_FEED = "\f"


@dataclass
class PlainTextPageLoader(PageLoaderPort):
    """UTF-8 text file; form feeds separate pages, otherwise the file is one page."""

    encoding: str = "utf-8"

    def load(self, path: str) -> LoadedDocument:
        p = Path(path)
        try:
            raw = p.read_bytes()
            text = raw.decode(self.encoding)
        except (OSError, UnicodeDecodeError) as ex:
            raise DocumentError(f"TXT load failed for '{path}': {ex}") from ex
        pages = tuple(
            Page(number=i, text=part) for i, part in enumerate(text.split(FORM_FEED), start=1)
        )
        return LoadedDocument(title=p.stem, pages=pages, byte_size=len(raw), source_path=path)


@dataclass
class PdfPageLoader(PageLoaderPort):
    """Per-page text extraction with pypdf; image-only pages come back empty."""

    def load(self, path: str) -> LoadedDocument:
        try:
            pypdf = import_module("pypdf")  # lazy import, pypdf is optional
        except ImportError as ex:
            raise DocumentError(
                "pypdf is not installed. Install with: pip install 'local-rag[pdf]'"
            ) from ex

        p = Path(path)
        try:
            reader = pypdf.PdfReader(str(p))
            pages = tuple(
                Page(number=i, text=page.extract_text() or "")
                for i, page in enumerate(reader.pages, start=1)
            )
            metadata = getattr(reader, "metadata", None)
            title = (metadata.title if metadata is not None else None) or p.stem
            byte_size = p.stat().st_size
        except Exception as ex:  # noqa: BLE001
            raise DocumentError(f"PDF parse failed for '{path}': {ex}") from ex
        return LoadedDocument(title=title, pages=pages, byte_size=byte_size, source_path=path)


def loader_for(path: str) -> PageLoaderPort:
    """Pick a loader by file extension (.pdf -> pypdf, anything else -> text)."""
    if Path(path).suffix.lower() == ".pdf":
        return PdfPageLoader()
    return PlainTextPageLoader()
