"""Application ports package.

Re-exports the ports from their individual modules.
"""

from local_rag.application.ports.answerer_port import AnswererPort
from local_rag.application.ports.archive_port import ArchiveCodecPort
from local_rag.application.ports.clock_port import ClockPort
from local_rag.application.ports.document_store_port import DocumentStorePort
from local_rag.application.ports.embedding_port import EmbeddingPort
from local_rag.application.ports.lexical_index_port import LexicalIndexPort
from local_rag.application.ports.page_loader_port import LoadedDocument, PageLoaderPort

__all__ = [
    "AnswererPort",
    "ArchiveCodecPort",
    "ClockPort",
    "DocumentStorePort",
    "EmbeddingPort",
    "LexicalIndexPort",
    "LoadedDocument",
    "PageLoaderPort",
]
