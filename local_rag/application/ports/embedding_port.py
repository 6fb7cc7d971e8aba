from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from local_rag.domain.models import Embedding


@runtime_checkable
class EmbeddingPort(Protocol):
    """Maps text to a fixed-length vector, deterministic for a fixed model id."""

    @property
    def model_id(self) -> str: ...

    def embed(self, text: str) -> Embedding: ...

    def embed_texts(self, texts: Sequence[str]) -> list[Embedding]: ...
