from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from local_rag.application.ports.embedding_port import EmbeddingPort
from local_rag.domain.errors import EmbeddingError
from local_rag.domain.models import Embedding


@dataclass
class SentenceTransformersEmbedder(EmbeddingPort):
    """HuggingFace Sentence-Transformers adapter (local model, L2-normalized output).

    The model is loaded on first use; the library is imported lazily so the
    engine runs lexical-only without it.
    """

    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"  # "cuda" | "mps" when available
    batch_size: int = 32
    local_files_only: bool = False  # offline deployments
    _model: Any | None = None

    @property
    def model_id(self) -> str:
        return self.model_name

    def _ensure_model(self) -> Any:
        if self._model is not None:
            return self._model
        try:
            module = import_module("sentence_transformers")
        except ImportError as ex:
            raise EmbeddingError(
                "sentence-transformers not installed. Install with: pip install 'local-rag[embeddings]'"
            ) from ex
        try:
            self._model = module.SentenceTransformer(
                self.model_name,
                device=self.device,
                local_files_only=self.local_files_only,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(
                f"Failed to load embedding model '{self.model_name}': {ex}"
            ) from ex
        return self._model

    def embed_texts(self, texts: Sequence[str]) -> list[Embedding]:
        if not texts:
            return []
        model = self._ensure_model()
        try:
            raw_vectors = model.encode(
                list(texts),
                batch_size=self.batch_size,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding texts failed: {ex}") from ex
        return [Embedding(tuple(float(x) for x in vec), self.model_id) for vec in raw_vectors]

    def embed(self, text: str) -> Embedding:
        model = self._ensure_model()
        try:
            raw_vector = model.encode(
                text,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding query failed: {ex}") from ex
        return Embedding(tuple(float(x) for x in raw_vector), self.model_id)
