"""Application settings with environment-driven configuration.

This is the ONLY place where environment variables are read. All other layers
receive settings via dependency injection.
"""

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    Capability switches:
    - embedder_backend: "sentence-transformers" | "none" (lexical-only search,
      ingestion disabled)
    - answerer_backend: "openai" (any OpenAI-compatible endpoint) | "none"
      (templated answers)
    """

    # ===== Store =====
    database_url: str = field(
        default_factory=lambda: os.getenv("RAG_DATABASE_URL", "sqlite:///var/local_rag/store.db")
    )

    # ===== Embedding =====
    embedder_backend: str = field(
        default_factory=lambda: os.getenv("EMBEDDER_BACKEND", "sentence-transformers").lower()
    )
    embedding_model: str = field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
        )
    )
    embedding_device: str = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE", "cpu"))
    # Supported: "cpu" | "cuda" | "mps"

    embedding_batch_size: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "32"))
    )
    embedding_local_files_only: bool = field(
        default_factory=lambda: _env_bool("EMBEDDING_LOCAL_FILES_ONLY")
    )

    # ===== Answerer (LLM) =====
    answerer_backend: str = field(
        default_factory=lambda: os.getenv("ANSWERER_BACKEND", "none").lower()
    )
    llm_base_url: str = field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "http://localhost:8000/v1")
    )
    llm_api_key: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", "EMPTY"))
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    llm_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("LLM_TIMEOUT_S", "60"))
    )

    # ===== Chunking =====
    chunk_target_words: int = field(
        default_factory=lambda: int(os.getenv("CHUNK_TARGET_WORDS", "900"))
    )
    chunk_overlap_words: int = field(
        default_factory=lambda: int(os.getenv("CHUNK_OVERLAP_WORDS", "150"))
    )
    chunk_boundary_window: int = field(
        default_factory=lambda: int(os.getenv("CHUNK_BOUNDARY_WINDOW", "90"))
    )
    chunk_max_words: int = field(default_factory=lambda: int(os.getenv("CHUNK_MAX_WORDS", "1200")))
    chunk_min_tail_words: int = field(
        default_factory=lambda: int(os.getenv("CHUNK_MIN_TAIL_WORDS", "50"))
    )
    chunk_heading_max_words: int = field(
        default_factory=lambda: int(os.getenv("CHUNK_HEADING_MAX_WORDS", "12"))
    )

    # ===== Query =====
    query_top_k: int = field(default_factory=lambda: int(os.getenv("QUERY_TOP_K", "5")))
    query_mmr_lambda: float = field(
        default_factory=lambda: float(os.getenv("QUERY_MMR_LAMBDA", "0.5"))
    )
    query_overfetch_factor: int = field(
        default_factory=lambda: int(os.getenv("QUERY_OVERFETCH_FACTOR", "4"))
    )
    query_embed_timeout_s: float | None = field(
        default_factory=lambda: _env_optional_float("QUERY_EMBED_TIMEOUT_S")
    )
    # Unset = wait for the embedder; on timeout the query runs lexical-only

    query_confidence_threshold: float = field(
        default_factory=lambda: float(os.getenv("QUERY_CONFIDENCE_THRESHOLD", "0.3"))
    )
    answer_max_chars: int = field(
        default_factory=lambda: int(os.getenv("ANSWER_MAX_CHARS", "2000"))
    )

    # ===== Logging =====
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
