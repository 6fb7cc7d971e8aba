"""Domain errors (typed).

Adapters translate library failures into this family so the application layer
never sees SQLAlchemy, HTTP or model-loading exceptions directly.
"""


class DomainError(Exception):
    """Base class for domain-specific errors."""


class ValidationError(DomainError):
    """Invalid input/domain state."""


class EmptyInputError(ValidationError):
    """No text left to chunk after decoding."""


class ModelMismatchError(DomainError):
    """Vectors were produced by a different embedding model than expected."""

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class DimensionMismatchError(ModelMismatchError):
    """Vector dimension differs from the dimension recorded for its model id."""


class EmbeddingError(DomainError):
    """Embedding backend failed, is missing or is misconfigured."""


class AnswererError(DomainError):
    """External answerer failed or is misconfigured."""


class DocumentError(DomainError):
    """Source document loading/decoding failed."""


class StoreUnavailableError(DomainError):
    """Persistent store I/O failed."""


class DocumentNotFoundError(DomainError):
    """No document with the given id."""

    def __init__(self, document_id: str):
        super().__init__(f"document '{document_id}' not found")
        self.document_id = document_id


class InvalidStatusTransitionError(DomainError):
    """Document status change not allowed by the ingestion lifecycle."""


class IngestionCancelledError(DomainError):
    """Ingestion was cancelled cooperatively; the partial document was removed."""

    def __init__(self, document_id: str):
        super().__init__(f"ingestion of document '{document_id}' was cancelled")
        self.document_id = document_id


class ArchiveError(DomainError):
    """Archive could not be exported or imported."""


class ArchiveVersionUnsupportedError(ArchiveError):
    def __init__(self, version: object, supported: tuple[int, ...]):
        super().__init__(
            f"archive format version {version!r} is not supported (supported: {list(supported)})"
        )
        self.version = version
        self.supported = supported


class ArchiveCorruptError(ArchiveError):
    """Archive bytes or records are malformed or inconsistent."""
