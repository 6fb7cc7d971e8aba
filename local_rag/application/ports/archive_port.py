from typing import Protocol

from local_rag.domain.models import CollectionSnapshot


class ArchiveCodecPort(Protocol):
    """Portable, versioned serialization of a whole collection."""

    format_version: int

    def encode(self, snapshot: CollectionSnapshot) -> bytes: ...

    def decode(self, data: bytes) -> CollectionSnapshot:
        """Raises ArchiveVersionUnsupportedError or ArchiveCorruptError."""
        ...
