from collections.abc import Collection, Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class LexicalIndexPort(Protocol):
    """Term-based scorer over chunk text.

    Holds no authoritative state: it is rebuilt from the store's ready chunks
    and remembers the store revision it was built from.
    """

    @property
    def revision(self) -> int | None: ...

    def rebuild(self, revision: int, entries: Sequence[tuple[str, str]]) -> None:
        """Replace the index with `(chunk_id, text)` entries."""
        ...

    def score(self, query: str, restrict_to: Collection[str] | None = None) -> dict[str, float]:
        """Sparse scores: only chunks sharing a query term are returned, each with a positive score."""
        ...
