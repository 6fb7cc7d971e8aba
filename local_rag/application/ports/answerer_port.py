from typing import Protocol, runtime_checkable

from local_rag.domain.models import ContextBundle


@runtime_checkable
class AnswererPort(Protocol):
    def answer(self, query: str, context: ContextBundle) -> str:
        """Phrase an answer to `query` using only the given context.

        Raises:
            AnswererError: backend unreachable, misconfigured or returned nothing.
        """
        ...
