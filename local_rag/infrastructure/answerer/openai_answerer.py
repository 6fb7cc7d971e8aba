from __future__ import annotations

from dataclasses import dataclass, field
from importlib import import_module
from typing import Any

from local_rag.application.ports.answerer_port import AnswererPort
from local_rag.domain.errors import AnswererError
from local_rag.domain.models import ContextBundle

SYSTEM_PROMPT = (
    "You are a study assistant. Answer the question using ONLY the numbered context "
    "passages. Cite passages as [n]. If the context does not contain the answer, say so."
)


def build_prompt(query: str, context: ContextBundle) -> str:
    return f"Question: {query}\n\nContext:\n{context.text}\n\nAnswer:"


@dataclass
class OpenAIAnswerer(AnswererPort):
    """Answerer backed by any OpenAI-compatible chat completions endpoint (OpenAI, vLLM, Ollama)."""

    base_url: str  # e.g. "http://localhost:8000/v1"
    api_key: str = "EMPTY"
    model: str = "gpt-4o-mini"
    timeout_s: float = 60.0
    temperature: float = 0.2
    max_tokens: int = 512
    _client: Any | None = field(default=None, repr=False)

    def _ensure_client(self) -> Any:
        if self._client is None:
            # Deferred so the openai package stays optional
            module = import_module("openai")
            self._client = module.OpenAI(
                base_url=self.base_url, api_key=self.api_key, timeout=self.timeout_s
            )
        return self._client

    def answer(self, query: str, context: ContextBundle) -> str:
        try:
            client = self._ensure_client()
            resp: Any = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(query, context)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            text = resp.choices[0].message.content or ""
        except Exception as ex:  # noqa: BLE001
            # Translate external errors to domain-specific errors
            raise AnswererError(f"Answerer communication failed: {ex}") from ex
        if not text.strip():
            raise AnswererError("Answerer returned an empty response")
        return text.strip()
