"""Test doubles and sample pages shared by the test suite."""

import hashlib
import math
import re
from datetime import datetime, timezone

from local_rag.domain.models import Embedding, Page

BIOLOGY_PAGES = (
    Page(
        1,
        "CHAPTER 1 CELLS\n\n"
        "Photosynthesis is the process by which green plants convert light energy into "
        "chemical energy. Chlorophyll in the chloroplast absorbs sunlight and drives the "
        "reaction. Carbon dioxide and water are turned into glucose and oxygen. The light "
        "dependent reactions happen in the thylakoid membranes of the chloroplast.",
    ),
    Page(
        2,
        "The Calvin cycle fixes carbon dioxide in the stroma using energy from ATP and "
        "NADPH. Mitochondria are the powerhouse of the cell and release energy through "
        "cellular respiration. Respiration breaks glucose down again and produces ATP for "
        "the cell. Plants therefore both photosynthesize and respire every day.",
    ),
)

HISTORY_PAGES = (
    Page(
        1,
        "The Roman Empire grew from a small city state on the Tiber into a power that "
        "ruled the Mediterranean. Augustus became the first emperor after the civil wars "
        "ended the republic. The legions built roads, forts and aqueducts across the "
        "provinces and the senate kept a ceremonial role.",
    ),
    Page(
        2,
        "Trade across the empire moved grain, wine and olive oil by ship. The western "
        "empire fell in the fifth century when Germanic kingdoms replaced imperial rule. "
        "Constantinople remained the capital of the eastern empire for another thousand "
        "years until the Ottoman conquest.",
    ),
)

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeEmbedder:
    """Deterministic bag-of-words hash embedding; texts sharing words are similar."""

    def __init__(self, model_id: str = "fake-hash-64", dim: int = 64) -> None:
        self._model_id = model_id
        self.dim = dim
        self.batches: list[int] = []

    @property
    def model_id(self) -> str:
        return self._model_id

    def embed(self, text: str) -> Embedding:
        vec = [0.0] * self.dim
        for tok in re.findall(r"\w+", text.lower()):
            h = int(hashlib.md5(tok.encode("utf-8")).hexdigest(), 16)
            vec[h % self.dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return Embedding(tuple(v / norm for v in vec), self._model_id)

    def embed_texts(self, texts):  # type: ignore[no-untyped-def]
        self.batches.append(len(texts))
        return [self.embed(t) for t in texts]


class FakeAnswerer:
    def __init__(self, reply: str = "Plants use chlorophyll to capture light [1].") -> None:
        self.reply = reply
        self.calls: list[tuple[str, object]] = []

    def answer(self, query, context):  # type: ignore[no-untyped-def]
        self.calls.append((query, context))
        return self.reply


class FixedClock:
    def now(self) -> datetime:
        return FIXED_NOW
