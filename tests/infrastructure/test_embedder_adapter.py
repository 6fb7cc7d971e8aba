import sys
import types

import pytest

from local_rag.domain.errors import EmbeddingError
from local_rag.infrastructure.embeddings.sentence_transformers_embedder import (
    SentenceTransformersEmbedder,
)


class _FakeST:
    """Stand-in for sentence_transformers.SentenceTransformer."""

    loaded: list[dict] = []

    def __init__(self, model_name, device="cpu", local_files_only=False):  # type: ignore[no-untyped-def]
        _FakeST.loaded.append(
            {"model": model_name, "device": device, "local_files_only": local_files_only}
        )

    def encode(self, inputs, normalize_embeddings=True, convert_to_numpy=True, **kwargs):  # type: ignore[no-untyped-def]
        assert normalize_embeddings is True

        def _vec(text):  # type: ignore[no-untyped-def]
            return [float(len(text)), 0.0, 1.0]

        if isinstance(inputs, str):
            return _vec(inputs)
        return [_vec(t) for t in inputs]


@pytest.fixture
def fake_st(monkeypatch):
    _FakeST.loaded = []
    monkeypatch.setitem(
        sys.modules, "sentence_transformers", types.SimpleNamespace(SentenceTransformer=_FakeST)
    )
    return _FakeST


def test_embed_texts_and_query(fake_st):
    emb = SentenceTransformersEmbedder(model_name="demo-model", device="cpu", local_files_only=True)

    vectors = emb.embed_texts(["ab", "abcd"])
    query = emb.embed("abc")

    assert [v.vector for v in vectors] == [(2.0, 0.0, 1.0), (4.0, 0.0, 1.0)]
    assert all(v.model_id == "demo-model" for v in vectors)
    assert query.vector == (3.0, 0.0, 1.0)
    assert query.dim == 3
    assert fake_st.loaded == [{"model": "demo-model", "device": "cpu", "local_files_only": True}]


def test_empty_batch_does_not_load_model(fake_st):
    assert SentenceTransformersEmbedder().embed_texts([]) == []
    assert fake_st.loaded == []


def test_missing_library_raises_embedding_error(monkeypatch):
    monkeypatch.setitem(sys.modules, "sentence_transformers", None)
    with pytest.raises(EmbeddingError, match="not installed"):
        SentenceTransformersEmbedder().embed("x")


def test_encode_failure_raises_embedding_error(monkeypatch):
    class _Broken(_FakeST):
        def encode(self, *args, **kwargs):  # type: ignore[no-untyped-def]
            raise RuntimeError("CUDA out of memory")

    monkeypatch.setitem(
        sys.modules, "sentence_transformers", types.SimpleNamespace(SentenceTransformer=_Broken)
    )
    with pytest.raises(EmbeddingError, match="CUDA out of memory"):
        SentenceTransformersEmbedder().embed_texts(["x"])


def test_model_load_failure_raises_embedding_error(monkeypatch):
    def _fail(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise OSError("model not found offline")

    monkeypatch.setitem(
        sys.modules, "sentence_transformers", types.SimpleNamespace(SentenceTransformer=_fail)
    )
    with pytest.raises(EmbeddingError, match="Failed to load"):
        SentenceTransformersEmbedder(local_files_only=True).embed("x")
