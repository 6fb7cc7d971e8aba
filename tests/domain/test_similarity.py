"""Domain tests for similarity functions."""

from local_rag.domain.similarity import cosine, max_similarity


def test_cosine_similarity():
    """Test basic cosine similarity calculation."""
    assert abs(cosine((1.0, 0.0, 0.0), (1.0, 0.0, 0.0)) - 1.0) < 1e-6
    assert abs(cosine((1.0, 0.0, 0.0), (0.0, 1.0, 0.0))) < 1e-6
    assert abs(cosine((1.0, 0.0), (-1.0, 0.0)) + 1.0) < 1e-6


def test_cosine_is_scale_invariant():
    assert abs(cosine((2.0, 2.0), (5.0, 5.0)) - 1.0) < 1e-6


def test_cosine_degenerate_inputs_score_zero():
    """Empty, zero-norm and dimension-mismatched vectors are not comparable."""
    assert cosine((), ()) == 0.0
    assert cosine((0.0, 0.0), (1.0, 0.0)) == 0.0
    assert cosine((1.0, 0.0), (1.0, 0.0, 0.0)) == 0.0


def test_max_similarity():
    v = (1.0, 0.0)
    others = [(0.0, 1.0), (1.0, 0.1)]
    assert max_similarity(v, others) == cosine(v, (1.0, 0.1))
    assert max_similarity(v, []) == 0.0
