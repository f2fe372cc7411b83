"""Domain tests for cosine similarity (exact search in the in-memory store)."""

from handbook_rag.domain.similarity import cosine


def test_cosine_similarity():
    """Identical vectors score 1, orthogonal vectors 0."""
    assert abs(cosine((1.0, 0.0, 0.0), (1.0, 0.0, 0.0)) - 1.0) < 1e-6
    assert abs(cosine((1.0, 0.0, 0.0), (0.0, 1.0, 0.0))) < 1e-6


def test_cosine_is_scale_invariant():
    assert abs(cosine((2.0, 0.0), (5.0, 0.0)) - 1.0) < 1e-6


def test_cosine_opposite_vectors():
    assert abs(cosine((1.0, 0.0), (-1.0, 0.0)) + 1.0) < 1e-6


def test_cosine_dimension_mismatch_scores_zero():
    assert cosine((1.0, 0.0), (1.0, 0.0, 0.0)) == 0.0


def test_cosine_zero_vector_does_not_divide_by_zero():
    assert cosine((0.0, 0.0), (1.0, 0.0)) == 0.0
