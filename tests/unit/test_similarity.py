"""
Unit tests for cosine similarity scoring.
"""

import numpy as np
import pytest

from truida.similarity import SimilarityScorer, cosine_similarity
from tests.factories import embedding_with_similarity, unit_embedding


@pytest.mark.unit
class TestCosineSimilarity:
    """Test cases for cosine_similarity"""

    def test_identical_vectors_score_exactly_one(self):
        """Test that a vector is perfectly similar to itself"""
        rng = np.random.default_rng(7)
        vector = rng.normal(size=384).tolist()

        assert cosine_similarity(vector, vector) == 1.0

    def test_similarity_is_symmetric(self):
        """Test that argument order does not matter"""
        rng = np.random.default_rng(3)
        a = rng.normal(size=384).tolist()
        b = rng.normal(size=384).tolist()

        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_known_similarity(self):
        """Test a constructed pair with a known cosine"""
        score = cosine_similarity(unit_embedding(0), embedding_with_similarity(0.9))

        assert score == pytest.approx(0.9)

    def test_opposite_vectors(self):
        """Test that opposite vectors score -1"""
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        """Test that orthogonal vectors score 0"""
        assert cosine_similarity(unit_embedding(0), unit_embedding(1)) == 0.0

    def test_length_mismatch_returns_zero(self):
        """Test that vectors of different lengths are not comparable"""
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0

    def test_zero_norm_returns_zero(self):
        """Test that a zero vector yields the no-similarity sentinel"""
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0

    @pytest.mark.parametrize("a,b", [(None, [1.0]), ([1.0], None), (None, None), ([], [])])
    def test_absent_or_empty_returns_zero(self, a, b):
        """Test that absent embeddings never raise"""
        assert cosine_similarity(a, b) == 0.0

    def test_result_stays_in_range(self):
        """Test that scores are clipped to [-1, 1]"""
        rng = np.random.default_rng(11)
        for _ in range(20):
            a = rng.normal(size=384)
            b = a * rng.uniform(0.5, 2.0)
            assert -1.0 <= cosine_similarity(a.tolist(), b.tolist()) <= 1.0


@pytest.mark.unit
class TestSimilarityScorer:
    """Test cases for the SimilarityScorer wrapper"""

    def test_delegates_to_cosine(self):
        """Test that the scorer matches the module function"""
        scorer = SimilarityScorer()
        a, b = unit_embedding(0), embedding_with_similarity(0.3)

        assert scorer.name == "cosine"
        assert scorer.similarity(a, b) == pytest.approx(cosine_similarity(a, b))
