"""
Tests for execution/legal_rules_rag/similarity.py

Covers: cosine similarity bounds and edge cases, top-K ordering,
        tie handling and dimension mismatches.
"""

import logging

import pytest


def _embedded(rule_id, vector):
    from execution.legal_rules_rag.rule_models import EmbeddedRule, RuleMetadata
    return EmbeddedRule(
        id=rule_id,
        text=f"Rule: {rule_id}",
        metadata=RuleMetadata("US", "high", ["NDA"]),
        embedding=list(vector),
    )


# ---------------------------------------------------------------------------
# cosine_similarity
# ---------------------------------------------------------------------------

class TestCosineSimilarity:

    def test_identical_vectors(self):
        from execution.legal_rules_rag.similarity import cosine_similarity
        assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self):
        from execution.legal_rules_rag.similarity import cosine_similarity
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        from execution.legal_rules_rag.similarity import cosine_similarity
        assert cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_symmetric(self):
        from execution.legal_rules_rag.similarity import cosine_similarity
        a, b = [0.1, 0.7, -0.2], [0.5, -0.3, 0.9]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_zero_vector_scores_zero(self):
        from execution.legal_rules_rag.similarity import cosine_similarity
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
        assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0

    def test_always_within_bounds(self):
        from execution.legal_rules_rag.similarity import cosine_similarity
        vectors = [[1e-8, 3.0, -2.5], [1e8, 1e8, 1e8], [0.1, 0.1, 0.1], [-4, 0, 7]]
        for a in vectors:
            for b in vectors:
                assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_dimension_mismatch(self):
        from execution.legal_rules_rag.errors import DimensionMismatchError
        from execution.legal_rules_rag.similarity import cosine_similarity
        with pytest.raises(DimensionMismatchError, match=r"\(2 != 3\)"):
            cosine_similarity([1, 2], [1, 2, 3])


# ---------------------------------------------------------------------------
# top_k
# ---------------------------------------------------------------------------

class TestTopK:

    @pytest.fixture
    def candidates(self):
        return [
            _embedded("A", [1.0, 0.0]),
            _embedded("B", [0.7, 0.7]),
            _embedded("C", [0.0, 1.0]),
            _embedded("D", [-1.0, 0.0]),
        ]

    def test_sorted_descending(self, candidates):
        from execution.legal_rules_rag.similarity import top_k
        results = top_k([1.0, 0.1], candidates, 4)
        assert [r.id for r in results] == ["A", "B", "C", "D"]
        scores = [r.similarity_score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_size_is_min_of_k_and_candidates(self, candidates):
        from execution.legal_rules_rag.similarity import top_k
        assert len(top_k([1.0, 0.0], candidates, 2)) == 2
        assert len(top_k([1.0, 0.0], candidates, 10)) == 4
        assert top_k([1.0, 0.0], [], 3) == []

    @pytest.mark.parametrize("k", [0, -1])
    def test_non_positive_k(self, candidates, k):
        from execution.legal_rules_rag.similarity import top_k
        assert top_k([1.0, 0.0], candidates, k) == []

    def test_ties_keep_input_order(self):
        from execution.legal_rules_rag.similarity import top_k
        candidates = [_embedded(rid, [1.0, 1.0]) for rid in ("X", "Y", "Z")]
        assert [r.id for r in top_k([2.0, 2.0], candidates, 3)] == ["X", "Y", "Z"]

    def test_embeddings_omitted_by_default(self, candidates):
        from execution.legal_rules_rag.similarity import top_k
        result = top_k([1.0, 0.0], candidates, 1)[0]
        assert result.embedding is None
        assert result.is_scored is True
        with_vectors = top_k([1.0, 0.0], candidates, 1, include_embeddings=True)[0]
        assert with_vectors.embedding == [1.0, 0.0]

    def test_mismatched_candidates_skipped(self, candidates, caplog):
        from execution.legal_rules_rag.similarity import top_k
        candidates.insert(1, _embedded("BAD", [1.0, 0.0, 0.0]))
        with caplog.at_level(logging.ERROR):
            results = top_k([1.0, 0.0], candidates, 10)
        assert "BAD" not in [r.id for r in results]
        assert len(results) == 4
        assert "Skipping rule BAD" in caplog.text

    def test_relevance_percent(self):
        from execution.legal_rules_rag.similarity import top_k
        result = top_k([1.0, 0.0], [_embedded("A", [0.873, 0.48763])], 1)[0]
        assert result.relevance_percent == f"{result.similarity_score * 100:.1f}"
        assert result.relevance_percent == "87.3"
