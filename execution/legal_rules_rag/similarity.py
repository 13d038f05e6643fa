"""
Similarity scoring and top-K ranking for embedded rules.
"""

import logging
from typing import Sequence

import numpy as np

from .errors import DimensionMismatchError
from .rule_models import EmbeddedRule, ScoredRule

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns 0.0 when either vector has zero magnitude. The result is
    clamped to [-1, 1] to absorb floating point drift.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(a_arr, b_arr) / (norm_a * norm_b))
    if np.isnan(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def top_k(
    query_vector: Sequence[float],
    candidates: list[EmbeddedRule],
    k: int,
    include_embeddings: bool = False,
) -> list[ScoredRule]:
    """
    Score every candidate against the query and return the k best.

    Sorting is stable, so equal scores keep their input order. A candidate
    whose vector length differs from the query is skipped (and logged),
    since that means the cache holds vectors from another model.

    Args:
        query_vector: Query embedding
        candidates: Embedded rules to rank
        k: Number of results; <= 0 returns [], > len(candidates) returns all
        include_embeddings: Copy each rule's vector onto the result

    Returns:
        ScoredRules sorted by descending similarity
    """
    if k <= 0:
        return []

    scored = []
    for rule in candidates:
        try:
            score = cosine_similarity(query_vector, rule.embedding)
        except DimensionMismatchError as e:
            logger.error(
                f"Skipping rule {rule.id}: {e}. Cached embeddings are inconsistent "
                f"with the query model; regenerate embeddings."
            )
            continue
        scored.append(ScoredRule(
            id=rule.id,
            text=rule.text,
            metadata=rule.metadata,
            similarity_score=score,
            embedding=list(rule.embedding) if include_embeddings else None,
        ))

    scored.sort(key=lambda r: r.similarity_score, reverse=True)
    return scored[:k]
