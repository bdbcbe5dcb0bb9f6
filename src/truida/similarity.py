"""
Face embedding comparison for the TRUIDA system.

Embeddings are compared by cosine similarity. The scorer never raises for
well-formed numeric input: a length mismatch or a zero-norm vector yields
0.0, the "no similarity" sentinel, so a record without a usable embedding
simply ranks lowest during best-match selection.
"""

from typing import Optional, Sequence

import numpy as np


def cosine_similarity(
    a: Optional[Sequence[float]], b: Optional[Sequence[float]]
) -> float:
    """
    Compute the cosine similarity of two embeddings.

    Parameters
    ----------
    a, b : Sequence[float], optional
        Embeddings to compare. ``None`` is treated as an absent embedding.

    Returns
    -------
    float
        ``dot(a, b) / (|a| * |b|)`` clipped to [-1, 1]; 0.0 when either side
        is absent or empty, lengths differ, or either norm is zero.

    Examples
    --------
    >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
    1.0
    >>> cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])
    0.0
    """
    if a is None or b is None:
        return 0.0

    vec_a = np.asarray(a, dtype=np.float64).ravel()
    vec_b = np.asarray(b, dtype=np.float64).ravel()

    if vec_a.size == 0 or vec_a.size != vec_b.size:
        return 0.0

    norm_product = float(np.dot(vec_a, vec_a)) * float(np.dot(vec_b, vec_b))
    if norm_product == 0.0 or not np.isfinite(norm_product):
        return 0.0

    score = float(np.dot(vec_a, vec_b)) / float(np.sqrt(norm_product))
    return float(np.clip(score, -1.0, 1.0))


class SimilarityScorer:
    """
    Numeric comparison of two fixed-length embeddings.

    A thin object wrapper around :func:`cosine_similarity` so the engine can
    be given an alternative scorer (for example a calibrated one).

    Examples
    --------
    >>> scorer = SimilarityScorer()
    >>> scorer.similarity([0.2, 0.4], [0.2, 0.4])
    1.0
    """

    name = "cosine"

    def similarity(
        self, a: Optional[Sequence[float]], b: Optional[Sequence[float]]
    ) -> float:
        return cosine_similarity(a, b)
