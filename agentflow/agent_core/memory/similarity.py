"""Vector similarity helpers for memory retrieval."""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np


def cosine_similarity(vec_a: Optional[Sequence[float]], vec_b: Optional[Sequence[float]]) -> float:
    """Cosine similarity of two vectors; 0.0 for empty, mismatched or zero vectors."""
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


def cosine_scores(query: Sequence[float], candidates: Sequence[Optional[Sequence[float]]]) -> List[float]:
    """Score every candidate against ``query`` in one matrix product.

    Candidates without an embedding, or with a different dimension, score 0.0.
    """
    if not candidates:
        return []
    q = np.asarray(query, dtype=float)
    q_norm = float(np.linalg.norm(q))
    if q.size == 0 or q_norm == 0.0:
        return [0.0] * len(candidates)

    valid = [i for i, c in enumerate(candidates) if c is not None and len(c) == q.size]
    scores = [0.0] * len(candidates)
    if not valid:
        return scores

    matrix = np.asarray([candidates[i] for i in valid], dtype=float)
    norms = np.linalg.norm(matrix, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, matrix @ q / (norms * q_norm), 0.0)
    for i, s in zip(valid, np.clip(sims, -1.0, 1.0)):
        scores[i] = float(s)
    return scores
