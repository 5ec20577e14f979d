"""Vector helpers shared by the index, ranker and embedding learner."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def as_array(v: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(v, dtype=np.float64)


def magnitude(v: Sequence[float] | np.ndarray) -> float:
    """L2 norm. 0.0 for an empty vector."""
    arr = as_array(v)
    if arr.size == 0:
        return 0.0
    return float(np.linalg.norm(arr))


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 for empty vectors, mismatched lengths, or zero magnitude.
    """
    va, vb = as_array(a), as_array(b)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    # Clip guards against 1.0000000002 from float rounding
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def cosine_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """1 - cosine similarity; 1.0 when similarity is undefined."""
    va, vb = as_array(a), as_array(b)
    if va.size == 0 or va.shape != vb.shape:
        return 1.0
    if np.linalg.norm(va) == 0 or np.linalg.norm(vb) == 0:
        return 1.0
    return 1.0 - cosine_similarity(va, vb)


def normalize(v: Sequence[float] | np.ndarray) -> list[float]:
    """Scale to unit length. Empty and zero vectors are returned unchanged."""
    arr = as_array(v)
    if arr.size == 0:
        return []
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr.tolist()
    return (arr / norm).tolist()


def mean_vector(vectors: Sequence[Sequence[float]], dimensions: int) -> list[float]:
    """Element-wise mean of the vectors that have the given dimensionality.

    Returns a zero vector if none qualify.
    """
    usable = [as_array(v) for v in vectors if len(v) == dimensions]
    if not usable:
        return [0.0] * dimensions
    return np.mean(np.stack(usable), axis=0).tolist()
