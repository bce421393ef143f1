from collections.abc import Sequence
from typing import Optional, Union

import numpy as np
import structlog

logger = structlog.get_logger(__name__)

VectorLike = Union[np.ndarray, Sequence[float]]


def numpy_cosine_similarity(
    vec1: Optional[VectorLike], vec2: Optional[VectorLike]
) -> float:
    """Calculate cosine similarity between two vectors.

    Zero-norm, empty, missing or mismatched inputs give ``0.0``. The result is
    clipped to ``[-1, 1]``.
    """
    if vec1 is None or vec2 is None:
        logger.debug("Cosine similarity: one or both vectors are None. Returning 0.0.")
        return 0.0
    try:
        v1 = np.asarray(vec1, dtype=np.float64).flatten()
        v2 = np.asarray(vec2, dtype=np.float64).flatten()
    except (TypeError, ValueError) as e:
        logger.warning(
            "Cosine similarity: Could not convert input to numpy array: %s. Returning 0.0.",
            e,
        )
        return 0.0
    if v1.shape != v2.shape:
        logger.warning(
            "Cosine similarity: shape mismatch %s vs %s. Returning 0.0.",
            v1.shape,
            v2.shape,
        )
        return 0.0
    if v1.size == 0:
        return 0.0
    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)
    if norm_v1 == 0.0 or norm_v2 == 0.0:
        return 0.0
    similarity = np.dot(v1, v2) / (norm_v1 * norm_v2)
    return float(np.clip(similarity, -1.0, 1.0))


def is_zero_vector(vec: Optional[VectorLike]) -> bool:
    """Return ``True`` when ``vec`` carries no signal."""
    if vec is None:
        return True
    arr = np.asarray(vec, dtype=np.float64)
    return arr.size == 0 or not np.any(arr)


def weighted_centroid(
    vectors: Sequence[VectorLike], weights: Sequence[float], dimensions: int
) -> np.ndarray:
    """Weighted average of ``vectors``; a zero vector when there is nothing to average."""
    if not vectors:
        return np.zeros(dimensions, dtype=np.float64)
    matrix = np.asarray(vectors, dtype=np.float64).reshape(len(vectors), dimensions)
    w = np.asarray(weights, dtype=np.float64)
    total = w.sum()
    if total == 0.0:
        return np.zeros(dimensions, dtype=np.float64)
    return (matrix * w[:, None]).sum(axis=0) / total
