"""Distance metrics used by the proximity graph.

Both metrics return dissimilarities: smaller means closer. L2 is the squared
Euclidean distance (no square root), cosine is ``1 - cos(a, b)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np

from vecdb.vector.errors import DimensionMismatchError, InvalidConfigError

# Returned by cosine when either side has zero magnitude.
ZERO_NORM_COSINE_DISTANCE = 1.0


class VectorMetric(str, Enum):
    L2 = "l2"
    COSINE = "cosine"


def normalize_metric(metric: str | VectorMetric) -> VectorMetric:
    if isinstance(metric, VectorMetric):
        return metric
    if not isinstance(metric, str):
        raise InvalidConfigError(f"Unsupported distance type: {type(metric).__name__}")
    key = metric.strip().lower()
    if key not in VectorMetric._value2member_map_:
        allowed = sorted(VectorMetric._value2member_map_)
        raise InvalidConfigError(f"Unsupported distance: {metric}. Supported: {allowed}")
    return VectorMetric(key)


def _check_pair(a: np.ndarray, b: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    if a.shape[-1] != b.shape[-1]:
        raise DimensionMismatchError(expected=a.shape[-1], actual=b.shape[-1])
    # Squares of large float32 components overflow float32 but not float64.
    return a.astype(np.float64), b.astype(np.float64)


def l2_distance(a: np.ndarray, b: np.ndarray) -> float:
    a, b = _check_pair(a, b)
    diff = a - b
    return float(np.dot(diff, diff))


def l2_distances(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    query, matrix = _check_pair(query, matrix)
    diff = matrix - query
    return np.einsum("ij,ij->i", diff, diff)


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    a, b = _check_pair(a, b)
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return ZERO_NORM_COSINE_DISTANCE
    return min(2.0, max(0.0, 1.0 - float(np.dot(a, b)) / (norm_a * norm_b)))


def cosine_distances(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    query, matrix = _check_pair(query, matrix)
    norm_q = float(np.linalg.norm(query))
    norms = np.linalg.norm(matrix, axis=1)
    out = np.full(matrix.shape[0], ZERO_NORM_COSINE_DISTANCE, dtype=np.float64)
    if norm_q == 0.0:
        return out
    valid = norms > 0.0
    out[valid] = np.clip(1.0 - (matrix[valid] @ query) / (norms[valid] * norm_q), 0.0, 2.0)
    return out


@dataclass(frozen=True)
class Metric:
    """A resolved metric: one pairwise and one one-to-many distance function."""

    kind: VectorMetric
    pair: Callable[[np.ndarray, np.ndarray], float]
    many: Callable[[np.ndarray, np.ndarray], np.ndarray]

    def __call__(self, a: np.ndarray, b: np.ndarray) -> float:
        return self.pair(a, b)


_METRICS = {
    VectorMetric.L2: Metric(VectorMetric.L2, l2_distance, l2_distances),
    VectorMetric.COSINE: Metric(VectorMetric.COSINE, cosine_distance, cosine_distances),
}


def get_metric(metric: str | VectorMetric) -> Metric:
    return _METRICS[normalize_metric(metric)]


def distance(metric: str | VectorMetric, a, b) -> float:
    """Compute the distance between two vectors under ``metric``.

    Inputs may be any float sequences; they are converted to float32 arrays.
    """
    left = np.asarray(a, dtype=np.float32)
    right = np.asarray(b, dtype=np.float32)
    return get_metric(metric)(left, right)
