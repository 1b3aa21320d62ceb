"""
Distance metric implementations for MLVectorSearch.

Euclidean and cosine distances support the acceleration cache: the norms of
the indexed vectors are computed once at build time so that each query only
pays for one dot product per stored vector.
"""

import math
import logging
from typing import Optional, Sequence, Dict, Any, Callable

import numpy as np

from ..exceptions import ConfigurationError
from ..interfaces.distance_metric import DistanceMetric
from ..interfaces.vector import VectorProtocol
from .parallel import run_in_blocks

logger = logging.getLogger(__name__)


def cosine_to_distance(cos_angle: float) -> float:
    """Map a cosine similarity in [-1, 1] to a distance in [0, 1]."""
    return math.sqrt(max(0.5 * (1.0 - cos_angle), 0.0))


def distance_to_cosine(distance: float) -> float:
    """Inverse of :func:`cosine_to_distance`."""
    return 1.0 - 2.0 * distance * distance


def _check_lengths(a: VectorProtocol, b: VectorProtocol) -> None:
    if a.length != b.length:
        raise ValueError(
            f"Vectors a and b are of differing lengths {a.length} and {b.length}"
        )


def _difference(a: VectorProtocol, b: VectorProtocol) -> np.ndarray:
    _check_lengths(a, b)
    return a.to_numpy() - b.to_numpy()


def _per_vector(
    vectors: Sequence[VectorProtocol],
    fn: Callable[[VectorProtocol], float],
    parallel: bool
) -> np.ndarray:
    cache = np.empty(len(vectors), dtype=np.float64)

    def fill(start: int, end: int) -> None:
        for i in range(start, end):
            cache[i] = fn(vectors[i])

    if parallel:
        run_in_blocks(len(vectors), fill)
    else:
        fill(0, len(vectors))
    logger.debug(f"Acceleration cache computed for {len(vectors)} vectors (parallel={parallel})")
    return cache


class _UnacceleratedMetric(DistanceMetric):
    """Shared no-cache behaviour for metrics with nothing worth precomputing."""

    def supports_acceleration(self) -> bool:
        return False

    def build_acceleration_cache(self, vectors, parallel=False):
        return None

    def query_acceleration_info(self, query):
        return None

    def distance_using_cache(self, index, query, query_info, vectors, cache):
        return self.distance(vectors[index], query)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


class EuclideanDistance(DistanceMetric):
    """L2 distance. The acceleration cache holds squared norms."""

    @property
    def name(self) -> str:
        return "euclidean"

    @property
    def is_symmetric(self) -> bool:
        return True

    @property
    def is_subadditive(self) -> bool:
        return True

    @property
    def is_indiscernible(self) -> bool:
        return True

    @property
    def metric_bound(self) -> float:
        return math.inf

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float:
        return float(np.linalg.norm(_difference(a, b)))

    def supports_acceleration(self) -> bool:
        return True

    def build_acceleration_cache(self, vectors, parallel=False):
        return _per_vector(vectors, lambda v: v.dot(v), parallel)

    def query_acceleration_info(self, query):
        return np.array([query.dot(query)], dtype=np.float64)

    def distance_using_cache(self, index, query, query_info, vectors, cache):
        if cache is None:
            return self.distance(vectors[index], query)
        if query_info is None:
            query_info = self.query_acceleration_info(query)
        stored = vectors[index]
        _check_lengths(stored, query)
        squared = cache[index] + query_info[0] - 2.0 * stored.dot(query)
        # max guards against tiny negative values from cancellation
        return math.sqrt(max(squared, 0.0))

    def __repr__(self) -> str:
        return "EuclideanDistance()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


class CosineDistance(DistanceMetric):
    """
    Cosine distance ``sqrt(0.5 * (1 - cos(a, b)))``, a proper metric on [0, 1].

    A zero vector is treated as pointing opposite to everything, giving the
    maximum distance of 1. The acceleration cache holds L2 norms.
    """

    @property
    def name(self) -> str:
        return "cosine"

    @property
    def is_symmetric(self) -> bool:
        return True

    @property
    def is_subadditive(self) -> bool:
        return True

    @property
    def is_indiscernible(self) -> bool:
        return True

    @property
    def metric_bound(self) -> float:
        return 1.0

    def _from_parts(self, dot: float, denom: float) -> float:
        if denom == 0:
            return cosine_to_distance(-1.0)
        return cosine_to_distance(min(dot / denom, 1.0))

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float:
        _check_lengths(a, b)
        return self._from_parts(a.dot(b), a.p_norm(2) * b.p_norm(2))

    def supports_acceleration(self) -> bool:
        return True

    def build_acceleration_cache(self, vectors, parallel=False):
        return _per_vector(vectors, lambda v: v.p_norm(2), parallel)

    def query_acceleration_info(self, query):
        return np.array([query.p_norm(2)], dtype=np.float64)

    def distance_using_cache(self, index, query, query_info, vectors, cache):
        if cache is None:
            return self.distance(vectors[index], query)
        if query_info is None:
            query_info = self.query_acceleration_info(query)
        stored = vectors[index]
        _check_lengths(stored, query)
        return self._from_parts(stored.dot(query), cache[index] * query_info[0])

    def __repr__(self) -> str:
        return "CosineDistance()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self))


class CosineDistanceNormalized(_UnacceleratedMetric):
    """Cosine distance for inputs already scaled to unit length."""

    @property
    def name(self) -> str:
        return "cosine_normalized"

    @property
    def is_symmetric(self) -> bool:
        return True

    @property
    def is_subadditive(self) -> bool:
        return True

    @property
    def is_indiscernible(self) -> bool:
        return True

    @property
    def metric_bound(self) -> float:
        return 1.0

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float:
        _check_lengths(a, b)
        return cosine_to_distance(max(min(a.dot(b), 1.0), -1.0))


class ManhattanDistance(_UnacceleratedMetric):

    @property
    def name(self) -> str:
        return "manhattan"

    @property
    def is_symmetric(self) -> bool:
        return True

    @property
    def is_subadditive(self) -> bool:
        return True

    @property
    def is_indiscernible(self) -> bool:
        return True

    @property
    def metric_bound(self) -> float:
        return math.inf

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float:
        return float(np.sum(np.abs(_difference(a, b))))


class ChebyshevDistance(_UnacceleratedMetric):

    @property
    def name(self) -> str:
        return "chebyshev"

    @property
    def is_symmetric(self) -> bool:
        return True

    @property
    def is_subadditive(self) -> bool:
        return True

    @property
    def is_indiscernible(self) -> bool:
        return True

    @property
    def metric_bound(self) -> float:
        return math.inf

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float:
        diff = _difference(a, b)
        if diff.size == 0:
            return 0.0
        return float(np.max(np.abs(diff)))


class MinkowskiDistance(_UnacceleratedMetric):
    """
    Minkowski distance ``(sum |a_i - b_i|^p)^(1/p)``.

    Args:
        p: Order of the norm, must be positive. Only ``p >= 1`` yields a
           true metric; smaller values are accepted but not subadditive.
    """

    def __init__(self, p: float = 2.0):
        if not p > 0 or math.isnan(p):
            raise ConfigurationError(f"Minkowski p must be positive, got {p}")
        self._p = float(p)

    @property
    def p(self) -> float:
        return self._p

    @property
    def name(self) -> str:
        return "minkowski"

    @property
    def is_symmetric(self) -> bool:
        return True

    @property
    def is_subadditive(self) -> bool:
        return self._p >= 1

    @property
    def is_indiscernible(self) -> bool:
        return True

    @property
    def metric_bound(self) -> float:
        return math.inf

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float:
        diff = np.abs(_difference(a, b))
        return float(np.sum(diff ** self._p) ** (1.0 / self._p))

    def __repr__(self) -> str:
        return f"MinkowskiDistance(p={self._p})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MinkowskiDistance) and other._p == self._p

    def __hash__(self) -> int:
        return hash((MinkowskiDistance, self._p))


_METRICS: Dict[str, Callable[..., DistanceMetric]] = {
    "euclidean": EuclideanDistance,
    "l2": EuclideanDistance,
    "cosine": CosineDistance,
    "cosine_normalized": CosineDistanceNormalized,
    "manhattan": ManhattanDistance,
    "l1": ManhattanDistance,
    "chebyshev": ChebyshevDistance,
    "minkowski": MinkowskiDistance,
}


def available_metrics() -> list:
    return sorted(_METRICS)


def get_distance_metric(name: str, **params: Any) -> DistanceMetric:
    """
    Create a distance metric by name.

    Raises:
        ConfigurationError: If the name is unknown or the parameters invalid
    """
    factory = _METRICS.get(name.lower())
    if factory is None:
        raise ConfigurationError(
            f"Unsupported distance metric: {name}. Available: {', '.join(available_metrics())}"
        )
    try:
        return factory(**params)
    except TypeError as e:
        raise ConfigurationError(f"Invalid parameters for metric '{name}': {e}") from e


def is_cosine_metric(metric: Optional[DistanceMetric]) -> bool:
    return isinstance(metric, (CosineDistance, CosineDistanceNormalized))
