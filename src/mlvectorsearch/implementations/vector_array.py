"""
Brute-force vector collection.

Building is O(n) (plus the metric's acceleration cache), every query is a
linear scan over the stored vectors.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..interfaces.distance_metric import DistanceMetric
from ..interfaces.vector import VectorProtocol
from ..interfaces.vector_collection import (
    VectorCollection, SearchResult, check_k, check_radius, collection_dimension
)
from .bounded_sorted_list import BoundedSortedList
from .distance_metrics import EuclideanDistance
from .index_table import IndexTable


@dataclass(frozen=True)
class _ArrayState:
    vectors: Tuple[VectorProtocol, ...]
    cache: Optional[np.ndarray]
    dimension: Optional[int]


class VectorArray(VectorCollection):
    """
    Naive vector collection searched by a linear scan.

    If the metric supports acceleration, its cache is computed once per build
    and every query computes its own query info once, so each stored vector
    costs a single cached distance evaluation.

    Unlike the index based collections, vectors may also be appended after
    the build with :meth:`add` and :meth:`extend`.
    """

    def __init__(self, metric: Optional[DistanceMetric] = None):
        self._metric: DistanceMetric = metric if metric is not None else EuclideanDistance()
        self._state = _ArrayState(vectors=(), cache=None, dimension=None)
        self.logger = logging.getLogger(__name__)

    @property
    def distance_metric(self) -> DistanceMetric:
        return self._metric

    def set_distance_metric(self, metric: DistanceMetric) -> None:
        state = self._state
        cache = self._build_cache(metric, state.vectors, parallel=False)
        self._metric = metric
        self._state = _ArrayState(vectors=state.vectors, cache=cache, dimension=state.dimension)

    @staticmethod
    def _build_cache(
        metric: DistanceMetric,
        vectors: Sequence[VectorProtocol],
        parallel: bool
    ) -> Optional[np.ndarray]:
        if not metric.supports_acceleration():
            return None
        return metric.build_acceleration_cache(list(vectors), parallel=parallel)

    def build(
        self,
        vectors: Sequence[VectorProtocol],
        metric: Optional[DistanceMetric] = None,
        parallel: bool = False
    ) -> None:
        start_time = time.time()
        metric = metric if metric is not None else self._metric
        vectors = tuple(vectors)
        # nothing is published until the new state is complete
        dimension = collection_dimension(vectors)
        state = _ArrayState(
            vectors=vectors,
            cache=self._build_cache(metric, vectors, parallel),
            dimension=dimension,
        )
        self._metric = metric
        self._state = state
        self.logger.info(
            f"Built VectorArray with {len(vectors)} vectors (dim={dimension}, "
            f"metric={metric!r}) in {(time.time() - start_time) * 1000:.2f}ms"
        )

    def add(self, vector: VectorProtocol) -> None:
        self.extend([vector])

    def extend(self, vectors: Iterable[VectorProtocol]) -> None:
        new = tuple(vectors)
        if not new:
            return
        state = self._state
        combined = state.vectors + new
        dimension = collection_dimension(combined)

        cache = None
        if state.cache is not None:
            # only the appended vectors need new cache entries
            extra = self._metric.build_acceleration_cache(list(new))
            cache = np.concatenate([state.cache, extra])
        elif self._metric.supports_acceleration():
            cache = self._build_cache(self._metric, combined, parallel=False)

        self._state = _ArrayState(vectors=combined, cache=cache, dimension=dimension)
        self.logger.debug(f"Appended {len(new)} vectors, size is now {len(combined)}")

    def _check_query(self, state: _ArrayState, query: VectorProtocol) -> None:
        if state.dimension is not None and query.length != state.dimension:
            raise ValueError(
                f"Query has length {query.length}, collection vectors have length {state.dimension}"
            )

    def search_range(self, query: VectorProtocol, radius: float) -> List[SearchResult]:
        check_radius(radius)
        state = self._state
        if not state.vectors:
            return []
        self._check_query(state, query)

        metric = self._metric
        vectors = state.vectors
        query_info = metric.query_acceleration_info(query) if state.cache is not None else None

        neighbors: List[int] = []
        distances: List[float] = []
        for i in range(len(vectors)):
            d = metric.distance_using_cache(i, query, query_info, vectors, state.cache)
            if d <= radius:
                neighbors.append(i)
                distances.append(d)

        table = IndexTable(np.asarray(distances, dtype=np.float64))
        neighbors = table.apply(neighbors)
        distances = table.apply(distances)
        self.logger.debug(f"Range search (radius={radius}) matched {len(neighbors)} of {len(vectors)}")
        return [SearchResult(vectors[i], d, i) for i, d in zip(neighbors, distances)]

    def search_knn(self, query: VectorProtocol, k: int) -> List[SearchResult]:
        check_k(k)
        state = self._state
        if not state.vectors:
            return []
        self._check_query(state, query)

        metric = self._metric
        vectors = state.vectors
        query_info = metric.query_acceleration_info(query) if state.cache is not None else None

        knn: BoundedSortedList[int] = BoundedSortedList(k)
        for i in range(len(vectors)):
            d = metric.distance_using_cache(i, query, query_info, vectors, state.cache)
            knn.add(i, d)

        return [SearchResult(vectors[i], d, i) for i, d in knn]

    def get(self, index: int) -> VectorProtocol:
        vectors = self._state.vectors
        if not 0 <= index < len(vectors):
            raise IndexError(f"Index {index} out of range for collection of size {len(vectors)}")
        return vectors[index]

    def size(self) -> int:
        return len(self._state.vectors)

    def __repr__(self) -> str:
        return f"VectorArray(size={self.size()}, metric={self._metric!r})"
