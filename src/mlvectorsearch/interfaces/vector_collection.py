"""
VectorCollection interface for MLVectorSearch.

A vector collection indexes a fixed list of vectors under a distance metric
and answers k-nearest-neighbour and range queries against it.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Protocol, List, Optional, Sequence

from typing_extensions import runtime_checkable

from ..exceptions import ConfigurationError
from .distance_metric import DistanceMetric
from .vector import VectorProtocol


@dataclass(frozen=True)
class SearchResult:
    """A stored vector found by a query, with its distance to the query."""
    vector: VectorProtocol
    distance: float
    index: int


def check_k(k: int) -> None:
    if isinstance(k, bool) or not isinstance(k, numbers.Integral):
        raise ConfigurationError(f"k must be an integer, got {type(k).__name__}")
    if k <= 0:
        raise ConfigurationError(f"k must be positive, got {k}")


def check_radius(radius: float) -> None:
    if not isinstance(radius, numbers.Real) or radius != radius:
        raise ConfigurationError(f"radius must be a real number, got {radius!r}")
    if radius < 0:
        raise ConfigurationError(f"radius must be non-negative, got {radius}")


@runtime_checkable
class VectorCollection(Protocol):
    """Protocol-interface for searchable vector collections."""

    @property
    def distance_metric(self) -> DistanceMetric: raise NotImplementedError

    def set_distance_metric(self, metric: DistanceMetric) -> None: raise NotImplementedError

    def build(
        self,
        vectors: Sequence[VectorProtocol],
        metric: Optional[DistanceMetric] = None,
        parallel: bool = False
    ) -> None:
        """
        Index the given vectors, replacing anything indexed before.

        Args:
            vectors: Vectors to index; all of the same length
            metric: Metric to index with, or None to keep the current one
            parallel: Allow the build to use worker threads
        """
        raise NotImplementedError

    def search_knn(self, query: VectorProtocol, k: int) -> List[SearchResult]:
        """The ``min(k, size())`` closest vectors, ascending by distance."""
        raise NotImplementedError

    def search_range(self, query: VectorProtocol, radius: float) -> List[SearchResult]:
        """All vectors within ``radius`` of the query, ascending by distance."""
        raise NotImplementedError

    def search(
        self,
        query: VectorProtocol,
        k: Optional[int] = None,
        radius: Optional[float] = None
    ) -> List[SearchResult]:
        """Dispatch to :meth:`search_knn` or :meth:`search_range`."""
        if (k is None) == (radius is None):
            raise ConfigurationError("Exactly one of 'k' or 'radius' must be given")
        if k is not None:
            return self.search_knn(query, k)
        return self.search_range(query, radius)

    def get(self, index: int) -> VectorProtocol: raise NotImplementedError

    def size(self) -> int: raise NotImplementedError

    def __len__(self) -> int:
        return self.size()


def collection_dimension(vectors: Sequence[VectorProtocol]) -> Optional[int]:
    """Common length of ``vectors`` (None if empty); ValueError on a mismatch."""
    if not vectors:
        return None
    dim = vectors[0].length
    for i, v in enumerate(vectors):
        if v.length != dim:
            raise ValueError(
                f"All vectors must have the same length: vector {i} has {v.length}, expected {dim}"
            )
    return dim
