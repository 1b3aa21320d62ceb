"""
DistanceMetric interface for MLVectorSearch.

A metric computes a non-negative distance between two vectors of equal
length. Metrics that support acceleration split the work into three stages:
a cache built once per collection, query info computed once per query, and a
cheap per-pair evaluation that reuses both.
"""

from typing import Protocol, Optional, Sequence

import numpy as np
from typing_extensions import runtime_checkable

from .vector import VectorProtocol


@runtime_checkable
class DistanceMetric(Protocol):
    """Protocol-interface for distance metrics."""

    @property
    def name(self) -> str: raise NotImplementedError

    @property
    def is_symmetric(self) -> bool: raise NotImplementedError

    @property
    def is_subadditive(self) -> bool: raise NotImplementedError

    @property
    def is_indiscernible(self) -> bool: raise NotImplementedError

    @property
    def metric_bound(self) -> float:
        """Largest value the metric can return (``inf`` if unbounded)."""
        raise NotImplementedError

    def distance(self, a: VectorProtocol, b: VectorProtocol) -> float: raise NotImplementedError

    def supports_acceleration(self) -> bool: raise NotImplementedError

    def build_acceleration_cache(
        self,
        vectors: Sequence[VectorProtocol],
        parallel: bool = False
    ) -> Optional[np.ndarray]:
        """
        Precompute per-vector values for a collection.

        Args:
            vectors: The vectors of the collection, in collection order
            parallel: Compute contiguous blocks on a thread pool

        Returns:
            Flat array aligned with ``vectors``, or None without acceleration
        """
        raise NotImplementedError

    def query_acceleration_info(self, query: VectorProtocol) -> Optional[np.ndarray]:
        raise NotImplementedError

    def distance_using_cache(
        self,
        index: int,
        query: VectorProtocol,
        query_info: Optional[np.ndarray],
        vectors: Sequence[VectorProtocol],
        cache: Optional[np.ndarray]
    ) -> float:
        """
        Distance between ``vectors[index]`` and ``query`` using the cache.

        Returns the same value as ``distance(vectors[index], query)`` up to
        floating point error. Falls back to ``distance`` when ``cache`` is None.
        """
        raise NotImplementedError
