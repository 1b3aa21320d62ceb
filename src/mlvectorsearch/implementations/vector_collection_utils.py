"""
Batch queries against a built VectorCollection.

The collection is read-only while these helpers run, so in parallel mode the
queries are split into contiguous blocks and every worker searches its own
block without any locking. Results always line up with the input queries.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..interfaces.vector import VectorProtocol
from ..interfaces.vector_collection import VectorCollection, SearchResult, check_k, check_radius
from .parallel import run_in_blocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NeighborStatistics:
    """Summary of the distance to the k-th neighbour over a set of queries."""
    count: int
    mean: float
    standard_deviation: float
    minimum: float
    maximum: float


def _batch(
    queries: Sequence[VectorProtocol],
    search,
    parallel: bool,
    max_workers: Optional[int]
) -> List[List[SearchResult]]:
    results: List[Optional[List[SearchResult]]] = [None] * len(queries)

    def run(start: int, end: int) -> None:
        for i in range(start, end):
            results[i] = search(queries[i])

    if parallel:
        run_in_blocks(len(queries), run, max_workers=max_workers)
    else:
        run(0, len(queries))
    return results


def all_nearest_neighbors(
    collection: VectorCollection,
    queries: Sequence[VectorProtocol],
    k: int,
    parallel: bool = False,
    max_workers: Optional[int] = None
) -> List[List[SearchResult]]:
    """
    Search ``collection`` for the k nearest neighbours of every query.

    Returns:
        One result list per query, in the order of ``queries``
    """
    check_k(k)
    queries = list(queries)
    logger.debug(f"Batch k-NN search: {len(queries)} queries, k={k}, parallel={parallel}")
    return _batch(queries, lambda q: collection.search_knn(q, k), parallel, max_workers)


def all_eps_neighbors(
    collection: VectorCollection,
    queries: Sequence[VectorProtocol],
    radius: float,
    parallel: bool = False,
    max_workers: Optional[int] = None
) -> List[List[SearchResult]]:
    """All neighbours within ``radius`` of every query, in query order."""
    check_radius(radius)
    queries = list(queries)
    logger.debug(f"Batch range search: {len(queries)} queries, radius={radius}, parallel={parallel}")
    return _batch(queries, lambda q: collection.search_range(q, radius), parallel, max_workers)


def kth_neighbor_stats(
    collection: VectorCollection,
    queries: Sequence[VectorProtocol],
    k: int,
    parallel: bool = False,
    max_workers: Optional[int] = None
) -> NeighborStatistics:
    """
    Statistics of the distance from each query to its k-th nearest neighbour.

    Queries that have fewer than k neighbours in the collection are skipped.
    The standard deviation is the sample one (n - 1 denominator).
    """
    results = all_nearest_neighbors(collection, queries, k, parallel, max_workers)
    kth = np.array([r[k - 1].distance for r in results if len(r) >= k], dtype=np.float64)
    if kth.size == 0:
        return NeighborStatistics(0, math.nan, math.nan, math.nan, math.nan)
    std = float(np.std(kth, ddof=1)) if kth.size > 1 else 0.0
    return NeighborStatistics(
        count=int(kth.size),
        mean=float(np.mean(kth)),
        standard_deviation=std,
        minimum=float(np.min(kth)),
        maximum=float(np.max(kth)),
    )
