"""
MLVectorSearch - nearest neighbour search over vector collections.

This package provides an exact brute-force collection (VectorArray), an
approximate cosine collection based on random projection LSH, the distance
metrics both are built on and a small REST service on top of them.
"""

__version__ = "0.1.0"
__author__ = "MLVectorSearch Team"

from .exceptions import ConfigurationError, CollectionNotFoundError
from .interfaces.vector import VectorProtocol, VectorDTO
from .interfaces.distance_metric import DistanceMetric
from .interfaces.vector_collection import VectorCollection, SearchResult
from .interfaces.query_processor import QueryProcessorProtocol

# Import implementations
from .implementations.vector import Vector, SparseVector
from .implementations.distance_metrics import (
    EuclideanDistance,
    CosineDistance,
    CosineDistanceNormalized,
    ManhattanDistance,
    ChebyshevDistance,
    MinkowskiDistance,
    get_distance_metric,
    available_metrics,
)
from .implementations.bounded_sorted_list import BoundedSortedList
from .implementations.index_table import IndexTable
from .implementations.vector_array import VectorArray
from .implementations.random_projection_lsh import RandomProjectionLSH
from .implementations.vector_collection_utils import (
    NeighborStatistics,
    all_nearest_neighbors,
    all_eps_neighbors,
    kth_neighbor_stats,
)
from .implementations.query_processor import QueryProcessor
from .config import CollectionConfig, load_config, create_collection, create_metric

__all__ = [
    "ConfigurationError",
    "CollectionNotFoundError",
    "VectorProtocol",
    "VectorDTO",
    "DistanceMetric",
    "VectorCollection",
    "SearchResult",
    "QueryProcessorProtocol",
    "Vector",
    "SparseVector",
    "EuclideanDistance",
    "CosineDistance",
    "CosineDistanceNormalized",
    "ManhattanDistance",
    "ChebyshevDistance",
    "MinkowskiDistance",
    "get_distance_metric",
    "available_metrics",
    "BoundedSortedList",
    "IndexTable",
    "VectorArray",
    "RandomProjectionLSH",
    "NeighborStatistics",
    "all_nearest_neighbors",
    "all_eps_neighbors",
    "kth_neighbor_stats",
    "QueryProcessor",
    "CollectionConfig",
    "load_config",
    "create_collection",
    "create_metric",
]
