"""Interfaces package for MLVectorSearch."""

from .vector import VectorProtocol, VectorDTO
from .distance_metric import DistanceMetric
from .vector_collection import VectorCollection, SearchResult
from .query_processor import QueryProcessorProtocol

__all__ = [
    "VectorProtocol",
    "VectorDTO",
    "DistanceMetric",
    "VectorCollection",
    "SearchResult",
    "QueryProcessorProtocol",
]
