"""
Pydantic models for MLVectorSearch REST API.

This module defines the request and response models used by the REST API.
"""

from typing import List, Optional, Dict, Any
from uuid import UUID

from pydantic import BaseModel, Field

from ..config import CollectionConfig


class VectorData(BaseModel):
    """Vector data model."""
    values: List[float] = Field(..., description="Vector as a list of floats")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Vector metadata")


class BuildCollectionRequest(BaseModel):
    """Build (or rebuild) a collection from a list of vectors."""
    vectors: List[VectorData] = Field(..., description="Vectors to index")
    config: CollectionConfig = Field(default_factory=CollectionConfig, description="Collection settings")


class BuildCollectionResponse(BaseModel):
    namespace: str
    size: int
    collection_type: str
    execution_time_ms: float


class KNNSearchRequest(BaseModel):
    """K-nearest neighbors query request."""
    vector: List[float] = Field(..., description="Query vector data")
    k: int = Field(..., gt=0, description="Number of nearest neighbors to return")


class RangeSearchRequest(BaseModel):
    """Range search query request."""
    vector: List[float] = Field(..., description="Query vector data")
    radius: float = Field(..., ge=0.0, description="Search radius")


class BatchKNNSearchRequest(BaseModel):
    """K-nearest neighbors for many query vectors at once."""
    vectors: List[List[float]] = Field(..., description="Query vectors")
    k: int = Field(..., gt=0, description="Number of nearest neighbors per query")
    parallel: bool = Field(default=False, description="Split the queries across worker threads")


class Neighbor(BaseModel):
    """Single search result."""
    id: UUID = Field(..., description="Vector ID")
    index: int = Field(..., description="Position of the vector in the collection")
    values: List[float] = Field(..., description="Vector data")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Vector metadata")
    distance: float = Field(..., description="Distance to the query (approximate for LSH)")


class SearchResponse(BaseModel):
    """Search response model."""
    query_type: str = Field(..., description="Type of query executed")
    results: List[Neighbor] = Field(..., description="Results ordered by distance")
    total_results: int = Field(..., description="Total number of results")
    execution_time_ms: Optional[float] = Field(default=None, description="Query execution time in milliseconds")


class BatchSearchResponse(BaseModel):
    query_type: str = Field(default="batch_knn")
    results: List[List[Neighbor]] = Field(..., description="One result list per query, in query order")
    execution_time_ms: Optional[float] = Field(default=None)


class CollectionInfo(BaseModel):
    """Collection information model."""
    namespace: str
    collection_type: str
    metric: str
    size: int
    dimension: Optional[int] = None
    built_at: float
    signature_bits: Optional[int] = None


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Current timestamp")
    collections: int = Field(..., description="Number of built collections")
