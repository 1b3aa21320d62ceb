"""
Collection configuration for MLVectorSearch.

A CollectionConfig describes which collection to build and with which metric.
It is the shape accepted by the QueryProcessor and the REST API.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .interfaces.distance_metric import DistanceMetric
from .interfaces.vector_collection import VectorCollection
from .implementations.distance_metrics import get_distance_metric
from .implementations.random_projection_lsh import RandomProjectionLSH, WORD_BITS
from .implementations.vector_array import VectorArray

CollectionType = Literal["vector_array", "random_projection_lsh"]


class CollectionConfig(BaseModel):
    """Settings for building one vector collection."""
    collection_type: CollectionType = Field(default="vector_array", description="Collection implementation")
    metric: str = Field(default="euclidean", description="Distance metric name")
    metric_params: Dict[str, Any] = Field(default_factory=dict, description="Extra metric arguments")
    signature_bits: int = Field(default=512, gt=0, description="LSH signature length in bits")
    in_memory: bool = Field(default=True, description="Materialise the LSH projection matrix")
    pool_size: Optional[int] = Field(default=None, gt=0, description="LSH Gaussian pool size")
    seed: Optional[int] = Field(default=None, ge=0, description="LSH projection seed")
    parallel: bool = Field(default=False, description="Build with worker threads")

    @field_validator("signature_bits")
    @classmethod
    def _word_aligned(cls, value: int) -> int:
        if value % WORD_BITS != 0:
            raise ValueError(f"signature_bits must be a multiple of {WORD_BITS}")
        return value


def load_config(data: Optional[Dict[str, Any]] = None) -> CollectionConfig:
    """Validate a raw mapping into a CollectionConfig, raising ConfigurationError."""
    try:
        return CollectionConfig(**(data or {}))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid collection config: {e}") from e


def create_metric(config: CollectionConfig) -> DistanceMetric:
    return get_distance_metric(config.metric, **config.metric_params)


def create_collection(config: CollectionConfig) -> VectorCollection:
    """
    Create an empty collection described by ``config``.

    Raises:
        ConfigurationError: If the metric does not suit the collection type
    """
    metric = create_metric(config)
    if config.collection_type == "random_projection_lsh":
        return RandomProjectionLSH(
            signature_bits=config.signature_bits,
            in_memory=config.in_memory,
            pool_size=config.pool_size,
            seed=config.seed,
            metric=metric,
        )
    return VectorArray(metric)
