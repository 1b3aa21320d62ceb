"""
QueryProcessor interface for MLVectorSearch.

A QueryProcessor keeps named vector collections (namespaces) and answers
nearest neighbour and range queries against them.
"""

from typing import Protocol, List, Optional, Dict, Any, Iterable, Sequence
from typing_extensions import runtime_checkable

from .vector import VectorDTO


@runtime_checkable
class QueryProcessorProtocol(Protocol):
    """Protocol-interface for the collection query processor."""

    def build_collection(
        self,
        namespace: str,
        vectors: Iterable[VectorDTO],
        config: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Build (or rebuild) the collection of a namespace.

        Args:
            namespace: Name of the collection
            vectors: Vectors to index
            config: Raw CollectionConfig fields; defaults apply when None

        Returns:
            int: Number of indexed vectors

        Raises:
            ConfigurationError: If the config is invalid
        """
        ...

    def find_nearest(self, namespace: str, query: VectorDTO, k: int) -> List[Dict[str, Any]]:
        ...

    def find_in_range(self, namespace: str, query: VectorDTO, radius: float) -> List[Dict[str, Any]]:
        ...

    def batch_find_nearest(
        self,
        namespace: str,
        queries: Sequence[VectorDTO],
        k: int,
        parallel: bool = False
    ) -> List[List[Dict[str, Any]]]:
        ...

    def list_namespaces(self) -> List[str]:
        ...

    def get_collection_info(self, namespace: str) -> Dict[str, Any]:
        ...

    def delete_collection(self, namespace: str) -> bool:
        ...

    def get_statistics(self) -> Dict[str, Any]:
        ...
