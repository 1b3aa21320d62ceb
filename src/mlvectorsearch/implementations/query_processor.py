from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Sequence, List, Dict, Any, Optional

from ..config import CollectionConfig, load_config, create_collection
from ..exceptions import CollectionNotFoundError
from ..interfaces.query_processor import QueryProcessorProtocol
from ..interfaces.vector import VectorDTO
from ..interfaces.vector_collection import VectorCollection, SearchResult
from .vector import Vector
from .vector_collection_utils import all_nearest_neighbors


@dataclass(frozen=True)
class _Entry:
    collection: VectorCollection
    config: CollectionConfig
    built_at: float


class QueryProcessor(QueryProcessorProtocol):
    """
    Keeps one built collection per namespace.

    A rebuild creates a new collection and swaps it in under the lock, so
    queries already running against the old one finish undisturbed.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self._collections: Dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._max_workers = max_workers
        self._stats = {
            "builds": 0,
            "knn_queries": 0,
            "range_queries": 0,
            "batch_queries": 0,
        }
        self.logger = logging.getLogger(__name__)

    def _entry(self, namespace: str) -> _Entry:
        with self._lock:
            entry = self._collections.get(namespace)
        if entry is None:
            raise CollectionNotFoundError(namespace)
        return entry

    def _count(self, key: str) -> None:
        with self._lock:
            self._stats[key] += 1

    @staticmethod
    def _to_dicts(results: List[SearchResult]) -> List[dict]:
        return [
            {
                "id": r.vector.id,
                "index": r.index,
                "values": r.vector.to_numpy(),
                "metadata": r.vector.metadata,
                "distance": r.distance,
            }
            for r in results
        ]

    def build_collection(
        self,
        namespace: str,
        vectors: Iterable[VectorDTO],
        config: Optional[Dict[str, Any]] = None
    ) -> int:
        cfg = load_config(config)
        vecs = [Vector(values=v.values, metadata=v.metadata) for v in vectors]
        collection = create_collection(cfg)
        collection.build(vecs, parallel=cfg.parallel)

        with self._lock:
            self._collections[namespace] = _Entry(collection, cfg, time.time())
            self._stats["builds"] += 1
        self.logger.info(
            f"Collection '{namespace}' built: {len(vecs)} vectors, "
            f"type={cfg.collection_type}, metric={cfg.metric}"
        )
        return len(vecs)

    def find_nearest(self, namespace: str, query: VectorDTO, k: int) -> List[dict]:
        entry = self._entry(namespace)
        self._count("knn_queries")
        results = entry.collection.search_knn(Vector(values=query.values), k)
        return self._to_dicts(results)

    def find_in_range(self, namespace: str, query: VectorDTO, radius: float) -> List[dict]:
        entry = self._entry(namespace)
        self._count("range_queries")
        results = entry.collection.search_range(Vector(values=query.values), radius)
        return self._to_dicts(results)

    def batch_find_nearest(
        self,
        namespace: str,
        queries: Sequence[VectorDTO],
        k: int,
        parallel: bool = False
    ) -> List[List[dict]]:
        entry = self._entry(namespace)
        self._count("batch_queries")
        vectors = [Vector(values=q.values) for q in queries]
        results = all_nearest_neighbors(
            entry.collection, vectors, k, parallel=parallel, max_workers=self._max_workers
        )
        return [self._to_dicts(r) for r in results]

    def list_namespaces(self) -> List[str]:
        with self._lock:
            return list(self._collections.keys())

    def get_collection_info(self, namespace: str) -> Dict[str, Any]:
        entry = self._entry(namespace)
        collection = entry.collection
        info = {
            "namespace": namespace,
            "collection_type": entry.config.collection_type,
            "metric": entry.config.metric,
            "size": collection.size(),
            "dimension": collection.get(0).length if collection.size() else None,
            "built_at": entry.built_at,
        }
        if entry.config.collection_type == "random_projection_lsh":
            info["signature_bits"] = entry.config.signature_bits
        return info

    def delete_collection(self, namespace: str) -> bool:
        with self._lock:
            removed = self._collections.pop(namespace, None) is not None
        if removed:
            self.logger.info(f"Collection '{namespace}' deleted")
        return removed

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            stats["collections"] = len(self._collections)
        return stats
