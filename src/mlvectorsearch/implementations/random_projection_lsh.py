"""
Random projection locality sensitive hashing for the cosine distance.

Every indexed vector is reduced to a bit signature: one bit per row of a
random Gaussian projection matrix, set when the projection is non-negative.
The fraction of differing bits between two signatures estimates the angle
between the original vectors (Charikar, 2002):

    hamming / signature_bits ~= angle / pi

so a query is a linear scan over packed 32-bit words using popcounts instead
of a scan over the full dimensionality. Reported distances are estimates
derived from the Hamming distance and may differ from the exact cosine
distance; use recall, not equality, to judge results.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigurationError
from ..interfaces.distance_metric import DistanceMetric
from ..interfaces.vector import VectorProtocol
from ..interfaces.vector_collection import (
    VectorCollection, SearchResult, check_k, check_radius, collection_dimension
)
from .bounded_sorted_list import BoundedSortedList
from .distance_metrics import CosineDistance, cosine_to_distance, distance_to_cosine, is_cosine_metric
from .index_table import IndexTable
from .parallel import run_in_blocks

WORD_BITS = 32

# Columns generated at a time by the pool and on-demand matrix modes.
_COLUMN_CHUNK = 1024

_SPLITMIX_GAMMA = np.uint64(0x9E3779B97F4A7C15)
_SPLITMIX_M1 = np.uint64(0xBF58476D1CE4E5B9)
_SPLITMIX_M2 = np.uint64(0x94D049BB133111EB)

logger = logging.getLogger(__name__)


def splitmix64(x) -> np.ndarray:
    """Vectorised splitmix64 finaliser over uint64 values (wrapping arithmetic)."""
    z = np.atleast_1d(np.asarray(x, dtype=np.uint64))
    with np.errstate(over="ignore"):
        z = z + _SPLITMIX_GAMMA
        z = (z ^ (z >> np.uint64(30))) * _SPLITMIX_M1
        z = (z ^ (z >> np.uint64(27))) * _SPLITMIX_M2
        return z ^ (z >> np.uint64(31))


def pack_bits(bits: np.ndarray) -> np.ndarray:
    """
    Pack a boolean array along its last axis into uint32 words.

    Bit ``i`` goes to word ``i // 32`` at bit position ``i % 32``. The last
    axis must be a multiple of 32 long.
    """
    bits = np.ascontiguousarray(bits, dtype=bool)
    if bits.shape[-1] % WORD_BITS != 0:
        raise ValueError(f"Bit count {bits.shape[-1]} is not a multiple of {WORD_BITS}")
    packed = np.packbits(bits, axis=-1, bitorder="little")
    return np.ascontiguousarray(packed).view("<u4").astype(np.uint32)


def unpack_bits(words: np.ndarray) -> np.ndarray:
    """Inverse of :func:`pack_bits`."""
    as_bytes = np.ascontiguousarray(words, dtype="<u4").view(np.uint8)
    return np.unpackbits(as_bytes, axis=-1, bitorder="little").astype(bool)


def hamming_distances(signatures: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Hamming distance between each row of ``signatures`` and ``query``."""
    return np.bitwise_count(np.bitwise_xor(signatures, query)).sum(axis=-1, dtype=np.int64)


class ProjectionMatrix:
    """
    A ``rows x cols`` matrix of standard normal values.

    Three storage modes trade memory for CPU:

    * materialised (``in_memory=True``): the whole matrix is kept;
    * on demand (``in_memory=False``): column ``c`` is regenerated from a
      generator seeded with ``(seed, c)`` whenever it is needed;
    * pool (``pool_size`` given): a fixed pool of Gaussian samples, cell
      ``(r, c)`` reads ``pool[splitmix64(splitmix64(seed ^ r) ^ c) % pool_size]``.

    All modes are deterministic for a given seed, so the same cell always
    reads the same value. Materialised and on-demand modes hold identical
    values.
    """

    def __init__(
        self,
        rows: int,
        cols: int,
        seed: int,
        in_memory: bool = True,
        pool_size: Optional[int] = None
    ):
        self._rows = rows
        self._cols = cols
        self._seed = np.uint64(seed)
        self._dense: Optional[np.ndarray] = None
        self._pool: Optional[np.ndarray] = None
        self._row_hashes: Optional[np.ndarray] = None

        if pool_size is not None:
            self._pool = np.random.default_rng(int(seed)).standard_normal(pool_size)
            self._row_hashes = splitmix64(self._seed ^ np.arange(rows, dtype=np.uint64))
            if pool_size < rows * cols:
                logger.warning(
                    f"Projection pool of {pool_size} values backs a {rows}x{cols} matrix"
                )
        elif in_memory:
            self._dense = self._generate_columns(np.arange(cols))

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def mode(self) -> str:
        if self._pool is not None:
            return "pool"
        if self._dense is not None:
            return "in_memory"
        return "on_demand"

    def _generate_columns(self, indices: np.ndarray) -> np.ndarray:
        out = np.empty((self._rows, len(indices)), dtype=np.float64)
        seed = int(self._seed)
        for j, c in enumerate(indices):
            out[:, j] = np.random.default_rng((seed, int(c))).standard_normal(self._rows)
        return out

    def columns(self, indices: Sequence[int]) -> np.ndarray:
        """The ``rows x len(indices)`` sub-matrix for the given columns."""
        indices = np.asarray(indices, dtype=np.int64)
        if self._dense is not None:
            return self._dense[:, indices]
        if self._pool is not None:
            cells = splitmix64(self._row_hashes[:, None] ^ indices.astype(np.uint64)[None, :])
            return self._pool[cells % np.uint64(self._pool.shape[0])]
        return self._generate_columns(indices)

    def get(self, row: int, col: int) -> float:
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise IndexError(f"Cell ({row}, {col}) outside a {self._rows}x{self._cols} matrix")
        return float(self.columns([col])[row, 0])

    def materialize(self) -> np.ndarray:
        if self._dense is not None:
            return self._dense.copy()
        return self.columns(np.arange(self._cols))

    def multiply(self, vector: VectorProtocol, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Compute ``self @ vector`` into ``out`` (allocated when None).

        Sparse vectors only touch the columns of their non-zero entries.
        """
        if out is None:
            out = np.empty(self._rows, dtype=np.float64)
        if vector.is_sparse:
            indices, values = vector.nonzero()
        else:
            indices, values = None, vector.to_numpy()

        if self._dense is not None:
            if indices is None:
                np.matmul(self._dense, values, out=out)
            else:
                np.matmul(self._dense[:, indices], values, out=out)
            return out

        if indices is None:
            indices = np.arange(self._cols)
        out[:] = 0.0
        for start in range(0, len(indices), _COLUMN_CHUNK):
            chunk = indices[start:start + _COLUMN_CHUNK]
            out += self.columns(chunk) @ values[start:start + _COLUMN_CHUNK]
        return out


@dataclass(frozen=True)
class _LSHState:
    vectors: Tuple[VectorProtocol, ...]
    signatures: np.ndarray
    matrix: Optional[ProjectionMatrix]
    dimension: Optional[int]


class RandomProjectionLSH(VectorCollection):
    """
    Approximate cosine-distance collection using random projection signatures.

    Args:
        signature_bits: Signature length, a positive multiple of 32
        in_memory: Keep the full projection matrix in memory, otherwise
            regenerate columns on demand (less memory, more CPU)
        pool_size: Approximate the matrix with this many Gaussian samples
            reused through a hash of the cell position. Takes precedence
            over ``in_memory``
        seed: Seed for the projection matrix; None draws fresh entropy
        metric: CosineDistance or CosineDistanceNormalized

    Raises:
        ConfigurationError: On an invalid signature length or pool size, or a
            metric outside the cosine family
    """

    def __init__(
        self,
        signature_bits: int = 512,
        in_memory: bool = True,
        pool_size: Optional[int] = None,
        seed: Optional[int] = None,
        metric: Optional[DistanceMetric] = None
    ):
        if isinstance(signature_bits, bool) or not isinstance(signature_bits, int) or signature_bits <= 0:
            raise ConfigurationError(f"signature_bits must be a positive integer, got {signature_bits!r}")
        if signature_bits % WORD_BITS != 0:
            raise ConfigurationError(
                f"signature_bits must be a multiple of {WORD_BITS}, got {signature_bits}"
            )
        if pool_size is not None and pool_size <= 0:
            raise ConfigurationError(f"pool_size must be positive, got {pool_size}")

        metric = metric if metric is not None else CosineDistance()
        self._check_metric(metric)

        self._signature_bits = signature_bits
        self._in_memory = in_memory
        self._pool_size = pool_size
        self._seed = int(np.random.SeedSequence(seed).generate_state(1, dtype=np.uint64)[0])
        self._metric = metric
        self._state = _LSHState(
            vectors=(),
            signatures=np.empty((0, self.words_per_signature), dtype=np.uint32),
            matrix=None,
            dimension=None,
        )
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _check_metric(metric: DistanceMetric) -> None:
        if not is_cosine_metric(metric):
            raise ConfigurationError(
                f"RandomProjectionLSH is only compatible with the cosine distance, got {metric!r}"
            )

    @property
    def signature_bits(self) -> int:
        return self._signature_bits

    @property
    def words_per_signature(self) -> int:
        return self._signature_bits // WORD_BITS

    @property
    def projection_matrix(self) -> Optional[ProjectionMatrix]:
        return self._state.matrix

    @property
    def distance_metric(self) -> DistanceMetric:
        return self._metric

    def set_distance_metric(self, metric: DistanceMetric) -> None:
        self._check_metric(metric)
        self._metric = metric

    def initialize_projection(self, dimension: int) -> ProjectionMatrix:
        """
        Create the projection matrix for vectors of ``dimension`` if needed.

        Called by :meth:`build`, which publishes the returned matrix together
        with the new signatures. The current matrix is returned unchanged for
        the same dimensionality so signatures stay comparable across rebuilds.
        """
        state = self._state
        if state.matrix is not None and state.matrix.cols == dimension:
            return state.matrix
        start_time = time.time()
        matrix = ProjectionMatrix(
            rows=self._signature_bits,
            cols=dimension,
            seed=self._seed,
            in_memory=self._in_memory,
            pool_size=self._pool_size,
        )
        self.logger.info(
            f"Created {matrix.mode} projection matrix {matrix.rows}x{matrix.cols} "
            f"in {(time.time() - start_time) * 1000:.2f}ms"
        )
        return matrix

    @staticmethod
    def _project(matrix: ProjectionMatrix, vector: VectorProtocol, scratch: np.ndarray) -> np.ndarray:
        matrix.multiply(vector, out=scratch)
        return pack_bits(scratch >= 0)

    def signature(self, vector: VectorProtocol) -> np.ndarray:
        """
        Packed signature of ``vector`` under the current projection matrix.

        Raises:
            RuntimeError: If no projection matrix has been created yet
            ValueError: On a dimension mismatch
        """
        matrix = self._state.matrix
        if matrix is None:
            raise RuntimeError("Projection matrix not initialised; build the collection first")
        if vector.length != matrix.cols:
            raise ValueError(f"Vector has length {vector.length}, expected {matrix.cols}")
        return self._project(matrix, vector, np.empty(matrix.rows, dtype=np.float64))

    def build(
        self,
        vectors: Sequence[VectorProtocol],
        metric: Optional[DistanceMetric] = None,
        parallel: bool = False
    ) -> None:
        if metric is not None:
            self._check_metric(metric)
        start_time = time.time()
        vectors = tuple(vectors)
        dimension = collection_dimension(vectors)
        words = self.words_per_signature

        signatures = np.empty((len(vectors), words), dtype=np.uint32)
        matrix = self._state.matrix
        if dimension is not None:
            matrix = self.initialize_projection(dimension)

            def project_block(start: int, end: int) -> None:
                scratch = np.empty(matrix.rows, dtype=np.float64)
                for i in range(start, end):
                    signatures[i] = self._project(matrix, vectors[i], scratch)

            if parallel:
                run_in_blocks(len(vectors), project_block)
            else:
                project_block(0, len(vectors))

        if metric is not None:
            self._metric = metric
        self._state = _LSHState(
            vectors=vectors,
            signatures=signatures,
            matrix=matrix,
            dimension=dimension,
        )
        self.logger.info(
            f"Built RandomProjectionLSH with {len(vectors)} vectors (dim={dimension}, "
            f"bits={self._signature_bits}, parallel={parallel}) "
            f"in {(time.time() - start_time) * 1000:.2f}ms"
        )

    def hamming_to_distance(self, hamming: float) -> float:
        """Approximate cosine distance for a Hamming distance between signatures."""
        return cosine_to_distance(math.cos(hamming * math.pi / self._signature_bits))

    def distance_to_hamming(self, distance: float) -> int:
        """Largest Hamming distance whose estimated cosine distance is within ``distance``."""
        cos = min(max(distance_to_cosine(distance), -1.0), 1.0)
        return int(math.floor(self._signature_bits * math.acos(cos) / math.pi))

    def _query_hamming(self, state: _LSHState, query: VectorProtocol) -> np.ndarray:
        if query.length != state.dimension:
            raise ValueError(
                f"Query has length {query.length}, collection vectors have length {state.dimension}"
            )
        scratch = np.empty(state.matrix.rows, dtype=np.float64)
        query_signature = self._project(state.matrix, query, scratch)
        return hamming_distances(state.signatures, query_signature)

    def search_range(self, query: VectorProtocol, radius: float) -> List[SearchResult]:
        check_radius(radius)
        state = self._state
        if not state.vectors:
            return []
        hamming = self._query_hamming(state, query)
        threshold = self.distance_to_hamming(radius)

        neighbors = np.flatnonzero(hamming <= threshold)
        found = hamming[neighbors]
        table = IndexTable(found)
        neighbors = table.apply(neighbors)
        found = table.apply(found)

        self.logger.debug(
            f"LSH range search (radius={radius}, max hamming={threshold}) "
            f"matched {len(neighbors)} of {len(state.vectors)}"
        )
        return [
            SearchResult(state.vectors[i], self.hamming_to_distance(h), int(i))
            for i, h in zip(neighbors.tolist(), found.tolist())
        ]

    def search_knn(self, query: VectorProtocol, k: int) -> List[SearchResult]:
        check_k(k)
        state = self._state
        if not state.vectors:
            return []
        hamming = self._query_hamming(state, query)

        candidates = np.arange(len(hamming))
        if k < len(hamming):
            # nothing beyond the k-th smallest distance can end up in the result
            kth = np.partition(hamming, k - 1)[k - 1]
            candidates = np.flatnonzero(hamming <= kth)

        knn: BoundedSortedList[int] = BoundedSortedList(k)
        for i, h in zip(candidates.tolist(), hamming[candidates].tolist()):
            if not knn.is_full or h < knn.last_priority:
                knn.add(i, h)

        return [
            SearchResult(state.vectors[i], self.hamming_to_distance(h), i)
            for i, h in knn
        ]

    def get(self, index: int) -> VectorProtocol:
        vectors = self._state.vectors
        if not 0 <= index < len(vectors):
            raise IndexError(f"Index {index} out of range for collection of size {len(vectors)}")
        return vectors[index]

    def size(self) -> int:
        return len(self._state.vectors)

    def __repr__(self) -> str:
        return (
            f"RandomProjectionLSH(size={self.size()}, signature_bits={self._signature_bits}, "
            f"pool_size={self._pool_size})"
        )
