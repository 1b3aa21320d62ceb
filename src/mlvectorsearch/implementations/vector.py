from __future__ import annotations

import uuid
from typing import Mapping, Any, Sequence, Tuple
from uuid import UUID

import numpy as np

from ..interfaces.vector import VectorProtocol


def _check_same_length(a: VectorProtocol, b: VectorProtocol) -> None:
    if a.length != b.length:
        raise ValueError(
            f"Vectors have differing lengths {a.length} and {b.length}"
        )


class Vector(VectorProtocol):
    """Dense vector backed by a float64 numpy array."""

    def __init__(self, values: Sequence[float], id: UUID | None = None,
                 metadata: Mapping[str, Any] | None = None) -> None:
        self._id: UUID = uuid.uuid4() if id is None else id
        self._values: np.ndarray = np.array(values, dtype=np.float64).ravel()
        self._values.flags.writeable = False
        self._metadata: Mapping[str, Any] = metadata or {}

    @property
    def id(self) -> UUID:
        return self._id

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    @property
    def length(self) -> int:
        return self._values.shape[0]

    @property
    def is_sparse(self) -> bool:
        return False

    def __len__(self) -> int:
        return self.length

    def get(self, index: int) -> float:
        return float(self._values[index])

    def dot(self, other: VectorProtocol) -> float:
        _check_same_length(self, other)
        if other.is_sparse:
            return other.dot(self)
        return float(np.dot(self._values, other.to_numpy()))

    def p_norm(self, p: float = 2.0) -> float:
        if p == 2.0:
            return float(np.sqrt(np.dot(self._values, self._values)))
        return float(np.linalg.norm(self._values, ord=p))

    def nonzero(self) -> Tuple[np.ndarray, np.ndarray]:
        indices = np.flatnonzero(self._values)
        return indices, self._values[indices]

    def to_numpy(self) -> np.ndarray:
        return self._values

    def shape(self) -> tuple:
        return self._values.shape

    def __repr__(self) -> str:
        return f"Vector(id={self.id}, dim={self.shape()}, metadata={self.metadata})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vector):
            return False
        return (
            self.id == other.id
            and np.array_equal(self.values, other.values)
            and self.metadata == other.metadata
        )

    __hash__ = object.__hash__


class SparseVector(VectorProtocol):
    """
    Sparse vector holding only its non-zero entries.

    Indices are kept sorted so that ``get`` is a binary search and dot
    products against other sparse vectors are an intersection of index sets.
    """

    def __init__(self, length: int, indices: Sequence[int], values: Sequence[float],
                 id: UUID | None = None, metadata: Mapping[str, Any] | None = None) -> None:
        if length < 0:
            raise ValueError(f"Vector length must be non-negative, got {length}")
        idx = np.asarray(indices, dtype=np.int64).ravel()
        vals = np.asarray(values, dtype=np.float64).ravel()
        if idx.shape != vals.shape:
            raise ValueError("indices and values must have the same number of entries")
        if idx.size and (idx.min() < 0 or idx.max() >= length):
            raise ValueError(f"Sparse indices must lie in [0, {length})")

        order = np.argsort(idx, kind="stable")
        idx, vals = idx[order], vals[order]
        if idx.size and np.any(np.diff(idx) == 0):
            raise ValueError("Sparse indices must be unique")
        keep = vals != 0.0

        self._length = int(length)
        self._indices: np.ndarray = idx[keep]
        self._values: np.ndarray = vals[keep]
        self._indices.flags.writeable = False
        self._values.flags.writeable = False
        self._id: UUID = uuid.uuid4() if id is None else id
        self._metadata: Mapping[str, Any] = metadata or {}

    @classmethod
    def from_dense(cls, values: Sequence[float], id: UUID | None = None,
                   metadata: Mapping[str, Any] | None = None) -> "SparseVector":
        dense = np.asarray(values, dtype=np.float64).ravel()
        indices = np.flatnonzero(dense)
        return cls(dense.shape[0], indices, dense[indices], id=id, metadata=metadata)

    @property
    def id(self) -> UUID:
        return self._id

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    @property
    def length(self) -> int:
        return self._length

    @property
    def is_sparse(self) -> bool:
        return True

    @property
    def nnz(self) -> int:
        return int(self._indices.shape[0])

    def __len__(self) -> int:
        return self._length

    def get(self, index: int) -> float:
        if index < 0:
            index += self._length
        if not 0 <= index < self._length:
            raise IndexError(f"Index {index} out of range for length {self._length}")
        pos = int(np.searchsorted(self._indices, index))
        if pos < self._indices.shape[0] and self._indices[pos] == index:
            return float(self._values[pos])
        return 0.0

    def dot(self, other: VectorProtocol) -> float:
        _check_same_length(self, other)
        if other.is_sparse:
            other_idx, other_vals = other.nonzero()
            _, mine, theirs = np.intersect1d(
                self._indices, other_idx, assume_unique=True, return_indices=True
            )
            return float(np.dot(self._values[mine], other_vals[theirs]))
        return float(np.dot(self._values, other.to_numpy()[self._indices]))

    def p_norm(self, p: float = 2.0) -> float:
        if self._values.size == 0:
            return 0.0
        return float(np.linalg.norm(self._values, ord=p))

    def nonzero(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._indices, self._values

    def to_numpy(self) -> np.ndarray:
        dense = np.zeros(self._length, dtype=np.float64)
        dense[self._indices] = self._values
        return dense

    def shape(self) -> tuple:
        return (self._length,)

    def __repr__(self) -> str:
        return f"SparseVector(id={self.id}, dim={self.shape()}, nnz={self.nnz})"
