from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Mapping, Any, Tuple, runtime_checkable
from uuid import UUID

import numpy as np


@runtime_checkable
class VectorProtocol(Protocol):
    id: UUID
    metadata: Mapping[str, Any]

    @property
    def length(self) -> int:
        ...

    @property
    def is_sparse(self) -> bool:
        ...

    def __len__(self) -> int:
        ...

    def get(self, index: int) -> float:
        ...

    def dot(self, other: "VectorProtocol") -> float:
        ...

    def p_norm(self, p: float = 2.0) -> float:
        ...

    def nonzero(self) -> Tuple[np.ndarray, np.ndarray]:
        ...

    def to_numpy(self) -> np.ndarray:
        ...

    def shape(self) -> tuple:
        ...


@dataclass
class VectorDTO:
    values: Sequence[float]
    metadata: Mapping[str, Any]
