"""
Index tables: sort orders computed once and applied to parallel sequences.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, TypeVar, Union

import numpy as np

T = TypeVar("T")


class IndexTable:
    """
    Sorted view of a sequence without sorting the sequence itself.

    Holds the permutation that orders the keys ascending (stable, so equal
    keys keep their original order) and applies it to parallel sequences,
    e.g. to co-sort neighbour indices with their distances.
    """

    def __init__(self, keys: Union[Sequence[Any], np.ndarray]):
        if isinstance(keys, np.ndarray) and keys.ndim == 1:
            self._order = np.argsort(keys, kind="stable")
        else:
            keys = list(keys)
            self._order = np.array(
                sorted(range(len(keys)), key=keys.__getitem__), dtype=np.int64
            )

    @classmethod
    def from_keys(cls, values: Sequence[T], key: Optional[Callable[[T], Any]] = None) -> "IndexTable":
        """Index table over ``values`` ordered by ``key(value)``."""
        if key is None:
            return cls(values)
        return cls([key(v) for v in values])

    @property
    def order(self) -> np.ndarray:
        return self._order

    @property
    def length(self) -> int:
        return int(self._order.shape[0])

    def __len__(self) -> int:
        return self.length

    def index(self, i: int) -> int:
        """Position in the original sequence of the i-th smallest key."""
        return int(self._order[i])

    def swap(self, i: int, j: int) -> None:
        self._order[i], self._order[j] = self._order[j], self._order[i]

    def apply(self, target: Union[List[T], np.ndarray]) -> Union[List[T], np.ndarray]:
        """
        Return ``target`` reordered by this table.

        Raises:
            ValueError: If ``target`` is not as long as the table
        """
        if len(target) != self.length:
            raise ValueError(
                f"Target has length {len(target)} but the index table has length {self.length}"
            )
        if isinstance(target, np.ndarray):
            return target[self._order]
        return [target[i] for i in self._order]
