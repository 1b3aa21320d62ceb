"""
Bounded, priority-ordered candidate list for nearest neighbour searches.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Generic, Iterator, List, Tuple, TypeVar

T = TypeVar("T")


class BoundedSortedList(Generic[T]):
    """
    Capacity-limited list of items kept in ascending priority order.

    Used to track the k best candidates of a nearest neighbour search. Once
    full, an item is only inserted if its priority is strictly smaller than
    the current worst one, which is then evicted. Equal priorities keep
    insertion order, so earlier candidates win ties.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._priorities: List[float] = []
        self._items: List[T] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self._capacity

    @property
    def last_priority(self) -> float:
        """Priority of the worst kept entry, ``inf`` while empty."""
        if not self._priorities:
            return float("inf")
        return self._priorities[-1]

    def add(self, item: T, priority: float) -> bool:
        """Insert ``item``; returns False if it was rejected."""
        if self.is_full and not priority < self._priorities[-1]:
            return False
        pos = bisect_right(self._priorities, priority)
        self._priorities.insert(pos, priority)
        self._items.insert(pos, item)
        if len(self._items) > self._capacity:
            self._priorities.pop()
            self._items.pop()
        return True

    def last(self) -> Tuple[T, float]:
        if not self._items:
            raise IndexError("last() on empty BoundedSortedList")
        return self._items[-1], self._priorities[-1]

    def first(self) -> Tuple[T, float]:
        if not self._items:
            raise IndexError("first() on empty BoundedSortedList")
        return self._items[0], self._priorities[0]

    def items(self) -> List[T]:
        return list(self._items)

    def priorities(self) -> List[float]:
        return list(self._priorities)

    def clear(self) -> None:
        self._priorities.clear()
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Tuple[T, float]:
        return self._items[index], self._priorities[index]

    def __iter__(self) -> Iterator[Tuple[T, float]]:
        return iter(zip(self._items, self._priorities))

    def __repr__(self) -> str:
        return f"BoundedSortedList(capacity={self._capacity}, size={len(self)})"
