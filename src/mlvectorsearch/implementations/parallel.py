"""
Helpers for splitting work into contiguous blocks across worker threads.

numpy releases the GIL inside its kernels, so thread workers give real
speedups for the projection and dot-product heavy loops in this package.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def default_workers() -> int:
    return os.cpu_count() or 1


def get_start_block(n: int, worker_id: int, workers: int) -> int:
    """First index of block ``worker_id`` when ``n`` items are split ``workers`` ways."""
    base = n // workers
    extra = n % workers
    return worker_id * base + min(worker_id, extra)


def get_end_block(n: int, worker_id: int, workers: int) -> int:
    """One past the last index of block ``worker_id``."""
    return get_start_block(n, worker_id + 1, workers)


def run_in_blocks(
    n: int,
    task: Callable[[int, int], T],
    max_workers: Optional[int] = None
) -> List[T]:
    """
    Run ``task(start, end)`` over contiguous blocks of ``range(n)``.

    Results come back in block order regardless of which worker finishes
    first. Exceptions raised by a worker propagate to the caller.
    """
    if n <= 0:
        return []
    workers = min(max_workers or default_workers(), n)
    if workers <= 1:
        return [task(0, n)]

    logger.debug(f"Splitting {n} items into {workers} blocks")
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(task, get_start_block(n, i, workers), get_end_block(n, i, workers))
            for i in range(workers)
        ]
        return [future.result() for future in futures]
