"""Per-image work distribution.

Architecture:
    detect_faces -> map_images(max_workers) -> ThreadPoolExecutor(N) -> cascade.detectMultiScale

With one worker everything runs inline on the calling thread. With more,
images are spread over a thread pool; OpenCV releases the GIL inside the
cascade call. Each worker thread gets its own classifier from the cascade
store, since a classifier must not be used by two threads at once.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def map_images(func: Callable[[T], R], items: Sequence[T], max_workers: int = 1) -> list[R]:
    """Apply ``func`` to every item and return the results in input order."""
    if max_workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    workers = min(max_workers, len(items))
    logger.debug("Running %s items on %s worker threads", len(items), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="haar-detect") as executor:
        return list(executor.map(func, items))
