"""Bounded batch runner for per-photo analysis.

Items are processed in groups of ``batch_size`` running concurrently, with a
flat pause between groups to stay under the remote model's rate limits.
Each item settles independently: a failure is recorded on that item's
result and the remaining items still run.

Example:
    >>> analyzer = BatchAnalyzer(batch_size=3, delay_seconds=1.0)
    >>> results = analyzer.run(photos, vision.analyze, key=lambda p: p.id)
    >>> [r.success for r in results]
    [True, True, True, True]
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BATCH_SIZE = 3
DEFAULT_DELAY_SECONDS = 1.0


@dataclass
class BatchItemResult(Generic[R]):
    """Outcome of one item.

    Attributes:
        item_id: Key of the item (``key(item)``).
        success: Whether the worker returned normally.
        result: Worker return value, None on failure.
        error: Error message on failure.
    """

    item_id: Any
    success: bool
    result: R | None = None
    error: str | None = None


@dataclass
class BatchProgress:
    """Progress after a group has settled."""

    completed: int
    total: int
    succeeded: int
    failed: int
    batch_index: int
    batch_count: int

    def percentage(self) -> float:
        if self.total == 0:
            return 100.0
        return (self.completed / self.total) * 100.0

    def to_status_line(self) -> str:
        return (
            f"Batch {self.batch_index}/{self.batch_count}: "
            f"{self.completed}/{self.total} items ({self.percentage():.0f}%), {self.failed} failed"
        )


class BatchAnalyzer:
    """Run a worker over items, ``batch_size`` at a time.

    Args:
        batch_size: Concurrent items per group.
        delay_seconds: Pause between groups (not after the last one).
        sleep: Sleep function; tests inject a recorder.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if delay_seconds < 0:
            raise ValueError(f"delay_seconds must not be negative, got {delay_seconds}")
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], R],
        key: Callable[[T], Any] | None = None,
        progress_callback: Callable[[BatchProgress], None] | None = None,
    ) -> list[BatchItemResult[R]]:
        """Process every item and return results in input order."""
        key = key or (lambda item: item)
        groups = [items[i : i + self.batch_size] for i in range(0, len(items), self.batch_size)]
        results: list[BatchItemResult[R]] = []

        logger.info(f"Processing {len(items)} items in {len(groups)} batches of {self.batch_size}")

        for index, group in enumerate(groups, start=1):
            with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
                futures = [(item, executor.submit(worker, item)) for item in group]
                for item, future in futures:
                    results.append(self._settle(key(item), future))

            if progress_callback:
                failed = sum(1 for r in results if not r.success)
                progress_callback(
                    BatchProgress(
                        completed=len(results),
                        total=len(items),
                        succeeded=len(results) - failed,
                        failed=failed,
                        batch_index=index,
                        batch_count=len(groups),
                    )
                )

            if index < len(groups) and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)

        return results

    @staticmethod
    def _settle(item_id: Any, future: Any) -> BatchItemResult[Any]:
        try:
            return BatchItemResult(item_id=item_id, success=True, result=future.result())
        except Exception as e:
            logger.error(f"Batch item {item_id} failed: {type(e).__name__}: {e}")
            return BatchItemResult(item_id=item_id, success=False, error=str(e) or type(e).__name__)
