# src/promptbatch/plugins/llm/pooled_executor.py
"""Parallel dispatch of one batch of rows.

Every row of a batch is submitted at once; the batch boundary is the
synchronization point. Network concurrency is further capped by the
provider's permit pool, so effective concurrency is
min(batch size, concurrent_limit).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TypeVar

from promptbatch.contracts.results import RowRecord

T = TypeVar("T")


class PooledExecutor:
    """Executor for one batch of provider calls with strict ordering.

    The executor is synchronous from the caller's perspective:
    execute_batch() blocks until every row has an outcome and returns
    outcomes in submission order, whatever the completion order was.

    Usage:
        with PooledExecutor(max_workers=5) as executor:
            outcomes = executor.execute_batch(batch, process_row)
            assert [o.row_index for o in outcomes] == [r.index for r in batch]
    """

    def __init__(self, max_workers: int, *, thread_name_prefix: str = "promptbatch-row") -> None:
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self._max_workers = max_workers
        self._thread_pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix,
        )

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def execute_batch(
        self,
        rows: Sequence[RowRecord],
        process_fn: Callable[[RowRecord], T],
    ) -> list[T]:
        """Run process_fn for every row concurrently.

        Returns:
            Results in the same order as `rows`.

        Raises:
            Exception: The first exception raised by process_fn, after
                every submitted row has finished.
        """
        if not rows:
            return []

        futures: list[Future[T]] = [self._thread_pool.submit(process_fn, row) for row in rows]

        # Wait for all rows before surfacing any failure
        errors = [f.exception() for f in futures]
        for error in errors:
            if error is not None:
                raise error
        return [f.result() for f in futures]

    def shutdown(self, wait: bool = True) -> None:
        self._thread_pool.shutdown(wait=wait)

    def __enter__(self) -> PooledExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)
