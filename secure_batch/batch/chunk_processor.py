"""
Chunked execution with bounded concurrency and per-item failure isolation.

Items are split into consecutive chunks. Up to `max_concurrency` chunks run
at once on a thread pool; inside a chunk items run one after another. A
worker exception becomes a failure for that item only, and processing never
stops early because something failed.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Sequence, TypeVar

from secure_batch.core.models import ChunkResult, ItemError
from secure_batch.observability import metrics
from secure_batch.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CANCELLED_REASON = "cancelled"


def split_into_chunks(items: Sequence[T], chunk_size: int) -> list[tuple[int, Sequence[T]]]:
    """
    Split items into consecutive slices.

    Returns:
        List of (start_index, slice) pairs in order
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [(start, items[start:start + chunk_size]) for start in range(0, len(items), chunk_size)]


def describe_failure(exc: Exception) -> str:
    """Item failure reason recorded in the job's error list."""
    message = str(exc).strip()
    return message or exc.__class__.__name__


class ChunkProcessor:
    """
    Runs a worker over every item, chunk by chunk.

    Args:
        operation: Label used for metrics and logs ("ingest", "export")
    """

    def __init__(self, operation: str = "batch"):
        self.operation = operation

    def process(
        self,
        items: Sequence[T],
        chunk_size: int,
        max_concurrency: int,
        worker: Callable[[T], Any],
        should_stop: Callable[[], bool] | None = None,
        on_chunk_complete: Callable[[ChunkResult], None] | None = None,
    ) -> list[ChunkResult]:
        """
        Process all items and return one ChunkResult per chunk.

        Args:
            items: Items to process; the position in this sequence is the item index
            chunk_size: Items per chunk
            max_concurrency: Maximum chunks in flight
            worker: Called once per item; raising marks the item failed
            should_stop: Polled before each item; once True the remaining
                items are recorded as cancelled without calling the worker
            on_chunk_complete: Called with each ChunkResult as soon as its chunk finishes

        Returns:
            ChunkResults ordered by chunk index, after every chunk has finished
        """
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")

        chunks = split_into_chunks(items, chunk_size)
        if not chunks:
            return []

        results: list[ChunkResult | None] = [None] * len(chunks)

        with ThreadPoolExecutor(
            max_workers=min(max_concurrency, len(chunks)),
            thread_name_prefix=f"{self.operation}-chunk",
        ) as executor:
            futures = {
                executor.submit(self._run_chunk, chunk_index, start, chunk, worker, should_stop): chunk_index
                for chunk_index, (start, chunk) in enumerate(chunks)
            }

            for future in as_completed(futures):
                chunk_index = futures[future]
                result = future.result()
                results[chunk_index] = result

                if on_chunk_complete is not None:
                    on_chunk_complete(result)

        return [result for result in results if result is not None]

    def _run_chunk(
        self,
        chunk_index: int,
        start_index: int,
        chunk: Sequence[T],
        worker: Callable[[T], Any],
        should_stop: Callable[[], bool] | None,
    ) -> ChunkResult:
        started = time.monotonic()
        succeeded = 0
        errors: list[ItemError] = []

        for offset, item in enumerate(chunk):
            index = start_index + offset

            if should_stop is not None and should_stop():
                errors.append(ItemError(index=index, reason=CANCELLED_REASON))
                continue

            try:
                worker(item)
                succeeded += 1
            except Exception as e:
                errors.append(ItemError(index=index, reason=describe_failure(e)))
                logger.debug(
                    "Chunk item failed",
                    extra={
                        "operation": self.operation,
                        "item_index": index,
                        "error_type": e.__class__.__name__,
                    }
                )

        metrics.observe_histogram(
            metrics.chunk_duration_seconds, time.monotonic() - started, operation=self.operation
        )

        return ChunkResult(
            chunk_index=chunk_index,
            start_index=start_index,
            succeeded=succeeded,
            failed=len(errors),
            errors=errors,
        )
